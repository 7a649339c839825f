"""
Test Suite for the Point Cloud Statistics Engine

This package contains unit tests and integration tests for:
- KD-tree spatial index correctness
- Geometric summaries and distance metrics
- Merge attribute rules
- Device buffer lifecycle and the accelerated mean/covariance

Run tests with: pytest -v
"""
