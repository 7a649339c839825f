"""
Tests for the Geometric Summary Engine

Covers bounds, the cumulant-based mean/covariance (defaults, exact
symmetry, agreement with NumPy's two-pass estimate) and the homogeneous
transform of points and normals.

Run with: pytest tests/test_summary.py -v
"""

import pytest
import numpy as np

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from cloudstats.data_models import PointCloud
from cloudstats.diagnostics import CollectingSink
from cloudstats.geometry.summary import (
    assemble_mean_and_covariance,
    compute_cumulants,
    compute_mean_and_covariance,
    get_bounding_box,
    get_center,
    get_max_bound,
    get_min_bound,
    transform
)
from cloudstats.synthetic_data import (
    generate_gaussian_cloud,
    generate_repeated_point_cloud
)


class TestBounds:
    """Tests for min/max bounds."""

    def test_empty_cloud_bounds_are_zero(self):
        cloud = PointCloud()
        assert np.array_equal(get_min_bound(cloud), np.zeros(3))
        assert np.array_equal(get_max_bound(cloud), np.zeros(3))

    def test_single_point_box_degenerates(self):
        cloud = PointCloud([[1.0, -2.0, 3.0]])
        assert np.array_equal(get_min_bound(cloud), [1.0, -2.0, 3.0])
        assert np.array_equal(get_max_bound(cloud), [1.0, -2.0, 3.0])

    def test_per_axis_extremum(self):
        """Each axis is scanned independently; the corner need not be a point."""
        cloud = PointCloud([[0.0, 5.0, 1.0], [3.0, -1.0, 2.0], [1.0, 2.0, -4.0]])
        assert np.array_equal(get_min_bound(cloud), [0.0, -1.0, -4.0])
        assert np.array_equal(get_max_bound(cloud), [3.0, 5.0, 2.0])

    def test_min_not_greater_than_max(self):
        cloud = generate_gaussian_cloud(300, seed=11)
        lo, hi = get_bounding_box(cloud)
        assert np.all(lo <= hi)

    def test_center(self):
        cloud = PointCloud([[0.0, 0.0, 0.0], [2.0, 4.0, 6.0]])
        assert np.allclose(get_center(cloud), [1.0, 2.0, 3.0])
        assert np.array_equal(get_center(PointCloud()), np.zeros(3))


class TestCumulants:
    """Tests for the 9-cumulant reduction."""

    def test_layout(self):
        points = np.array([[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]])
        c = compute_cumulants(points)
        expected = [
            5.0, 7.0, 9.0,           # Σx, Σy, Σz
            17.0, 22.0, 27.0,        # Σx², Σxy, Σxz
            29.0, 36.0,              # Σy², Σyz
            45.0                     # Σz²
        ]
        assert np.allclose(c, expected)

    def test_chunking_does_not_change_result(self):
        rng = np.random.default_rng(5)
        points = rng.normal(size=(1000, 3))
        assert np.allclose(compute_cumulants(points, chunk_size=7),
                           compute_cumulants(points, chunk_size=100000))

    def test_assemble_is_exactly_symmetric(self):
        rng = np.random.default_rng(9)
        c = compute_cumulants(rng.normal(size=(50, 3)) * 3 + 10)
        _, cov = assemble_mean_and_covariance(c, 50)
        assert np.array_equal(cov, cov.T)


class TestMeanAndCovariance:
    """Tests for compute_mean_and_covariance."""

    def test_empty_cloud_defaults(self):
        """Empty cloud gives zero mean and identity covariance."""
        sink = CollectingSink()
        mean, cov = compute_mean_and_covariance(PointCloud(), diagnostics=sink)
        assert np.array_equal(mean, np.zeros(3))
        assert np.array_equal(cov, np.identity(3))
        assert sink.codes() == ["empty_cloud"]

    @pytest.mark.parametrize("n_copies", [1, 2, 17, 1000])
    def test_repeated_point(self, n_copies):
        """n copies of one point: the point is the mean, covariance is zero."""
        cloud = generate_repeated_point_cloud([1.5, -2.0, 4.0], n_copies)
        mean, cov = compute_mean_and_covariance(cloud)
        assert np.array_equal(mean, [1.5, -2.0, 4.0])
        assert np.allclose(cov, np.zeros((3, 3)), atol=1e-12)

    def test_exactly_symmetric(self):
        cloud = generate_gaussian_cloud(
            500, mean=[3.0, -1.0, 2.0],
            covariance=[[2.0, 0.3, 0.1], [0.3, 1.0, -0.2], [0.1, -0.2, 0.5]],
            seed=1
        )
        _, cov = compute_mean_and_covariance(cloud)
        for i in range(3):
            for j in range(3):
                assert cov[i, j] == cov[j, i]

    def test_matches_population_covariance(self):
        """Agrees with NumPy's biased two-pass estimate."""
        cloud = generate_gaussian_cloud(2000, mean=[1.0, 2.0, 3.0], seed=2)
        mean, cov = compute_mean_and_covariance(cloud)
        assert np.allclose(mean, cloud.points.mean(axis=0), rtol=1e-12)
        assert np.allclose(cov, np.cov(cloud.points.T, bias=True), rtol=1e-9, atol=1e-12)

    def test_no_diagnostic_for_regular_cloud(self):
        sink = CollectingSink()
        compute_mean_and_covariance(generate_gaussian_cloud(10, seed=0), diagnostics=sink)
        assert len(sink) == 0


class TestTransform:
    """Tests for the in-place homogeneous transform."""

    def test_translation_moves_points_not_normals(self):
        cloud = PointCloud([[1.0, 2.0, 3.0]], normals=[[0.0, 0.0, 1.0]])
        matrix = np.identity(4)
        matrix[:3, 3] = [10.0, 20.0, 30.0]
        transform(cloud, matrix)
        assert np.allclose(cloud.points, [[11.0, 22.0, 33.0]])
        assert np.allclose(cloud.normals, [[0.0, 0.0, 1.0]])

    def test_rotation_applies_to_both(self):
        cloud = PointCloud([[1.0, 0.0, 0.0]], normals=[[1.0, 0.0, 0.0]])
        # 90 degrees about z
        matrix = np.array([
            [0.0, -1.0, 0.0, 0.0],
            [1.0, 0.0, 0.0, 0.0],
            [0.0, 0.0, 1.0, 0.0],
            [0.0, 0.0, 0.0, 1.0],
        ])
        cloud.transform(matrix)
        assert np.allclose(cloud.points, [[0.0, 1.0, 0.0]])
        assert np.allclose(cloud.normals, [[0.0, 1.0, 0.0]])

    def test_preserves_lengths_and_colors(self):
        cloud = generate_gaussian_cloud(20, seed=4)
        colors = cloud.colors.copy()
        matrix = np.identity(4)
        matrix[:3, 3] = 1.0
        cloud.transform(matrix)
        assert len(cloud.points) == len(cloud.normals) == 20
        assert np.array_equal(cloud.colors, colors)

    def test_empty_cloud(self):
        cloud = PointCloud()
        cloud.transform(np.identity(4))
        assert cloud.is_empty()

    def test_rejects_non_4x4(self):
        with pytest.raises(ValueError):
            transform(PointCloud([[0.0, 0.0, 0.0]]), np.identity(3))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
