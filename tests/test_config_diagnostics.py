"""
Tests for configuration, diagnostics and timing utilities

Run with: pytest tests/test_config_diagnostics.py -v
"""

import logging
import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from cloudstats.config import DEFAULT_CONFIG, EngineConfig
from cloudstats.data_models import PointCloud
from cloudstats.diagnostics import (
    CollectingSink,
    Diagnostic,
    LoggingSink,
    setup_logger
)
from cloudstats.geometry.distance import compute_nearest_neighbor_distance
from cloudstats.hpc.timing import Benchmark, BenchmarkResult, Timer, compute_speedup


class TestEngineConfig:
    """Tests for EngineConfig."""

    def test_defaults(self):
        assert DEFAULT_CONFIG.backend == "auto"
        assert DEFAULT_CONFIG.auto_sync is True
        assert DEFAULT_CONFIG.n_jobs == 1

    def test_rejects_unknown_backend(self):
        with pytest.raises(ValueError):
            EngineConfig(backend="opencl")

    def test_rejects_zero_jobs(self):
        with pytest.raises(ValueError):
            EngineConfig(n_jobs=0)

    def test_from_env(self):
        env = {
            "CLOUDSTATS_BACKEND": "NumPy",
            "CLOUDSTATS_AUTO_SYNC": "false",
            "CLOUDSTATS_N_JOBS": "-1",
        }
        config = EngineConfig.from_env(env)
        assert config.backend == "numpy"
        assert config.auto_sync is False
        assert config.n_jobs == -1

    def test_from_env_empty(self):
        assert EngineConfig.from_env({}) == EngineConfig()

    def test_with_overrides(self):
        config = DEFAULT_CONFIG.with_overrides(chunk_size=10)
        assert config.chunk_size == 10
        assert DEFAULT_CONFIG.chunk_size != 10


class TestDiagnostics:
    """Tests for diagnostic sinks and logging setup."""

    def test_collecting_sink(self):
        sink = CollectingSink()
        sink.report(Diagnostic("op", "empty_cloud", "empty"))
        assert sink.codes() == ["empty_cloud"]
        sink.clear()
        assert len(sink) == 0

    def test_logging_sink(self, caplog):
        logger = logging.getLogger("cloudstats.test")
        sink = LoggingSink(logger, level=logging.WARNING)
        with caplog.at_level(logging.WARNING, logger="cloudstats.test"):
            sink.report(Diagnostic("op", "missing_neighbors", "no neighbors", count=3))
        assert "no neighbors" in caplog.text
        assert "count=3" in caplog.text

    def test_default_sink_logs_at_debug(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="cloudstats.diagnostics"):
            compute_nearest_neighbor_distance(PointCloud([[0.0, 0.0, 0.0]]))
        assert "compute_nearest_neighbor_distance" in caplog.text

    def test_setup_logger_is_idempotent(self):
        logger = setup_logger("cloudstats.idempotent")
        n_handlers = len(logger.handlers)
        setup_logger("cloudstats.idempotent")
        assert len(logger.handlers) == n_handlers


class TestTiming:
    """Tests for timing utilities."""

    def test_timer(self):
        with Timer(verbose=False) as t:
            sum(range(1000))
        assert t.elapsed >= 0
        assert t.elapsed_ms == t.elapsed * 1000

    def test_speedup(self):
        assert compute_speedup(100.0, 25.0) == 4.0
        assert compute_speedup(1.0, 0.0) == float("inf")

    def test_benchmark_result(self):
        result = BenchmarkResult("x", times_ms=[1.0, 3.0])
        assert result.mean_ms == 2.0
        assert result.min_ms == 1.0
        assert result.num_trials == 2

    def test_benchmark_runs_all(self):
        bench = Benchmark("sum")
        bench.add_implementation("builtin", lambda n: sum(range(n)))
        bench.add_implementation("formula", lambda n: n * (n - 1) // 2)
        results = bench.run(1000, n_trials=2)
        assert set(results) == {"builtin", "formula"}
        assert all(r.num_trials == 2 for r in results.values())
        assert bench.get_speedups("builtin")["builtin"] == pytest.approx(1.0)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
