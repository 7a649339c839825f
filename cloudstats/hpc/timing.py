"""
Timing and Benchmarking Utilities

Used to compare the host and device paths of the statistics engine.

Example:
    >>> with Timer("mean/covariance", verbose=False) as t:
    ...     compute_mean_and_covariance(cloud)
    >>> t.elapsed_ms >= 0
    True
"""

import logging
import statistics
import time
from dataclasses import dataclass, field
from typing import Optional, Callable, List, Dict, Any

logger = logging.getLogger(__name__)


class Timer:
    """
    Context manager for timing code blocks with time.perf_counter().

    Attributes:
        name: Optional name for the timed operation
        elapsed: Elapsed time in seconds
    """

    def __init__(self, name: Optional[str] = None, verbose: bool = True):
        self.name = name
        self.verbose = verbose
        self._start: float = 0
        self.elapsed: float = 0

    def __enter__(self) -> 'Timer':
        self._start = time.perf_counter()
        return self

    def __exit__(self, *args) -> None:
        self.elapsed = time.perf_counter() - self._start
        if self.verbose and self.name:
            logger.info("%s: %.2f ms", self.name, self.elapsed_ms)

    @property
    def elapsed_ms(self) -> float:
        """Elapsed time in milliseconds."""
        return self.elapsed * 1000


def compute_speedup(baseline_time: float, optimized_time: float) -> float:
    """
    Speedup = baseline_time / optimized_time.

    A value above 1 means the optimized path is faster.
    """
    if optimized_time <= 0:
        return float('inf')
    return baseline_time / optimized_time


@dataclass
class BenchmarkResult:
    """
    Timing trials of one implementation.

    Attributes:
        name: Name of the benchmarked operation
        times_ms: Timing results in milliseconds
        metadata: Optional additional information (sizes, backend)
    """
    name: str
    times_ms: List[float] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def add_trial(self, time_ms: float) -> None:
        self.times_ms.append(time_ms)

    @property
    def mean_ms(self) -> float:
        if not self.times_ms:
            return 0.0
        return statistics.mean(self.times_ms)

    @property
    def std_ms(self) -> float:
        if len(self.times_ms) < 2:
            return 0.0
        return statistics.stdev(self.times_ms)

    @property
    def min_ms(self) -> float:
        return min(self.times_ms) if self.times_ms else 0.0

    @property
    def num_trials(self) -> int:
        return len(self.times_ms)

    def summary(self) -> str:
        return (f"{self.name}: {self.mean_ms:.2f} ± {self.std_ms:.2f} ms "
                f"(n={self.num_trials}, min={self.min_ms:.2f})")


class Benchmark:
    """
    Runs several implementations of one operation on the same input.

    Example:
        >>> bench = Benchmark("mean/covariance")
        >>> bench.add_implementation("host", compute_mean_and_covariance)
        >>> bench.add_implementation("device", compute_mean_and_covariance_device)
        >>> results = bench.run(cloud, n_trials=5)
        >>> speedups = bench.get_speedups("host")
    """

    def __init__(self, name: str):
        self.name = name
        self.implementations: Dict[str, Callable] = {}
        self.results: Dict[str, BenchmarkResult] = {}

    def add_implementation(self, name: str, func: Callable) -> None:
        self.implementations[name] = func
        self.results[name] = BenchmarkResult(name)

    def run(self, *args, n_trials: int = 5, warmup: int = 1, **kwargs) -> Dict[str, BenchmarkResult]:
        """
        Time every implementation.

        Args:
            *args: Arguments passed to each implementation
            n_trials: Number of timed runs
            warmup: Number of untimed runs first (JIT compilation, caches)
            **kwargs: Keyword arguments passed to each implementation
        """
        for impl_name, func in self.implementations.items():
            for _ in range(warmup):
                func(*args, **kwargs)

            result = self.results[impl_name]
            for _ in range(n_trials):
                with Timer(verbose=False) as t:
                    func(*args, **kwargs)
                result.add_trial(t.elapsed_ms)

        return self.results

    def get_speedups(self, baseline: str) -> Dict[str, float]:
        """Speedup of each implementation relative to ``baseline``."""
        baseline_time = self.results[baseline].mean_ms
        return {
            name: compute_speedup(baseline_time, result.mean_ms)
            for name, result in self.results.items()
        }

    def print_comparison(self, baseline: Optional[str] = None) -> None:
        """Print a comparison table of the results."""
        if baseline is None:
            baseline = next(iter(self.results))
        speedups = self.get_speedups(baseline)

        print(f"\nBenchmark: {self.name}")
        print("=" * 60)
        print(f"{'Implementation':<20} {'Mean (ms)':>12} {'Std (ms)':>10} {'Speedup':>10}")
        print("-" * 60)
        for name, result in self.results.items():
            speedup_str = f"{speedups[name]:.2f}x" if name != baseline else "(baseline)"
            print(f"{name:<20} {result.mean_ms:>12.2f} {result.std_ms:>10.2f} {speedup_str:>10}")
        print()
