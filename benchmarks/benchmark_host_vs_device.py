#!/usr/bin/env python3
"""
Benchmark Script: Host vs Device Performance Comparison

Measures two things across cloud sizes:

1. Mean/covariance: host cumulant reduction vs the device mirror path
   (sync + device reduction, i.e. the cost a caller actually pays)
2. Nearest-neighbor distance: KD-tree engine vs brute-force baseline

Usage:
    python benchmarks/benchmark_host_vs_device.py
    python benchmarks/benchmark_host_vs_device.py --sizes 1000,10000 --trials 5 --backend numpy
"""

import argparse
import sys
from pathlib import Path

import numpy as np

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from cloudstats.config import EngineConfig
from cloudstats.diagnostics import setup_logger
from cloudstats.geometry.distance import compute_nearest_neighbor_distance
from cloudstats.geometry.summary import compute_mean_and_covariance
from cloudstats.hpc.device_buffers import compute_mean_and_covariance_device
from cloudstats.hpc.gpu_kernels import get_device_info
from cloudstats.hpc.timing import Benchmark
from cloudstats.synthetic_data import generate_gaussian_cloud


def brute_force_nn_distance(cloud) -> np.ndarray:
    """O(n²) nearest-neighbor distance, the baseline for the KD-tree."""
    points = cloud.points
    sq = np.sum((points[:, np.newaxis, :] - points[np.newaxis, :, :]) ** 2, axis=2)
    np.fill_diagonal(sq, np.inf)
    return np.sqrt(sq.min(axis=1))


def run_mean_covariance(sizes, n_trials, config):
    for size in sizes:
        cloud = generate_gaussian_cloud(size, seed=42)
        cloud.config = config

        bench = Benchmark(f"Mean/covariance, n={size}")
        bench.add_implementation("host", compute_mean_and_covariance)
        bench.add_implementation(
            f"device ({cloud.device_buffers.backend.name})",
            lambda c: compute_mean_and_covariance_device(c, config)
        )
        bench.run(cloud, n_trials=n_trials)
        bench.print_comparison(baseline="host")
        cloud.release_device_memory()


def run_nearest_neighbor(sizes, n_trials):
    for size in sizes:
        if size > 5000:
            print(f"Skipping brute-force NN for n={size} (quadratic memory)")
            continue
        cloud = generate_gaussian_cloud(size, with_normals=False, with_colors=False, seed=7)

        bench = Benchmark(f"Nearest-neighbor distance, n={size}")
        bench.add_implementation("brute_force", brute_force_nn_distance)
        bench.add_implementation("kdtree", compute_nearest_neighbor_distance)
        bench.run(cloud, n_trials=n_trials)
        bench.print_comparison(baseline="brute_force")


def main():
    parser = argparse.ArgumentParser(description="Host vs device benchmark")
    parser.add_argument("--sizes", default="1000,10000,100000",
                        help="Comma-separated cloud sizes")
    parser.add_argument("--nn-sizes", default="500,2000",
                        help="Comma-separated sizes for the nearest-neighbor benchmark")
    parser.add_argument("--trials", type=int, default=3)
    parser.add_argument("--backend", default="auto",
                        choices=["auto", "numpy", "cupy", "torch", "numba"])
    args = parser.parse_args()

    setup_logger()
    info = get_device_info()
    print(f"GPU Available: {info['gpu_available']} (backend: {info['backend']})")
    if info['device_name']:
        print(f"Device: {info['device_name']}")

    config = EngineConfig(backend=args.backend)
    run_mean_covariance([int(s) for s in args.sizes.split(",")], args.trials, config)
    run_nearest_neighbor([int(s) for s in args.nn_sizes.split(",")], args.trials)


if __name__ == "__main__":
    main()
