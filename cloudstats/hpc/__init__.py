"""
High-Performance Computing Module

Accelerator support and performance measurement for the statistics engine.

Components:
- gpu_kernels: device backend detection and the device cumulant reduction
- device_buffers: device mirrors of a cloud's arrays and the accelerated
  mean/covariance
- timing: benchmarking utilities
"""

from .gpu_kernels import (
    DeviceBackend,
    NumpyBackend,
    available_backends,
    get_backend,
    get_device_info,
    is_gpu_available
)
from .device_buffers import (
    DeviceBufferManager,
    DeviceMirror,
    MirrorState,
    compute_mean_and_covariance_device,
    mean_and_covariance
)
from .timing import (
    Timer,
    Benchmark,
    BenchmarkResult,
    compute_speedup
)

__all__ = [
    'DeviceBackend',
    'NumpyBackend',
    'available_backends',
    'get_backend',
    'get_device_info',
    'is_gpu_available',
    'DeviceBufferManager',
    'DeviceMirror',
    'MirrorState',
    'compute_mean_and_covariance_device',
    'mean_and_covariance',
    'Timer',
    'Benchmark',
    'BenchmarkResult',
    'compute_speedup'
]
