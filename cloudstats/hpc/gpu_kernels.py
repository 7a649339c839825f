"""
Device Backends for the Accelerated Mean/Covariance Reduction

This module detects which accelerator libraries are importable and wraps
each one in a small backend object offering exactly what the buffer manager
needs: allocate a device buffer, upload host data into it, free it, and run
the 9-cumulant reduction on it.

Supported Backends (in order of preference for "auto"):
- CuPy (CUDA): NVIDIA GPUs
- PyTorch CUDA: NVIDIA GPUs through torch
- Numba CUDA: custom reduction kernel for NVIDIA GPUs
- NumPy (fallback): host memory standing in for device memory

Only float64-capable devices are offered, since the accelerated result must
match the host computation to double precision. Apple MLX and PyTorch MPS
are float32-only on the GPU and are therefore not probed.
"""

from typing import Dict, Any, Optional
import logging
import numpy as np

from ..exceptions import DeviceError
from ..geometry.summary import compute_cumulants

logger = logging.getLogger(__name__)

# ============================================================
# GPU Backend Detection
# ============================================================

_CUPY_AVAILABLE = False
_TORCH_CUDA_AVAILABLE = False
_NUMBA_CUDA_AVAILABLE = False
_GPU_BACKEND = None

# Try CuPy (NVIDIA CUDA)
try:
    import cupy as cp
    if cp.cuda.runtime.getDeviceCount() > 0:
        _CUPY_AVAILABLE = True
        _GPU_BACKEND = "cupy"
except Exception:
    cp = None

# Try PyTorch CUDA
try:
    import torch
    if torch.cuda.is_available():
        _TORCH_CUDA_AVAILABLE = True
        if _GPU_BACKEND is None:
            _GPU_BACKEND = "torch"
except ImportError:
    torch = None

# Try Numba CUDA
try:
    from numba import cuda
    if cuda.is_available():
        _NUMBA_CUDA_AVAILABLE = True
        if _GPU_BACKEND is None:
            _GPU_BACKEND = "numba"
except ImportError:
    cuda = None


def is_gpu_available() -> bool:
    """
    Check if any float64-capable accelerator is available.

    Returns:
        True if CuPy, PyTorch CUDA or Numba CUDA found a device
    """
    return _CUPY_AVAILABLE or _TORCH_CUDA_AVAILABLE or _NUMBA_CUDA_AVAILABLE


def get_device_info() -> Dict[str, Any]:
    """
    Get information about available accelerator resources.

    Returns:
        Dictionary with backend availability and device details
    """
    info = {
        'gpu_available': is_gpu_available(),
        'backend': _GPU_BACKEND,
        'cupy_available': _CUPY_AVAILABLE,
        'torch_cuda_available': _TORCH_CUDA_AVAILABLE,
        'numba_cuda_available': _NUMBA_CUDA_AVAILABLE,
        'device_name': None,
        'total_memory_gb': None,
        'free_memory_gb': None
    }

    if _CUPY_AVAILABLE:
        try:
            device = cp.cuda.Device()
            info['device_name'] = f"NVIDIA CUDA Device {device.id}"
            free, total = device.mem_info
            info['total_memory_gb'] = total / 1e9
            info['free_memory_gb'] = free / 1e9
        except Exception as exc:
            logger.debug("Could not query CuPy device memory: %s", exc)
    elif _TORCH_CUDA_AVAILABLE:
        info['device_name'] = torch.cuda.get_device_name(0)
    elif _NUMBA_CUDA_AVAILABLE:
        info['device_name'] = cuda.get_current_device().name.decode()

    return info


# ============================================================
# Backend Interface
# ============================================================

class DeviceBackend:
    """
    Minimal device API used by the buffer manager.

    Handles returned by ``allocate`` are opaque to callers outside this
    package. Every method raises on failure; the buffer manager turns those
    failures into defined mirror states.
    """

    name = "abstract"
    is_accelerator = False

    def allocate(self, n_rows: int):
        """Allocate an uninitialized (n_rows, 3) float64 device buffer."""
        raise NotImplementedError

    def upload(self, handle, host: np.ndarray) -> None:
        """Copy a host (n_rows, 3) array into an allocated buffer."""
        raise NotImplementedError

    def free(self, handle) -> None:
        """Release a buffer returned by ``allocate``."""
        raise NotImplementedError

    def cumulants(self, handle, n_rows: int) -> np.ndarray:
        """Return the 9 raw moment sums of the first n_rows rows as a host array."""
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


def _cumulants_from_moments(sums, second) -> np.ndarray:
    """Pack first and second raw moment sums into the 9-cumulant layout."""
    return np.array([
        sums[0], sums[1], sums[2],
        second[0, 0], second[0, 1], second[0, 2],
        second[1, 1], second[1, 2], second[2, 2],
    ], dtype=np.float64)


# ============================================================
# NumPy Implementation (host fallback)
# ============================================================

class NumpyBackend(DeviceBackend):
    """Host memory as device memory. Always available; the reference path."""

    name = "numpy"
    is_accelerator = False

    def allocate(self, n_rows: int):
        return np.empty((n_rows, 3), dtype=np.float64)

    def upload(self, handle, host: np.ndarray) -> None:
        np.copyto(handle, host)

    def free(self, handle) -> None:
        pass

    def cumulants(self, handle, n_rows: int) -> np.ndarray:
        return compute_cumulants(handle[:n_rows])


# ============================================================
# CuPy Implementation (NVIDIA CUDA)
# ============================================================

class CupyBackend(DeviceBackend):
    """CuPy device arrays; buffers return to CuPy's memory pool on free."""

    name = "cupy"
    is_accelerator = True

    def allocate(self, n_rows: int):
        return cp.empty((n_rows, 3), dtype=cp.float64)

    def upload(self, handle, host: np.ndarray) -> None:
        handle.set(np.ascontiguousarray(host, dtype=np.float64))

    def free(self, handle) -> None:
        # the block returns to CuPy's pool once the mirror drops its handle
        cp.cuda.Stream.null.synchronize()

    def cumulants(self, handle, n_rows: int) -> np.ndarray:
        pts = handle[:n_rows]
        sums = cp.asnumpy(pts.sum(axis=0))
        second = cp.asnumpy(pts.T @ pts)
        return _cumulants_from_moments(sums, second)


# ============================================================
# PyTorch CUDA Implementation
# ============================================================

class TorchBackend(DeviceBackend):
    """PyTorch float64 tensors on the default CUDA device."""

    name = "torch"
    is_accelerator = True

    def __init__(self, device: Optional[str] = None):
        self.device = torch.device(device or "cuda")

    def allocate(self, n_rows: int):
        return torch.empty((n_rows, 3), dtype=torch.float64, device=self.device)

    def upload(self, handle, host: np.ndarray) -> None:
        handle.copy_(torch.from_numpy(np.ascontiguousarray(host, dtype=np.float64)))

    def free(self, handle) -> None:
        torch.cuda.synchronize(self.device)

    def cumulants(self, handle, n_rows: int) -> np.ndarray:
        pts = handle[:n_rows]
        sums = pts.sum(dim=0).cpu().numpy()
        second = (pts.T @ pts).cpu().numpy()
        return _cumulants_from_moments(sums, second)


# ============================================================
# Numba CUDA Implementation
# ============================================================

_cumulant_kernel = None


def _get_cumulant_kernel():
    """Compile the reduction kernel on first use."""
    global _cumulant_kernel
    if _cumulant_kernel is None:

        @cuda.jit
        def cumulant_kernel(points, n_rows, out):
            """One thread per point; atomically accumulate the 9 sums."""
            i = cuda.grid(1)
            if i < n_rows:
                x = points[i, 0]
                y = points[i, 1]
                z = points[i, 2]
                cuda.atomic.add(out, 0, x)
                cuda.atomic.add(out, 1, y)
                cuda.atomic.add(out, 2, z)
                cuda.atomic.add(out, 3, x * x)
                cuda.atomic.add(out, 4, x * y)
                cuda.atomic.add(out, 5, x * z)
                cuda.atomic.add(out, 6, y * y)
                cuda.atomic.add(out, 7, y * z)
                cuda.atomic.add(out, 8, z * z)

        _cumulant_kernel = cumulant_kernel
    return _cumulant_kernel


class NumbaBackend(DeviceBackend):
    """Numba CUDA device arrays with a hand-written reduction kernel."""

    name = "numba"
    is_accelerator = True
    threads_per_block = 256

    def allocate(self, n_rows: int):
        return cuda.device_array((n_rows, 3), dtype=np.float64)

    def upload(self, handle, host: np.ndarray) -> None:
        handle.copy_to_device(np.ascontiguousarray(host, dtype=np.float64))

    def free(self, handle) -> None:
        cuda.synchronize()

    def cumulants(self, handle, n_rows: int) -> np.ndarray:
        out = cuda.to_device(np.zeros(9, dtype=np.float64))
        if n_rows > 0:
            blocks = (n_rows + self.threads_per_block - 1) // self.threads_per_block
            _get_cumulant_kernel()[blocks, self.threads_per_block](handle, n_rows, out)
            cuda.synchronize()
        return out.copy_to_host()


# ============================================================
# Public API
# ============================================================

_BACKEND_FACTORIES = {
    "numpy": (NumpyBackend, lambda: True),
    "cupy": (CupyBackend, lambda: _CUPY_AVAILABLE),
    "torch": (TorchBackend, lambda: _TORCH_CUDA_AVAILABLE),
    "numba": (NumbaBackend, lambda: _NUMBA_CUDA_AVAILABLE),
}


def available_backends() -> list:
    """Names of the backends usable in this process, best first."""
    order = ["cupy", "torch", "numba", "numpy"]
    return [name for name in order if _BACKEND_FACTORIES[name][1]()]


def get_backend(name: str = "auto") -> DeviceBackend:
    """
    Instantiate a device backend.

    Args:
        name: "auto" (best accelerator, else NumPy), "numpy", "cupy",
            "torch" or "numba"

    Returns:
        A DeviceBackend instance

    Raises:
        DeviceError: If the named backend is unknown or not available
    """
    if name == "auto":
        name = available_backends()[0]

    if name not in _BACKEND_FACTORIES:
        raise DeviceError(f"Unknown device backend {name!r}")

    factory, available = _BACKEND_FACTORIES[name]
    if not available():
        raise DeviceError(f"Device backend {name!r} is not available")
    return factory()
