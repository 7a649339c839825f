"""
Accelerator Buffer Manager

Device-resident mirrors of a point cloud's host arrays, and the accelerated
mean/covariance computation that runs on them.

Each mirrored sequence (points, normals, colors) is an independent state
machine:

    ABSENT  --sync-->     PRESENT
    PRESENT --sync-->     PRESENT   (old buffer freed, new one uploaded)
    PRESENT --release-->  ABSENT
    ABSENT  --release-->  ABSENT    (no-op success)

Every operation ends in a defined state and returns an explicit bool. A
failed sync leaves the mirror ABSENT with any partial allocation freed; a
failed free still drops the handle so the mirror is ABSENT. Device failures
are logged, never raised, at this level.

Policy for the accelerated mean/covariance: with ``EngineConfig.auto_sync``
(the default) the points mirror is re-synced from the host before every
computation. With auto_sync disabled the caller syncs explicitly, and a
missing or size-inconsistent mirror raises DeviceError.
"""

from enum import Enum
from typing import Dict, Optional, Tuple
import logging
import weakref
import numpy as np

from ..config import DEFAULT_CONFIG, EngineConfig
from ..diagnostics import Diagnostic, DiagnosticSink, resolve_sink
from ..exceptions import DeviceError
from ..geometry.summary import assemble_mean_and_covariance, compute_mean_and_covariance
from .gpu_kernels import DeviceBackend, get_backend

logger = logging.getLogger(__name__)

SEQUENCES = ("points", "normals", "colors")


class MirrorState(Enum):
    """Lifecycle state of one device mirror."""
    ABSENT = "absent"
    PRESENT = "present"


class DeviceMirror:
    """
    Device copy of one host sequence.

    The handle is private: callers see only the state and the row count.

    Attributes:
        name: Mirrored sequence name ("points", "normals" or "colors")
        backend: Device backend owning the buffer
    """

    def __init__(self, name: str, backend: DeviceBackend):
        self.name = name
        self.backend = backend
        self._handle = None
        self._n_rows = 0

    @property
    def state(self) -> MirrorState:
        return MirrorState.ABSENT if self._handle is None else MirrorState.PRESENT

    @property
    def is_present(self) -> bool:
        return self._handle is not None

    @property
    def n_rows(self) -> int:
        """Rows held on the device; 0 when absent."""
        return self._n_rows if self._handle is not None else 0

    @property
    def nbytes(self) -> int:
        return self.n_rows * 3 * np.dtype(np.float64).itemsize

    def is_consistent_with(self, host: np.ndarray) -> bool:
        """True if the mirror is present and sized to ``host``."""
        return self.is_present and self._n_rows == len(host)

    def sync(self, host: np.ndarray) -> bool:
        """
        Replace the device buffer with a fresh copy of ``host``.

        Returns:
            True if the mirror is now PRESENT with host's contents,
            False if any step failed (the mirror is then ABSENT)
        """
        host = np.ascontiguousarray(host, dtype=np.float64).reshape(-1, 3)

        if not self.release():
            logger.warning("Could not free previous %s buffer before re-sync", self.name)

        try:
            handle = self.backend.allocate(len(host))
        except Exception as exc:
            logger.warning("Device allocation for %s failed: %s", self.name, exc)
            return False

        try:
            self.backend.upload(handle, host)
        except Exception as exc:
            logger.warning("Host-to-device copy of %s failed: %s", self.name, exc)
            self._free_quietly(handle)
            return False

        self._handle = handle
        self._n_rows = len(host)
        return True

    def release(self) -> bool:
        """
        Free the device buffer.

        Returns:
            True if the buffer was freed or nothing was allocated,
            False if the device reported a failure (the handle is dropped
            either way, so the mirror is ABSENT afterwards)
        """
        if self._handle is None:
            return True

        handle, self._handle, self._n_rows = self._handle, None, 0
        try:
            self.backend.free(handle)
        except Exception as exc:
            logger.warning("Freeing %s device buffer failed: %s", self.name, exc)
            return False
        return True

    def cumulants(self) -> np.ndarray:
        """Run the 9-cumulant reduction on the device buffer."""
        if self._handle is None:
            raise DeviceError(f"{self.name} mirror is not present on the device")
        return self.backend.cumulants(self._handle, self._n_rows)

    def _free_quietly(self, handle) -> None:
        try:
            self.backend.free(handle)
        except Exception as exc:
            logger.warning("Freeing partial %s buffer failed: %s", self.name, exc)

    def __repr__(self) -> str:
        return f"DeviceMirror({self.name!r}, {self.state.value}, rows={self.n_rows})"


def _release_mirrors(mirrors: Dict[str, DeviceMirror]) -> None:
    for mirror in mirrors.values():
        mirror.release()


class DeviceBufferManager:
    """
    The set of device mirrors owned by one point cloud.

    The backend is resolved lazily on first use, so constructing a manager
    never touches the device. The mirrors are released when the manager is
    closed, used as a context manager, or garbage collected.

    Example:
        >>> manager = DeviceBufferManager(cloud, backend="numpy")
        >>> manager.sync_all()
        True
        >>> manager.release_all()
        True
    """

    def __init__(self, cloud, backend=None):
        """
        Args:
            cloud: Owning point cloud (held weakly)
            backend: DeviceBackend instance, backend name, or None for "auto"
        """
        self._cloud_ref = weakref.ref(cloud)
        self._backend_spec = backend
        self._backend: Optional[DeviceBackend] = None
        self._mirrors: Dict[str, DeviceMirror] = {}
        self._finalizer = weakref.finalize(self, _release_mirrors, self._mirrors)

    @property
    def backend(self) -> DeviceBackend:
        """
        The resolved device backend.

        Raises:
            DeviceError: If the requested backend is unavailable
        """
        if self._backend is None:
            spec = self._backend_spec
            if isinstance(spec, DeviceBackend):
                self._backend = spec
            else:
                self._backend = get_backend(spec or "auto")
        return self._backend

    def mirror(self, name: str) -> DeviceMirror:
        if name not in SEQUENCES:
            raise KeyError(f"Unknown sequence {name!r}, expected one of {SEQUENCES}")
        if name not in self._mirrors:
            self._mirrors[name] = DeviceMirror(name, self.backend)
        return self._mirrors[name]

    def state(self, name: str) -> MirrorState:
        mirror = self._mirrors.get(name)
        return MirrorState.ABSENT if mirror is None else mirror.state

    def states(self) -> Dict[str, MirrorState]:
        return {name: self.state(name) for name in SEQUENCES}

    def _host(self, name: str) -> np.ndarray:
        cloud = self._cloud_ref()
        if cloud is None:
            raise DeviceError("The owning point cloud no longer exists")
        return getattr(cloud, name)

    def sync(self, name: str) -> bool:
        """
        Mirror one host sequence onto the device.

        Returns:
            True on success; False if the device is unavailable or the
            allocation/copy failed (the mirror is then ABSENT)
        """
        try:
            mirror = self.mirror(name)
            host = self._host(name)
        except DeviceError as exc:
            logger.warning("Cannot sync %s: %s", name, exc)
            return False
        return mirror.sync(host)

    def release(self, name: str) -> bool:
        """Free one mirror. Releasing an absent mirror succeeds."""
        if name not in SEQUENCES:
            raise KeyError(f"Unknown sequence {name!r}, expected one of {SEQUENCES}")
        mirror = self._mirrors.get(name)
        return True if mirror is None else mirror.release()

    def sync_all(self) -> bool:
        """Sync every sequence; True only if all three succeeded."""
        results = [self.sync(name) for name in SEQUENCES]
        return all(results)

    def release_all(self) -> bool:
        """Release every sequence; True only if all three succeeded."""
        results = [self.release(name) for name in SEQUENCES]
        return all(results)

    def close(self) -> bool:
        return self.release_all()

    def __enter__(self) -> 'DeviceBufferManager':
        return self

    def __exit__(self, *args) -> None:
        self.release_all()

    def __repr__(self) -> str:
        states = ", ".join(f"{k}={v.value}" for k, v in self.states().items())
        return f"DeviceBufferManager({states})"


# ============================================================
# Accelerated mean / covariance
# ============================================================

def compute_mean_and_covariance_device(
    cloud,
    config: Optional[EngineConfig] = None,
    diagnostics: Optional[DiagnosticSink] = None
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Mean and covariance computed from the device mirror of the points.

    Produces the same result as the host computation within floating-point
    tolerance, because both assemble the same nine cumulants.

    Args:
        cloud: PointCloud owning the device mirrors
        config: Engine settings; ``auto_sync`` selects the sync policy
        diagnostics: Sink for recoverable conditions (default: logging)

    Returns:
        Tuple of (mean shape (3,), covariance shape (3, 3))

    Raises:
        DeviceError: If the device is unavailable, the sync failed, or
            (with auto_sync disabled) the points mirror is absent or stale
    """
    config = config or DEFAULT_CONFIG
    n_points = len(cloud.points)
    if n_points == 0:
        resolve_sink(diagnostics).report(Diagnostic(
            source="compute_mean_and_covariance_device",
            code="empty_cloud",
            message="Point cloud is empty, returning zero mean and identity covariance",
        ))
        return np.zeros(3), np.identity(3)

    manager = cloud.device_buffers
    if config.auto_sync:
        if not manager.sync("points"):
            raise DeviceError("Could not sync points to the device")

    mirror = manager.mirror("points")
    if not mirror.is_consistent_with(cloud.points):
        raise DeviceError(
            f"Points mirror is {mirror.state.value} with {mirror.n_rows} rows, "
            f"host has {n_points}; call sync_device_memory() first"
        )

    try:
        cumulants = mirror.cumulants()
    except Exception as exc:
        mirror.release()
        raise DeviceError(f"Device reduction failed: {exc}") from exc

    return assemble_mean_and_covariance(cumulants, n_points)


def mean_and_covariance(
    cloud,
    use_device: bool = False,
    config: Optional[EngineConfig] = None,
    diagnostics: Optional[DiagnosticSink] = None
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Mean and covariance, on the device when requested and possible.

    Falls back to the host computation if the device path raises
    DeviceError.
    """
    if use_device:
        try:
            return compute_mean_and_covariance_device(cloud, config, diagnostics)
        except DeviceError as exc:
            logger.warning("Accelerated mean/covariance failed, using host path: %s", exc)
    return compute_mean_and_covariance(cloud, diagnostics)
