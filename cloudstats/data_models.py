"""
Data Models for the Point Cloud Statistics Engine

This module defines the point cloud store: three parallel (n, 3) float64
arrays, ``points``, ``normals`` and ``colors``, with the invariant that
normals and colors are either empty or exactly as long as points.

The statistics themselves live in ``cloudstats.geometry``; PointCloud
methods are thin conveniences over those functions. The cloud also owns
its device mirrors (see ``cloudstats.hpc.device_buffers``) and releases
them before any operation that resizes or clears its arrays.

Data Flow:
    PointCloud → geometry.summary   → bounds, mean, covariance
               → geometry.distance  → per-point distance arrays
               → geometry.merge     → combined PointCloud
               → hpc.device_buffers → accelerated mean, covariance
"""

from typing import Optional, Tuple
import numpy as np

from .config import DEFAULT_CONFIG, EngineConfig
from .geometry import summary
from .geometry.merge import merge, merge_into
from .hpc.device_buffers import DeviceBufferManager


def _as_vectors(values, name: str) -> np.ndarray:
    """Coerce input to a contiguous (n, 3) float64 array."""
    if values is None:
        return np.zeros((0, 3))
    array = np.array(values, dtype=np.float64)
    if array.size == 0:
        return np.zeros((0, 3))
    if array.ndim != 2 or array.shape[1] != 3:
        raise ValueError(f"{name} must have shape (n, 3), got {array.shape}")
    return np.ascontiguousarray(array)


class PointCloud:
    """
    An ordered set of 3D points with optional per-point normals and colors.

    Attributes:
        points: Positions, shape (n, 3)
        normals: Per-point normals, shape (n, 3) or (0, 3)
        colors: Per-point colors, shape (n, 3) or (0, 3), typically in [0, 1]
        config: Engine settings used by the device path

    Example:
        >>> cloud = PointCloud([[0, 0, 0], [1, 2, 3]])
        >>> cloud.get_max_bound()
        array([1., 2., 3.])
        >>> cloud.has_normals()
        False
    """

    def __init__(
        self,
        points=None,
        normals=None,
        colors=None,
        config: Optional[EngineConfig] = None
    ):
        self.config = config or DEFAULT_CONFIG
        self._device: Optional[DeviceBufferManager] = None
        self._points = np.zeros((0, 3))
        self._normals = np.zeros((0, 3))
        self._colors = np.zeros((0, 3))
        self.set_arrays(
            _as_vectors(points, "points"),
            _as_vectors(normals, "normals"),
            _as_vectors(colors, "colors"),
        )

    # --------------------------------------------------------
    # Sequence accessors
    # --------------------------------------------------------

    @property
    def points(self) -> np.ndarray:
        return self._points

    @points.setter
    def points(self, values) -> None:
        self.set_arrays(_as_vectors(values, "points"), self._normals, self._colors)

    @property
    def normals(self) -> np.ndarray:
        return self._normals

    @normals.setter
    def normals(self, values) -> None:
        self.set_arrays(self._points, _as_vectors(values, "normals"), self._colors)

    @property
    def colors(self) -> np.ndarray:
        return self._colors

    @colors.setter
    def colors(self, values) -> None:
        self.set_arrays(self._points, self._normals, _as_vectors(values, "colors"))

    def set_arrays(self, points: np.ndarray, normals: np.ndarray, colors: np.ndarray) -> None:
        """
        Replace all three sequences at once.

        Any sequence whose array is replaced loses its device mirror.

        Raises:
            ValueError: If normals or colors are neither empty nor as long as points
        """
        n = len(points)
        for name, attr in (("normals", normals), ("colors", colors)):
            if len(attr) not in (0, n):
                raise ValueError(
                    f"{name} has {len(attr)} entries but the cloud has {n} points"
                )

        for name, old, new in (("points", self._points, points),
                               ("normals", self._normals, normals),
                               ("colors", self._colors, colors)):
            if old is not new and self._device is not None:
                self._device.release(name)

        self._points = points
        self._normals = normals
        self._colors = colors

    # --------------------------------------------------------
    # Bookkeeping
    # --------------------------------------------------------

    def has_points(self) -> bool:
        return len(self._points) > 0

    def has_normals(self) -> bool:
        return self.has_points() and len(self._normals) == len(self._points)

    def has_colors(self) -> bool:
        return self.has_points() and len(self._colors) == len(self._points)

    def is_empty(self) -> bool:
        return not self.has_points()

    def clear(self) -> 'PointCloud':
        """Release device mirrors, then drop every point and attribute."""
        self.release_device_memory()
        self.set_arrays(np.zeros((0, 3)), np.zeros((0, 3)), np.zeros((0, 3)))
        return self

    def resize(self, n: int) -> 'PointCloud':
        """
        Grow (zero-filled) or truncate every present sequence to ``n`` rows.

        Device mirrors are released first since their size no longer matches.
        """
        if n < 0:
            raise ValueError("n must be non-negative")

        def _resized(array):
            out = np.zeros((n, 3))
            keep = min(n, len(array))
            out[:keep] = array[:keep]
            return out

        normals = _resized(self._normals) if self.has_normals() else np.zeros((0, 3))
        colors = _resized(self._colors) if self.has_colors() else np.zeros((0, 3))
        self.release_device_memory()
        self.set_arrays(_resized(self._points), normals, colors)
        return self

    def copy(self) -> 'PointCloud':
        """Deep copy of the host arrays. Device mirrors are not copied."""
        return PointCloud(self._points.copy(), self._normals.copy(),
                          self._colors.copy(), config=self.config)

    def __len__(self) -> int:
        return len(self._points)

    def __eq__(self, other) -> bool:
        if not isinstance(other, PointCloud):
            return NotImplemented
        return (np.array_equal(self._points, other._points)
                and np.array_equal(self._normals, other._normals)
                and np.array_equal(self._colors, other._colors))

    __hash__ = None

    def __repr__(self) -> str:
        return (f"PointCloud(n_points={len(self)}, normals={self.has_normals()}, "
                f"colors={self.has_colors()})")

    # --------------------------------------------------------
    # Geometry
    # --------------------------------------------------------

    def get_min_bound(self) -> np.ndarray:
        return summary.get_min_bound(self)

    def get_max_bound(self) -> np.ndarray:
        return summary.get_max_bound(self)

    def get_bounding_box(self) -> Tuple[np.ndarray, np.ndarray]:
        return summary.get_bounding_box(self)

    def get_center(self) -> np.ndarray:
        return summary.get_center(self)

    def transform(self, transformation: np.ndarray) -> 'PointCloud':
        """
        Apply a 4x4 homogeneous transform in place and return self.

        The points mirror (and the normals mirror when normals are present)
        is released, since its contents no longer match the host.
        """
        summary.transform(self, transformation)
        if self._device is not None:
            self._device.release("points")
            if self.has_normals():
                self._device.release("normals")
        return self

    def __add__(self, other: 'PointCloud') -> 'PointCloud':
        return merge(self, other)

    def __iadd__(self, other: 'PointCloud') -> 'PointCloud':
        return merge_into(self, other)

    # --------------------------------------------------------
    # Device mirrors
    # --------------------------------------------------------

    @property
    def device_buffers(self) -> DeviceBufferManager:
        """The cloud's device mirrors, created on first access."""
        if self._device is None:
            self._device = DeviceBufferManager(self, backend=self.config.backend)
        return self._device

    def sync_device_memory(self) -> bool:
        """Mirror points, normals and colors onto the device."""
        return self.device_buffers.sync_all()

    def release_device_memory(self) -> bool:
        """Free every device mirror. A cloud without mirrors succeeds trivially."""
        if self._device is None:
            return True
        return self._device.release_all()

    def __enter__(self) -> 'PointCloud':
        return self

    def __exit__(self, *args) -> None:
        self.release_device_memory()
