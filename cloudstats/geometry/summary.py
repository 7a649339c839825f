"""
Geometric Summary Engine

Bounding extents, mean and covariance of a point cloud, plus the in-place
homogeneous transform.

Mean and covariance come from a single streaming pass that accumulates nine
raw moment sums (cumulants):

    Σx, Σy, Σz, Σx², Σxy, Σxz, Σy², Σyz, Σz²

followed by one normalization and an assembly step:

    mean = E[x]
    cov  = E[xxᵗ] - E[x]E[x]ᵗ      (population covariance)

No second pass over the data is made. For point sets far from the origin
this loses a few digits compared with a centered two-pass algorithm; the
single pass is what lets the accelerator path reduce the same nine numbers.

The functions accept any object exposing ``points`` and ``normals`` arrays
of shape (n, 3), normally a PointCloud.
"""

from typing import Optional, Tuple
import numpy as np

from ..config import DEFAULT_CHUNK_SIZE
from ..diagnostics import Diagnostic, DiagnosticSink, resolve_sink


def get_min_bound(cloud) -> np.ndarray:
    """
    Per-axis minimum over all points.

    Returns the zero vector for an empty cloud. The result is generally not
    a point of the cloud: each axis is scanned independently.
    """
    if len(cloud.points) == 0:
        return np.zeros(3)
    return cloud.points.min(axis=0)


def get_max_bound(cloud) -> np.ndarray:
    """Per-axis maximum over all points; zero vector for an empty cloud."""
    if len(cloud.points) == 0:
        return np.zeros(3)
    return cloud.points.max(axis=0)


def get_bounding_box(cloud) -> Tuple[np.ndarray, np.ndarray]:
    """Axis-aligned bounding box as (min_bound, max_bound)."""
    return get_min_bound(cloud), get_max_bound(cloud)


def get_center(cloud) -> np.ndarray:
    """Mean position; zero vector for an empty cloud."""
    if len(cloud.points) == 0:
        return np.zeros(3)
    return compute_cumulants(cloud.points)[:3] / len(cloud.points)


def compute_cumulants(points: np.ndarray, chunk_size: int = DEFAULT_CHUNK_SIZE) -> np.ndarray:
    """
    Accumulate the 9 raw moment sums in one pass over ``points``.

    The points are consumed in fixed-size chunks so memory stays bounded
    regardless of cloud size.

    Args:
        points: Array of shape (n, 3)
        chunk_size: Rows per accumulation step

    Returns:
        Array [Σx, Σy, Σz, Σx², Σxy, Σxz, Σy², Σyz, Σz²]

    Complexity:
        Time: O(n), Space: O(chunk_size)
    """
    points = np.asarray(points, dtype=np.float64)
    sums = np.zeros(3)
    second = np.zeros((3, 3))
    for start in range(0, len(points), chunk_size):
        block = points[start:start + chunk_size]
        sums += block.sum(axis=0)
        second += block.T @ block
    return np.array([
        sums[0], sums[1], sums[2],
        second[0, 0], second[0, 1], second[0, 2],
        second[1, 1], second[1, 2], second[2, 2],
    ])


def assemble_mean_and_covariance(cumulants: np.ndarray, n_points: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Turn the 9 cumulant sums into (mean, covariance).

    Off-diagonal entries are computed once and mirrored, so the returned
    matrix is exactly symmetric.
    """
    c = np.asarray(cumulants, dtype=np.float64) / float(n_points)

    mean = c[:3].copy()
    covariance = np.empty((3, 3))
    covariance[0, 0] = c[3] - c[0] * c[0]
    covariance[1, 1] = c[6] - c[1] * c[1]
    covariance[2, 2] = c[8] - c[2] * c[2]
    covariance[0, 1] = c[4] - c[0] * c[1]
    covariance[1, 0] = covariance[0, 1]
    covariance[0, 2] = c[5] - c[0] * c[2]
    covariance[2, 0] = covariance[0, 2]
    covariance[1, 2] = c[7] - c[1] * c[2]
    covariance[2, 1] = covariance[1, 2]
    return mean, covariance


def compute_mean_and_covariance(
    cloud,
    diagnostics: Optional[DiagnosticSink] = None
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Mean and population covariance of the cloud's points.

    An empty cloud yields (zero vector, identity matrix) and an
    "empty_cloud" diagnostic; identity keeps the covariance invertible.

    Args:
        cloud: PointCloud (or any object with a ``points`` array)
        diagnostics: Sink for recoverable conditions (default: logging)

    Returns:
        Tuple of (mean shape (3,), covariance shape (3, 3))
    """
    n_points = len(cloud.points)
    if n_points == 0:
        resolve_sink(diagnostics).report(Diagnostic(
            source="compute_mean_and_covariance",
            code="empty_cloud",
            message="Point cloud is empty, returning zero mean and identity covariance",
        ))
        return np.zeros(3), np.identity(3)

    return assemble_mean_and_covariance(compute_cumulants(cloud.points), n_points)


def transform(cloud, transformation: np.ndarray) -> None:
    """
    Apply a 4x4 homogeneous transformation in place.

    Positions are treated as points (w=1) and normals as directions (w=0),
    so translation does not affect normals. Only the upper three rows of
    the result are kept; no perspective divide is performed.

    Raises:
        ValueError: If the matrix is not 4x4
    """
    transformation = np.asarray(transformation, dtype=np.float64)
    if transformation.shape != (4, 4):
        raise ValueError(f"Expected a 4x4 matrix, got shape {transformation.shape}")

    linear = transformation[:3, :3]
    translation = transformation[:3, 3]

    if len(cloud.points) > 0:
        cloud.points[:] = cloud.points @ linear.T + translation
    if len(cloud.normals) > 0:
        cloud.normals[:] = cloud.normals @ linear.T
