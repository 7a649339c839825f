"""
Distance Engine

Per-point distance metrics over point clouds:

1. Nearest-neighbor distance within a cloud
2. Cloud-to-cloud distance (each source point to its closest target point)
3. Mahalanobis distance of each point from the cloud's own distribution

Every output slot depends only on read-only inputs (the cloud and a fully
built KDTree), so the index range can be split across workers without any
locking. The pure kernels return ``(distances, missing_mask)``; the public
functions report degeneracies through a diagnostic sink and return the
distances alone.

Degenerate inputs never raise: a point whose neighbor is missing gets a
distance of 0.0. A singular covariance in the Mahalanobis distance is a
domain error and raises SingularCovarianceError.
"""

from typing import Callable, List, Optional, Tuple
import numpy as np
from joblib import Parallel, delayed

from ..config import DEFAULT_CONFIG, EngineConfig, NN_SELF_NEIGHBORS
from ..diagnostics import Diagnostic, DiagnosticSink, resolve_sink
from ..exceptions import SingularCovarianceError
from .kd_tree import KDTree
from .summary import compute_mean_and_covariance


# ============================================================
# Chunked parallel dispatch
# ============================================================

def _chunk_bounds(n: int, chunk_size: int) -> List[Tuple[int, int]]:
    return [(start, min(start + chunk_size, n)) for start in range(0, n, chunk_size)]


def _run_chunked(
    chunk_fn: Callable,
    n: int,
    args: tuple,
    config: EngineConfig,
    n_jobs: Optional[int]
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Evaluate ``chunk_fn(*args, start, stop)`` over [0, n) and stitch the results.

    Each chunk returns its own (values, missing) pair covering exactly its
    index range, so workers never share an output buffer.
    """
    n_jobs = config.n_jobs if n_jobs is None else n_jobs
    bounds = _chunk_bounds(n, config.chunk_size)

    if n_jobs == 1 or len(bounds) <= 1:
        results = [chunk_fn(*args, start, stop) for start, stop in bounds]
    else:
        results = Parallel(n_jobs=n_jobs, backend=config.parallel_backend)(
            delayed(chunk_fn)(*args, start, stop) for start, stop in bounds
        )

    if not results:
        return np.zeros(0), np.zeros(0, dtype=bool)
    values, missing = zip(*results)
    return np.concatenate(values), np.concatenate(missing)


def _nn_chunk(tree: KDTree, points: np.ndarray, start: int, stop: int):
    out = np.zeros(stop - start)
    missing = np.zeros(stop - start, dtype=bool)
    for i in range(start, stop):
        count, _, sq_dists = tree.query_knn(points[i], NN_SELF_NEIGHBORS)
        if count <= 1:
            missing[i - start] = True
        else:
            # the first match is the point itself
            out[i - start] = np.sqrt(sq_dists[1])
    return out, missing


def _c2c_chunk(tree: KDTree, points: np.ndarray, start: int, stop: int):
    out = np.zeros(stop - start)
    missing = np.zeros(stop - start, dtype=bool)
    for i in range(start, stop):
        count, _, sq_dists = tree.query_knn(points[i], 1)
        if count == 0:
            missing[i - start] = True
        else:
            out[i - start] = np.sqrt(sq_dists[0])
    return out, missing


def _mahalanobis_chunk(centered: np.ndarray, cov_inv: np.ndarray, start: int, stop: int):
    block = centered[start:stop]
    quad = np.einsum("ij,jk,ik->i", block, cov_inv, block)
    # rounding can push a tiny quadratic form below zero
    return np.sqrt(np.maximum(quad, 0.0)), np.zeros(stop - start, dtype=bool)


# ============================================================
# Pure kernels
# ============================================================

def nearest_neighbor_distances(
    points: np.ndarray,
    config: EngineConfig = DEFAULT_CONFIG,
    n_jobs: Optional[int] = None
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Distance from every point to its closest other point.

    Returns:
        Tuple of (distances, missing_mask); masked points have distance 0.0
    """
    points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    tree = KDTree(points)
    return _run_chunked(_nn_chunk, len(points), (tree, points), config, n_jobs)


def point_cloud_distances(
    source_points: np.ndarray,
    target_points: np.ndarray,
    config: EngineConfig = DEFAULT_CONFIG,
    n_jobs: Optional[int] = None
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Distance from every source point to its closest target point.

    Returns:
        Tuple of (distances, missing_mask); masked points have distance 0.0
    """
    source_points = np.asarray(source_points, dtype=np.float64).reshape(-1, 3)
    tree = KDTree(np.asarray(target_points, dtype=np.float64).reshape(-1, 3))
    return _run_chunked(_c2c_chunk, len(source_points), (tree, source_points), config, n_jobs)


def invert_covariance(covariance: np.ndarray, tolerance: float) -> np.ndarray:
    """
    Invert a symmetric covariance matrix, refusing singular input.

    The matrix is singular when its smallest eigenvalue is at most
    ``tolerance`` times its largest (or the largest is not positive).

    Raises:
        SingularCovarianceError: If the matrix cannot be inverted reliably
    """
    eigenvalues = np.linalg.eigvalsh(covariance)
    largest = eigenvalues[-1]
    if not np.all(np.isfinite(eigenvalues)) or largest <= 0.0 \
            or eigenvalues[0] <= tolerance * largest:
        raise SingularCovarianceError(
            "Covariance matrix is singular; the points do not span three dimensions",
            covariance=covariance
        )
    try:
        return np.linalg.inv(covariance)
    except np.linalg.LinAlgError as exc:
        raise SingularCovarianceError(str(exc), covariance=covariance) from exc


# ============================================================
# Public API
# ============================================================

def _report_missing(sink: DiagnosticSink, source: str, missing: np.ndarray) -> None:
    n_missing = int(np.count_nonzero(missing))
    if n_missing:
        sink.report(Diagnostic(
            source=source,
            code="missing_neighbors",
            message="Found points without neighbors, their distance is set to 0.0",
            count=n_missing,
        ))


def compute_nearest_neighbor_distance(
    cloud,
    diagnostics: Optional[DiagnosticSink] = None,
    n_jobs: Optional[int] = None,
    config: Optional[EngineConfig] = None
) -> np.ndarray:
    """
    Nearest-neighbor distance for every point of a cloud.

    A KDTree is built over the cloud and queried for 2 neighbors per point;
    the first is the point itself, the second gives the distance. Points
    with fewer than 2 matches (a single-point cloud) get 0.0 and are
    reported as a "missing_neighbors" diagnostic.

    Args:
        cloud: PointCloud (or any object with a ``points`` array)
        diagnostics: Sink for recoverable conditions (default: logging)
        n_jobs: Worker count override for this call
        config: Engine settings (default: DEFAULT_CONFIG)

    Returns:
        Array of shape (n,) aligned with ``cloud.points``

    Complexity:
        Time: O(n log n) average
    """
    config = config or DEFAULT_CONFIG
    distances, missing = nearest_neighbor_distances(cloud.points, config, n_jobs)
    _report_missing(resolve_sink(diagnostics), "compute_nearest_neighbor_distance", missing)
    return distances


def compute_point_cloud_distance(
    source,
    target,
    diagnostics: Optional[DiagnosticSink] = None,
    n_jobs: Optional[int] = None,
    config: Optional[EngineConfig] = None
) -> np.ndarray:
    """
    For each source point, the distance to the closest point of ``target``.

    If ``target`` is empty every source point gets 0.0 and a
    "missing_neighbors" diagnostic is emitted.

    Returns:
        Array of shape (len(source.points),)

    Complexity:
        Time: O(m log m + n log m) for n source and m target points
    """
    config = config or DEFAULT_CONFIG
    distances, missing = point_cloud_distances(source.points, target.points, config, n_jobs)
    _report_missing(resolve_sink(diagnostics), "compute_point_cloud_distance", missing)
    return distances


def compute_mahalanobis_distance(
    cloud,
    diagnostics: Optional[DiagnosticSink] = None,
    n_jobs: Optional[int] = None,
    config: Optional[EngineConfig] = None
) -> np.ndarray:
    """
    Mahalanobis distance of each point from the cloud's own distribution.

        d(p) = sqrt((p - mean)ᵗ · cov⁻¹ · (p - mean))

    The covariance is inverted once. An empty cloud returns an empty array.

    Raises:
        SingularCovarianceError: If the covariance is not invertible
            (fewer than 4 points, coplanar or collinear points, duplicates)
    """
    config = config or DEFAULT_CONFIG
    if len(cloud.points) == 0:
        # mean/covariance still runs so the empty-cloud diagnostic is emitted
        compute_mean_and_covariance(cloud, diagnostics)
        return np.zeros(0)

    mean, covariance = compute_mean_and_covariance(cloud, diagnostics)
    cov_inv = invert_covariance(covariance, config.singular_tolerance)
    centered = cloud.points - mean
    distances, _ = _run_chunked(
        _mahalanobis_chunk, len(centered), (centered, cov_inv), config, n_jobs
    )
    return distances
