"""
Synthetic Point Cloud Generator

All clouds used by the tests and benchmarks are generated here; there is no
external dataset. Every generator takes a seed for reproducibility.

Example Usage:
    >>> from cloudstats.synthetic_data import generate_gaussian_cloud
    >>> cloud = generate_gaussian_cloud(1000, mean=[1, 2, 3], seed=42)
    >>> cloud.has_normals(), cloud.has_colors()
    (True, True)
"""

from typing import Optional, Sequence
import numpy as np

from .data_models import PointCloud


def _unit_normals(rng: np.random.Generator, n: int) -> np.ndarray:
    normals = rng.normal(size=(n, 3))
    lengths = np.linalg.norm(normals, axis=1, keepdims=True)
    lengths[lengths == 0] = 1.0
    return normals / lengths


def generate_gaussian_cloud(
    n_points: int = 1000,
    mean: Sequence[float] = (0.0, 0.0, 0.0),
    covariance: Optional[np.ndarray] = None,
    with_normals: bool = True,
    with_colors: bool = True,
    seed: Optional[int] = None
) -> PointCloud:
    """
    Sample points from a 3D normal distribution.

    Args:
        n_points: Number of points
        mean: Distribution mean
        covariance: 3x3 covariance (default: identity)
        with_normals: Attach random unit normals
        with_colors: Attach uniform random colors in [0, 1)
        seed: Random seed for reproducibility

    Returns:
        PointCloud with n_points points
    """
    rng = np.random.default_rng(seed)
    covariance = np.identity(3) if covariance is None else np.asarray(covariance)
    points = rng.multivariate_normal(np.asarray(mean, dtype=np.float64), covariance,
                                     size=n_points)
    normals = _unit_normals(rng, n_points) if with_normals else None
    colors = rng.random((n_points, 3)) if with_colors else None
    return PointCloud(points, normals, colors)


def generate_grid_cloud(
    shape: Sequence[int] = (10, 10, 10),
    spacing: float = 1.0,
    origin: Sequence[float] = (0.0, 0.0, 0.0)
) -> PointCloud:
    """
    Regular lattice of points, no normals or colors.

    Every interior point has six neighbors at exactly ``spacing``.
    """
    axes = [np.arange(s) * spacing for s in shape]
    xx, yy, zz = np.meshgrid(*axes, indexing="ij")
    points = np.column_stack([xx.ravel(), yy.ravel(), zz.ravel()])
    return PointCloud(points + np.asarray(origin, dtype=np.float64))


def generate_planar_cloud(
    n_points: int = 100,
    extent: float = 10.0,
    height: float = 0.0,
    seed: Optional[int] = None
) -> PointCloud:
    """
    Points scattered on the plane z = ``height``.

    Their covariance is singular, which makes this the standard input for
    the Mahalanobis degeneracy path.
    """
    rng = np.random.default_rng(seed)
    xy = rng.uniform(-extent, extent, size=(n_points, 2))
    points = np.column_stack([xy, np.full(n_points, height)])
    return PointCloud(points)


def generate_repeated_point_cloud(
    point: Sequence[float],
    n_copies: int
) -> PointCloud:
    """``n_copies`` copies of the same point."""
    return PointCloud(np.tile(np.asarray(point, dtype=np.float64), (n_copies, 1)))
