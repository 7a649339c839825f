"""
Geometry Module

Point-level statistics over point clouds:
- KD-tree spatial index for k-nearest-neighbor queries
- Geometric summaries (bounds, mean, covariance, transform)
- Per-point distance metrics (nearest neighbor, cloud-to-cloud, Mahalanobis)
- Attribute-consistent merge of two clouds
"""

from .kd_tree import KDTree, brute_force_knn
from .summary import (
    get_min_bound,
    get_max_bound,
    get_bounding_box,
    get_center,
    compute_cumulants,
    assemble_mean_and_covariance,
    compute_mean_and_covariance,
    transform
)
from .distance import (
    compute_nearest_neighbor_distance,
    compute_point_cloud_distance,
    compute_mahalanobis_distance
)
from .merge import merge, merge_into

__all__ = [
    'KDTree',
    'brute_force_knn',
    'get_min_bound',
    'get_max_bound',
    'get_bounding_box',
    'get_center',
    'compute_cumulants',
    'assemble_mean_and_covariance',
    'compute_mean_and_covariance',
    'transform',
    'compute_nearest_neighbor_distance',
    'compute_point_cloud_distance',
    'compute_mahalanobis_distance',
    'merge',
    'merge_into'
]
