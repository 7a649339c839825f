"""
Point Cloud Statistics and Nearest-Neighbor Query Engine

Geometric summaries (bounds, mean, covariance), per-point distance metrics
(nearest neighbor, cloud-to-cloud, Mahalanobis) and attribute-consistent
merging for 3D point clouds, with an optional accelerator path for the
mean/covariance reduction.

Main modules:
- data_models: the PointCloud store
- geometry: KD-tree, summaries, distances, merge
- hpc: device backends, device buffer mirrors, timing
- synthetic_data: reproducible test clouds
"""

from .config import EngineConfig, DEFAULT_CONFIG
from .data_models import PointCloud
from .diagnostics import CollectingSink, Diagnostic, DiagnosticSink, LoggingSink, setup_logger
from .exceptions import CloudStatsError, DeviceError, SingularCovarianceError
from .geometry import (
    KDTree,
    compute_mahalanobis_distance,
    compute_mean_and_covariance,
    compute_nearest_neighbor_distance,
    compute_point_cloud_distance,
    merge
)
from .hpc import compute_mean_and_covariance_device, mean_and_covariance

__version__ = "1.0.0"

__all__ = [
    'EngineConfig',
    'DEFAULT_CONFIG',
    'PointCloud',
    'CollectingSink',
    'Diagnostic',
    'DiagnosticSink',
    'LoggingSink',
    'setup_logger',
    'CloudStatsError',
    'DeviceError',
    'SingularCovarianceError',
    'KDTree',
    'compute_mahalanobis_distance',
    'compute_mean_and_covariance',
    'compute_nearest_neighbor_distance',
    'compute_point_cloud_distance',
    'merge',
    'compute_mean_and_covariance_device',
    'mean_and_covariance'
]
