"""
Tests for the Distance Engine

Test Categories:
1. Nearest-neighbor distance (degenerate clouds, duplicates, oracle check)
2. Cloud-to-cloud distance (self distance, empty target)
3. Mahalanobis distance (oracle check, singular covariance)
4. Parallel execution gives the same result as serial execution

Run with: pytest tests/test_distance.py -v
"""

import pytest
import numpy as np
from scipy.spatial import cKDTree
from scipy.spatial.distance import mahalanobis

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from cloudstats.config import EngineConfig
from cloudstats.data_models import PointCloud
from cloudstats.diagnostics import CollectingSink
from cloudstats.exceptions import SingularCovarianceError
from cloudstats.geometry.distance import (
    compute_mahalanobis_distance,
    compute_nearest_neighbor_distance,
    compute_point_cloud_distance,
    invert_covariance,
    nearest_neighbor_distances,
    point_cloud_distances
)
from cloudstats.synthetic_data import (
    generate_gaussian_cloud,
    generate_grid_cloud,
    generate_planar_cloud
)


class TestNearestNeighborDistance:
    """Tests for compute_nearest_neighbor_distance."""

    def test_empty_cloud(self):
        sink = CollectingSink()
        result = compute_nearest_neighbor_distance(PointCloud(), diagnostics=sink)
        assert result.shape == (0,)
        assert len(sink) == 0

    def test_single_point_is_zero(self):
        """A lone point has no neighbor: distance 0.0 plus a diagnostic."""
        sink = CollectingSink()
        result = compute_nearest_neighbor_distance(
            PointCloud([[1.0, 2.0, 3.0]]), diagnostics=sink
        )
        assert list(result) == [0.0]
        assert sink.codes() == ["missing_neighbors"]
        assert sink.diagnostics[0].count == 1

    def test_two_points(self):
        """Two points at distance d both get d."""
        cloud = PointCloud([[0.0, 0.0, 0.0], [3.0, 4.0, 0.0]])
        result = compute_nearest_neighbor_distance(cloud)
        assert np.allclose(result, [5.0, 5.0])

    def test_duplicates_have_zero_distance(self):
        cloud = PointCloud([[1.0, 1.0, 1.0], [1.0, 1.0, 1.0], [5.0, 1.0, 1.0]])
        sink = CollectingSink()
        result = compute_nearest_neighbor_distance(cloud, diagnostics=sink)
        assert np.allclose(result, [0.0, 0.0, 4.0])
        assert len(sink) == 0

    def test_grid_spacing(self):
        """Every lattice point's nearest neighbor is one spacing away."""
        cloud = generate_grid_cloud(shape=(4, 4, 4), spacing=0.5)
        result = compute_nearest_neighbor_distance(cloud)
        assert np.allclose(result, 0.5)

    def test_matches_scipy(self):
        cloud = generate_gaussian_cloud(800, seed=21)
        expected, _ = cKDTree(cloud.points).query(cloud.points, k=2)
        result = compute_nearest_neighbor_distance(cloud)
        assert np.allclose(result, expected[:, 1], rtol=1e-10)

    def test_kernel_reports_mask(self):
        distances, missing = nearest_neighbor_distances(np.array([[0.0, 0.0, 0.0]]))
        assert list(distances) == [0.0]
        assert list(missing) == [True]


class TestPointCloudDistance:
    """Tests for compute_point_cloud_distance."""

    def test_self_distance_is_zero(self):
        cloud = generate_gaussian_cloud(300, seed=8)
        assert np.all(compute_point_cloud_distance(cloud, cloud) == 0.0)

    def test_known_offsets(self):
        source = PointCloud([[0.0, 0.0, 1.0], [10.0, 0.0, 0.0]])
        target = PointCloud([[0.0, 0.0, 0.0], [10.0, 0.0, 2.0], [50.0, 50.0, 50.0]])
        assert np.allclose(compute_point_cloud_distance(source, target), [1.0, 2.0])

    def test_not_symmetric(self):
        a = PointCloud([[0.0, 0.0, 0.0]])
        b = PointCloud([[1.0, 0.0, 0.0], [9.0, 0.0, 0.0]])
        assert np.allclose(compute_point_cloud_distance(a, b), [1.0])
        assert np.allclose(compute_point_cloud_distance(b, a), [1.0, 9.0])

    def test_empty_target(self):
        """Every source point gets 0.0 and one diagnostic counts them."""
        sink = CollectingSink()
        source = generate_gaussian_cloud(5, seed=0)
        result = compute_point_cloud_distance(source, PointCloud(), diagnostics=sink)
        assert np.array_equal(result, np.zeros(5))
        assert sink.codes() == ["missing_neighbors"]
        assert sink.diagnostics[0].count == 5

    def test_empty_source(self):
        result = compute_point_cloud_distance(PointCloud(), generate_gaussian_cloud(5, seed=0))
        assert result.shape == (0,)

    def test_matches_scipy(self):
        source = generate_gaussian_cloud(400, seed=30)
        target = generate_gaussian_cloud(600, mean=[0.5, 0.0, -0.5], seed=31)
        expected, _ = cKDTree(target.points).query(source.points, k=1)
        distances, missing = point_cloud_distances(source.points, target.points)
        assert np.allclose(distances, expected, rtol=1e-10)
        assert not missing.any()


class TestMahalanobisDistance:
    """Tests for compute_mahalanobis_distance."""

    def test_matches_scipy(self):
        cloud = generate_gaussian_cloud(
            500, covariance=[[4.0, 1.0, 0.0], [1.0, 2.0, 0.3], [0.0, 0.3, 1.0]], seed=12
        )
        mean = cloud.points.mean(axis=0)
        cov_inv = np.linalg.inv(np.cov(cloud.points.T, bias=True))
        expected = [mahalanobis(p, mean, cov_inv) for p in cloud.points]
        result = compute_mahalanobis_distance(cloud)
        assert np.allclose(result, expected, rtol=1e-8)

    def test_axis_aligned_cube(self):
        """Corners of a centered cube are equally far from the mean."""
        corners = np.array([[x, y, z] for x in (-1, 1) for y in (-1, 1) for z in (-1, 1)],
                           dtype=np.float64)
        result = compute_mahalanobis_distance(PointCloud(corners))
        # covariance is the identity, so each corner sits at sqrt(3)
        assert np.allclose(result, np.sqrt(3.0))

    def test_empty_cloud(self):
        sink = CollectingSink()
        result = compute_mahalanobis_distance(PointCloud(), diagnostics=sink)
        assert result.shape == (0,)
        assert sink.codes() == ["empty_cloud"]

    def test_planar_cloud_raises(self):
        with pytest.raises(SingularCovarianceError) as excinfo:
            compute_mahalanobis_distance(generate_planar_cloud(50, seed=3))
        assert excinfo.value.covariance.shape == (3, 3)

    def test_single_point_raises(self):
        with pytest.raises(SingularCovarianceError):
            compute_mahalanobis_distance(PointCloud([[1.0, 2.0, 3.0]]))

    def test_three_points_raise(self):
        """Three points always span at most a plane."""
        cloud = PointCloud([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]])
        with pytest.raises(SingularCovarianceError):
            compute_mahalanobis_distance(cloud)

    def test_singular_error_is_value_error(self):
        with pytest.raises(ValueError):
            invert_covariance(np.zeros((3, 3)), 1e-12)

    def test_invert_regular(self):
        cov = np.diag([1.0, 2.0, 4.0])
        assert np.allclose(invert_covariance(cov, 1e-12), np.diag([1.0, 0.5, 0.25]))


class TestParallelExecution:
    """Chunked parallel execution matches the serial path."""

    @pytest.fixture
    def cloud(self):
        return generate_gaussian_cloud(1000, seed=99)

    @pytest.fixture
    def parallel_config(self):
        return EngineConfig(n_jobs=2, chunk_size=128)

    def test_nearest_neighbor(self, cloud, parallel_config):
        serial = compute_nearest_neighbor_distance(cloud)
        parallel = compute_nearest_neighbor_distance(cloud, config=parallel_config)
        assert np.array_equal(serial, parallel)

    def test_point_cloud_distance(self, cloud, parallel_config):
        target = generate_gaussian_cloud(300, seed=100)
        serial = compute_point_cloud_distance(cloud, target)
        parallel = compute_point_cloud_distance(cloud, target, config=parallel_config)
        assert np.array_equal(serial, parallel)

    def test_mahalanobis(self, cloud, parallel_config):
        serial = compute_mahalanobis_distance(cloud)
        parallel = compute_mahalanobis_distance(cloud, config=parallel_config)
        assert np.allclose(serial, parallel, rtol=1e-14)

    def test_n_jobs_argument_overrides_config(self, cloud):
        config = EngineConfig(chunk_size=256)
        serial = compute_nearest_neighbor_distance(cloud, config=config)
        parallel = compute_nearest_neighbor_distance(cloud, n_jobs=2, config=config)
        assert np.array_equal(serial, parallel)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
