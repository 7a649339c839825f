"""
KD-Tree Spatial Index for 3D Nearest-Neighbor Queries

This module provides the spatial index consumed by the distance engine.
The tree is built once (a blocking, single-threaded phase) and is read-only
afterwards, so any number of threads or processes may query it at the same
time: all per-query search state lives in local variables, never on the tree.

Query contract:
    query_knn(point, k) -> (count, indices, squared_distances)
    - count <= k, and count == 0 for a tree built from an empty cloud
    - results ordered by non-decreasing squared distance
    - equal distances are ordered by ascending point index

Complexity Analysis:
- Build: O(n log² n) (sort at every level)
- K-Nearest Neighbors: O(k log k log n) average
- Radius Search: O(n^(2/3) + m) average where m is the result size
- Space: O(n)

Reference:
    Bentley, J. L. (1975). Multidimensional binary search trees used for
    associative searching. Communications of the ACM, 18(9), 509-517.
"""

from dataclasses import dataclass
from heapq import heappush, heappushpop
from typing import List, Tuple, Optional
import numpy as np


@dataclass
class KDNode:
    """
    A node in the KD-tree.

    Attributes:
        point: The 3D point stored at this node
        index: Original index of the point in the input array
        split_dim: Dimension used for splitting (0, 1 or 2)
        left: Points with a smaller split-dimension value
        right: Points with a larger or equal split-dimension value
    """
    point: np.ndarray
    index: int
    split_dim: int
    left: Optional['KDNode'] = None
    right: Optional['KDNode'] = None


class KDTree:
    """
    KD-Tree over a fixed set of 3D points.

    Example:
        >>> points = np.array([[0, 0, 0], [1, 0, 0], [0, 2, 0]])
        >>> tree = KDTree(points)
        >>> count, indices, sq_dists = tree.query_knn([0.9, 0, 0], k=2)
        >>> indices
        array([1, 0])

    Attributes:
        points: Array of indexed points, shape (n, 3)
        root: Root node, None for an empty tree
        n_points: Number of points in the tree
        n_dimensions: Dimensionality of the points
    """

    def __init__(self, points: np.ndarray):
        """
        Build a KD-tree.

        Args:
            points: Array of shape (n, d). An empty array yields a
                zero-capacity tree whose queries find nothing.
        """
        points = np.asarray(points, dtype=np.float64)
        if points.ndim != 2:
            points = points.reshape(-1, 3)
        self.points = points
        self.n_points = len(points)
        self.n_dimensions = points.shape[1]

        if self.n_points == 0:
            self.root = None
        else:
            self.root = self._build(np.arange(self.n_points), depth=0)

    def _build(self, indices: np.ndarray, depth: int) -> Optional[KDNode]:
        """
        Recursively build the subtree holding ``indices``.

        The split dimension cycles with depth. A stable sort keeps points
        with equal coordinates in index order, which keeps the build
        deterministic.
        """
        if len(indices) == 0:
            return None

        split_dim = depth % self.n_dimensions

        order = np.argsort(self.points[indices, split_dim], kind="stable")
        indices = indices[order]

        median_pos = len(indices) // 2
        median_idx = int(indices[median_pos])

        node = KDNode(
            point=self.points[median_idx],
            index=median_idx,
            split_dim=split_dim
        )
        node.left = self._build(indices[:median_pos], depth + 1)
        node.right = self._build(indices[median_pos + 1:], depth + 1)
        return node

    def query_knn(self, query: np.ndarray, k: int) -> Tuple[int, np.ndarray, np.ndarray]:
        """
        Find the k nearest neighbors of a query point.

        A bounded max-heap keyed by (squared distance, index) holds the k
        best candidates; the far side of a split is visited only when the
        splitting plane is within the current k-th best distance.

        Args:
            query: Query point, shape (d,)
            k: Maximum number of neighbors to return

        Returns:
            Tuple of (count found, indices int64 array, squared distances array)
        """
        query = np.asarray(query, dtype=np.float64)
        if self.root is None or k <= 0:
            return 0, np.empty(0, dtype=np.int64), np.empty(0, dtype=np.float64)

        k = min(k, self.n_points)
        # (-sq_dist, -index) so heap[0] is the worst kept candidate
        heap: List[Tuple[float, int]] = []
        self._knn_search(self.root, query, k, heap)

        found = sorted((-neg_d, -neg_i) for neg_d, neg_i in heap)
        indices = np.fromiter((i for _, i in found), dtype=np.int64, count=len(found))
        sq_dists = np.fromiter((d for d, _ in found), dtype=np.float64, count=len(found))
        return len(found), indices, sq_dists

    def _knn_search(
        self,
        node: Optional[KDNode],
        query: np.ndarray,
        k: int,
        heap: List[Tuple[float, int]]
    ) -> None:
        if node is None:
            return

        diff_vec = node.point - query
        sq_dist = float(np.dot(diff_vec, diff_vec))
        entry = (-sq_dist, -node.index)

        if len(heap) < k:
            heappush(heap, entry)
        elif entry > heap[0]:
            heappushpop(heap, entry)

        diff = query[node.split_dim] - node.point[node.split_dim]
        if diff < 0:
            near_child, far_child = node.left, node.right
        else:
            near_child, far_child = node.right, node.left

        self._knn_search(near_child, query, k, heap)

        # <= so that equidistant points with smaller indices are not pruned
        if len(heap) < k or diff * diff <= -heap[0][0]:
            self._knn_search(far_child, query, k, heap)

    def nearest_neighbor(self, query: np.ndarray) -> Tuple[int, float]:
        """
        Find the single nearest neighbor.

        Returns:
            Tuple of (index, Euclidean distance)

        Raises:
            ValueError: If the tree is empty
        """
        count, indices, sq_dists = self.query_knn(query, 1)
        if count == 0:
            raise ValueError("Cannot query empty tree")
        return int(indices[0]), float(np.sqrt(sq_dists[0]))

    def radius_search(self, query: np.ndarray, radius: float) -> List[Tuple[int, float]]:
        """
        Find all points within ``radius`` of the query (boundary inclusive).

        Returns:
            List of (index, distance) tuples sorted by distance, then index
        """
        query = np.asarray(query, dtype=np.float64)
        if self.root is None:
            return []

        results: List[Tuple[int, float]] = []
        self._radius_search(self.root, query, radius * radius, results)
        results.sort(key=lambda r: (r[1], r[0]))
        return [(idx, float(np.sqrt(sq))) for idx, sq in results]

    def _radius_search(
        self,
        node: Optional[KDNode],
        query: np.ndarray,
        sq_radius: float,
        results: List[Tuple[int, float]]
    ) -> None:
        if node is None:
            return

        diff_vec = node.point - query
        sq_dist = float(np.dot(diff_vec, diff_vec))
        if sq_dist <= sq_radius:
            results.append((node.index, sq_dist))

        diff = query[node.split_dim] - node.point[node.split_dim]
        if diff < 0:
            near_child, far_child = node.left, node.right
        else:
            near_child, far_child = node.right, node.left

        self._radius_search(near_child, query, sq_radius, results)
        if diff * diff <= sq_radius:
            self._radius_search(far_child, query, sq_radius, results)

    def __len__(self) -> int:
        return self.n_points


def brute_force_knn(
    points: np.ndarray,
    query: np.ndarray,
    k: int
) -> Tuple[int, np.ndarray, np.ndarray]:
    """
    Brute-force k-nearest neighbors with the same contract as KDTree.query_knn.

    Used as the correctness baseline for the tree.

    Complexity:
        Time: O(n log n) per query
    """
    points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    query = np.asarray(query, dtype=np.float64)
    if len(points) == 0 or k <= 0:
        return 0, np.empty(0, dtype=np.int64), np.empty(0, dtype=np.float64)

    sq_dists = np.sum((points - query) ** 2, axis=1)
    # lexsort: last key is primary, so ties fall back to index order
    order = np.lexsort((np.arange(len(points)), sq_dists))[:k]
    return len(order), order.astype(np.int64), sq_dists[order]


def validate_kdtree(n_points: int = 1000, n_queries: int = 100, k: int = 4,
                    seed: int = 42) -> bool:
    """
    Validate KD-tree k-NN results against brute force on random data.

    Returns:
        True if every query returns the same indices and distances
    """
    rng = np.random.default_rng(seed)
    points = rng.normal(size=(n_points, 3)) * 100
    queries = rng.normal(size=(n_queries, 3)) * 100

    tree = KDTree(points)
    for query in queries:
        kd_count, kd_idx, kd_dist = tree.query_knn(query, k)
        bf_count, bf_idx, bf_dist = brute_force_knn(points, query, k)
        if kd_count != bf_count:
            return False
        if not np.array_equal(kd_idx, bf_idx):
            return False
        if not np.allclose(kd_dist, bf_dist, rtol=1e-12):
            return False
    return True
