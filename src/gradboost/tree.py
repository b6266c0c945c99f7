"""
Least-squares regression tree used as the boosting base learner.

The tree is grown greedily: at each node every feature and every midpoint
between consecutive distinct sorted values is scored by the summed squared
deviation of the two partitions, and the lowest score wins. Ties go to the
lowest feature index, then the lowest threshold.

Leaves remember which training rows reached them, so the booster can replace
the naive leaf mean with a loss-specific region value afterwards.

Reference: Breiman, Friedman, Olshen & Stone (1984), Classification and
Regression Trees, Chapter 8.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple
import logging
import numpy as np
from joblib import Parallel, delayed

from .exceptions import InputError, StateError

logger = logging.getLogger(__name__)

# Impurity difference, relative to the node sum of squares, below which two splits tie
TIE_TOLERANCE = 1e-10


@dataclass
class Node:
    """A tree node. Internal nodes carry a split, leaves carry a value."""

    node_id: int
    depth: int
    value: float
    n_samples: int
    feature: int = -1
    threshold: float = np.nan
    left: int = -1
    right: int = -1
    sample_indices: Optional[np.ndarray] = None

    @property
    def is_leaf(self) -> bool:
        return self.left == -1


@dataclass(frozen=True)
class Split:
    feature: int
    threshold: float
    impurity: float


def _best_split_for_feature(
    x: np.ndarray,
    y: np.ndarray,
    feature: int,
    min_samples_leaf: int
) -> Optional[Split]:
    """
    Best threshold on one feature, scored by left SSE + right SSE.

    Uses cumulative sums over the sorted column so every candidate costs O(1).
    Returns None if no threshold leaves both sides with enough samples.
    """
    n = x.shape[0]
    order = np.argsort(x, kind="mergesort")
    xs = x[order]
    # Centre for numerical stability of the sum-of-squares identity
    ys = y[order] - np.mean(y)

    csum = np.cumsum(ys)
    csq = np.cumsum(ys ** 2)
    total, total_sq = csum[-1], csq[-1]

    # Candidate k puts xs[:k] left and xs[k:] right, k = 1..n-1
    k = np.arange(1, n)
    left_sum, left_sq = csum[:-1], csq[:-1]
    left_sse = left_sq - left_sum ** 2 / k
    right_sse = (total_sq - left_sq) - (total - left_sum) ** 2 / (n - k)
    impurity = left_sse + right_sse

    valid = (xs[:-1] < xs[1:]) & (k >= min_samples_leaf) & (n - k >= min_samples_leaf)
    if not np.any(valid):
        return None

    candidates = np.flatnonzero(valid)
    lowest = np.min(impurity[candidates])
    # First candidate within rounding noise of the minimum, i.e. the lowest threshold
    near_best = impurity[candidates] <= lowest + TIE_TOLERANCE * total_sq
    best = candidates[np.argmax(near_best)]

    lo, hi = xs[best], xs[best + 1]
    threshold = lo + (hi - lo) / 2.0
    if threshold >= hi:
        # lo and hi are adjacent floats
        threshold = lo
    return Split(feature=feature, threshold=float(threshold), impurity=float(impurity[best]))


class RegressionTree:
    """
    Binary regression tree fitted by recursive least-squares splitting.

    Args:
        max_depth: Maximum depth of the tree (root has depth 0).
        min_samples_split: Minimum samples a node needs to be considered for splitting.
        min_samples_leaf: Minimum samples in each child of a split.
        tolerance: Nodes whose target variance is at or below this fraction of the
            root variance become leaves.
        n_jobs: Worker threads for the per-feature split search (1 = serial).
    """

    def __init__(
        self,
        max_depth: int = 3,
        min_samples_split: int = 2,
        min_samples_leaf: int = 1,
        tolerance: float = 1e-12,
        n_jobs: Optional[int] = 1
    ):
        self.max_depth = max_depth
        self.min_samples_split = min_samples_split
        self.min_samples_leaf = min_samples_leaf
        self.tolerance = tolerance
        self.n_jobs = n_jobs

        self.nodes_: List[Node] = []
        self.n_features_: Optional[int] = None

    # ------------------------------------------------------------------
    # Fitting
    # ------------------------------------------------------------------

    def fit(self, X: np.ndarray, y: np.ndarray) -> "RegressionTree":
        """
        Grow the tree on instances ``X`` and targets ``y``.

        Args:
            X: Features, shape (n_samples, n_features).
            y: Targets, shape (n_samples,).

        Returns:
            self
        """
        X = np.asarray(X, dtype=float)
        y = np.asarray(y, dtype=float)
        if X.ndim != 2 or y.ndim != 1 or X.shape[0] != y.shape[0]:
            raise InputError(
                f"Expected X of shape (n, d) and y of shape (n,), got {X.shape} and {y.shape}"
            )
        if X.shape[0] == 0:
            raise InputError("Cannot fit a tree on zero samples")

        self.n_features_ = X.shape[1]
        self.nodes_ = []

        if self.n_jobs is not None and self.n_jobs != 1:
            with Parallel(n_jobs=self.n_jobs, prefer="threads") as parallel:
                self._grow(X, y, parallel)
        else:
            self._grow(X, y, None)

        logger.debug(
            f"Grew tree with {len(self.nodes_)} nodes, {self.n_leaves} leaves, depth {self.depth}"
        )
        return self

    def _grow(self, X: np.ndarray, y: np.ndarray, parallel: Optional[Parallel]) -> None:
        # Depth-first with an explicit stack; node ids follow creation order
        root = self._make_node(depth=0, indices=np.arange(X.shape[0]), y=y)
        # Relative to the root so the stopping rule does not depend on target units
        min_variance = self.tolerance * np.var(y)
        stack = [(root, np.arange(X.shape[0]))]

        while stack:
            node, indices = stack.pop()
            split = self._find_split(X[indices], y[indices], node, min_variance, parallel)
            if split is None:
                node.sample_indices = indices
                continue

            go_left = X[indices, split.feature] <= split.threshold
            left_idx, right_idx = indices[go_left], indices[~go_left]

            node.feature = split.feature
            node.threshold = split.threshold
            left = self._make_node(node.depth + 1, left_idx, y)
            right = self._make_node(node.depth + 1, right_idx, y)
            node.left, node.right = left.node_id, right.node_id

            stack.append((right, right_idx))
            stack.append((left, left_idx))

    def _make_node(self, depth: int, indices: np.ndarray, y: np.ndarray) -> Node:
        node = Node(
            node_id=len(self.nodes_),
            depth=depth,
            value=float(np.mean(y[indices])),
            n_samples=len(indices)
        )
        self.nodes_.append(node)
        return node

    def _find_split(
        self,
        X: np.ndarray,
        y: np.ndarray,
        node: Node,
        min_variance: float,
        parallel: Optional[Parallel]
    ) -> Optional[Split]:
        n_samples = X.shape[0]
        if node.depth >= self.max_depth:
            return None
        if n_samples < max(self.min_samples_split, 2 * self.min_samples_leaf):
            return None
        if np.var(y) <= min_variance:
            return None

        if parallel is not None:
            candidates = parallel(
                delayed(_best_split_for_feature)(X[:, j], y, j, self.min_samples_leaf)
                for j in range(X.shape[1])
            )
        else:
            candidates = [
                _best_split_for_feature(X[:, j], y, j, self.min_samples_leaf)
                for j in range(X.shape[1])
            ]

        # Reduce in feature order; a later feature must win by more than rounding noise
        margin = TIE_TOLERANCE * np.sum((y - np.mean(y)) ** 2)
        best = None
        for split in candidates:
            if split is None:
                continue
            if best is None:
                best = split
            elif split.impurity < best.impurity - margin:
                best = split
        return best

    # ------------------------------------------------------------------
    # Leaves
    # ------------------------------------------------------------------

    def leaves(self) -> List[Tuple[int, np.ndarray]]:
        """(leaf_id, training-row indices) for every leaf, in node order."""
        self._check_fitted()
        return [(node.node_id, node.sample_indices) for node in self.nodes_ if node.is_leaf]

    def set_leaf_value(self, leaf_id: int, value: float) -> None:
        """Overwrite the prediction stored at a leaf."""
        node = self.nodes_[leaf_id]
        if not node.is_leaf:
            raise InputError(f"Node {leaf_id} is not a leaf")
        node.value = float(value)

    @property
    def n_leaves(self) -> int:
        return sum(1 for node in self.nodes_ if node.is_leaf)

    @property
    def depth(self) -> int:
        return max((node.depth for node in self.nodes_), default=0)

    # ------------------------------------------------------------------
    # Prediction
    # ------------------------------------------------------------------

    def apply(self, X: np.ndarray) -> np.ndarray:
        """Leaf id reached by every row of ``X``."""
        self._check_fitted()
        X = np.asarray(X, dtype=float)
        if X.ndim != 2 or X.shape[1] != self.n_features_:
            raise InputError(
                f"Expected X with {self.n_features_} features, got shape {X.shape}"
            )

        leaf_ids = np.empty(X.shape[0], dtype=int)
        stack = [(0, np.arange(X.shape[0]))]
        while stack:
            node_id, rows = stack.pop()
            node = self.nodes_[node_id]
            if node.is_leaf:
                leaf_ids[rows] = node_id
                continue
            go_left = X[rows, node.feature] <= node.threshold
            stack.append((node.left, rows[go_left]))
            stack.append((node.right, rows[~go_left]))
        return leaf_ids

    def predict(self, X: np.ndarray) -> np.ndarray:
        """Value of the leaf reached by every row of ``X``."""
        values = np.array([node.value for node in self.nodes_])
        return values[self.apply(X)]

    def _check_fitted(self) -> None:
        if not self.nodes_:
            raise StateError("RegressionTree is not fitted")
