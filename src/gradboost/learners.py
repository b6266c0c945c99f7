"""
Base learners for gradient boosting.

A learner is an immutable prototype: ``fit(X, targets)`` returns a new fitted
stage exposing ``predict(X)``. Two learners are provided:

- ``TreeLearner``: least-squares regression tree whose leaves are re-estimated
  with the loss-specific region value by the booster.
- ``LinearLearner``: adapter around an injected linear-regression ``fit_fn`` /
  ``predict_fn`` pair (scikit-learn ``LinearRegression`` by default). Linear
  stages have no regions; the booster scales them with one line-search
  multiplier instead.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional
import numpy as np
from sklearn.linear_model import LinearRegression

from .tree import RegressionTree


def sklearn_linear_fit(X: np.ndarray, targets: np.ndarray) -> LinearRegression:
    """Default linear fit: ordinary least squares with intercept."""
    return LinearRegression().fit(X, targets)


def sklearn_linear_predict(model: LinearRegression, X: np.ndarray) -> np.ndarray:
    """Default linear predict."""
    return model.predict(X)


@dataclass(frozen=True)
class TreeLearner:
    """Regression-tree learner settings."""

    max_depth: int = 3
    min_samples_split: int = 2
    min_samples_leaf: int = 1
    tolerance: float = 1e-12
    n_jobs: Optional[int] = 1

    def fit(self, X: np.ndarray, targets: np.ndarray) -> RegressionTree:
        return RegressionTree(
            max_depth=self.max_depth,
            min_samples_split=self.min_samples_split,
            min_samples_leaf=self.min_samples_leaf,
            tolerance=self.tolerance,
            n_jobs=self.n_jobs
        ).fit(X, targets)

    def validate(self) -> Optional[str]:
        """Return a problem description, or None if the settings are usable."""
        if self.max_depth < 0:
            return f"max_depth must be >= 0, got {self.max_depth}"
        if self.min_samples_split < 2:
            return f"min_samples_split must be >= 2, got {self.min_samples_split}"
        if self.min_samples_leaf < 1:
            return f"min_samples_leaf must be >= 1, got {self.min_samples_leaf}"
        if self.tolerance < 0:
            return f"tolerance must be >= 0, got {self.tolerance}"
        return None


class LinearStage:
    """A fitted linear model scaled by a line-search multiplier."""

    def __init__(self, model: Any, predict_fn: Callable, step: float = 1.0):
        self.model = model
        self.predict_fn = predict_fn
        self.step = step

    def raw_predict(self, X: np.ndarray) -> np.ndarray:
        """Prediction of the wrapped model, before the multiplier."""
        return np.asarray(self.predict_fn(self.model, X), dtype=float).ravel()

    def predict(self, X: np.ndarray) -> np.ndarray:
        return self.step * self.raw_predict(X)


@dataclass(frozen=True)
class LinearLearner:
    """
    Adapter turning a linear regression capability into a base learner.

    Args:
        fit_fn: ``fit_fn(X, targets) -> model``.
        predict_fn: ``predict_fn(model, X) -> scores``.
    """

    fit_fn: Callable[[np.ndarray, np.ndarray], Any] = sklearn_linear_fit
    predict_fn: Callable[[Any, np.ndarray], np.ndarray] = sklearn_linear_predict

    def fit(self, X: np.ndarray, targets: np.ndarray) -> LinearStage:
        return LinearStage(self.fit_fn(X, targets), self.predict_fn)

    def validate(self) -> Optional[str]:
        if not callable(self.fit_fn) or not callable(self.predict_fn):
            return "fit_fn and predict_fn must be callable"
        return None
