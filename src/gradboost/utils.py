"""
Utility functions for gradient boosting: link functions, robust statistics,
holdout splitting, metrics and baseline scores.

References:
- Friedman, J. H. (2001). Greedy function approximation: A gradient boosting machine.
- Friedman, J. H. (2002). Stochastic gradient boosting.
"""

from typing import Tuple, Union
import numpy as np
from scipy.special import expit, logit
from sklearn.metrics import (
    mean_squared_error, mean_absolute_error, log_loss, accuracy_score, roc_auc_score
)

from .exceptions import ConfigError, InputError


RandomState = Union[None, int, np.random.Generator]


# ===========================
# Link functions
# ===========================

def sigmoid(x: np.ndarray) -> np.ndarray:
    """Numerically stable sigmoid (inverse logit link)."""
    return expit(x)


def log_odds(p: float) -> float:
    """Logit link: log(p / (1 - p))."""
    return float(logit(p))


# ===========================
# Robust statistics
# ===========================

def weighted_median(values: np.ndarray, weights: np.ndarray) -> float:
    """
    Weighted median: the smallest value whose cumulative weight reaches half
    of the total weight.

    Zero-weight entries are ignored. Returns 0.0 when the total weight is zero.
    """
    values = np.asarray(values, dtype=float)
    weights = np.asarray(weights, dtype=float)
    keep = weights > 0
    if not np.any(keep):
        return 0.0
    values = values[keep]
    weights = weights[keep]

    order = np.argsort(values, kind="mergesort")
    cumulative = np.cumsum(weights[order])
    idx = np.searchsorted(cumulative, 0.5 * cumulative[-1])
    return float(values[order][idx])


def make_rng(random_state: RandomState = None) -> np.random.Generator:
    """Turn a seed (or an existing Generator) into a Generator."""
    if isinstance(random_state, np.random.Generator):
        return random_state
    return np.random.default_rng(random_state)


# ===========================
# Holdout splitting
# ===========================

def holdout(
    n: int,
    proportion: float,
    random_state: RandomState = None
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Split the index range 0..n-1 into train and test indices.

    The test set holds round(proportion * n) indices drawn from a uniform
    random permutation; the train set is the complement. Both are returned
    sorted.

    Args:
        n: Number of instances.
        proportion: Held-out proportion in [0, 1].
        random_state: Seed or Generator for the permutation.

    Returns:
        (train_indices, test_indices)
    """
    if n < 0:
        raise InputError(f"n must be non-negative, got {n}")
    if not 0.0 <= proportion <= 1.0:
        raise ConfigError(f"proportion must lie in [0, 1], got {proportion}")

    rng = make_rng(random_state)
    permutation = rng.permutation(n)
    n_test = int(round(proportion * n))

    test = np.sort(permutation[:n_test])
    train = np.sort(permutation[n_test:])
    return train, test


# ===========================
# Scores and baselines
# ===========================

def err_rate(predictions: np.ndarray, actual: np.ndarray) -> float:
    """Fraction of mismatched labels."""
    return 1.0 - accuracy_score(actual, predictions)


def mse(predictions: np.ndarray, actual: np.ndarray) -> float:
    """Mean squared error."""
    return float(mean_squared_error(actual, predictions))


def mad(predictions: np.ndarray, actual: np.ndarray) -> float:
    """Mean absolute deviation."""
    return float(mean_absolute_error(actual, predictions))


def baseline_err_rate(labels: np.ndarray) -> float:
    """Error rate of always predicting the majority class."""
    prop_ones = np.mean(labels)
    return float(1.0 - max(prop_ones, 1.0 - prop_ones))


def baseline_mse(labels: np.ndarray) -> float:
    """MSE of always predicting the mean label."""
    labels = np.asarray(labels, dtype=float)
    return mse(np.full_like(labels, np.mean(labels)), labels)


def baseline_mad(labels: np.ndarray) -> float:
    """Mean absolute deviation of always predicting the median label."""
    labels = np.asarray(labels, dtype=float)
    return mad(np.full_like(labels, np.median(labels)), labels)


def compute_metrics_regression(
    y_true: np.ndarray,
    y_pred: np.ndarray
) -> dict:
    """Compute regression metrics."""
    mse_value = mse(y_pred, y_true)

    return {
        "mse": mse_value,
        "rmse": float(np.sqrt(mse_value)),
        "mae": mad(y_pred, y_true)
    }


def compute_metrics_classification(
    y_true: np.ndarray,
    y_pred_proba: np.ndarray,
    threshold: float = 0.5
) -> dict:
    """Compute classification metrics from positive-class probabilities."""
    y_pred = (y_pred_proba >= threshold).astype(int)

    # Clip probabilities for log_loss
    y_pred_proba_clipped = np.clip(y_pred_proba, 1e-15, 1 - 1e-15)

    logloss = log_loss(y_true, y_pred_proba_clipped, labels=[0, 1])
    accuracy = accuracy_score(y_true, y_pred)

    # ROC AUC only if both classes present
    if len(np.unique(y_true)) == 2:
        auc = roc_auc_score(y_true, y_pred_proba)
    else:
        auc = np.nan

    return {
        "log_loss": logloss,
        "accuracy": accuracy,
        "error_rate": 1.0 - accuracy,
        "roc_auc": auc
    }
