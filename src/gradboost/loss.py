"""
Loss functions for gradient boosting.

Each loss supplies the three quantities the boosting driver needs:

1. ``initial_estimate``: f_0 = argmin_γ Σ L(y_i, γ).
2. ``pseudo_residual``:  r_i = -∂L(y_i, f)/∂f evaluated at f = f_{m-1}(x_i).
3. ``region_value``:     γ_j = argmin_γ Σ_{x_i ∈ R_j} L(y_i, f_{m-1}(x_i) + γ).

plus ``line_search`` for base learners without regions (linear models), where a
single multiplier ρ scales the whole stage.

References:
- Friedman, J. H. (2001). Greedy function approximation: A gradient boosting machine.
  Annals of Statistics, 29(5), 1189-1232. Algorithms 2 (LS), 3 (LAD), 5 (L2_TreeBoost).
"""

from abc import ABC, abstractmethod
import logging
import numpy as np
from scipy.optimize import minimize_scalar

from .exceptions import DomainError, InputError
from .utils import sigmoid, log_odds, weighted_median

logger = logging.getLogger(__name__)

# Search interval for the binomial-deviance line search multiplier.
MAX_LINE_SEARCH_STEP = 10.0
# Hessian sum below which a binomial region is treated as saturated
MIN_HESSIAN_SUM = 1e-10


class LossFunction(ABC):
    """Abstract base class for boosting loss functions."""

    name: str = "loss"
    supports_classification: bool = False

    @abstractmethod
    def __call__(self, labels: np.ndarray, scores: np.ndarray) -> float:
        """Mean loss of raw ``scores`` against ``labels``."""

    @abstractmethod
    def initial_estimate(self, labels: np.ndarray) -> float:
        """Best constant prediction for ``labels``."""

    @abstractmethod
    def pseudo_residual(self, labels: np.ndarray, scores: np.ndarray) -> np.ndarray:
        """Negative gradient of the loss at the current scores."""

    @abstractmethod
    def region_value(
        self,
        residuals: np.ndarray,
        labels: np.ndarray,
        scores: np.ndarray
    ) -> float:
        """Optimal constant to add to every score of a leaf region."""

    @abstractmethod
    def line_search(
        self,
        labels: np.ndarray,
        scores: np.ndarray,
        stage_predictions: np.ndarray
    ) -> float:
        """Optimal multiplier ρ for a whole stage: argmin_ρ Σ L(y, f + ρ h)."""

    def inverse_link(self, scores: np.ndarray) -> np.ndarray:
        """Map raw additive scores to the label scale."""
        return scores

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class LeastSquares(LossFunction):
    """
    Squared-error loss L(y, f) = 0.5 * (y - f)^2.

    Initial estimate is mean(y), pseudo-residuals are the plain residuals and the
    region value is the mean residual, so leaf re-estimation is a fixed point.
    """

    name = "least_squares"

    def __call__(self, labels, scores):
        return float(0.5 * np.mean((labels - scores) ** 2))

    def initial_estimate(self, labels):
        return float(np.mean(labels))

    def pseudo_residual(self, labels, scores):
        return labels - scores

    def region_value(self, residuals, labels, scores):
        return float(np.mean(residuals))

    def line_search(self, labels, scores, stage_predictions):
        # Closed form: ρ = Σ r h / Σ h²
        denominator = np.sum(stage_predictions ** 2)
        if denominator == 0:
            return 1.0
        return float(np.sum((labels - scores) * stage_predictions) / denominator)


class LeastAbsoluteDeviation(LossFunction):
    """
    Absolute-deviation loss L(y, f) = |y - f|.

    Pseudo-residuals are sign(y - f); the region value is the median of the raw
    residuals y - f inside the region (Friedman 2001, Algorithm 3).
    """

    name = "least_absolute_deviation"

    def __call__(self, labels, scores):
        return float(np.mean(np.abs(labels - scores)))

    def initial_estimate(self, labels):
        return float(np.median(labels))

    def pseudo_residual(self, labels, scores):
        return np.sign(labels - scores)

    def region_value(self, residuals, labels, scores):
        return float(np.median(labels - scores))

    def line_search(self, labels, scores, stage_predictions):
        # argmin_ρ Σ |h_i| * |(y_i - f_i) / h_i - ρ|  ->  weighted median
        weights = np.abs(stage_predictions)
        nonzero = weights > 0
        if not np.any(nonzero):
            return 1.0
        ratios = (labels[nonzero] - scores[nonzero]) / stage_predictions[nonzero]
        return weighted_median(ratios, weights[nonzero])


class BinomialDeviance(LossFunction):
    """
    Binomial deviance (logistic loss) for labels y ∈ {0, 1}:
    L(y, F) = -y*F + log(1 + exp(F)).

    Region values take one Newton-Raphson step,
    γ = Σ r_i / Σ p_i(1 - p_i), rather than iterating to convergence.
    """

    name = "binomial_deviance"
    supports_classification = True

    def __call__(self, labels, scores):
        # log(1 + exp(F)) computed as logaddexp(0, F)
        return float(np.mean(np.logaddexp(0.0, scores) - labels * scores))

    def initial_estimate(self, labels):
        labels = np.asarray(labels, dtype=float)
        if labels.size == 0:
            raise InputError("Cannot compute an initial estimate from empty labels")
        p = np.mean(labels)
        if p <= 0.0 or p >= 1.0:
            raise DomainError(
                f"Log-odds undefined for positive-class proportion {p:.3f}; "
                "labels must contain both classes"
            )
        return log_odds(p)

    def pseudo_residual(self, labels, scores):
        return labels - sigmoid(scores)

    def region_value(self, residuals, labels, scores):
        p = sigmoid(scores)
        # Second derivative (Hessian diagonal): p(1-p)
        denominator = np.sum(p * (1 - p))
        if denominator < MIN_HESSIAN_SUM:
            # Every row saturated; a Newton step would be unbounded
            return 0.0
        return float(np.sum(residuals) / denominator)

    def line_search(self, labels, scores, stage_predictions):
        if not np.any(stage_predictions):
            return 1.0

        def objective(rho):
            return self(labels, scores + rho * stage_predictions)

        result = minimize_scalar(
            objective,
            bounds=(-MAX_LINE_SEARCH_STEP, MAX_LINE_SEARCH_STEP),
            method="bounded"
        )
        logger.debug(f"Binomial line search: rho={result.x:.6f}, loss={result.fun:.6f}")
        return float(result.x)

    def inverse_link(self, scores):
        return sigmoid(scores)
