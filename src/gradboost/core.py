"""
Core gradient boosting implementation.

Implements stochastic gradient boosting (Friedman 2001, 2002): a stage-wise
additive model F_M(x) = f_0 + ν Σ_m h_m(x), where each stage h_m is fitted to
the pseudo-residuals of the cumulative model F_{m-1} on a random subsample of
the rows, then updated over all rows.

References:
- Friedman, J. H. (2001). Greedy function approximation: A gradient boosting machine.
  Annals of Statistics, 29(5), 1189-1232.
- Friedman, J. H. (2002). Stochastic gradient boosting.
  Computational Statistics & Data Analysis, 38(4), 367-378.
- Hastie, T., Tibshirani, R., & Friedman, J. (2009). The Elements of Statistical
  Learning (2nd ed.). Springer. Algorithm 10.3.
"""

from dataclasses import dataclass, replace
from typing import Iterator, Optional, Tuple, Union
import logging
import numpy as np

from .config import BoostingConfig, OutputType
from .exceptions import InputError, StateError
from .learners import LinearStage
from .loss import LossFunction
from .tree import RegressionTree
from .utils import make_rng

logger = logging.getLogger(__name__)


# ===========================
# Input validation
# ===========================

def _check_instances(X, n_features: Optional[int] = None) -> np.ndarray:
    X = np.asarray(X, dtype=float)
    if X.ndim != 2:
        raise InputError(f"Instances must be a 2-D matrix, got shape {X.shape}")
    if X.shape[0] == 0:
        raise InputError("Instances must contain at least one row")
    if n_features is not None and X.shape[1] != n_features:
        raise InputError(
            f"Instances have {X.shape[1]} columns, model was fitted on {n_features}"
        )
    if not np.all(np.isfinite(X)):
        raise InputError("Instances contain NaN or infinite values")
    return X


def _check_labels(y, n_samples: int, output_type: OutputType) -> np.ndarray:
    y = np.asarray(y, dtype=float)
    if y.ndim != 1:
        raise InputError(f"Labels must be a 1-D vector, got shape {y.shape}")
    if y.shape[0] != n_samples:
        raise InputError(f"Got {n_samples} instances but {y.shape[0]} labels")
    if not np.all(np.isfinite(y)):
        raise InputError("Labels contain NaN or infinite values")
    if output_type is OutputType.CLASSIFICATION and not np.all((y == 0.0) | (y == 1.0)):
        raise InputError("Classification labels must be 0.0 or 1.0")
    return y


# ===========================
# Ensemble
# ===========================

@dataclass(frozen=True)
class Ensemble:
    """
    A fitted additive model: ``initial_estimate + learning_rate * Σ stage(x)``.

    Stages are never modified after fitting; prediction has no side effects.
    """

    initial_estimate: float
    stages: Tuple
    learning_rate: float
    output_type: OutputType
    loss: LossFunction
    n_features: int
    train_scores: Tuple[float, ...] = ()
    val_scores: Tuple[float, ...] = ()

    def decision_function(self, X: np.ndarray) -> np.ndarray:
        """Raw additive scores (log-odds for binomial deviance)."""
        X = _check_instances(X, self.n_features)
        F = np.full(X.shape[0], self.initial_estimate)
        for stage in self.stages:
            F += self.learning_rate * stage.predict(X)
        return F

    def staged_decision_function(self, X: np.ndarray) -> Iterator[np.ndarray]:
        """Yield the raw scores after each stage."""
        X = _check_instances(X, self.n_features)
        F = np.full(X.shape[0], self.initial_estimate)
        for stage in self.stages:
            F = F + self.learning_rate * stage.predict(X)
            yield F

    def predict(self, X: np.ndarray) -> np.ndarray:
        """Raw scores for regression, {0.0, 1.0} labels for classification."""
        F = self.decision_function(X)
        if self.output_type is OutputType.CLASSIFICATION:
            return (self.loss.inverse_link(F) >= 0.5).astype(float)
        return F

    def predict_proba(self, X: np.ndarray) -> np.ndarray:
        """Positive-class probabilities (classification only)."""
        if self.output_type is not OutputType.CLASSIFICATION:
            raise StateError("predict_proba is only available for classification")
        return self.loss.inverse_link(self.decision_function(X))


# ===========================
# Boosting driver
# ===========================

def _subsample_indices(
    n_samples: int,
    sampling_rate: float,
    rng: np.random.Generator
) -> np.ndarray:
    """Row indices for one stage: round(rate * n) rows without replacement."""
    if sampling_rate >= 1.0:
        return np.arange(n_samples)
    n_subsample = max(1, int(round(sampling_rate * n_samples)))
    indices = rng.choice(n_samples, size=n_subsample, replace=False)
    return np.sort(indices)


def _fit_stage(
    config: BoostingConfig,
    X_sub: np.ndarray,
    y_sub: np.ndarray,
    F_sub: np.ndarray
):
    """Fit one stage on the subsample and apply the loss-specific adjustment."""
    loss = config.loss

    # (a) Pseudo-residuals (negative gradient)
    residuals = loss.pseudo_residual(y_sub, F_sub)

    # (b) Fit the base learner to the residuals
    stage = config.learner.fit(X_sub, residuals)

    # (c) Loss-optimal values per region, or one multiplier for region-less stages
    if isinstance(stage, RegressionTree):
        for leaf_id, rows in stage.leaves():
            stage.set_leaf_value(
                leaf_id, loss.region_value(residuals[rows], y_sub[rows], F_sub[rows])
            )
    elif isinstance(stage, LinearStage):
        stage.step = loss.line_search(y_sub, F_sub, stage.raw_predict(X_sub))
        logger.debug(f"Linear stage line search step={stage.step:.6f}")

    return stage


def fit_ensemble(
    config: BoostingConfig,
    X: np.ndarray,
    y: np.ndarray,
    output_type: OutputType = OutputType.REGRESSION,
    X_val: Optional[np.ndarray] = None,
    y_val: Optional[np.ndarray] = None
) -> Ensemble:
    """
    Fit a stage-wise additive model.

    1. Initialise f_0 = argmin_γ Σ L(y_i, γ).
    2. For m = 1 to M:
       a. Draw a subsample of the rows.
       b. Compute pseudo-residuals r_i = -∂L(y_i, F_{m-1}(x_i))/∂F on the subsample.
       c. Fit a base learner to {(x_i, r_i)} and set its region values.
       d. Update F_m(x) = F_{m-1}(x) + ν h_m(x) for every row.

    Args:
        config: Boosting hyperparameters.
        X: Training instances, shape (n_samples, n_features).
        y: Training labels, shape (n_samples,).
        output_type: Regression or classification.
        X_val: Optional validation instances for tracking generalisation.
        y_val: Optional validation labels.

    Returns:
        The fitted Ensemble with exactly ``config.num_iterations`` stages.
    """
    output_type = OutputType.parse(output_type)
    config.check_output_type(output_type)
    X = _check_instances(X)
    y = _check_labels(y, X.shape[0], output_type)
    track_val = X_val is not None and y_val is not None
    if track_val:
        X_val = _check_instances(X_val, X.shape[1])
        y_val = _check_labels(y_val, X_val.shape[0], output_type)

    if config.verbose:
        logging.basicConfig(level=logging.INFO)

    loss = config.loss
    rng = make_rng(config.random_state)
    n_samples = X.shape[0]

    # Step 1: Initialise f_0
    f0 = loss.initial_estimate(y)
    F_train = np.full(n_samples, f0)
    F_val = np.full(X_val.shape[0], f0) if track_val else None

    if config.verbose:
        logger.info(f"Initial f_0 = {f0:.6f} ({loss.name})")

    stages = []
    train_scores = []
    val_scores = []

    # Step 2: Boosting loop
    for m in range(config.num_iterations):
        indices = _subsample_indices(n_samples, config.sampling_rate, rng)
        stage = _fit_stage(config, X[indices], y[indices], F_train[indices])

        # (d) Update every row with shrinkage
        F_train += config.learning_rate * stage.predict(X)
        stages.append(stage)

        train_loss = loss(y, F_train)
        train_scores.append(train_loss)

        if track_val:
            F_val += config.learning_rate * stage.predict(X_val)
            val_loss = loss(y_val, F_val)
            val_scores.append(val_loss)

            if config.verbose and (m + 1) % 10 == 0:
                logger.info(
                    f"Iteration {m+1}/{config.num_iterations}: "
                    f"train_loss={train_loss:.6f}, val_loss={val_loss:.6f}"
                )
        elif config.verbose and (m + 1) % 10 == 0:
            logger.info(
                f"Iteration {m+1}/{config.num_iterations}: train_loss={train_loss:.6f}"
            )

    return Ensemble(
        initial_estimate=f0,
        stages=tuple(stages),
        learning_rate=config.learning_rate,
        output_type=output_type,
        loss=loss,
        n_features=X.shape[1],
        train_scores=tuple(train_scores),
        val_scores=tuple(val_scores)
    )


# ===========================
# Problem
# ===========================

@dataclass(frozen=True)
class Problem:
    """
    A boosting configuration tagged with an output type.

    ``fit`` returns a new, fitted Problem and leaves this one untouched, so one
    unfitted Problem can be reused across experiments.

    Example:
        >>> problem = Problem(gbdt(BinomialDeviance()), "classification")
        >>> fitted = problem.fit(X_train, y_train)
        >>> labels = fitted.predict(X_test)
    """

    config: BoostingConfig
    output_type: Union[OutputType, str] = OutputType.REGRESSION
    ensemble: Optional[Ensemble] = None

    def __post_init__(self):
        output_type = OutputType.parse(self.output_type)
        object.__setattr__(self, "output_type", output_type)
        self.config.check_output_type(output_type)

    @property
    def is_fitted(self) -> bool:
        return self.ensemble is not None

    def fit(
        self,
        X: np.ndarray,
        y: np.ndarray,
        X_val: Optional[np.ndarray] = None,
        y_val: Optional[np.ndarray] = None
    ) -> "Problem":
        """
        Fit the boosting model.

        Args:
            X: Training features, shape (n_samples, n_features).
            y: Training labels, shape (n_samples,); {0, 1} for classification.
            X_val: Optional validation features.
            y_val: Optional validation labels.

        Returns:
            A new fitted Problem.
        """
        ensemble = fit_ensemble(self.config, X, y, self.output_type, X_val, y_val)
        return replace(self, ensemble=ensemble)

    def _fitted_ensemble(self) -> Ensemble:
        if self.ensemble is None:
            raise StateError("Problem is not fitted; call fit() first")
        return self.ensemble

    def decision_function(self, X: np.ndarray) -> np.ndarray:
        """Raw additive scores."""
        return self._fitted_ensemble().decision_function(X)

    def predict(self, X: np.ndarray) -> np.ndarray:
        """Regression scores, or {0.0, 1.0} labels for classification."""
        return self._fitted_ensemble().predict(X)

    def predict_proba(self, X: np.ndarray) -> np.ndarray:
        """Positive-class probabilities, shape (n_samples,)."""
        return self._fitted_ensemble().predict_proba(X)


def fit(problem: Problem, X: np.ndarray, y: np.ndarray) -> Problem:
    """Functional form of ``Problem.fit``."""
    return problem.fit(X, y)


def predict(problem: Problem, X: np.ndarray) -> np.ndarray:
    """Functional form of ``Problem.predict``."""
    return problem.predict(X)
