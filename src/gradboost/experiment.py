"""
Repeated holdout experiments.

Fits a fresh Problem on each of several random train/test splits, scores the
test predictions and compares the mean score with a constant-predictor
baseline computed on all labels.
"""

from dataclasses import dataclass
from typing import Callable, Optional
import logging
import numpy as np
import pandas as pd

from .core import Problem
from .exceptions import ConfigError, InputError
from .utils import holdout, make_rng

logger = logging.getLogger(__name__)

ScoreFn = Callable[[np.ndarray, np.ndarray], float]


@dataclass(frozen=True)
class ExperimentResult:
    """Per-repetition test scores and the baseline they are compared with."""

    scores: np.ndarray
    baseline: float

    @property
    def mean_score(self) -> float:
        return float(np.mean(self.scores))

    @property
    def beats_baseline(self) -> bool:
        """Lower is better for every score used here (error rate, MSE, MAD)."""
        return self.mean_score <= self.baseline

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({
            "repetition": np.arange(len(self.scores)),
            "score": self.scores,
            "baseline": self.baseline,
        })


def run_experiment(
    problem_factory: Callable[[], Problem],
    score_fn: ScoreFn,
    baseline_fn: Callable[[np.ndarray], float],
    instances: np.ndarray,
    labels: np.ndarray,
    num_experiments: int = 10,
    test_proportion: float = 0.2,
    random_state: Optional[int] = None
) -> ExperimentResult:
    """
    Repeat fit/predict over independent holdout splits.

    Args:
        problem_factory: Returns an unfitted Problem for each repetition.
        score_fn: ``score_fn(predictions, actual)``, lower is better.
        baseline_fn: ``baseline_fn(labels)`` score of a constant predictor.
        instances: Features, shape (n_samples, n_features).
        labels: Labels, shape (n_samples,).
        num_experiments: Number of repetitions.
        test_proportion: Held-out fraction per repetition.
        random_state: Seed for the splits.

    Returns:
        ExperimentResult with one score per repetition.
    """
    if num_experiments <= 0:
        raise ConfigError(f"num_experiments must be positive, got {num_experiments}")
    instances = np.asarray(instances, dtype=float)
    labels = np.asarray(labels, dtype=float)
    if instances.shape[0] != labels.shape[0]:
        raise InputError(
            f"Got {instances.shape[0]} instances but {labels.shape[0]} labels"
        )

    rng = make_rng(random_state)
    scores = np.empty(num_experiments)

    for i in range(num_experiments):
        train_ind, test_ind = holdout(instances.shape[0], test_proportion, rng)

        problem = problem_factory().fit(instances[train_ind], labels[train_ind])
        predictions = problem.predict(instances[test_ind])
        scores[i] = score_fn(predictions, labels[test_ind])

        logger.debug(f"Repetition {i+1}/{num_experiments}: score={scores[i]:.6f}")

    result = ExperimentResult(scores=scores, baseline=float(baseline_fn(labels)))
    logger.info(
        f"Mean score {result.mean_score:.6f} over {num_experiments} repetitions "
        f"(baseline {result.baseline:.6f})"
    )
    return result
