"""
Boosting configuration.

``BoostingConfig`` is immutable and validated on construction, so an invalid
hyperparameter is reported before any fitting work starts.
"""

from dataclasses import dataclass, field
from enum import Enum
from numbers import Real
from typing import Optional, Union
import numpy as np

from .exceptions import ConfigError
from .learners import LinearLearner, TreeLearner
from .loss import LossFunction, LeastSquares


class OutputType(str, Enum):
    REGRESSION = "regression"
    CLASSIFICATION = "classification"

    @classmethod
    def parse(cls, value: Union[str, "OutputType"]) -> "OutputType":
        try:
            return cls(value)
        except ValueError:
            raise ConfigError(
                f"output_type must be one of {[o.value for o in cls]}, got {value!r}"
            ) from None


@dataclass(frozen=True)
class BoostingConfig:
    """
    Hyperparameters of one boosting run.

    Args:
        loss: Loss function variant.
        sampling_rate: Fraction of rows drawn (without replacement) per stage, in (0, 1].
        learning_rate: Shrinkage ν applied to every stage, in (0, 1].
        num_iterations: Number of boosting stages (M).
        learner: Base learner prototype (``TreeLearner`` or ``LinearLearner``).
        random_state: Seed for the row subsampling.
        verbose: Log progress at INFO level.
    """

    loss: LossFunction = field(default_factory=LeastSquares)
    sampling_rate: float = 0.6
    learning_rate: float = 0.1
    num_iterations: int = 100
    learner: Union[TreeLearner, LinearLearner] = field(default_factory=TreeLearner)
    random_state: Optional[int] = None
    verbose: bool = False

    def __post_init__(self):
        if not isinstance(self.loss, LossFunction):
            raise ConfigError(f"loss must be a LossFunction, got {type(self.loss).__name__}")
        for name in ("sampling_rate", "learning_rate"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, Real):
                raise ConfigError(f"{name} must be a real number, got {value!r}")
        if not 0.0 < self.sampling_rate <= 1.0:
            raise ConfigError(f"sampling_rate must lie in (0, 1], got {self.sampling_rate}")
        if not 0.0 < self.learning_rate <= 1.0:
            raise ConfigError(f"learning_rate must lie in (0, 1], got {self.learning_rate}")
        if isinstance(self.num_iterations, bool) or not isinstance(
            self.num_iterations, (int, np.integer)
        ):
            raise ConfigError(f"num_iterations must be an integer, got {self.num_iterations!r}")
        if self.num_iterations <= 0:
            raise ConfigError(f"num_iterations must be positive, got {self.num_iterations}")
        if not isinstance(self.learner, (TreeLearner, LinearLearner)):
            raise ConfigError(
                f"learner must be a TreeLearner or LinearLearner, got {type(self.learner).__name__}"
            )
        problem = self.learner.validate()
        if problem is not None:
            raise ConfigError(problem)

    def check_output_type(self, output_type: OutputType) -> None:
        """Raise ConfigError if the loss cannot produce ``output_type``."""
        if output_type is OutputType.CLASSIFICATION and not self.loss.supports_classification:
            raise ConfigError(f"{self.loss!r} does not support classification output")
        if output_type is OutputType.REGRESSION and self.loss.supports_classification:
            raise ConfigError(f"{self.loss!r} does not support regression output")


def gbdt(
    loss: LossFunction,
    sampling_rate: float = 0.6,
    learning_rate: float = 0.1,
    num_iterations: int = 100,
    random_state: Optional[int] = None,
    verbose: bool = False,
    **tree_options
) -> BoostingConfig:
    """Gradient boosted decision trees; ``tree_options`` go to ``TreeLearner``."""
    return BoostingConfig(
        loss=loss,
        sampling_rate=sampling_rate,
        learning_rate=learning_rate,
        num_iterations=num_iterations,
        learner=TreeLearner(**tree_options),
        random_state=random_state,
        verbose=verbose
    )


def gbl(
    loss: LossFunction,
    sampling_rate: float = 0.8,
    learning_rate: float = 0.1,
    num_iterations: int = 100,
    learner: Optional[LinearLearner] = None,
    random_state: Optional[int] = None,
    verbose: bool = False
) -> BoostingConfig:
    """Gradient boosted linear models; ``learner`` defaults to scikit-learn OLS."""
    return BoostingConfig(
        loss=loss,
        sampling_rate=sampling_rate,
        learning_rate=learning_rate,
        num_iterations=num_iterations,
        learner=learner if learner is not None else LinearLearner(),
        random_state=random_state,
        verbose=verbose
    )
