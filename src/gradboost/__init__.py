"""
Gradient boosting from scratch.

Stochastic gradient boosting (Friedman 2001, 2002) with pluggable loss
functions (least squares, least absolute deviation, binomial deviance) and
base learners (regression trees, injected linear models).
"""

from .config import BoostingConfig, OutputType, gbdt, gbl
from .core import Ensemble, Problem, fit, fit_ensemble, predict
from .exceptions import ConfigError, DomainError, GradientBoostError, InputError, StateError
from .learners import LinearLearner, TreeLearner
from .loss import BinomialDeviance, LeastAbsoluteDeviation, LeastSquares, LossFunction
from .tree import RegressionTree
from .experiment import ExperimentResult, run_experiment
from .utils import holdout

__version__ = "0.1.0"
__all__ = [
    "BoostingConfig", "OutputType", "gbdt", "gbl",
    "Ensemble", "Problem", "fit", "fit_ensemble", "predict",
    "ConfigError", "DomainError", "GradientBoostError", "InputError", "StateError",
    "LinearLearner", "TreeLearner",
    "BinomialDeviance", "LeastAbsoluteDeviation", "LeastSquares", "LossFunction",
    "RegressionTree", "ExperimentResult", "run_experiment", "holdout",
]
