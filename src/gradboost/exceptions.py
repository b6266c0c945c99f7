"""
Error taxonomy for gradient boosting.

Every error raised by the package derives from ``GradientBoostError`` and from
the closest builtin exception, so ``except ValueError`` keeps working.
"""


class GradientBoostError(Exception):
    """Base class for all gradboost errors."""


class ConfigError(GradientBoostError, ValueError):
    """Invalid hyperparameter range or incompatible loss/output pairing."""


class InputError(GradientBoostError, ValueError):
    """Instances and labels do not have the expected shape or content."""


class StateError(GradientBoostError, RuntimeError):
    """Operation not valid in the current lifecycle state (e.g. unfitted)."""


class DomainError(GradientBoostError, ArithmeticError):
    """A quantity is mathematically undefined for the supplied data."""
