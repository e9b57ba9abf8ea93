"""Error taxonomy for barycenter estimation.

Argument and oracle errors are raised to the immediate caller.  Weight
sums that underflow the stability floor are not errors: they are
clamped locally and reported through :class:`NumericalDegeneracyWarning`.
"""


class BarycenterError(Exception):
    """Base class for all errors raised by ``expbary``."""


class InvalidArgument(BarycenterError, ValueError):
    """Empty candidate set, mismatched vector lengths, bad config values."""


class DimensionMismatch(InvalidArgument):
    """Previous step and estimate disagree in length."""


class InvalidOracle(BarycenterError, ValueError):
    """Oracle output cannot be turned into a usable weight."""


class NumericalDegeneracyWarning(RuntimeWarning):
    """A weight sum fell below the floor and was clamped."""
