"""
Failure conditions raised by the inversion core.

Malformed inputs (InvalidBinning, NegativeRate) are also ValueErrors so
that request validation can reject them as bad input. The remaining
conditions are fatal to a single inversion run; the bootstrap resampler
recovers from them by dropping the affected realization.
"""


class InversionError(Exception):
    """Base class for all inversion failures."""


class InvalidBinning(InversionError, ValueError):
    """Bins do not tile an interval contiguously with increasing centres."""


class NegativeRate(InversionError, ValueError):
    """A rate or rate uncertainty is negative or not finite."""


class DegenerateDistribution(InversionError):
    """Sampling was requested from an SFH whose rates are all zero."""


class EmptyPopulation(InversionError):
    """The forward model produced no detectable white dwarfs."""


class NoUsableBins(InversionError):
    """No observed luminosity function bin has a usable uncertainty."""


class IterationLimitExceeded(InversionError):
    """
    The inversion loop hit its iteration cap before converging.

    Parameters
    ----------
    message : str
        Human-readable description.
    state : InversionState, optional
        The state reached when the cap was hit.
    """

    def __init__(self, message, state=None):
        super().__init__(message)
        self.state = state
