"""
Convergence detection on the chi-square history.

The chi-square of a Monte Carlo inversion is noisy from one iteration
to the next, so convergence is judged on a smoothed curve fitted to the
history rather than on the raw values. Two smoothing strategies are
available, selected by name:

    sliding_linear  chi2 = m * i + c over the most recent `window` points
    power_law       chi2 = S * i^T over the whole history
                    (linear fit of log chi2 against log i)

Iteration numbers i are 1-based. The detector reports the relative
change between the smoothed values at the two latest iterations,

    (s(N-1) - s(N)) / s(N-1)

and has converged once its absolute value falls below the threshold.

States:
    WARMUP    - fewer than min_iterations values recorded
    CHECKING  - fitting and testing each new value
    CONVERGED - terminal

IMPORTANT: No unicode characters allowed (Windows charmap constraint).
"""

import logging
import math

import numpy as np
from scipy import stats

from wdlf import constants

log = logging.getLogger(__name__)

WARMUP = "WARMUP"
CHECKING = "CHECKING"
CONVERGED = "CONVERGED"

# Floor applied before taking logs of chi-square values
_LOG_FLOOR = np.finfo(float).tiny


class SmoothedChiSquare:
    """
    A fitted smoothing curve over the chi-square history.

    The same linear model y = slope * x + intercept serves both kinds;
    for "power_law" x and y are the logs of iteration and chi-square.

    Parameters
    ----------
    kind : str
        "sliding_linear" or "power_law".
    slope, intercept : float
        Fitted line coefficients.
    latest : int
        1-based iteration number of the newest value in the fit.
    """

    def __init__(self, kind, slope, intercept, latest):
        self.kind = kind
        self.slope = float(slope)
        self.intercept = float(intercept)
        self.latest = int(latest)

    def smoothed_value_at(self, i):
        """Smoothed chi-square at 1-based iteration i."""
        if self.kind == "power_law":
            return math.exp(self.intercept) * float(i) ** self.slope
        return self.slope * i + self.intercept

    def relative_change_at_latest(self):
        """(s(N-1) - s(N)) / s(N-1), positive while chi-square falls."""
        previous = self.smoothed_value_at(self.latest - 1)
        current = self.smoothed_value_at(self.latest)
        if previous == 0.0:
            return 0.0 if current == 0.0 else math.inf
        return (previous - current) / abs(previous)

    def to_dict(self):
        return {
            "kind": self.kind,
            "slope": self.slope,
            "intercept": self.intercept,
            "latest": self.latest,
        }


def fit_sliding_linear(history, window=constants.DEFAULT_WINDOW):
    """Least-squares line through the last `window` chi-square values."""
    n = len(history)
    start = max(0, n - window)
    x = np.arange(start + 1, n + 1, dtype=float)
    y = np.asarray(history[start:], dtype=float)
    fit = stats.linregress(x, y)
    return SmoothedChiSquare("sliding_linear", fit.slope, fit.intercept, n)


def fit_power_law(history, window=None):
    """Power law through the whole history, fitted in log-log space."""
    n = len(history)
    x = np.log(np.arange(1, n + 1, dtype=float))
    y = np.log(np.maximum(np.asarray(history, dtype=float), _LOG_FLOOR))
    fit = stats.linregress(x, y)
    return SmoothedChiSquare("power_law", fit.slope, fit.intercept, n)


SMOOTHING_STRATEGIES = {
    "sliding_linear": fit_sliding_linear,
    "power_law": fit_power_law,
}


class ConvergenceReport:
    """Detector verdict after one chi-square value."""

    def __init__(self, status, relative_change=None, fit=None):
        self.status = status
        self.relative_change = relative_change
        self.fit = fit

    @property
    def converged(self):
        return self.status == CONVERGED

    def to_dict(self):
        return {
            "status": self.status,
            "relative_change": self.relative_change,
            "fit": self.fit.to_dict() if self.fit is not None else None,
        }


class ConvergenceDetector:
    """
    State machine deciding when the chi-square history has settled.

    Parameters
    ----------
    min_iterations : int
        History length at which checking starts. At least 2 values are
        always required, since a line needs two points.
    threshold : float
        Convergence threshold on the absolute relative change.
    smoothing : str
        Key into SMOOTHING_STRATEGIES.
    window : int
        Window length for sliding_linear.
    """

    def __init__(self, min_iterations=constants.DEFAULT_MIN_ITERATIONS,
                 threshold=constants.DEFAULT_CONVERGENCE_THRESHOLD,
                 smoothing="sliding_linear",
                 window=constants.DEFAULT_WINDOW):
        if smoothing not in SMOOTHING_STRATEGIES:
            raise ValueError(
                "Unknown smoothing '{}', expected one of {}".format(
                    smoothing, ", ".join(SMOOTHING_STRATEGIES)))
        self.min_iterations = max(2, int(min_iterations))
        self.threshold = float(threshold)
        self.smoothing = smoothing
        self.window = max(2, int(window))
        self.state = WARMUP

    @classmethod
    def from_config(cls, config):
        return cls(config.min_iterations, config.convergence_threshold,
                   config.smoothing, config.window)

    def fit(self, history):
        """Fit the configured smoothing curve to the history."""
        return SMOOTHING_STRATEGIES[self.smoothing](history, self.window)

    def check(self, history):
        """
        Update the state with the latest history and report it.

        Parameters
        ----------
        history : sequence of float
            Chi-square values, one per completed iteration.

        Returns
        -------
        ConvergenceReport
        """
        if self.state == CONVERGED:
            return ConvergenceReport(CONVERGED)
        if len(history) < self.min_iterations:
            self.state = WARMUP
            return ConvergenceReport(WARMUP)

        fit = self.fit(history)
        change = fit.relative_change_at_latest()
        if abs(change) < self.threshold:
            self.state = CONVERGED
        else:
            self.state = CHECKING
        log.debug("Iteration %d: smoothed relative change %.4g -> %s",
                  len(history), change, self.state)
        return ConvergenceReport(self.state, change, fit)
