"""
Inversion state and the iterate-until-converged loop.

InversionState is handed from one iteration to the next as a value:
advance() returns a new state and never modifies the old one, so a
state can be shared with an observer or another process without
copying.

IMPORTANT: No unicode characters allowed (Windows charmap constraint).
"""

import logging

import numpy as np

from wdlf.config import InversionConfig
from wdlf.convergence import ConvergenceDetector
from wdlf.errors import IterationLimitExceeded
from wdlf.inverter import Inverter
from wdlf.modelling import fraction_wd_progenitors

log = logging.getLogger(__name__)


class InversionState:
    """
    Snapshot of an inversion run between iterations.

    Parameters
    ----------
    current_sfh : SFHModel
        SFH the next iteration starts from.
    min_iterations : int
        Iterations before convergence is checked.
    convergence_threshold : float
        Threshold on the smoothed relative chi-square change.
    chi_square_history : sequence of float, optional
        One value per completed iteration.
    updated_sfh : SFHModel, optional
        Result of the latest iteration (the same object as current_sfh
        once promoted).
    """

    def __init__(self, current_sfh, min_iterations, convergence_threshold,
                 chi_square_history=(), updated_sfh=None):
        self.current_sfh = current_sfh
        self.updated_sfh = updated_sfh
        self.chi_square_history = tuple(float(c) for c in chi_square_history)
        self.min_iterations = int(min_iterations)
        self.convergence_threshold = float(convergence_threshold)

    @classmethod
    def initial(cls, sfh, config):
        """Fresh state owning its own copy of the initial SFH."""
        return cls(sfh.copy(), config.min_iterations,
                   config.convergence_threshold)

    @property
    def iteration(self):
        """Completed iterations; always equal to the history length."""
        return len(self.chi_square_history)

    def advance(self, updated_sfh, chi_square):
        """State after an iteration produced updated_sfh and chi_square."""
        return InversionState(
            current_sfh=updated_sfh,
            min_iterations=self.min_iterations,
            convergence_threshold=self.convergence_threshold,
            chi_square_history=self.chi_square_history + (chi_square,),
            updated_sfh=updated_sfh,
        )

    def to_dict(self):
        return {
            "iteration": self.iteration,
            "chi_square_history": list(self.chi_square_history),
            "min_iterations": self.min_iterations,
            "convergence_threshold": self.convergence_threshold,
            "sfh": self.current_sfh.to_dict(),
        }


class InversionResult:
    """
    Converged inversion.

    Parameters
    ----------
    state : InversionState
        Final state; state.current_sfh carries the internally
        propagated rate uncertainties.
    last_iteration : IterationResult
        Diagnostics of the final iteration.
    convergence : ConvergenceReport
        Verdict that ended the run.
    progenitor_fractions : list
        Fraction of stars formed in each SFH bin that are now WDs.
    config : InversionConfig
        Settings used.
    """

    def __init__(self, state, last_iteration, convergence,
                 progenitor_fractions, config):
        self.state = state
        self.last_iteration = last_iteration
        self.convergence = convergence
        self.progenitor_fractions = progenitor_fractions
        self.config = config

    @property
    def sfh(self):
        return self.state.current_sfh

    @property
    def chi_square_history(self):
        return list(self.state.chi_square_history)

    @property
    def iterations(self):
        return self.state.iteration

    def to_dict(self):
        return {
            "sfh": self.sfh.to_dict(),
            "chi_square_history": self.chi_square_history,
            "iterations": self.iterations,
            "convergence": self.convergence.to_dict(),
            "progenitor_fractions": self.progenitor_fractions,
            "last_iteration": self.last_iteration.to_dict(),
            "config": self.config.to_dict(),
        }


def run_inversion(initial_sfh, observed, params, config=None, rng=None,
                  on_iteration=None):
    """
    Iterate the inversion until the chi-square history converges.

    Parameters
    ----------
    initial_sfh : SFHModel
        Initial guess. Copied; the caller's object is never modified.
    observed : ObservedLuminosityFunction
        Target luminosity function.
    params : ModellingParameters
        Physics models.
    config : InversionConfig, optional
        Run settings. Defaults to InversionConfig().
    rng : numpy.random.Generator or int, optional
        Random number source or seed.
    on_iteration : callable, optional
        Called as on_iteration(iteration, chi_square) after each
        iteration. Its return value is ignored.

    Returns
    -------
    InversionResult

    Raises
    ------
    NoUsableBins, DegenerateDistribution, EmptyPopulation
        Propagated from the iteration that hit them.
    IterationLimitExceeded
        If config.max_iterations iterations pass without convergence.
    """
    config = config if config is not None else InversionConfig()
    rng = np.random.default_rng(rng)
    inverter = Inverter(observed, params, config)
    detector = ConvergenceDetector.from_config(config)
    state = InversionState.initial(initial_sfh, config)

    while True:
        if state.iteration >= config.max_iterations:
            raise IterationLimitExceeded(
                "No convergence after {} iterations".format(state.iteration),
                state=state)
        step = inverter.iterate(state.current_sfh, rng)
        state = state.advance(step.updated_sfh, step.chi_square)
        log.info("Iteration %d: chi-square = %.6g", state.iteration,
                 step.chi_square)
        if on_iteration is not None:
            on_iteration(state.iteration, step.chi_square)
        report = detector.check(state.chi_square_history)
        if report.converged:
            break

    log.info("Converged after %d iterations (relative change %.4g)",
             state.iteration, report.relative_change)
    sfh = state.current_sfh
    fractions = [fraction_wd_progenitors(params, lo, hi)
                 for lo, hi in zip(sfh.lower_edges, sfh.upper_edges)]
    return InversionResult(state, step, report, fractions, config)
