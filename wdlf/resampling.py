"""
Bootstrap uncertainty on the recovered SFH.

Each realization perturbs the observed luminosity function within its
quoted uncertainties and runs an independent inversion from the same
initial guess. Per-bin statistics over the successful realizations give
the bootstrap uncertainty on the SFH.

Realizations are independent, so they run on a process pool when more
than one worker is requested. Every realization draws from its own
child of a numpy SeedSequence, so no two share a random stream and the
ensemble is reproducible from a single seed regardless of scheduling.

IMPORTANT: No unicode characters allowed (Windows charmap constraint).
"""

import logging
import multiprocessing as mp
import os
from concurrent.futures import ProcessPoolExecutor, as_completed

import numpy as np
from scipy import stats

from wdlf import constants
from wdlf.config import InversionConfig
from wdlf.errors import InversionError
from wdlf.luminosity_function import NOISE_MODELS
from wdlf.sfh import SFHModel
from wdlf.state import run_inversion

log = logging.getLogger(__name__)

ESTIMATORS = ("mean", "median")


class _ResamplingJob:
    """Inputs shared by every realization of one resampling run."""

    def __init__(self, observed, initial_sfh, params, config, noise):
        self.observed = observed
        self.initial_sfh = initial_sfh
        self.params = params
        self.config = config
        self.noise = noise


_WORKER_JOB = None


def _parallel_worker_init(job):
    """Initialize one worker process with the shared resampling inputs."""
    global _WORKER_JOB
    os.environ.setdefault("OMP_NUM_THREADS", "1")
    _WORKER_JOB = job


def _parallel_worker_run(task):
    """Worker entrypoint: run one realization with the process-wide job."""
    if _WORKER_JOB is None:
        raise RuntimeError("Resampling worker job is not initialized")
    return _run_realization(_WORKER_JOB, task)


def _run_realization(job, task):
    """
    Perturb the observed LF and invert it.

    Returns (index, rates, iterations, None) on success and
    (index, None, None, (error type, message)) when the inversion fails.
    """
    index, seed = task
    rng = np.random.default_rng(seed)
    try:
        perturbed = job.observed.resample(rng, job.noise)
        result = run_inversion(job.initial_sfh, perturbed, job.params,
                               job.config, rng)
    except InversionError as e:
        return index, None, None, (type(e).__name__, str(e))
    return index, result.sfh.rates, result.iterations, None


class ResamplingResult:
    """
    Per-bin statistics over the successful realizations.

    Parameters
    ----------
    initial_sfh : SFHModel
        Supplies the binning.
    realizations : ndarray
        Shape (n_succeeded, n_bins): recovered rates, ordered by
        realization index.
    iterations : list of int
        Iterations each successful realization took.
    failures : list of dict
        One {"index", "type", "message"} record per dropped realization.
    """

    def __init__(self, initial_sfh, realizations, iterations, failures):
        self.centres = initial_sfh.centres.copy()
        self.widths = initial_sfh.widths.copy()
        self.realizations = realizations
        self.iterations = iterations
        self.failures = failures

        n = len(realizations)
        if n == 0:
            nan = np.full(len(self.centres), np.nan)
            self.mean = nan.copy()
            self.std = nan.copy()
            self.median = nan.copy()
            self.mad = nan.copy()
            return
        self.mean = realizations.mean(axis=0)
        self.std = (realizations.std(axis=0, ddof=1) if n > 1
                    else np.zeros(len(self.centres)))
        self.median = np.median(realizations, axis=0)
        self.mad = stats.median_abs_deviation(
            realizations, axis=0, scale=1.0 / constants.MAD_SCALE)

    @property
    def n_succeeded(self):
        return len(self.realizations)

    @property
    def n_dropped(self):
        return len(self.failures)

    def to_sfh(self, estimator="median"):
        """
        SFH carrying the bootstrap estimate and spread.

        "median" pairs the median with the scaled MAD, "mean" pairs the
        mean with the sample standard deviation.
        """
        if estimator not in ESTIMATORS:
            raise ValueError(
                "Unknown estimator '{}', expected one of {}".format(
                    estimator, ", ".join(ESTIMATORS)))
        if self.n_succeeded == 0:
            raise InversionError("Every bootstrap realization failed")
        if estimator == "median":
            return SFHModel(self.centres, self.widths, self.median, self.mad)
        return SFHModel(self.centres, self.widths, self.mean, self.std)

    def to_dict(self):
        def clean(arr):
            return [float(v) if np.isfinite(v) else None for v in arr]

        return {
            "centres": self.centres.tolist(),
            "widths": self.widths.tolist(),
            "mean": clean(self.mean),
            "std": clean(self.std),
            "median": clean(self.median),
            "mad": clean(self.mad),
            "n_succeeded": self.n_succeeded,
            "n_dropped": self.n_dropped,
            "iterations": self.iterations,
            "failures": self.failures,
        }


class UncertaintyResampler:
    """
    Runs bootstrap realizations of an inversion.

    Parameters
    ----------
    config : InversionConfig, optional
        Settings for every realization.
    n_realizations : int
        Number of perturbed realizations M.
    max_workers : int, optional
        Worker processes. None uses os.cpu_count(); 1 or less runs in
        this process.
    seed : int or numpy.random.SeedSequence, optional
        Root of the per-realization seeds.
    noise : str
        Noise model for the perturbation ("gaussian" or "poisson").
    start_method : str
        multiprocessing start method for the pool.
    """

    def __init__(self, config=None, n_realizations=constants.DEFAULT_REALIZATIONS,
                 max_workers=None, seed=None, noise="gaussian",
                 start_method="spawn"):
        if int(n_realizations) < 1:
            raise ValueError("n_realizations must be at least 1")
        if noise not in NOISE_MODELS:
            raise ValueError(
                "Unknown noise model '{}', expected one of {}".format(
                    noise, ", ".join(NOISE_MODELS)))
        self.config = config if config is not None else InversionConfig()
        self.n_realizations = int(n_realizations)
        if max_workers is None:
            max_workers = os.cpu_count() or 1
        self.max_workers = min(int(max_workers), self.n_realizations)
        self.seed = seed
        self.noise = noise
        self.start_method = start_method

    def _seeds(self):
        root = (self.seed if isinstance(self.seed, np.random.SeedSequence)
                else np.random.SeedSequence(self.seed))
        return root.spawn(self.n_realizations)

    def run(self, observed, initial_sfh, params):
        """
        Invert M perturbed realizations of the observed LF.

        Parameters
        ----------
        observed : ObservedLuminosityFunction
            Luminosity function to perturb.
        initial_sfh : SFHModel
            Initial guess; every realization starts from its own copy.
        params : ModellingParameters
            Physics models.

        Returns
        -------
        ResamplingResult
        """
        job = _ResamplingJob(observed, initial_sfh.copy(), params,
                             self.config, self.noise)
        tasks = list(enumerate(self._seeds()))
        outcomes = [None] * len(tasks)

        if self.max_workers <= 1:
            for task in tasks:
                outcomes[task[0]] = _run_realization(job, task)
                self._log_progress(outcomes[task[0]])
        else:
            ctx = mp.get_context(self.start_method)
            log.info("Running %d realizations on %d workers",
                     len(tasks), self.max_workers)
            with ProcessPoolExecutor(max_workers=self.max_workers,
                                     mp_context=ctx,
                                     initializer=_parallel_worker_init,
                                     initargs=(job,)) as executor:
                future_map = {
                    executor.submit(_parallel_worker_run, task): task[0]
                    for task in tasks
                }
                for future in as_completed(future_map):
                    idx = future_map[future]
                    outcome = future.result()
                    if outcome[0] != idx:
                        raise RuntimeError(
                            "Worker returned realization {} for task {}".format(
                                outcome[0], idx))
                    outcomes[idx] = outcome
                    self._log_progress(outcome)

        rates = []
        iterations = []
        failures = []
        for index, realization_rates, n_iter, failure in outcomes:
            if failure is not None:
                failures.append({"index": index, "type": failure[0],
                                 "message": failure[1]})
            else:
                rates.append(realization_rates)
                iterations.append(n_iter)
        if failures:
            log.warning("Dropped %d of %d realizations", len(failures),
                        len(outcomes))
        matrix = (np.vstack(rates) if rates
                  else np.empty((0, len(initial_sfh))))
        return ResamplingResult(initial_sfh, matrix, iterations, failures)

    @staticmethod
    def _log_progress(outcome):
        index, _, n_iter, failure = outcome
        if failure is not None:
            log.warning("Realization %d failed: %s: %s", index, failure[0],
                        failure[1])
        else:
            log.info("Realization %d converged after %d iterations", index,
                     n_iter)
