"""
InversionConfig: run parameters for an inversion.

Holds everything that controls the iterate-until-converged loop and the
forward simulations inside it. Out-of-range numeric values are clamped
to their bounds; values that cannot be clamped raise ValueError.

IMPORTANT: No unicode characters allowed (Windows charmap constraint).
"""

from wdlf import constants

SMOOTHING_KINDS = ("sliding_linear", "power_law")


class InversionConfig:
    """
    Inversion run configuration.

    Parameters
    ----------
    target_population : int
        White dwarfs binned per forward simulation. Clamped to
        [100, 5000000].
    min_iterations : int
        Iterations before convergence is checked. Minimum 2, since a
        smoothing fit needs two points.
    convergence_threshold : float
        Absolute relative change of the smoothed chi-square below which
        the run has converged. Must be positive.
    smoothing : str
        "sliding_linear" or "power_law".
    window : int
        Sliding window length for "sliding_linear". Minimum 2.
    max_iterations : int
        Iteration cap. Raised to min_iterations if lower.
    max_attempts_factor : int
        Forward simulation attempt budget, as a multiple of
        target_population. Minimum 1.
    batch_size : int
        Stars drawn per vectorised batch.
    n_progenitor_mass_bins, n_wd_mass_bins : int
        Resolution of the joint distributions. Clamped to [1, 500].
    """

    def __init__(self, target_population=constants.DEFAULT_TARGET_POPULATION,
                 min_iterations=constants.DEFAULT_MIN_ITERATIONS,
                 convergence_threshold=constants.DEFAULT_CONVERGENCE_THRESHOLD,
                 smoothing="sliding_linear",
                 window=constants.DEFAULT_WINDOW,
                 max_iterations=constants.DEFAULT_MAX_ITERATIONS,
                 max_attempts_factor=constants.DEFAULT_MAX_ATTEMPTS_FACTOR,
                 batch_size=constants.DEFAULT_BATCH_SIZE,
                 n_progenitor_mass_bins=constants.DEFAULT_MASS_BINS,
                 n_wd_mass_bins=constants.DEFAULT_MASS_BINS):
        self.target_population = max(100, min(int(target_population),
                                              5000000))
        self.min_iterations = max(2, int(min_iterations))
        self.convergence_threshold = float(convergence_threshold)
        if not self.convergence_threshold > 0.0:
            raise ValueError(
                "convergence_threshold must be positive, got {}".format(
                    convergence_threshold))
        if smoothing not in SMOOTHING_KINDS:
            raise ValueError(
                "Unknown smoothing '{}', expected one of {}".format(
                    smoothing, ", ".join(SMOOTHING_KINDS)))
        self.smoothing = smoothing
        self.window = max(2, int(window))
        self.max_iterations = max(self.min_iterations, int(max_iterations))
        self.max_attempts_factor = max(1, int(max_attempts_factor))
        self.batch_size = max(1, int(batch_size))
        self.n_progenitor_mass_bins = max(1, min(int(n_progenitor_mass_bins),
                                                 500))
        self.n_wd_mass_bins = max(1, min(int(n_wd_mass_bins), 500))

    def simulator_options(self):
        """Keyword arguments for ForwardSimulator."""
        return {
            "target_population": self.target_population,
            "max_attempts_factor": self.max_attempts_factor,
            "batch_size": self.batch_size,
            "n_progenitor_mass_bins": self.n_progenitor_mass_bins,
            "n_wd_mass_bins": self.n_wd_mass_bins,
        }

    def to_dict(self):
        """Serialize config for inclusion in results."""
        result = self.simulator_options()
        result.update({
            "min_iterations": self.min_iterations,
            "convergence_threshold": self.convergence_threshold,
            "smoothing": self.smoothing,
            "window": self.window,
            "max_iterations": self.max_iterations,
        })
        return result
