"""
Monte Carlo forward model of the white dwarf population.

Draws stars from an SFH and the modelling parameters, evolves each one
to the present day and bins the detectable white dwarfs into:

    magnitude_counts - synthetic luminosity function (raw counts)
    p_ms             - formation time x progenitor mass
    p_wd             - magnitude x white dwarf mass
    transfer         - formation time x magnitude, linking the rows of
                       p_ms to the rows of p_wd

Stars are drawn in vectorised batches. The batch that reaches the
target population is truncated at the star that completed it, so the
result is the same as drawing one star at a time and stopping at the
target.

IMPORTANT: No unicode characters allowed (Windows charmap constraint).
"""

import logging

import numpy as np

from wdlf import constants
from wdlf.errors import EmptyPopulation
from wdlf.luminosity_function import ObservedLuminosityFunction

log = logging.getLogger(__name__)

# White dwarf mass range of the p_wd histogram [M_sun]
WD_MASS_MIN = 0.4
WD_MASS_MAX = 1.4

# Smallest batch worth vectorising
MIN_BATCH = 1024


class SimulationResult:
    """
    Histograms produced by one forward simulation.

    Parameters
    ----------
    magnitude_counts : ndarray
        Detected white dwarfs per luminosity function bin.
    transfer : ndarray
        Shape (n_sfh_bins, n_lf_bins): detected white dwarfs by
        formation time bin and magnitude bin.
    p_ms : ndarray
        Shape (n_sfh_bins, n_progenitor_mass_bins).
    p_wd : ndarray
        Shape (n_lf_bins, n_wd_mass_bins).
    attempted_per_bin : ndarray
        Stars drawn in each formation time bin, detected or not.
    wds_per_bin : ndarray
        Stars in each formation time bin that became white dwarfs,
        whether or not they fell inside a magnitude bin.
    stars_attempted : int
        Total stars drawn.
    progenitor_mass_edges, wd_mass_edges : ndarray
        Bin edges of the mass axes of p_ms and p_wd.
    """

    def __init__(self, magnitude_counts, transfer, p_ms, p_wd,
                 attempted_per_bin, wds_per_bin, stars_attempted,
                 progenitor_mass_edges, wd_mass_edges):
        self.magnitude_counts = magnitude_counts
        self.transfer = transfer
        self.p_ms = p_ms
        self.p_wd = p_wd
        self.attempted_per_bin = attempted_per_bin
        self.wds_per_bin = wds_per_bin
        self.stars_attempted = int(stars_attempted)
        self.progenitor_mass_edges = progenitor_mass_edges
        self.wd_mass_edges = wd_mass_edges

    @property
    def n_detected(self):
        return int(self.magnitude_counts.sum())

    def to_dict(self):
        return {
            "stars_attempted": self.stars_attempted,
            "n_detected": self.n_detected,
            "magnitude_counts": self.magnitude_counts.tolist(),
            "attempted_per_bin": self.attempted_per_bin.tolist(),
            "wds_per_bin": self.wds_per_bin.tolist(),
            "p_ms": self.p_ms.tolist(),
            "p_wd": self.p_wd.tolist(),
            "progenitor_mass_edges": self.progenitor_mass_edges.tolist(),
            "wd_mass_edges": self.wd_mass_edges.tolist(),
        }


class ForwardSimulator:
    """
    Draws and bins a synthetic white dwarf population.

    Parameters
    ----------
    params : ModellingParameters
        Physics models and stochastic parameters.
    template : ObservedLuminosityFunction
        Supplies the magnitude binning. Densities are ignored.
    target_population : int
        Number of white dwarfs to bin before stopping.
    max_attempts_factor : int
        Attempt budget as a multiple of target_population.
    batch_size : int
        Upper limit on stars drawn per vectorised batch.
    n_progenitor_mass_bins, n_wd_mass_bins : int
        Resolution of the mass axes of p_ms and p_wd.
    """

    def __init__(self, params, template,
                 target_population=constants.DEFAULT_TARGET_POPULATION,
                 max_attempts_factor=constants.DEFAULT_MAX_ATTEMPTS_FACTOR,
                 batch_size=constants.DEFAULT_BATCH_SIZE,
                 n_progenitor_mass_bins=constants.DEFAULT_MASS_BINS,
                 n_wd_mass_bins=constants.DEFAULT_MASS_BINS):
        if int(target_population) < 1:
            raise ValueError("target_population must be at least 1")
        self.params = params
        self.template = template
        self.target_population = int(target_population)
        self.max_attempts = int(max_attempts_factor) * self.target_population
        self.batch_size = max(MIN_BATCH, int(batch_size))
        m_lo = getattr(params.imf, "m_lower", constants.M_LOWER)
        m_hi = getattr(params.imf, "m_upper", constants.M_UPPER)
        self.progenitor_mass_edges = np.linspace(
            m_lo, m_hi, int(n_progenitor_mass_bins) + 1)
        self.wd_mass_edges = np.linspace(
            WD_MASS_MIN, WD_MASS_MAX, int(n_wd_mass_bins) + 1)

    def _mass_index(self, masses, edges):
        idx = np.searchsorted(edges, masses, side="right") - 1
        return np.clip(idx, 0, len(edges) - 2)

    def simulate(self, sfh, rng):
        """
        Simulate stars from sfh until target_population WDs are binned.

        Parameters
        ----------
        sfh : SFHModel
            Star formation history to draw formation times from.
        rng : numpy.random.Generator
            Random number source; the only state touched.

        Returns
        -------
        SimulationResult

        Raises
        ------
        DegenerateDistribution
            If the SFH has zero total rate.
        EmptyPopulation
            If no white dwarf is binned within the attempt budget.
        """
        params = self.params
        n_sfh = len(sfh)
        n_lf = len(self.template)
        n_pm = len(self.progenitor_mass_edges) - 1
        n_wdm = len(self.wd_mass_edges) - 1

        transfer = np.zeros((n_sfh, n_lf))
        p_ms = np.zeros((n_sfh, n_pm))
        p_wd = np.zeros((n_lf, n_wdm))
        attempted_per_bin = np.zeros(n_sfh)
        wds_per_bin = np.zeros(n_sfh)

        attempted = 0
        detected = 0
        n_batches = 0
        while detected < self.target_population and \
                attempted < self.max_attempts:
            remaining = self.target_population - detected
            n = min(self.batch_size, self.max_attempts - attempted,
                    max(MIN_BATCH, 4 * remaining))
            n_batches += 1

            t_form = sfh.draw_creation_time(rng, n)
            mass = params.draw_mass(rng, n)
            z = params.draw_metallicity(rng, n)
            y = params.draw_helium(rng, n)
            t_cool = t_form - params.pre_wd_lifetime(z, y, mass)
            is_wd = t_cool > 0.0

            lf_idx = np.full(n, -1)
            wd_mass = np.zeros(n)
            n_wd = int(np.count_nonzero(is_wd))
            if n_wd:
                wd_mass[is_wd] = params.final_mass(mass[is_wd])
                atmosphere = params.draw_atmosphere(rng, n_wd)
                magnitude = params.cooling_magnitude(
                    t_cool[is_wd], wd_mass[is_wd], atmosphere)
                magnitude = magnitude + params.draw_magnitude_error(rng, n_wd)
                lf_idx[is_wd] = self.template.bin_index(magnitude)

            binned = lf_idx >= 0
            cumulative = np.cumsum(binned)
            keep = n
            if cumulative[-1] > remaining:
                # Stop at the star that completes the target population
                keep = int(np.searchsorted(cumulative, remaining)) + 1

            sfh_idx = sfh.bin_index(t_form[:keep])
            binned = binned[:keep]
            attempted_per_bin += np.bincount(sfh_idx, minlength=n_sfh)
            wds_per_bin += np.bincount(sfh_idx[is_wd[:keep]],
                                       minlength=n_sfh)

            rows = sfh_idx[binned]
            cols = lf_idx[:keep][binned]
            np.add.at(transfer, (rows, cols), 1.0)
            np.add.at(p_ms, (rows, self._mass_index(
                mass[:keep][binned], self.progenitor_mass_edges)), 1.0)
            np.add.at(p_wd, (cols, self._mass_index(
                wd_mass[:keep][binned], self.wd_mass_edges)), 1.0)

            attempted += keep
            detected += int(np.count_nonzero(binned))

        if detected == 0:
            raise EmptyPopulation(
                "No white dwarfs fell inside the luminosity function "
                "after {} stars".format(attempted))
        if detected < self.target_population:
            log.warning(
                "Attempt budget of %d stars exhausted with %d of %d "
                "white dwarfs binned", self.max_attempts, detected,
                self.target_population)
        log.debug("Simulated %d stars in %d batches, %d white dwarfs binned",
                  attempted, n_batches, detected)

        return SimulationResult(
            magnitude_counts=transfer.sum(axis=0),
            transfer=transfer,
            p_ms=p_ms,
            p_wd=p_wd,
            attempted_per_bin=attempted_per_bin,
            wds_per_bin=wds_per_bin,
            stars_attempted=attempted,
            progenitor_mass_edges=self.progenitor_mass_edges,
            wd_mass_edges=self.wd_mass_edges,
        )


def physical_density(sfh, result, template):
    """
    Convert simulated counts to a density per magnitude per unit volume.

    Each simulated star stands for (stars formed per unit volume) /
    stars_attempted real stars.

    Returns
    -------
    tuple of (ndarray, ndarray, float)
        Density per bin, its Poisson uncertainty, and the number of real
        stars each simulated star represents.
    """
    total, _ = sfh.integrate()
    scale = total / result.stars_attempted
    counts = result.magnitude_counts
    density = scale * counts / template.widths
    sigma = scale * np.sqrt(counts) / template.widths
    return density, sigma, scale


def model_luminosity_function(sfh, params, template, n_wds, rng,
                              fractional_error=0.0, **simulator_options):
    """
    Forward-model the WDLF produced by an SFH.

    Parameters
    ----------
    sfh : SFHModel
        Star formation history to model.
    params : ModellingParameters
        Physics models.
    template : ObservedLuminosityFunction
        Magnitude binning of the output.
    n_wds : int
        White dwarfs to simulate.
    rng : numpy.random.Generator
        Random number source.
    fractional_error : float
        Extra uncertainty added in quadrature, as a fraction of density.
    **simulator_options
        Passed to ForwardSimulator.

    Returns
    -------
    ObservedLuminosityFunction
        Densities with Poisson uncertainties. Empty bins get the
        uncertainty of a single count.
    """
    simulator = ForwardSimulator(params, template, target_population=n_wds,
                                 **simulator_options)
    result = simulator.simulate(sfh, rng)
    density, sigma, scale = physical_density(sfh, result, template)
    floor = scale / template.widths
    sigma = np.sqrt(np.where(result.magnitude_counts > 0, sigma, floor) ** 2
                    + (fractional_error * density) ** 2)
    return ObservedLuminosityFunction(template.centres, template.widths,
                                      density, sigma, template.band)
