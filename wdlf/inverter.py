"""
One iteration of the WDLF inversion.

The current SFH is forward-simulated, the synthetic luminosity function
is scaled to physical units and compared with the observed one, and
each SFH bin is reweighted by the luminosity function mismatch of the
white dwarfs it produced:

    w_j      = phi_obs_j / phi_sim_j                  (magnitude bin j)
    factor_i = sum_j T_ij w_j / sum_j T_ij            (formation bin i)
    rate_i  <- rate_i * factor_i

where T_ij counts simulated white dwarfs formed in bin i that landed in
magnitude bin j. This is a Richardson-Lucy deconvolution step with the
Monte Carlo population as the kernel.

IMPORTANT: No unicode characters allowed (Windows charmap constraint).
"""

import logging

import numpy as np

from wdlf.config import InversionConfig
from wdlf.errors import NoUsableBins
from wdlf.forward import ForwardSimulator, physical_density

log = logging.getLogger(__name__)


class IterationResult:
    """
    Outcome of a single inversion iteration.

    Parameters
    ----------
    updated_sfh : SFHModel
        Refined SFH with propagated rate uncertainties.
    chi_square : float
        Chi-square of the input SFH's luminosity function.
    synthetic_density, synthetic_uncertainty : ndarray
        Synthetic LF in physical units.
    residuals : ndarray
        (synthetic - observed) / uncertainty; NaN in bins without a
        positive uncertainty.
    corrections : ndarray
        Per-magnitude-bin weights w_j; NaN where undefined.
    unconstrained_bins : list of int
        SFH bins that kept their input rate.
    simulation : SimulationResult
        The forward simulation, including the joint distributions.
    """

    def __init__(self, updated_sfh, chi_square, synthetic_density,
                 synthetic_uncertainty, residuals, corrections,
                 unconstrained_bins, simulation):
        self.updated_sfh = updated_sfh
        self.chi_square = chi_square
        self.synthetic_density = synthetic_density
        self.synthetic_uncertainty = synthetic_uncertainty
        self.residuals = residuals
        self.corrections = corrections
        self.unconstrained_bins = unconstrained_bins
        self.simulation = simulation

    def to_dict(self):
        def clean(arr):
            return [float(v) if np.isfinite(v) else None for v in arr]

        return {
            "chi_square": self.chi_square,
            "synthetic_density": self.synthetic_density.tolist(),
            "synthetic_uncertainty": self.synthetic_uncertainty.tolist(),
            "residuals": clean(self.residuals),
            "corrections": clean(self.corrections),
            "unconstrained_bins": self.unconstrained_bins,
            "simulation": self.simulation.to_dict(),
        }


class Inverter:
    """
    Performs inversion iterations against one observed LF.

    Parameters
    ----------
    observed : ObservedLuminosityFunction
        Inversion target; also supplies the magnitude binning.
    params : ModellingParameters
        Physics models.
    config : InversionConfig, optional
        Forward simulation settings.

    Raises
    ------
    NoUsableBins
        If every observed bin has an undefined uncertainty.
    """

    def __init__(self, observed, params, config=None):
        self.observed = observed
        self.params = params
        self.config = config if config is not None else InversionConfig()
        self.usable = observed.usable_mask
        self.weighted = observed.weighted_mask
        if not np.any(self.usable):
            raise NoUsableBins(
                "None of the {} observed bins has a defined uncertainty".format(
                    len(observed)))
        self.simulator = ForwardSimulator(
            params, observed, **self.config.simulator_options())

    def chi_square(self, synthetic_density):
        """
        Chi-square and residuals over the weighted bins.

        Exact bins (zero uncertainty) carry no weight and contribute
        nothing; with no weighted bin at all the chi-square is zero.
        """
        obs = self.observed
        w = self.weighted
        residuals = np.full(len(obs), np.nan)
        residuals[w] = ((synthetic_density[w] - obs.densities[w])
                        / obs.uncertainties[w])
        return float(np.sum(residuals[w] ** 2)), residuals

    def iterate(self, sfh, rng):
        """
        Run one iteration from sfh.

        Parameters
        ----------
        sfh : SFHModel
            Current SFH. Not modified.
        rng : numpy.random.Generator
            Random number source for the forward simulation.

        Returns
        -------
        IterationResult
        """
        obs = self.observed
        sim = self.simulator.simulate(sfh, rng)
        density, sigma_sim, _ = physical_density(sfh, sim, obs)
        chi2, residuals = self.chi_square(density)

        # Magnitude bin weights and their variances
        active = self.usable & (sim.magnitude_counts > 0)
        corrections = np.full(len(obs), np.nan)
        phi_obs = obs.densities[active]
        phi_sim = density[active]
        err_obs = obs.uncertainties[active]
        weight = phi_obs / phi_sim
        weight_var = (err_obs ** 2 / phi_sim ** 2
                      + phi_obs ** 2 * sigma_sim[active] ** 2 / phi_sim ** 4)
        corrections[active] = weight

        # Propagate through the formation time x magnitude transfer
        transfer = sim.transfer[:, active]
        n_obs = transfer.sum(axis=1)
        constrained = n_obs > 0
        fractions = np.zeros_like(transfer)
        fractions[constrained] = (transfer[constrained]
                                  / n_obs[constrained, np.newaxis])
        factor = fractions @ weight
        factor_sigma = np.sqrt(fractions ** 2 @ weight_var)

        rates = np.where(constrained, sfh.rates * factor, sfh.rates)
        sigmas = np.where(constrained, sfh.rates * factor_sigma,
                          sfh.rate_uncertainties)
        unconstrained = np.flatnonzero(~constrained).tolist()
        if unconstrained:
            log.debug("SFH bins %s produced no observed white dwarfs; "
                      "rates left unchanged", unconstrained)

        return IterationResult(
            updated_sfh=sfh.with_rates(rates, sigmas),
            chi_square=chi2,
            synthetic_density=density,
            synthetic_uncertainty=sigma_sim,
            residuals=residuals,
            corrections=corrections,
            unconstrained_bins=unconstrained,
            simulation=sim,
        )
