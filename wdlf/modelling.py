"""
Modelling parameters for the forward simulation.

Bundles the physics models (IMF, IFMR, pre-WD lifetime, cooling) with
the per-star stochastic knobs: metallicity and helium spread, the
hydrogen atmosphere fraction and the photometric error. The core only
reads these.

The physics models are used through four callables:

    draw_mass(rng, size)                                -> initial masses
    lifetime(z, y, mass)                                -> years
    final_mass(initial_mass)                            -> WD masses
    cooling_magnitude(cooling_time, mass, atmosphere, band) -> magnitudes

each operating element-wise on numpy arrays.

IMPORTANT: No unicode characters allowed (Windows charmap constraint).
"""

import numpy as np

from wdlf import constants
from wdlf.models import (
    Hurley2000Lifetime,
    Kalirai2008Ifmr,
    MestelCooling,
    PowerLawImf,
)


class ModellingParameters:
    """
    Physical model selection and its stochastic parameters.

    Parameters
    ----------
    imf : object, optional
        Provides draw(rng, size). PowerLawImf by default.
    ifmr : callable, optional
        final_mass(initial_mass). Kalirai2008Ifmr by default.
    lifetime : callable, optional
        lifetime(z, y, mass) in years. Hurley2000Lifetime by default.
    cooling : callable, optional
        cooling_magnitude(cooling_time, mass, atmosphere, band).
        MestelCooling by default.
    w_h : float
        Probability that a white dwarf has a hydrogen atmosphere.
    sigma_m : float
        Standard deviation of the Gaussian magnitude error.
    mean_z, sigma_z : float
        Normal distribution of metallicity, truncated to positive values.
    mean_y, sigma_y : float
        Normal distribution of helium content, truncated to positive values.
    band : str
        Photometric band passed to the cooling model.
    """

    def __init__(self, imf=None, ifmr=None, lifetime=None, cooling=None,
                 w_h=constants.DEFAULT_W_H,
                 sigma_m=constants.DEFAULT_SIGMA_M,
                 mean_z=constants.DEFAULT_Z, sigma_z=constants.DEFAULT_SIGMA_Z,
                 mean_y=constants.DEFAULT_Y, sigma_y=constants.DEFAULT_SIGMA_Y,
                 band=constants.BAND_M_BOL):
        self.imf = imf if imf is not None else PowerLawImf()
        self.ifmr = ifmr if ifmr is not None else Kalirai2008Ifmr()
        self.lifetime = lifetime if lifetime is not None else Hurley2000Lifetime()
        self.cooling = cooling if cooling is not None else MestelCooling()
        self.w_h = float(w_h)
        self.sigma_m = float(sigma_m)
        self.mean_z = float(mean_z)
        self.sigma_z = float(sigma_z)
        self.mean_y = float(mean_y)
        self.sigma_y = float(sigma_y)
        self.band = band

        if not 0.0 <= self.w_h <= 1.0:
            raise ValueError("w_h must lie in [0, 1], got {}".format(w_h))
        for label, value in (("sigma_m", self.sigma_m),
                             ("sigma_z", self.sigma_z),
                             ("sigma_y", self.sigma_y)):
            if not value >= 0.0:
                raise ValueError(
                    "{} must be non-negative, got {}".format(label, value))
        # Truncated draws are redrawn until positive, so the mean must be
        # positive for the rejection loop to terminate.
        for label, value in (("mean_z", self.mean_z),
                             ("mean_y", self.mean_y)):
            if not value > 0.0:
                raise ValueError(
                    "{} must be positive, got {}".format(label, value))

    # ------------------------------------------------------------------
    # The four physics callables
    # ------------------------------------------------------------------
    def draw_mass(self, rng, size=None):
        return self.imf.draw(rng, size)

    def pre_wd_lifetime(self, z, y, mass):
        return self.lifetime(z, y, mass)

    def final_mass(self, initial_mass):
        return self.ifmr(initial_mass)

    def cooling_magnitude(self, cooling_time, mass, atmosphere):
        return self.cooling(cooling_time, mass, atmosphere, self.band)

    # ------------------------------------------------------------------
    # Per-star stochastic draws
    # ------------------------------------------------------------------
    @staticmethod
    def _draw_positive_normal(rng, mean, sigma, size):
        values = mean + sigma * rng.standard_normal(size)
        bad = values <= 0.0
        while np.any(bad):
            values[bad] = mean + sigma * rng.standard_normal(
                int(np.count_nonzero(bad)))
            bad = values <= 0.0
        return values

    def draw_metallicity(self, rng, size):
        return self._draw_positive_normal(rng, self.mean_z, self.sigma_z,
                                          size)

    def draw_helium(self, rng, size):
        return self._draw_positive_normal(rng, self.mean_y, self.sigma_y,
                                          size)

    def draw_atmosphere(self, rng, size):
        """Atmosphere labels: "H" with probability w_h, else "He"."""
        return np.where(rng.random(size) < self.w_h,
                        constants.ATMOSPHERE_H, constants.ATMOSPHERE_HE)

    def draw_magnitude_error(self, rng, size):
        return self.sigma_m * rng.standard_normal(size)

    def to_dict(self):
        """Serialize the scalar parameters and model names."""
        return {
            "imf": self.imf.to_dict() if hasattr(self.imf, "to_dict")
            else type(self.imf).__name__,
            "ifmr": getattr(self.ifmr, "name", type(self.ifmr).__name__),
            "lifetime": getattr(self.lifetime, "name",
                                type(self.lifetime).__name__),
            "cooling": getattr(self.cooling, "name",
                               type(self.cooling).__name__),
            "w_h": self.w_h,
            "sigma_m": self.sigma_m,
            "mean_z": self.mean_z,
            "sigma_z": self.sigma_z,
            "mean_y": self.mean_y,
            "sigma_y": self.sigma_y,
            "band": self.band,
        }


def fraction_wd_progenitors(params, t_lo, t_hi,
                            n_strips=constants.N_TURNOFF_STRIPS):
    """
    Fraction of stars formed in a lookback interval that are now WDs.

    A star formed at lookback time t has left the main sequence if its
    mass exceeds the turnoff mass whose lifetime equals t. The fraction
    of IMF-drawn stars above the turnoff is averaged over n_strips
    equal strips across [t_lo, t_hi], at the mean metallicity.

    Returns None when the lifetime model cannot be inverted or the IMF
    has no integral.
    """
    invert = getattr(params.lifetime, "mass_at_lifetime", None)
    integral = getattr(params.imf, "integral", None)
    if invert is None or integral is None:
        return None
    width = (t_hi - t_lo) / n_strips
    t_mid = t_lo + width * (np.arange(n_strips) + 0.5)
    turnoff = invert(params.mean_z, params.mean_y, t_mid)
    m_upper = getattr(params.imf, "m_upper", np.inf)
    return float(np.mean(integral(turnoff, m_upper)))
