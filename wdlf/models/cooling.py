"""
Analytic white dwarf cooling from Mestel's law.

    t_cool = tau * (M / M_sun)^(5/7) * (L / L_sun)^(-5/7)

with tau = 8.8 Myr for a carbon-oxygen core (A = 12) under a hydrogen
envelope. Helium atmospheres are more transparent and cool faster, which
is represented by a shorter timescale.
"""

import numpy as np

from wdlf.constants import ATMOSPHERE_H, BAND_M_BOL, M_BOL_SUN

# Cooling timescales in years
TAU_H = 8.8e6
TAU_HE = 7.0e6

# Cooling times are floored here to keep magnitudes finite
MIN_COOLING_TIME = 1.0


class MestelCooling:
    """Cooling magnitude callable, magnitude(t_cool, mass, atmosphere, band)."""

    name = "mestel"
    bands = (BAND_M_BOL,)

    def __init__(self, tau_h=TAU_H, tau_he=TAU_HE):
        self.tau_h = float(tau_h)
        self.tau_he = float(tau_he)

    def luminosity(self, cooling_time, mass, atmosphere):
        """Luminosity in solar units."""
        t = np.maximum(np.asarray(cooling_time, dtype=float),
                       MIN_COOLING_TIME)
        mass = np.asarray(mass, dtype=float)
        tau = np.where(np.asarray(atmosphere) == ATMOSPHERE_H,
                       self.tau_h, self.tau_he)
        return (t / (tau * mass ** (5.0 / 7.0))) ** (-7.0 / 5.0)

    def magnitude(self, cooling_time, mass, atmosphere, band=BAND_M_BOL):
        if band not in self.bands:
            raise ValueError(
                "Band '{}' not supported by {} cooling, expected one of {}".format(
                    band, self.name, ", ".join(self.bands)))
        lum = self.luminosity(cooling_time, mass, atmosphere)
        return M_BOL_SUN - 2.5 * np.log10(lum)

    __call__ = magnitude
