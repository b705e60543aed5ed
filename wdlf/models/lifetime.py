"""
Pre-white-dwarf lifetimes from the Hurley, Pols & Tout (2000) fits.

The lifetime is the main sequence lifetime t_MS of equations 4-6 of
Hurley et al. (2000), which depends on mass and metallicity only. The
helium abundance argument is accepted for interface compatibility.

IMPORTANT: No unicode characters allowed (Windows charmap constraint).
"""

import numpy as np

from wdlf.constants import Z_SUN

# Search interval for inverting the lifetime relation [M_sun]
MASS_SEARCH_MIN = 0.7
MASS_SEARCH_MAX = 50.0

# Bisection steps; 60 halvings of [0.7, 50] reach double precision
BISECTION_STEPS = 60


def hurley_coefficients(z):
    """
    Metallicity-dependent coefficients a0..a9 of equation 4.

    Parameters
    ----------
    z : float or ndarray
        Metallicity (mass fraction).

    Returns
    -------
    list of ndarray
        Ten coefficient arrays broadcast against z.
    """
    zeta = np.log10(np.asarray(z, dtype=float) / Z_SUN)
    zeta2 = zeta * zeta
    zeta3 = zeta2 * zeta
    one = np.ones_like(zeta)
    return [
        1.593890e3 + 2.053038e3 * zeta + 1.231226e3 * zeta2 + 2.327785e2 * zeta3,
        2.706708e3 + 1.483131e3 * zeta + 5.772723e2 * zeta2 + 7.411230e1 * zeta3,
        1.466143e2 - 1.048442e2 * zeta - 6.795374e1 * zeta2 - 1.391127e1 * zeta3,
        4.141960e-2 + 4.564888e-2 * zeta + 2.958542e-2 * zeta2 + 5.571483e-3 * zeta3,
        3.426349e-1 * one,
        1.949814e1 + 1.758178e0 * zeta - 6.008212e0 * zeta2 - 4.470533e0 * zeta3,
        4.903830e0 * one,
        5.212154e-2 + 3.166411e-2 * zeta - 2.750074e-3 * zeta2 - 2.271549e-3 * zeta3,
        1.312179e0 - 3.294936e-1 * zeta + 9.231860e-2 * zeta2 + 2.610989e-2 * zeta3,
        8.073972e-1 * one,
    ]


def main_sequence_lifetime_myr(z, mass):
    """Main sequence lifetime in Myr (Hurley et al. 2000, eqs 4-6)."""
    mass = np.asarray(mass, dtype=float)
    zeta = np.log10(np.asarray(z, dtype=float) / Z_SUN)
    a = hurley_coefficients(z)

    m2 = mass * mass
    m4 = m2 * m2
    m7 = m4 * m2 * mass
    m5p5 = mass ** 5.5
    # Time to the base of the giant branch
    t_bgb = (a[0] + a[1] * m4 + a[2] * m5p5 + m7) / (a[3] * m2 + a[4] * m7)

    x = np.maximum(0.95, np.minimum(0.95 - 0.03 * (zeta + 0.30103), 0.99))
    mu = np.maximum(0.5, 1.0 - 0.01 * np.maximum(
        a[5] / mass ** a[6], a[7] + a[8] / mass ** a[9]))
    return np.maximum(mu * t_bgb, x * t_bgb)


class Hurley2000Lifetime:
    """Pre-WD lifetime callable, lifetime(z, y, mass) -> years."""

    name = "hurley2000"

    def lifetime(self, z, y, mass):
        return main_sequence_lifetime_myr(z, mass) * 1e6

    __call__ = lifetime

    def mass_at_lifetime(self, z, y, lifetime):
        """
        Stellar mass whose lifetime equals the given value in years.

        Found by bisection on [0.7, 50]; lifetimes outside the range
        spanned by those masses give the nearest limit.
        """
        target = np.asarray(lifetime, dtype=float) / 1e6
        z = np.broadcast_to(np.asarray(z, dtype=float), target.shape)
        lo = np.full(target.shape, MASS_SEARCH_MIN)
        hi = np.full(target.shape, MASS_SEARCH_MAX)
        for _ in range(BISECTION_STEPS):
            mid = 0.5 * (lo + hi)
            # Lifetime decreases with mass
            shorter = main_sequence_lifetime_myr(z, mid) < target
            hi = np.where(shorter, mid, hi)
            lo = np.where(shorter, lo, mid)
        return 0.5 * (lo + hi)
