"""
Initial-final mass relations.

Map progenitor (initial) mass to white dwarf (final) mass, both in
solar masses.
"""

import numpy as np


class Kalirai2008Ifmr:
    """Kalirai et al. (2008): mf = 0.109 mi + 0.428."""

    name = "kalirai2008"

    def final_mass(self, mi):
        return 0.109 * np.asarray(mi, dtype=float) + 0.428

    def initial_mass(self, mf):
        return (np.asarray(mf, dtype=float) - 0.428) / 0.109

    __call__ = final_mass


class Catalan2008Ifmr:
    """
    Catalan et al. (2008): two linear segments joined at mi = 2.7.

    The final mass is capped at 1.2 since cooling models do not extend
    above it.
    """

    name = "catalan2008"

    # Initial mass separating the two linear segments
    BREAK_MASS = 2.7
    MAX_FINAL_MASS = 1.2

    def final_mass(self, mi):
        mi = np.asarray(mi, dtype=float)
        low = 0.096 * mi + 0.429
        high = np.minimum(self.MAX_FINAL_MASS, 0.137 * mi + 0.318)
        return np.where(mi <= self.BREAK_MASS, low, high)

    def initial_mass(self, mf):
        mf = np.minimum(np.asarray(mf, dtype=float), self.MAX_FINAL_MASS)
        mf_break = 0.096 * self.BREAK_MASS + 0.429
        return np.where(mf > mf_break, (mf - 0.318) / 0.137,
                        (mf - 0.429) / 0.096)

    __call__ = final_mass


# Lookup used by the service layer to resolve IFMRs by name
IFMRS = {
    Kalirai2008Ifmr.name: Kalirai2008Ifmr,
    Catalan2008Ifmr.name: Catalan2008Ifmr,
}
