"""
Power-law initial mass function.

dN/dM proportional to M^alpha between m_lower and m_upper.
"""

import numpy as np

from wdlf.constants import IMF_EXPONENT, M_LOWER, M_UPPER


class PowerLawImf:
    """
    Power-law IMF truncated to [m_lower, m_upper].

    Parameters
    ----------
    exponent : float
        Power-law index alpha (default -2.3).
    m_lower, m_upper : float
        Mass limits in solar masses.
    """

    def __init__(self, exponent=IMF_EXPONENT, m_lower=M_LOWER,
                 m_upper=M_UPPER):
        if not 0.0 < m_lower < m_upper:
            raise ValueError(
                "IMF mass limits must satisfy 0 < m_lower < m_upper")
        self.exponent = float(exponent)
        self.m_lower = float(m_lower)
        self.m_upper = float(m_upper)

    def _cumulative(self, m):
        # Unnormalised integral of M^alpha from m_lower to m
        beta = self.exponent + 1.0
        if beta == 0.0:
            return np.log(m / self.m_lower)
        return (m ** beta - self.m_lower ** beta) / beta

    def integral(self, m_low, m_high):
        """Fraction of stars with masses between m_low and m_high."""
        lo = np.clip(m_low, self.m_lower, self.m_upper)
        hi = np.clip(m_high, self.m_lower, self.m_upper)
        norm = self._cumulative(self.m_upper)
        return np.clip((self._cumulative(hi) - self._cumulative(lo)) / norm,
                       0.0, 1.0)

    def draw(self, rng, size=None):
        """Draw progenitor masses by inverting the cumulative distribution."""
        u = rng.random(size)
        beta = self.exponent + 1.0
        if beta == 0.0:
            return self.m_lower * (self.m_upper / self.m_lower) ** u
        lo = self.m_lower ** beta
        hi = self.m_upper ** beta
        return (lo + u * (hi - lo)) ** (1.0 / beta)

    def to_dict(self):
        return {
            "name": "power_law",
            "exponent": self.exponent,
            "m_lower": self.m_lower,
            "m_upper": self.m_upper,
        }
