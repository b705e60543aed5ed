"""
Star formation history model.

An SFHModel is a piecewise-constant star formation rate over lookback
time. Bins tile [t_min, t_max] with no gaps or overlaps, and every rate
and rate uncertainty is non-negative. Instances behave as values: each
one owns its arrays, and an iteration that refines the rates produces a
new instance rather than editing an existing one.

IMPORTANT: No unicode characters allowed (Windows charmap constraint).
"""

import math

import numpy as np

from wdlf.errors import DegenerateDistribution, InvalidBinning, NegativeRate

# Relative tolerance on the contiguity of adjacent bin edges
_EDGE_RTOL = 1e-9


class SFHModel:
    """
    Piecewise-constant star formation rate over lookback time.

    Parameters
    ----------
    centres : array_like
        Bin centres in years, strictly increasing.
    widths : array_like
        Bin widths in years, all positive.
    rates : array_like
        Star formation rate in each bin [stars/yr/pc^3].
    rate_uncertainties : array_like, optional
        One-sigma uncertainty on each rate. Defaults to zero.

    Raises
    ------
    InvalidBinning
        If the bins do not tile a single interval.
    NegativeRate
        If any rate or uncertainty is negative or not finite.
    """

    def __init__(self, centres, widths, rates, rate_uncertainties=None):
        self.centres = np.array(centres, dtype=float, ndmin=1)
        self.widths = np.array(widths, dtype=float, ndmin=1)
        self.rates = np.array(rates, dtype=float, ndmin=1)
        if rate_uncertainties is None:
            self.rate_uncertainties = np.zeros_like(self.rates)
        else:
            self.rate_uncertainties = np.array(
                rate_uncertainties, dtype=float, ndmin=1)
        self._validate()

    def _validate(self):
        n = len(self.centres)
        if n == 0:
            raise InvalidBinning("SFH must have at least one bin")
        for label, arr in (("widths", self.widths), ("rates", self.rates),
                           ("rate_uncertainties", self.rate_uncertainties)):
            if arr.shape != (n,):
                raise InvalidBinning(
                    "{} has shape {}, expected ({},)".format(
                        label, arr.shape, n))
        if not np.all(np.isfinite(self.centres)) or \
                not np.all(np.isfinite(self.widths)):
            raise InvalidBinning("Bin centres and widths must be finite")
        if np.any(self.widths <= 0.0):
            raise InvalidBinning("Bin widths must be positive")
        if n > 1 and np.any(np.diff(self.centres) <= 0.0):
            raise InvalidBinning("Bin centres must be strictly increasing")
        upper = self.centres[:-1] + 0.5 * self.widths[:-1]
        lower = self.centres[1:] - 0.5 * self.widths[1:]
        scale = np.maximum(np.abs(upper), self.widths[:-1])
        if np.any(np.abs(upper - lower) > _EDGE_RTOL * scale):
            raise InvalidBinning(
                "Bins must tile the interval with no gaps or overlaps")
        if self.t_min < 0.0:
            raise InvalidBinning(
                "Lookback times must be non-negative, got t_min = {}".format(
                    self.t_min))
        for label, arr in (("rate", self.rates),
                           ("rate uncertainty", self.rate_uncertainties)):
            if not np.all(np.isfinite(arr)) or np.any(arr < 0.0):
                raise NegativeRate(
                    "Every {} must be finite and non-negative".format(label))

    # ------------------------------------------------------------------
    # Alternative constructors
    # ------------------------------------------------------------------
    @classmethod
    def from_edges(cls, edges, rates, rate_uncertainties=None):
        """Build from N+1 bin edges and N rates."""
        edges = np.asarray(edges, dtype=float)
        if edges.ndim != 1 or len(edges) < 2:
            raise InvalidBinning("At least two bin edges are required")
        if np.any(np.diff(edges) <= 0.0):
            raise InvalidBinning("Bin edges must be strictly increasing")
        centres = 0.5 * (edges[:-1] + edges[1:])
        widths = np.diff(edges)
        return cls(centres, widths, rates, rate_uncertainties)

    @classmethod
    def constant(cls, t_min, t_max, n_bins, rate):
        """Flat SFH of n_bins equal-width bins, the usual initial guess."""
        n_bins = int(n_bins)
        if n_bins < 1:
            raise InvalidBinning("n_bins must be at least 1")
        if not t_max > t_min:
            raise InvalidBinning("t_max must exceed t_min")
        edges = np.linspace(t_min, t_max, n_bins + 1)
        return cls.from_edges(edges, np.full(n_bins, float(rate)))

    @classmethod
    def exponential_decay(cls, t_min, t_max, n_bins, r0, tau):
        """
        Exponentially declining SFH, r(t) = r0 * exp((t - t_max) / tau).

        r0 is the rate at t_max. tau is negative, so the rate decays with
        increasing lookback time from its peak at t_min. Each bin holds
        the exact average of r(t) across the bin, so the total integral
        is preserved.
        """
        if not tau < 0.0:
            raise ValueError(
                "Decay constant must be negative, got {}".format(tau))
        if not r0 >= 0.0:
            raise NegativeRate(
                "Initial rate must be non-negative, got {}".format(r0))
        edges = np.linspace(t_min, t_max, int(n_bins) + 1)
        cumulative = tau * r0 * np.exp((edges - t_max) / tau)
        rates = np.diff(cumulative) / np.diff(edges)
        return cls.from_edges(edges, np.maximum(rates, 0.0))

    @classmethod
    def single_burst(cls, t_min, t_max, n_bins, burst_start, burst_end,
                     rate):
        """
        SFH with constant rate inside [burst_start, burst_end], zero outside.

        Bins partially covered by the burst get the covered fraction of
        the rate.
        """
        if not burst_end > burst_start:
            raise ValueError("burst_end must exceed burst_start")
        edges = np.linspace(t_min, t_max, int(n_bins) + 1)
        overlap = (np.minimum(edges[1:], burst_end)
                   - np.maximum(edges[:-1], burst_start))
        fraction = np.clip(overlap, 0.0, None) / np.diff(edges)
        return cls.from_edges(edges, float(rate) * fraction)

    @classmethod
    def from_dict(cls, data):
        """Build from a dict with 'centres', 'widths', 'rates' and optional 'rate_uncertainties'."""
        try:
            return cls(data["centres"], data["widths"], data["rates"],
                       data.get("rate_uncertainties"))
        except KeyError as e:
            raise InvalidBinning("Missing SFH field {}".format(e))
        except TypeError as e:
            raise InvalidBinning("Malformed SFH: {}".format(e))

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------
    def __len__(self):
        return len(self.centres)

    @property
    def lower_edges(self):
        return self.centres - 0.5 * self.widths

    @property
    def upper_edges(self):
        return self.centres + 0.5 * self.widths

    @property
    def edges(self):
        """The N+1 bin edges."""
        return np.append(self.lower_edges, self.upper_edges[-1])

    @property
    def t_min(self):
        return float(self.centres[0] - 0.5 * self.widths[0])

    @property
    def t_max(self):
        return float(self.centres[-1] + 0.5 * self.widths[-1])

    def bin_index(self, t):
        """
        Index of the bin containing each lookback time.

        Times outside [t_min, t_max] map to -1. The upper edge of the
        last bin belongs to the last bin.
        """
        t = np.asarray(t, dtype=float)
        edges = self.edges
        idx = np.searchsorted(edges, t, side="right") - 1
        idx = np.where(t == edges[-1], len(self) - 1, idx)
        outside = (t < edges[0]) | (t > edges[-1])
        return np.where(outside, -1, idx)

    def rate_at(self, t):
        """Star formation rate at lookback time t (zero outside the SFH)."""
        idx = self.bin_index(t)
        return np.where(idx >= 0, self.rates[np.clip(idx, 0, None)], 0.0)

    # ------------------------------------------------------------------
    # Sampling and integration
    # ------------------------------------------------------------------
    def draw_creation_time(self, rng, size=None):
        """
        Draw lookback times of star formation by inverse-CDF sampling.

        The probability density is proportional to the rate, so each bin
        is chosen with probability rate * width / total and the time is
        uniform within the chosen bin.

        Parameters
        ----------
        rng : numpy.random.Generator
            Random number source.
        size : int, optional
            Number of draws. A single float is returned when omitted.

        Raises
        ------
        DegenerateDistribution
            If every rate is zero.
        """
        weights = self.rates * self.widths
        total = weights.sum()
        if not total > 0.0:
            raise DegenerateDistribution(
                "Cannot draw creation times from an SFH with zero total rate")
        cdf = np.cumsum(weights) / total
        u = rng.random(size)
        idx = np.minimum(np.searchsorted(cdf, u, side="right"), len(self) - 1)
        cdf_lo = np.where(idx > 0, cdf[idx - 1], 0.0)
        frac = np.clip((u - cdf_lo) / (weights[idx] / total), 0.0, 1.0)
        t = self.lower_edges[idx] + frac * self.widths[idx]
        if size is None:
            return float(t)
        return t

    def integrate(self):
        """
        Total number of stars formed per unit volume.

        Returns
        -------
        tuple of (float, float)
            (sum of rate * width, quadrature sum of width * uncertainty).
        """
        total = float(np.sum(self.rates * self.widths))
        sigma = math.sqrt(float(np.sum(
            (self.widths * self.rate_uncertainties) ** 2)))
        return total, sigma

    # ------------------------------------------------------------------
    # Value semantics
    # ------------------------------------------------------------------
    def copy(self):
        """Independent deep copy."""
        return SFHModel(self.centres.copy(), self.widths.copy(),
                        self.rates.copy(), self.rate_uncertainties.copy())

    def with_rates(self, rates, rate_uncertainties=None):
        """New SFH on the same bins with replaced rates."""
        return SFHModel(self.centres.copy(), self.widths.copy(),
                        rates, rate_uncertainties)

    def __eq__(self, other):
        if not isinstance(other, SFHModel):
            return NotImplemented
        return (len(self) == len(other)
                and np.array_equal(self.centres, other.centres)
                and np.array_equal(self.widths, other.widths)
                and np.array_equal(self.rates, other.rates)
                and np.array_equal(self.rate_uncertainties,
                                   other.rate_uncertainties))

    __hash__ = None

    def __repr__(self):
        return "SFHModel(n_bins={}, t_min={:.4g}, t_max={:.4g})".format(
            len(self), self.t_min, self.t_max)

    def to_dict(self):
        """Serialize to plain lists for JSON output."""
        return {
            "centres": self.centres.tolist(),
            "widths": self.widths.tolist(),
            "rates": self.rates.tolist(),
            "rate_uncertainties": self.rate_uncertainties.tolist(),
        }
