"""
Observed white dwarf luminosity function.

Magnitude bins of star count density with a one-sigma uncertainty per
bin. Instances are immutable: the arrays are flagged read-only and every
transformation (distance modulus shift, resampling) returns a new
instance.

A bin is usable when its uncertainty is defined (finite). Usable bins
drive the SFH correction. A zero uncertainty marks an exact bin: it
steers the correction but has no weight in the chi-square, which sums
over the weighted bins (finite, strictly positive uncertainty) only.
Bins with an undefined uncertainty are carried along and ignored.
"""

import numpy as np

from wdlf.errors import InvalidBinning

NOISE_MODELS = ("gaussian", "poisson")


def _frozen(values, n=None):
    arr = np.array(values, dtype=float, ndmin=1)
    if n is not None and arr.shape != (n,):
        raise InvalidBinning(
            "Expected {} values, got shape {}".format(n, arr.shape))
    arr.setflags(write=False)
    return arr


class ObservedLuminosityFunction:
    """
    Empirical WDLF: density of white dwarfs per magnitude bin.

    Parameters
    ----------
    centres : array_like
        Magnitude bin centres, strictly increasing.
    widths : array_like
        Magnitude bin widths, positive. Bins may leave gaps between them
        but must not overlap.
    densities : array_like
        Star count density in each bin [stars/mag/pc^3].
    uncertainties : array_like, optional
        One-sigma density uncertainty. None entries or NaN mark bins
        without a usable uncertainty. Defaults to all NaN. Negative
        values are rejected.
    band : str, optional
        Photometric band of the magnitudes (default "M_BOL").
    """

    def __init__(self, centres, widths, densities, uncertainties=None,
                 band="M_BOL"):
        self.centres = _frozen(centres)
        n = len(self.centres)
        self.widths = _frozen(widths, n)
        self.densities = _frozen(densities, n)
        if uncertainties is None:
            uncertainties = np.full(n, np.nan)
        else:
            uncertainties = [np.nan if u is None else u for u in
                             np.atleast_1d(np.asarray(uncertainties,
                                                      dtype=object))]
        self.uncertainties = _frozen(uncertainties, n)
        self.band = band
        self._validate()

    def _validate(self):
        n = len(self.centres)
        if n == 0:
            raise InvalidBinning("Luminosity function must have at least one bin")
        if not np.all(np.isfinite(self.centres)) or \
                not np.all(np.isfinite(self.widths)):
            raise InvalidBinning("Magnitude centres and widths must be finite")
        if np.any(self.widths <= 0.0):
            raise InvalidBinning("Magnitude bin widths must be positive")
        if n > 1:
            if np.any(np.diff(self.centres) <= 0.0):
                raise InvalidBinning(
                    "Magnitude bin centres must be strictly increasing")
            overlap = self.upper_edges[:-1] - self.lower_edges[1:]
            if np.any(overlap > 1e-9 * self.widths[:-1]):
                raise InvalidBinning("Magnitude bins must not overlap")
        if not np.all(np.isfinite(self.densities)) or \
                np.any(self.densities < 0.0):
            raise InvalidBinning("Densities must be finite and non-negative")
        if np.any(self.uncertainties < 0.0):
            raise InvalidBinning("Uncertainties must be non-negative")

    @classmethod
    def empty(cls, centres, widths, band="M_BOL"):
        """Binning template with zero densities and no uncertainties."""
        centres = np.asarray(centres, dtype=float)
        return cls(centres, widths, np.zeros(len(centres)), None, band)

    @classmethod
    def from_dict(cls, data):
        """
        Build from a dict of parallel lists.

        Accepts either {"centres", "widths", "densities", "uncertainties"}
        or {"bins": [{"centre", "width", "density", "uncertainty"}, ...]}.
        """
        try:
            if "bins" in data:
                bins = data["bins"]
                return cls([b["centre"] for b in bins],
                           [b["width"] for b in bins],
                           [b["density"] for b in bins],
                           [b.get("uncertainty") for b in bins],
                           data.get("band", "M_BOL"))
            return cls(data["centres"], data["widths"], data["densities"],
                       data.get("uncertainties"), data.get("band", "M_BOL"))
        except KeyError as e:
            raise InvalidBinning("Missing luminosity function field {}".format(e))
        except TypeError as e:
            raise InvalidBinning("Malformed luminosity function: {}".format(e))

    def __len__(self):
        return len(self.centres)

    @property
    def lower_edges(self):
        return self.centres - 0.5 * self.widths

    @property
    def upper_edges(self):
        return self.centres + 0.5 * self.widths

    @property
    def usable_mask(self):
        """Bins whose uncertainty is defined; zero marks an exact bin."""
        return np.isfinite(self.uncertainties)

    @property
    def weighted_mask(self):
        """Bins whose uncertainty is finite and positive."""
        return self.usable_mask & (self.uncertainties > 0.0)

    def bin_index(self, magnitudes):
        """
        Index of the bin containing each magnitude, -1 where none does.

        Bins are half-open [lower, upper).
        """
        m = np.asarray(magnitudes, dtype=float)
        idx = np.searchsorted(self.lower_edges, m, side="right") - 1
        safe = np.clip(idx, 0, None)
        inside = (idx >= 0) & (m < self.upper_edges[safe])
        return np.where(inside, idx, -1)

    def shifted(self, distance_modulus):
        """
        Copy with centres moved by -distance_modulus.

        Converts a luminosity function binned in apparent magnitude into
        absolute magnitude.
        """
        return ObservedLuminosityFunction(
            self.centres - distance_modulus, self.widths, self.densities,
            self.uncertainties, self.band)

    def with_densities(self, densities, uncertainties=None):
        """Copy on the same bins with new densities."""
        if uncertainties is None:
            uncertainties = self.uncertainties
        return ObservedLuminosityFunction(
            self.centres, self.widths, densities, uncertainties, self.band)

    def resample(self, rng, noise="gaussian"):
        """
        Perturbed realization consistent with the quoted uncertainties.

        Parameters
        ----------
        rng : numpy.random.Generator
            Random number source.
        noise : str
            "gaussian": density + N(0, uncertainty), clipped at zero.
            "poisson": the density is treated as k effective counts with
            k = (density / uncertainty)^2 and redrawn from a Poisson
            distribution.

        Bins with zero or undefined uncertainty are reproduced exactly.
        The quoted uncertainties are carried over unchanged.
        """
        if noise not in NOISE_MODELS:
            raise ValueError(
                "Unknown noise model '{}', expected one of {}".format(
                    noise, ", ".join(NOISE_MODELS)))
        weighted = self.weighted_mask
        sigma = np.where(weighted, self.uncertainties, 0.0)
        if noise == "gaussian":
            perturbed = self.densities + sigma * rng.standard_normal(len(self))
        else:
            effective = np.zeros(len(self))
            counts_ok = weighted & (self.densities > 0.0)
            effective[counts_ok] = (self.densities[counts_ok]
                                    / sigma[counts_ok]) ** 2
            drawn = rng.poisson(effective)
            perturbed = np.where(
                counts_ok,
                drawn * np.divide(self.densities, effective,
                                  out=np.zeros(len(self)),
                                  where=counts_ok),
                self.densities)
        perturbed = np.where(weighted, np.clip(perturbed, 0.0, None),
                             self.densities)
        return self.with_densities(perturbed)

    def to_dict(self):
        """Serialize to plain lists; unusable uncertainties become None."""
        return {
            "band": self.band,
            "centres": self.centres.tolist(),
            "widths": self.widths.tolist(),
            "densities": self.densities.tolist(),
            "uncertainties": [float(u) if np.isfinite(u) else None
                              for u in self.uncertainties],
        }
