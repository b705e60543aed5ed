"""
Tests for the SFH model.

Verifies construction and validation of the bin tiling, the integral,
inverse-CDF sampling of creation times, and value semantics of copies.
"""

import numpy as np
import pytest
from scipy import stats

from wdlf.errors import DegenerateDistribution, InvalidBinning, NegativeRate
from wdlf.sfh import SFHModel


def two_bin():
    return SFHModel([1e9, 5e9], [2e9, 6e9], [1e-12, 2e-12], [1e-13, 3e-13])


class TestConstruction:
    """Construction validates the tiling and the rates."""

    def test_two_bin_edges(self):
        sfh = two_bin()
        assert len(sfh) == 2
        assert sfh.t_min == 0.0
        assert sfh.t_max == 8e9
        assert sfh.edges.tolist() == [0.0, 2e9, 8e9]

    def test_default_uncertainties_zero(self):
        sfh = SFHModel([1e9], [2e9], [1e-12])
        assert sfh.rate_uncertainties.tolist() == [0.0]

    def test_gap_rejected(self):
        with pytest.raises(InvalidBinning):
            SFHModel([1e9, 5e9], [2e9, 4e9], [1e-12, 1e-12])

    def test_overlap_rejected(self):
        with pytest.raises(InvalidBinning):
            SFHModel([1e9, 2.5e9], [2e9, 2e9], [1e-12, 1e-12])

    def test_decreasing_centres_rejected(self):
        with pytest.raises(InvalidBinning):
            SFHModel([5e9, 1e9], [6e9, 2e9], [1e-12, 1e-12])

    def test_zero_width_rejected(self):
        with pytest.raises(InvalidBinning):
            SFHModel([1e9], [0.0], [1e-12])

    def test_length_mismatch_rejected(self):
        with pytest.raises(InvalidBinning):
            SFHModel([1e9, 3e9], [2e9, 2e9], [1e-12])

    def test_negative_rate_rejected(self):
        with pytest.raises(NegativeRate):
            SFHModel([1e9, 3e9], [2e9, 2e9], [1e-12, -1e-12])

    def test_negative_uncertainty_rejected(self):
        with pytest.raises(NegativeRate):
            SFHModel([1e9], [2e9], [1e-12], [-1.0])

    def test_nan_rate_rejected(self):
        with pytest.raises(NegativeRate):
            SFHModel([1e9], [2e9], [float("nan")])

    def test_errors_are_value_errors(self):
        """Malformed SFHs are rejected as bad input."""
        with pytest.raises(ValueError):
            SFHModel([1e9], [2e9], [-1.0])


class TestConstructors:
    """Alternative constructors."""

    def test_constant(self):
        sfh = SFHModel.constant(0.0, 14.5e9, 50, 1.5e-12)
        assert len(sfh) == 50
        assert sfh.t_max == pytest.approx(14.5e9)
        assert np.all(sfh.rates == 1.5e-12)
        assert np.allclose(sfh.widths, 14.5e9 / 50)

    def test_from_edges(self):
        sfh = SFHModel.from_edges([0.0, 1e9, 4e9], [2.0, 3.0])
        assert sfh.centres.tolist() == [5e8, 2.5e9]
        assert sfh.widths.tolist() == [1e9, 3e9]

    def test_exponential_decay_preserves_integral(self):
        r0, tau, t_max = 5e-12, -3e9, 13e9
        sfh = SFHModel.exponential_decay(0.0, t_max, 26, r0, tau)
        exact = tau * r0 * (1.0 - np.exp(-t_max / tau))
        assert sfh.integrate()[0] == pytest.approx(exact, rel=1e-9)
        # Rate falls with lookback time
        assert np.all(np.diff(sfh.rates) < 0)
        assert sfh.rates[-1] < r0

    def test_exponential_decay_requires_negative_tau(self):
        with pytest.raises(ValueError):
            SFHModel.exponential_decay(0.0, 13e9, 10, 5e-12, 3e9)

    def test_single_burst(self):
        sfh = SFHModel.single_burst(0.0, 10e9, 10, 2e9, 3.5e9, 4e-12)
        expected = [0, 0, 4e-12, 2e-12, 0, 0, 0, 0, 0, 0]
        assert sfh.rates == pytest.approx(expected)
        assert sfh.integrate()[0] == pytest.approx(4e-12 * 1.5e9)

    def test_dict_round_trip(self):
        sfh = two_bin()
        assert SFHModel.from_dict(sfh.to_dict()) == sfh

    def test_from_dict_missing_field(self):
        with pytest.raises(InvalidBinning):
            SFHModel.from_dict({"centres": [1e9], "widths": [2e9]})


class TestIntegrate:
    """integrate() sums rate * width and combines errors in quadrature."""

    def test_total(self):
        total, _ = two_bin().integrate()
        assert total == pytest.approx(1e-12 * 2e9 + 2e-12 * 6e9, rel=1e-14)

    def test_uncertainty(self):
        _, sigma = two_bin().integrate()
        expected = np.hypot(2e9 * 1e-13, 6e9 * 3e-13)
        assert sigma == pytest.approx(expected)

    def test_many_bins_exact_sum(self):
        rng = np.random.default_rng(3)
        rates = rng.random(200) * 1e-12
        sfh = SFHModel.from_edges(np.linspace(0, 13e9, 201), rates)
        assert sfh.integrate()[0] == pytest.approx(
            np.sum(rates * sfh.widths), rel=1e-12)


class TestDrawCreationTime:
    """Inverse-CDF sampling of formation lookback times."""

    def test_single_bin_populated(self):
        sfh = SFHModel.from_edges([0, 1e9, 3e9, 6e9], [0.0, 2e-12, 0.0])
        rng = np.random.default_rng(1)
        t = sfh.draw_creation_time(rng, 20000)
        assert np.all(t >= 1e9)
        assert np.all(t <= 3e9)

    def test_scalar_draw(self):
        rng = np.random.default_rng(2)
        t = two_bin().draw_creation_time(rng)
        assert isinstance(t, float)
        assert 0.0 <= t <= 8e9

    def test_constant_rate_is_uniform(self):
        sfh = SFHModel.constant(0.0, 10e9, 7, 1e-12)
        rng = np.random.default_rng(5)
        t = sfh.draw_creation_time(rng, 50000)
        counts, _ = np.histogram(t, bins=20, range=(0.0, 10e9))
        _, p_value = stats.chisquare(counts)
        assert p_value > 0.05

    def test_bin_probabilities_follow_rate_times_width(self):
        sfh = two_bin()
        rng = np.random.default_rng(7)
        t = sfh.draw_creation_time(rng, 100000)
        frac_first = np.mean(t < 2e9)
        expected = 2e-3 / (2e-3 + 12e-3)
        assert frac_first == pytest.approx(expected, abs=0.01)

    def test_all_zero_rates_degenerate(self):
        sfh = SFHModel.constant(0.0, 1e9, 4, 0.0)
        with pytest.raises(DegenerateDistribution):
            sfh.draw_creation_time(np.random.default_rng(0), 10)


class TestValueSemantics:
    """Copies are independent of the original."""

    def test_copy_equal(self):
        sfh = two_bin()
        assert sfh.copy() == sfh

    def test_mutating_copy_leaves_original(self):
        sfh = two_bin()
        clone = sfh.copy()
        clone.rates[0] = 99.0
        clone.rate_uncertainties[1] = 5.0
        clone.centres[0] = -1.0
        assert sfh.rates[0] == 1e-12
        assert sfh.rate_uncertainties[1] == 3e-13
        assert sfh.centres[0] == 1e9

    def test_construction_copies_inputs(self):
        rates = np.array([1e-12, 2e-12])
        sfh = SFHModel([1e9, 3e9], [2e9, 2e9], rates)
        rates[0] = 7.0
        assert sfh.rates[0] == 1e-12

    def test_with_rates_returns_new_model(self):
        sfh = two_bin()
        updated = sfh.with_rates([3e-12, 4e-12])
        assert updated.rates.tolist() == [3e-12, 4e-12]
        assert sfh.rates.tolist() == [1e-12, 2e-12]
        assert updated.centres.tolist() == sfh.centres.tolist()

    def test_rate_at(self):
        sfh = two_bin()
        assert sfh.rate_at(1.5e9) == 1e-12
        assert sfh.rate_at(8e9) == 2e-12
        assert sfh.rate_at(9e9) == 0.0
