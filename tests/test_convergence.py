"""
Tests for the convergence detector and its smoothing strategies.
"""

import math

import numpy as np
import pytest

from wdlf.convergence import (
    CHECKING,
    CONVERGED,
    WARMUP,
    ConvergenceDetector,
    fit_power_law,
    fit_sliding_linear,
)


def flattening(n):
    """Rapidly flattening history: 10 + 100 * 0.3^i."""
    return [10.0 + 100.0 * 0.3 ** i for i in range(1, n + 1)]


def first_converged(detector, history):
    for n in range(1, len(history) + 1):
        if detector.check(history[:n]).converged:
            return n
    return None


class TestSmoothing:
    """Both strategies expose smoothed values and relative change."""

    def test_sliding_linear_exact_line(self):
        history = [10.0, 8.0, 6.0, 4.0, 2.0]
        fit = fit_sliding_linear(history, window=5)
        assert fit.smoothed_value_at(3) == pytest.approx(6.0)
        assert fit.relative_change_at_latest() == pytest.approx(
            (4.0 - 2.0) / 4.0)

    def test_sliding_linear_uses_window_only(self):
        history = [1000.0, 500.0, 5.0, 5.0, 5.0, 5.0, 5.0]
        fit = fit_sliding_linear(history, window=5)
        assert fit.slope == pytest.approx(0.0)
        assert fit.relative_change_at_latest() == pytest.approx(0.0)

    def test_power_law_exact(self):
        history = [50.0 * i ** -1.5 for i in range(1, 11)]
        fit = fit_power_law(history)
        assert fit.slope == pytest.approx(-1.5)
        assert fit.smoothed_value_at(4) == pytest.approx(50.0 * 4 ** -1.5)
        expected = 1.0 - (10.0 / 9.0) ** -1.5
        assert fit.relative_change_at_latest() == pytest.approx(expected)

    def test_power_law_tolerates_zero(self):
        fit = fit_power_law([4.0, 1.0, 0.0])
        assert math.isfinite(fit.slope)

    def test_rising_history_negative_change(self):
        fit = fit_sliding_linear([1.0, 2.0, 3.0])
        assert fit.relative_change_at_latest() < 0.0


class TestDetectorStates:
    """WARMUP, CHECKING and CONVERGED transitions."""

    def test_warmup_before_min_iterations(self):
        detector = ConvergenceDetector(min_iterations=5, threshold=0.01)
        for n in range(1, 5):
            assert detector.check([5.0] * n).status == WARMUP

    def test_flat_history_converges_at_min_iterations(self):
        detector = ConvergenceDetector(min_iterations=5, threshold=0.01)
        assert detector.check([5.0] * 5).status == CONVERGED

    @pytest.mark.parametrize("smoothing", ["sliding_linear", "power_law"])
    def test_all_zero_history_converges(self, smoothing):
        """Only exact bins: chi-square is identically zero."""
        detector = ConvergenceDetector(min_iterations=3, threshold=0.01,
                                       smoothing=smoothing)
        assert detector.check([0.0, 0.0]).status == WARMUP
        report = detector.check([0.0, 0.0, 0.0])
        assert report.status == CONVERGED
        assert report.relative_change == pytest.approx(0.0, abs=1e-9)

    def test_min_iterations_at_least_two(self):
        detector = ConvergenceDetector(min_iterations=0, threshold=0.01)
        assert detector.check([5.0]).status == WARMUP
        assert detector.check([5.0, 5.0]).status == CONVERGED

    def test_checking_while_falling(self):
        detector = ConvergenceDetector(min_iterations=3, threshold=0.01)
        report = detector.check([100.0, 50.0, 25.0])
        assert report.status == CHECKING
        assert report.relative_change > 0.01

    def test_converged_is_terminal(self):
        detector = ConvergenceDetector(min_iterations=2, threshold=0.01)
        detector.check([5.0, 5.0])
        assert detector.check([5.0, 5.0, 100.0]).status == CONVERGED

    def test_rising_history_not_converged(self):
        """A large increase is a large absolute relative change."""
        detector = ConvergenceDetector(min_iterations=3, threshold=0.01)
        assert detector.check([1.0, 2.0, 4.0]).status == CHECKING

    def test_unknown_smoothing(self):
        with pytest.raises(ValueError):
            ConvergenceDetector(smoothing="spline")


class TestConvergenceBehaviour:
    """Flattening sequences converge; steadily falling ones never do."""

    def test_flattening_converges_sliding_linear(self):
        detector = ConvergenceDetector(min_iterations=5, threshold=0.01)
        n = first_converged(detector, flattening(30))
        assert n is not None
        assert 5 <= n <= 12

    def test_flattening_converges_power_law(self):
        detector = ConvergenceDetector(min_iterations=5, threshold=0.01,
                                       smoothing="power_law")
        history = [2.0 + 100.0 * i ** -3.0 for i in range(1, 200)]
        n = first_converged(detector, history)
        assert n is not None
        assert n >= 5

    def test_deterministic(self):
        a = first_converged(ConvergenceDetector(5, 0.01), flattening(30))
        b = first_converged(ConvergenceDetector(5, 0.01), flattening(30))
        assert a == b

    def test_steady_decline_never_converges(self):
        """Falling 20% per step keeps the smoothed change above 1%."""
        history = list(100.0 * 0.8 ** np.arange(1, 101))
        detector = ConvergenceDetector(min_iterations=5, threshold=0.01)
        assert first_converged(detector, history) is None
