"""
Tests for Flask API endpoints.

Integration tests that validate the REST API returns correct
status codes, JSON structure, and sensible values.
"""

import json

import numpy as np
import pytest

from app import create_registry
from wdlf.forward import model_luminosity_function
from wdlf.services.inversion import InversionService
from wdlf.sfh import SFHModel

TRUTH = SFHModel.constant(0.0, 10e9, 3, 2e-12)
PRIOR = SFHModel.constant(0.0, 10e9, 3, 1e-12)
SMALL_CONFIG = {"target_population": 1000, "min_iterations": 3,
                "convergence_threshold": 0.5, "max_iterations": 60}


def post(client, url, payload):
    return client.post(url, data=json.dumps(payload),
                       content_type="application/json")


@pytest.fixture
def observed(params, template):
    lf = model_luminosity_function(TRUTH, params, template, 20000,
                                   np.random.default_rng(17),
                                   fractional_error=0.1)
    return lf.to_dict()


class TestRootEndpoint:
    """Test GET /."""

    def test_index(self, client):
        resp = client.get("/")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["name"] == "wdlf-inversion"
        assert data["services"][0]["id"] == "inversion"


class TestServicesEndpoint:
    """Test GET /api/services."""

    def test_list_services(self, client):
        resp = client.get("/api/services")
        assert resp.status_code == 200
        data = resp.get_json()
        assert [s["id"] for s in data] == ["inversion"]
        assert data[0]["endpoints"] == ["/api/inversion/invert",
                                        "/api/inversion/model",
                                        "/api/inversion/resample"]


class TestServiceRegistry:
    """Registration rules."""

    def test_duplicate_rejected(self):
        registry = create_registry()
        with pytest.raises(ValueError):
            registry.register(InversionService())

    def test_lookup(self):
        registry = create_registry()
        assert isinstance(registry.get("inversion"), InversionService)
        assert registry.get("nonexistent") is None


class TestPresetsEndpoint:
    """Test GET /api/presets."""

    def test_list_presets(self, client):
        resp = client.get("/api/presets")
        assert resp.status_code == 200
        ids = [p["id"] for p in resp.get_json()]
        assert "initial_guess" in ids
        assert "exponential_decay" in ids

    def test_initial_guess(self, client):
        resp = client.get("/api/presets/initial_guess")
        assert resp.status_code == 200
        data = resp.get_json()
        assert len(data["rates"]) == 50
        assert data["rates"][0] == pytest.approx(1.5e-12)

    def test_preset_not_found(self, client):
        resp = client.get("/api/presets/nonexistent")
        assert resp.status_code == 404


class TestConstantsEndpoint:
    """Test GET /api/constants."""

    def test_defaults(self, client):
        resp = client.get("/api/constants")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["imf_exponent"] == -2.3
        assert data["min_iterations"] == 5
        assert data["mad_scale"] == pytest.approx(1.4826)


class TestInvertEndpoint:
    """Test POST /api/inversion/invert."""

    def test_invert(self, client, observed):
        resp = post(client, "/api/inversion/invert", {
            "observed": observed,
            "initial_sfh": PRIOR.to_dict(),
            "config": SMALL_CONFIG,
            "seed": 3,
        })
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["convergence"]["status"] == "CONVERGED"
        assert data["iterations"] == len(data["chi_square_history"])
        assert len(data["sfh"]["rates"]) == 3
        assert all(r > 0 for r in data["sfh"]["rates"])
        assert data["config"]["target_population"] == 1000
        assert data["modelling"]["ifmr"] == "kalirai2008"

    def test_missing_body(self, client):
        resp = client.post("/api/inversion/invert")
        assert resp.status_code == 400
        assert "error" in resp.get_json()

    def test_missing_observed(self, client):
        resp = post(client, "/api/inversion/invert",
                    {"initial_sfh": PRIOR.to_dict()})
        assert resp.status_code == 400

    def test_unknown_config_key(self, client, observed):
        resp = post(client, "/api/inversion/invert", {
            "observed": observed,
            "config": {"tolerance": 0.1},
        })
        assert resp.status_code == 400
        assert "tolerance" in resp.get_json()["error"]

    def test_population_cap(self, client, observed):
        resp = post(client, "/api/inversion/invert", {
            "observed": observed,
            "config": {"target_population": 10000000},
        })
        assert resp.status_code == 400

    @pytest.mark.parametrize("seed", [-1, 1.5, "abc", True, [3]])
    def test_invalid_seed(self, client, observed, seed):
        resp = post(client, "/api/inversion/invert", {
            "observed": observed,
            "initial_sfh": PRIOR.to_dict(),
            "config": SMALL_CONFIG,
            "seed": seed,
        })
        assert resp.status_code == 400
        assert "seed" in resp.get_json()["error"]

    def test_non_numeric_population(self, client, observed):
        resp = post(client, "/api/inversion/invert", {
            "observed": observed,
            "config": {"target_population": [1000]},
        })
        assert resp.status_code == 400

    def test_unknown_ifmr(self, client, observed):
        resp = post(client, "/api/inversion/invert", {
            "observed": observed,
            "modelling": {"ifmr": "nonexistent"},
        })
        assert resp.status_code == 400

    def test_negative_rate(self, client, observed):
        bad = PRIOR.to_dict()
        bad["rates"][1] = -1e-12
        resp = post(client, "/api/inversion/invert",
                    {"observed": observed, "initial_sfh": bad})
        assert resp.status_code == 400

    def test_gapped_sfh(self, client, observed):
        resp = post(client, "/api/inversion/invert", {
            "observed": observed,
            "initial_sfh": {"centres": [1e9, 6e9], "widths": [2e9, 2e9],
                            "rates": [1e-12, 1e-12]},
        })
        assert resp.status_code == 400

    def test_no_usable_bins(self, client, observed):
        observed["uncertainties"] = [None, None, None]
        resp = post(client, "/api/inversion/invert", {
            "observed": observed,
            "initial_sfh": PRIOR.to_dict(),
            "config": SMALL_CONFIG,
        })
        assert resp.status_code == 422
        assert resp.get_json()["type"] == "NoUsableBins"

    def test_zero_rate_prior(self, client, observed):
        resp = post(client, "/api/inversion/invert", {
            "observed": observed,
            "initial_sfh": PRIOR.with_rates([0.0, 0.0, 0.0]).to_dict(),
            "config": SMALL_CONFIG,
        })
        assert resp.status_code == 422
        assert resp.get_json()["type"] == "DegenerateDistribution"


class TestModelEndpoint:
    """Test POST /api/inversion/model."""

    def test_model_preset(self, client):
        resp = post(client, "/api/inversion/model", {
            "magnitude_bins": {"centres": [9.0, 12.5, 15.5],
                               "widths": [4.0, 3.0, 3.0]},
            "preset": "constant",
            "n_wds": 2000,
            "fractional_error": 0.1,
            "seed": 1,
        })
        assert resp.status_code == 200
        lf = resp.get_json()["luminosity_function"]
        assert len(lf["densities"]) == 3
        assert all(d > 0 for d in lf["densities"])
        assert all(u >= 0.1 * d for u, d in
                   zip(lf["uncertainties"], lf["densities"]))

    def test_model_requires_bins(self, client):
        resp = post(client, "/api/inversion/model", {"preset": "constant"})
        assert resp.status_code == 400

    def test_model_unknown_preset(self, client):
        resp = post(client, "/api/inversion/model", {
            "magnitude_bins": {"centres": [12.0], "widths": [2.0]},
            "preset": "nonexistent",
        })
        assert resp.status_code == 400


class TestResampleEndpoint:
    """Test POST /api/inversion/resample."""

    def test_undefined_uncertainty_realizations_dropped(self, client,
                                                        observed):
        observed["uncertainties"] = [None, None, None]
        resp = post(client, "/api/inversion/resample", {
            "observed": observed,
            "initial_sfh": PRIOR.to_dict(),
            "config": SMALL_CONFIG,
            "n_realizations": 2,
            "seed": 5,
        })
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["n_succeeded"] == 0
        assert data["n_dropped"] == 2
        assert data["median"] == [None, None, None]

    def test_realization_cap(self, client, observed):
        resp = post(client, "/api/inversion/resample", {
            "observed": observed,
            "n_realizations": 500,
        })
        assert resp.status_code == 400

    def test_unknown_noise(self, client, observed):
        resp = post(client, "/api/inversion/resample", {
            "observed": observed,
            "noise": "uniform",
        })
        assert resp.status_code == 400

    def test_zero_uncertainty_realizations_succeed(self, client, observed):
        observed["uncertainties"] = [0.0, 0.0, 0.0]
        resp = post(client, "/api/inversion/resample", {
            "observed": observed,
            "initial_sfh": PRIOR.to_dict(),
            "config": SMALL_CONFIG,
            "n_realizations": 2,
            "seed": 5,
        })
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["n_succeeded"] == 2
        assert data["n_dropped"] == 0
        assert all(m > 0 for m in data["median"])

    def test_negative_seed(self, client, observed):
        resp = post(client, "/api/inversion/resample", {
            "observed": observed,
            "n_realizations": 2,
            "seed": -3,
        })
        assert resp.status_code == 400


class TestModelSeed:
    """Seeds on the forward-modelling endpoint."""

    def test_negative_seed(self, client):
        resp = post(client, "/api/inversion/model", {
            "magnitude_bins": {"centres": [12.0], "widths": [2.0]},
            "preset": "constant",
            "seed": -1,
        })
        assert resp.status_code == 400

    def test_same_seed_same_result(self, client):
        payload = {
            "magnitude_bins": {"centres": [12.0], "widths": [2.0]},
            "preset": "constant",
            "n_wds": 500,
            "seed": 4,
        }
        first = post(client, "/api/inversion/model", payload).get_json()
        second = post(client, "/api/inversion/model", payload).get_json()
        assert first == second
