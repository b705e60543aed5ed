"""
Inversion Service.

Recovers a star formation history from an observed white dwarf
luminosity function, forward-models the WDLF of a given SFH, and
estimates bootstrap uncertainties.

Endpoints:
    POST /api/inversion/invert    - invert an observed WDLF to an SFH
    POST /api/inversion/model     - forward-model the WDLF of an SFH
    POST /api/inversion/resample  - bootstrap uncertainty on the SFH

Request payloads share these optional sections:
    initial_sfh / sfh : {centres, widths, rates, rate_uncertainties}
    preset            : SFH preset id, used when no SFH is given
    modelling         : {imf_exponent, ifmr, w_h, sigma_m, mean_z,
                         sigma_z, mean_y, sigma_y}
    config            : InversionConfig keyword arguments
    seed              : int

IMPORTANT: No unicode characters allowed (Windows charmap constraint).
"""

import logging

import numpy as np

from data.presets import get_sfh_preset
from wdlf.config import InversionConfig
from wdlf.forward import model_luminosity_function
from wdlf.luminosity_function import NOISE_MODELS, ObservedLuminosityFunction
from wdlf.modelling import ModellingParameters
from wdlf.models import IFMRS, PowerLawImf
from wdlf.resampling import UncertaintyResampler
from wdlf.services import Service
from wdlf.sfh import SFHModel
from wdlf.state import run_inversion

log = logging.getLogger(__name__)

# Request limits keeping a single HTTP call bounded
MAX_REQUEST_POPULATION = 200000
MAX_REQUEST_REALIZATIONS = 50

_MODELLING_FLOATS = ("w_h", "sigma_m", "mean_z", "sigma_z", "mean_y",
                     "sigma_y")
_CONFIG_KEYS = ("target_population", "min_iterations",
                "convergence_threshold", "smoothing", "window",
                "max_iterations", "max_attempts_factor", "batch_size",
                "n_progenitor_mass_bins", "n_wd_mass_bins")


def parse_modelling(data):
    """Build ModellingParameters from a request section."""
    data = data or {}
    ifmr_name = data.get("ifmr", "kalirai2008")
    if ifmr_name not in IFMRS:
        raise ValueError("Unknown IFMR '{}', expected one of {}".format(
            ifmr_name, ", ".join(IFMRS)))
    kwargs = {k: float(data[k]) for k in _MODELLING_FLOATS if k in data}
    imf = PowerLawImf(exponent=float(data.get("imf_exponent", -2.3)))
    return ModellingParameters(imf=imf, ifmr=IFMRS[ifmr_name](), **kwargs)


def parse_config(data):
    """Build InversionConfig from a request section."""
    data = data or {}
    unknown = sorted(set(data) - set(_CONFIG_KEYS))
    if unknown:
        raise ValueError("Unknown config keys: {}".format(", ".join(unknown)))
    config = InversionConfig(**data)
    if config.target_population > MAX_REQUEST_POPULATION:
        raise ValueError("target_population may not exceed {}".format(
            MAX_REQUEST_POPULATION))
    return config


def parse_sfh(data, key):
    """SFH from data[key], else from data['preset'], else the initial guess."""
    if data.get(key) is not None:
        return SFHModel.from_dict(data[key])
    preset_id = data.get("preset", "initial_guess")
    sfh = get_sfh_preset(preset_id)
    if sfh is None:
        raise ValueError("Unknown SFH preset '{}'".format(preset_id))
    return sfh


def parse_seed(data):
    """Seed from data['seed']: None or a non-negative integer."""
    seed = data.get("seed")
    if seed is None:
        return None
    if isinstance(seed, bool) or not isinstance(seed, int) or seed < 0:
        raise ValueError(
            "seed must be a non-negative integer, got {!r}".format(seed))
    return seed


def parse_observed(data):
    """Observed LF from data['observed'], shifted by any distance modulus."""
    observed = data.get("observed")
    if not observed:
        raise ValueError("observed luminosity function required")
    lf = ObservedLuminosityFunction.from_dict(observed)
    distance_modulus = data.get("distance_modulus")
    if distance_modulus is not None:
        lf = lf.shifted(float(distance_modulus))
    return lf


class InversionService(Service):
    """
    WDLF inversion service.

    validate()/compute() implement /api/inversion/invert; the forward
    modelling and resampling endpoints reuse the same parsers.
    """

    id = "inversion"
    name = "WDLF Inversion"
    description = "Star formation history from the white dwarf luminosity function"
    endpoints = ("invert", "model", "resample")

    def validate(self, config):
        """Validate an inversion request payload."""
        if not config:
            raise ValueError("Request body must be JSON")
        return {
            "observed": parse_observed(config),
            "initial_sfh": parse_sfh(config, "initial_sfh"),
            "modelling": parse_modelling(config.get("modelling")),
            "config": parse_config(config.get("config")),
            "seed": parse_seed(config),
        }

    def compute(self, config):
        """Run an inversion to convergence."""
        log.info("Inverting a %d-bin luminosity function onto %d SFH bins",
                 len(config["observed"]), len(config["initial_sfh"]))
        result = run_inversion(config["initial_sfh"], config["observed"],
                               config["modelling"], config["config"],
                               np.random.default_rng(config["seed"]))
        payload = result.to_dict()
        payload["modelling"] = config["modelling"].to_dict()
        return payload

    def validate_model(self, config):
        """Validate a forward-modelling request payload."""
        if not config:
            raise ValueError("Request body must be JSON")
        bins = config.get("magnitude_bins")
        if not bins or "centres" not in bins or "widths" not in bins:
            raise ValueError("magnitude_bins with centres and widths required")
        n_wds = int(config.get("n_wds", 20000))
        if not 1 <= n_wds <= MAX_REQUEST_POPULATION:
            raise ValueError("n_wds must lie in [1, {}]".format(
                MAX_REQUEST_POPULATION))
        return {
            "sfh": parse_sfh(config, "sfh"),
            "template": ObservedLuminosityFunction.empty(
                bins["centres"], bins["widths"]),
            "modelling": parse_modelling(config.get("modelling")),
            "n_wds": n_wds,
            "fractional_error": float(config.get("fractional_error", 0.0)),
            "seed": parse_seed(config),
        }

    def compute_model(self, config):
        """Forward-model the WDLF of an SFH."""
        lf = model_luminosity_function(
            config["sfh"], config["modelling"], config["template"],
            config["n_wds"], np.random.default_rng(config["seed"]),
            fractional_error=config["fractional_error"])
        return {"luminosity_function": lf.to_dict(),
                "sfh": config["sfh"].to_dict()}

    def validate_resample(self, config):
        """Validate a resampling request payload."""
        validated = self.validate(config)
        n = int(config.get("n_realizations", 20))
        if not 1 <= n <= MAX_REQUEST_REALIZATIONS:
            raise ValueError("n_realizations must lie in [1, {}]".format(
                MAX_REQUEST_REALIZATIONS))
        validated["n_realizations"] = n
        noise = config.get("noise", "gaussian")
        if noise not in NOISE_MODELS:
            raise ValueError("noise must be one of {}".format(
                ", ".join(NOISE_MODELS)))
        validated["noise"] = noise
        return validated

    def compute_resample(self, config):
        """Bootstrap the inversion; realizations run in this process."""
        resampler = UncertaintyResampler(
            config["config"], n_realizations=config["n_realizations"],
            max_workers=1, seed=config["seed"], noise=config["noise"])
        result = resampler.run(config["observed"], config["initial_sfh"],
                               config["modelling"])
        return result.to_dict()

    def register_routes(self, bp):
        """Mount inversion API endpoints."""
        service = self

        @bp.route("/inversion/invert", methods=["POST"])
        def inversion_invert():
            """Invert an observed WDLF.

            Input JSON:
                observed: {centres, widths, densities, uncertainties}
                initial_sfh or preset, modelling, config, seed

            Returns the converged SFH, chi-square history and
            diagnostics of the final iteration.
            """
            return service.respond(service.validate, service.compute)

        @bp.route("/inversion/model", methods=["POST"])
        def inversion_model():
            """Forward-model the WDLF of an SFH.

            Input JSON:
                magnitude_bins: {centres, widths}
                sfh or preset, modelling, n_wds, fractional_error, seed
            """
            return service.respond(service.validate_model,
                                   service.compute_model)

        @bp.route("/inversion/resample", methods=["POST"])
        def inversion_resample():
            """Bootstrap uncertainty on an inversion.

            Input JSON: as /inversion/invert plus n_realizations, noise.
            """
            return service.respond(service.validate_resample,
                                   service.compute_resample)
