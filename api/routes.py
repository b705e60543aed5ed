"""
Flask API routes shared by all services.

Endpoints:
  GET  /api/services             - list registered services
  GET  /api/presets              - list SFH presets
  GET  /api/presets/<id>         - build one SFH preset
  GET  /api/constants            - modelling defaults

Service-owned endpoints (e.g. /api/inversion/invert) are mounted by each
registered service's register_routes().
"""

from flask import Blueprint, jsonify

from data.presets import get_sfh_preset, list_sfh_presets
from wdlf import constants


def create_api_blueprint(registry):
    """
    Build the API blueprint and mount every registered service's routes.

    Parameters
    ----------
    registry : ServiceRegistry
        Registry populated by create_registry().

    Returns
    -------
    flask.Blueprint
    """
    api = Blueprint("api", __name__, url_prefix="/api")

    @api.route("/services", methods=["GET"])
    def list_services():
        """Return metadata for all registered services."""
        return jsonify(registry.list_all())

    @api.route("/presets", methods=["GET"])
    def list_presets():
        """Return the available SFH presets."""
        return jsonify(list_sfh_presets())

    @api.route("/presets/<preset_id>", methods=["GET"])
    def get_preset(preset_id):
        """Return one SFH preset's bins and rates."""
        sfh = get_sfh_preset(preset_id)
        if sfh is None:
            return jsonify({"error": "Preset not found"}), 404
        return jsonify(sfh.to_dict())

    @api.route("/constants", methods=["GET"])
    def get_constants():
        """Return the modelling and inversion defaults."""
        return jsonify({
            "m_lower": constants.M_LOWER,
            "m_upper": constants.M_UPPER,
            "imf_exponent": constants.IMF_EXPONENT,
            "w_h": constants.DEFAULT_W_H,
            "sigma_m": constants.DEFAULT_SIGMA_M,
            "mean_z": constants.DEFAULT_Z,
            "sigma_z": constants.DEFAULT_SIGMA_Z,
            "mean_y": constants.DEFAULT_Y,
            "sigma_y": constants.DEFAULT_SIGMA_Y,
            "min_iterations": constants.DEFAULT_MIN_ITERATIONS,
            "convergence_threshold": constants.DEFAULT_CONVERGENCE_THRESHOLD,
            "max_iterations": constants.DEFAULT_MAX_ITERATIONS,
            "mad_scale": constants.MAD_SCALE,
        })

    registry.mount(api)

    return api
