"""
WDLF inversion service - Flask application factory.

Serves the REST API for star formation history inversion via registered
Service instances.

Usage:
    python app.py              # Development server on http://localhost:5000
    flask run                  # Same, via Flask CLI
"""

__version__ = "0.1.0"

import logging

from flask import Flask, jsonify

from wdlf.services import ServiceRegistry
from wdlf.services.inversion import InversionService


def create_registry():
    """Build and populate the service registry."""
    registry = ServiceRegistry()
    registry.register(InversionService())
    return registry


def create_app():
    """Application factory for the WDLF inversion Flask app."""
    app = Flask(__name__)

    # Build service registry
    registry = create_registry()

    # Create and register API blueprint (shared + service-owned routes)
    from api.routes import create_api_blueprint
    api = create_api_blueprint(registry)
    app.register_blueprint(api)

    @app.route("/")
    def root():
        return jsonify({
            "name": "wdlf-inversion",
            "version": __version__,
            "services": registry.list_all(),
        })

    return app


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    app = create_app()
    app.run(debug=True, host="127.0.0.1", port=5000)
