"""
Service layer over the inversion core.

A Service turns JSON request payloads into calls on the core and maps
its failures onto HTTP responses: malformed input (ValueError) is a 400,
a run that fails on valid input (InversionError) is a 422 carrying the
failure type. The registry mounts every service's endpoints on the API
blueprint.

IMPORTANT: No unicode characters allowed (Windows charmap constraint).
"""

import logging
from abc import ABC, abstractmethod

from flask import jsonify, request

from wdlf.errors import InversionError

log = logging.getLogger(__name__)


class Service(ABC):
    """
    A group of endpoints sharing request parsing.

    Class Attributes
    ----------------
    id : str
        Unique identifier, also the URL namespace (/api/<id>/...).
    name : str
        Human-readable display name.
    description : str
        One-line summary.
    endpoints : tuple of str
        Endpoint names mounted under the namespace.
    """

    id = ""
    name = ""
    description = ""
    endpoints = ()

    @abstractmethod
    def validate(self, config):
        """
        Parse a raw request payload into core objects.

        Raises
        ------
        ValueError
            If the payload is malformed.
        """

    @abstractmethod
    def compute(self, config):
        """Run the core on a validated payload; returns a JSON-ready dict."""

    @abstractmethod
    def register_routes(self, blueprint):
        """Mount the service endpoints onto a Flask blueprint."""

    def respond(self, validate, compute):
        """
        Validate the current JSON request, compute and build the response.

        Returns
        -------
        flask.Response or tuple
            200 with the result; 400 for a ValueError or TypeError raised
            by validate; 422 for an InversionError raised by compute.
        """
        data = request.get_json(silent=True)
        try:
            config = validate(data)
        except (TypeError, ValueError) as e:
            return jsonify({"error": str(e)}), 400
        try:
            result = compute(config)
        except InversionError as e:
            log.warning("%s request failed: %s: %s", self.id,
                        type(e).__name__, e)
            return jsonify({"error": str(e), "type": type(e).__name__}), 422
        return jsonify(result)

    def metadata(self):
        """Service info: id, name, description and endpoint URLs."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "endpoints": ["/api/{}/{}".format(self.id, e)
                          for e in self.endpoints],
        }


class ServiceRegistry:
    """Registered services, in registration order."""

    def __init__(self):
        self._services = {}

    def register(self, service):
        """
        Register a service instance.

        Raises
        ------
        ValueError
            If a service with the same id is already registered.
        """
        if service.id in self._services:
            raise ValueError(
                "Service '{}' is already registered".format(service.id))
        self._services[service.id] = service

    def get(self, service_id):
        """Look up a service by id; None if not found."""
        return self._services.get(service_id)

    def list_all(self):
        return [s.metadata() for s in self._services.values()]

    def mount(self, blueprint):
        """Register every service's routes on the blueprint."""
        for service in self._services.values():
            service.register_routes(blueprint)
