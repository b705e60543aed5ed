"""
Pytest fixtures for the WDLF inversion test suite.
"""

import numpy as np
import pytest

from app import create_app
from wdlf.luminosity_function import ObservedLuminosityFunction
from wdlf.modelling import ModellingParameters


@pytest.fixture
def app():
    """Create application for testing."""
    app = create_app()
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def params():
    """Default modelling parameters."""
    return ModellingParameters()


@pytest.fixture
def template():
    """Three bolometric magnitude bins spanning young to old white dwarfs."""
    return ObservedLuminosityFunction.empty([9.0, 12.5, 15.5], [4.0, 3.0, 3.0])


@pytest.fixture
def rng():
    return np.random.default_rng(12345)
