"""Pytest configuration and fixtures for exposure engine tests."""

import os

import pytest

from exposure_system.config import reset_config
from exposure_system.model import ExposureModel
from exposure_system.node import StochasticNode
from exposure_system.scenarios import drinking_water_model


@pytest.fixture(autouse=True)
def fresh_config(monkeypatch):
    """Isolate every test from EXPOSURE_* variables and the config singleton."""
    for key in list(os.environ):
        if key.startswith("EXPOSURE_"):
            monkeypatch.delenv(key, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def simple_model():
    """Variability times uncertainty, scaled by a constant."""
    return ExposureModel.from_definitions([
        ("intake", "V", "lognormal", {"meanlog": 0.0, "sdlog": 0.5}),
        ("conc", "U", "truncnorm", {"mean": 2.0, "sd": 1.0, "lower": 0.0}),
        ("k", "0", 3.0),
    ], "k * intake * conc", name="simple")


@pytest.fixture
def water_model():
    return drinking_water_model()


@pytest.fixture
def v12():
    return StochasticNode.variability([1.0, 2.0], name="v")


@pytest.fixture
def u1020():
    return StochasticNode.uncertainty([10.0, 20.0], name="u")
