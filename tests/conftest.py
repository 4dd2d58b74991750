"""Shared test fixtures."""

import mlflow
import pytest


@pytest.fixture(autouse=True)
def _disable_mlflow_tracing():
    """Disable MLflow tracing during tests — no side effects, no mlruns/ writes."""
    mlflow.tracing.disable()
    yield
    mlflow.tracing.enable()


@pytest.fixture(autouse=True)
def _clear_address_cache():
    """Address search results must not leak between tests."""
    from urbassist.retrieval.geoapi import _address_cache
    _address_cache.clear()
    yield
    _address_cache.clear()
