"""Test fixtures and utilities."""

from pathlib import Path

import pytest

from dfe_sync.config import Config, DistributionConfig, LocationConfig
from dfe_sync.state_store import StateStore
from fixtures import GATEWAY_URL, LOCATION, LOCATION_CNPJ, write_client_cert


@pytest.fixture
def temp_db(tmp_path) -> Path:
    """Temporary database path for testing."""
    return tmp_path / "test_state.db"


@pytest.fixture
def store(temp_db) -> StateStore:
    """Fresh state store with all migrations applied."""
    return StateStore(temp_db)


@pytest.fixture
def cert_path(tmp_path) -> Path:
    """PEM client certificate on disk."""
    return write_client_cert(tmp_path)


@pytest.fixture
def location_config(cert_path) -> LocationConfig:
    """Usable channel for the test location."""
    return LocationConfig(
        name=LOCATION,
        cnpj=LOCATION_CNPJ,
        gateway_url=GATEWAY_URL,
        cert_path=str(cert_path),
    )


@pytest.fixture
def config(temp_db, location_config) -> Config:
    """Config with a single location."""
    return Config(
        locations={LOCATION: location_config},
        distribution=DistributionConfig(timeout_seconds=5, max_retries=0, max_batches_per_sync=5),
        state_db_path=temp_db,
        default_location=LOCATION,
    )
