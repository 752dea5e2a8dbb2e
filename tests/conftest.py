"""
Pytest configuration and shared fixtures.
"""
from pathlib import Path
from unittest.mock import Mock

import pytest
import requests

from authk.core.config import AuthkConfig, parse_config
from authk.oidc.models import ProviderEndpoints

from tests.fixtures.factories import (
    DiscoveryDocumentFactory,
    create_config_document,
)
from tests.fixtures.helpers import make_response


@pytest.fixture
def discovery_document() -> dict:
    """A discovery document for the test issuer."""
    return DiscoveryDocumentFactory()


@pytest.fixture
def endpoints(discovery_document: dict) -> ProviderEndpoints:
    return ProviderEndpoints.model_validate(discovery_document)


@pytest.fixture
def mock_session(discovery_document: dict) -> Mock:
    """A requests session whose GET serves the discovery document."""
    session = Mock(spec=requests.Session)
    session.get.return_value = make_response(200, discovery_document)
    return session


@pytest.fixture
def config() -> AuthkConfig:
    """A client-credentials configuration using HTTP Basic client auth."""
    return parse_config(create_config_document())


@pytest.fixture
def env_file(tmp_path: Path) -> Path:
    return tmp_path / ".env"
