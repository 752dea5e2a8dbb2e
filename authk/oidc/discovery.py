"""OIDC provider endpoint discovery."""

import logging
from typing import Optional

import requests
from pydantic import ValidationError

from ..core.exceptions import DiscoveryError
from .models import ProviderEndpoints

logger = logging.getLogger(__name__)


WELL_KNOWN_PATH = "/.well-known/openid-configuration"
DEFAULT_TIMEOUT_SECONDS = 30


def discover_endpoints(
    issuer_url: str,
    session: Optional[requests.Session] = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS
) -> ProviderEndpoints:
    """Fetch and parse the discovery document of an OIDC issuer.

    Args:
        issuer_url: Issuer URL, with or without a trailing slash
        session: Optional requests session to issue the call with
        timeout: Request timeout in seconds

    Returns:
        ProviderEndpoints with at least ``token_endpoint`` set

    Raises:
        DiscoveryError: If the document is unreachable, not 200, not a JSON
            object or lacks a ``token_endpoint`` string
    """
    issuer = issuer_url.rstrip("/")
    config_url = f"{issuer}{WELL_KNOWN_PATH}"
    http = session or requests.Session()

    logger.debug(f"Fetching OIDC discovery document from {config_url}")
    try:
        response = http.get(config_url, timeout=timeout)
    except requests.RequestException as e:
        raise DiscoveryError(issuer_url, f"request failed: {e}") from e

    if response.status_code != 200:
        raise DiscoveryError(issuer_url, f"unexpected status {response.status_code}")

    try:
        document = response.json()
    except ValueError as e:
        raise DiscoveryError(issuer_url, "discovery document is not valid JSON") from e

    if not isinstance(document, dict):
        raise DiscoveryError(issuer_url, "discovery document is not a JSON object")

    token_endpoint = document.get("token_endpoint")
    if not isinstance(token_endpoint, str) or not token_endpoint:
        raise DiscoveryError(issuer_url, "discovery document has no token_endpoint")

    try:
        endpoints = ProviderEndpoints.model_validate(document)
    except ValidationError as e:
        raise DiscoveryError(issuer_url, f"invalid discovery document: {e}") from e

    logger.debug(f"Resolved token endpoint: {endpoints.token_endpoint}")
    return endpoints
