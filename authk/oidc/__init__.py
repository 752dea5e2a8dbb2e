"""OIDC discovery and token grant client."""

from .client import OIDCClient, resolve_auth_method
from .discovery import discover_endpoints
from .models import Credential, ProviderEndpoints

__all__ = [
    "Credential",
    "OIDCClient",
    "ProviderEndpoints",
    "discover_endpoints",
    "resolve_auth_method",
]
