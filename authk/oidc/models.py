"""Data models for the OIDC token client."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ProviderEndpoints(BaseModel):
    """Endpoints resolved from a provider's discovery document."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    token_endpoint: str = Field(min_length=1)
    issuer: Optional[str] = None
    authorization_endpoint: Optional[str] = None
    jwks_uri: Optional[str] = None


class Credential(BaseModel):
    """A token response from a successful grant exchange.

    Instances are immutable; a refresh produces a new Credential.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    access_token: str = Field(min_length=1)
    refresh_token: Optional[str] = None
    token_type: Optional[str] = None
    id_token: Optional[str] = None
    scope: Optional[str] = None
    expires_in: int = 0
