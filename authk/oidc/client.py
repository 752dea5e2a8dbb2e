"""OIDC token client.

Resolves the provider's token endpoint once at construction and executes the
password, client-credentials and refresh-token grants against it. The client
never retries and never caches tokens; retry policy belongs to the caller.
"""

import logging
from typing import Any, Dict, Optional
from urllib.parse import quote_plus

import jwt
import requests
from pydantic import ValidationError

from ..core.config import AuthkConfig
from ..core.exceptions import (
    ConfigError,
    TokenDecodeError,
    TokenError,
    TokenRequestError,
)
from ..utils import redact_sensitive_value
from .discovery import DEFAULT_TIMEOUT_SECONDS, discover_endpoints
from .models import Credential, ProviderEndpoints

logger = logging.getLogger(__name__)


AUTH_METHOD_BASIC = "basic"
AUTH_METHOD_POST = "post"

# Accepted spellings, including the OIDC registration names
AUTH_METHODS = {
    "": AUTH_METHOD_BASIC,
    "basic": AUTH_METHOD_BASIC,
    "client_secret_basic": AUTH_METHOD_BASIC,
    "post": AUTH_METHOD_POST,
    "client_secret_post": AUTH_METHOD_POST,
}


def resolve_auth_method(auth_method: Optional[str]) -> str:
    """Normalize a configured auth method to ``basic`` or ``post``.

    Raises:
        ConfigError: If the method is not supported
    """
    try:
        return AUTH_METHODS[(auth_method or "").strip().lower()]
    except KeyError:
        raise ConfigError(f"unsupported auth method: {auth_method}") from None


class OIDCClient:
    """Executes OAuth2 grant flows against a discovered token endpoint."""

    def __init__(
        self,
        config: AuthkConfig,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        endpoints: Optional[ProviderEndpoints] = None
    ):
        """Initialize the client and resolve the provider endpoints.

        Args:
            config: Validated authk configuration
            session: Optional requests session used for every HTTP call
            timeout: Per-request timeout in seconds
            endpoints: Pre-resolved endpoints; skips discovery when given

        Raises:
            ConfigError: If the configured auth method is unsupported
            DiscoveryError: If the discovery document cannot be resolved
        """
        self.config = config
        self.auth_method = resolve_auth_method(config.oidc.auth_method)
        self.session = session or requests.Session()
        self.timeout = timeout
        self.endpoints = endpoints or discover_endpoints(
            config.oidc.issuer_url, session=self.session, timeout=timeout
        )

        logger.debug(
            f"Initialized OIDC client for {config.oidc.issuer_url} "
            f"(client_id={config.oidc.client_id}, auth_method={self.auth_method})"
        )

    @property
    def token_endpoint(self) -> str:
        return self.endpoints.token_endpoint

    def get_token(self, username: str = "", password: str = "") -> Credential:
        """Obtain a new token using the password or client-credentials grant.

        Explicit arguments take precedence over the configured user
        credentials. The password grant is used only when both a username and
        a password are available; otherwise the client-credentials grant is.
        """
        user = username or self.config.user.username
        pwd = password or self.config.user.password

        if user and pwd:
            logger.info("Using Resource Owner Password Credentials flow (grant_type=password)")
            data = {
                "grant_type": "password",
                "username": user,
                "password": pwd,
            }
        else:
            logger.info("Using Client Credentials flow (grant_type=client_credentials)")
            data = {"grant_type": "client_credentials"}

        if self.config.oidc.scopes:
            data["scope"] = " ".join(self.config.oidc.scopes)

        return self._request_token(data)

    def refresh_token(self, refresh_token: Optional[str]) -> Credential:
        """Exchange a refresh token for a new token.

        When the response omits ``refresh_token``, the returned Credential keeps
        the one that was sent.

        Raises:
            TokenError: If no refresh token is available
            TokenRequestError: If the token endpoint rejects the request
            TokenDecodeError: If the response body is not a token
        """
        if not refresh_token:
            raise TokenError("token expired and no refresh token is available")

        logger.debug(f"Refreshing token with refresh token {redact_sensitive_value(refresh_token)}")
        credential = self._request_token({
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        })

        # Providers may omit refresh_token on refresh; the one sent stays valid
        if not credential.refresh_token:
            logger.debug("Refresh response carried no refresh token, keeping the current one")
            credential = credential.model_copy(update={"refresh_token": refresh_token})
        return credential

    def _request_token(self, data: Dict[str, str]) -> Credential:
        data = dict(data)
        auth = None
        oidc = self.config.oidc

        if self.auth_method == AUTH_METHOD_POST:
            data["client_id"] = oidc.client_id
            data["client_secret"] = oidc.client_secret
        else:
            # RFC 6749 section 2.3.1: credentials are form-urlencoded before Basic encoding
            auth = (quote_plus(oidc.client_id), quote_plus(oidc.client_secret))

        if oidc.redirect_uri:
            data["redirect_uri"] = oidc.redirect_uri

        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "application/json",
        }

        try:
            response = self.session.post(
                self.token_endpoint,
                data=data,
                headers=headers,
                auth=auth,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TokenRequestError(f"token request to {self.token_endpoint} failed: {e}") from e

        if response.status_code != 200:
            raise TokenRequestError(
                "token endpoint returned an error",
                status_code=response.status_code,
                error_body=_decode_error_body(response),
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise TokenDecodeError("token response is not valid JSON") from e

        if not isinstance(payload, dict):
            raise TokenDecodeError("token response is not a JSON object")

        try:
            credential = Credential.model_validate(payload)
        except ValidationError as e:
            raise TokenDecodeError(f"token response is not a valid token: {e}") from e

        logger.debug(
            f"Received access token {redact_sensitive_value(credential.access_token)} "
            f"(expires_in={credential.expires_in})"
        )
        if credential.id_token:
            _log_id_token_claims(credential.id_token)

        return credential


def _decode_error_body(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def _log_id_token_claims(id_token: str) -> None:
    try:
        claims = jwt.decode(id_token, options={"verify_signature": False})
    except jwt.InvalidTokenError as e:
        logger.debug(f"ID token present but could not be decoded: {e}")
        return
    logger.debug(f"ID token issuer={claims.get('iss')} subject={claims.get('sub')}")
