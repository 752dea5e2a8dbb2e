"""Exception hierarchy for authk."""

from typing import Any, Optional


class AuthkError(Exception):
    """Base class for all authk errors."""


class ConfigError(AuthkError):
    """Configuration is missing, malformed or unsupported."""


class DiscoveryError(AuthkError):
    """The OIDC discovery document could not be fetched or parsed."""

    def __init__(self, issuer_url: str, message: str):
        self.issuer_url = issuer_url
        super().__init__(f"OIDC discovery failed for {issuer_url}: {message}")


class TokenError(AuthkError):
    """A grant exchange against the token endpoint failed."""


class TokenRequestError(TokenError):
    """The token endpoint was unreachable or answered with a non-200 status."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_body: Any = None
    ):
        self.status_code = status_code
        self.error_body = error_body
        if status_code is not None:
            message = f"{message} (status {status_code}): {error_body}"
        super().__init__(message)


class TokenDecodeError(TokenError):
    """The token endpoint answered 200 but the body is not a usable token."""


class KeyNotFoundError(AuthkError, LookupError):
    """No assignment line for the managed key exists in the file."""

    def __init__(self, key: str, file_path: str):
        self.key = key
        self.file_path = file_path
        super().__init__(f"key {key} not found in {file_path}")


class TokenFormatError(AuthkError):
    """A stored value is not a decodable JWT."""
