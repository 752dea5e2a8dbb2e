"""Configuration for authk.

Two layers:

* ``AuthkSettings`` - process level settings (which config file, which env file,
  debug logging), read from ``AUTHK_*`` environment variables and overridden by
  command line flags.
* ``AuthkConfig`` - the validated YAML config document describing the OIDC
  provider, optional user credentials and the files the token is written to.
"""

import logging
import os
from pathlib import Path
from typing import Any, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigError

logger = logging.getLogger(__name__)


ENV_REF_PREFIX = "ref+env://"
FILE_REF_PREFIX = "ref+file://"
DEFAULT_CONFIG_FILE = "authk.yaml"
DEFAULT_ENV_FILE = ".env"
DEFAULT_TOKEN_KEY = "TOKEN"


class AuthkSettings(BaseSettings):
    """Process settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="AUTHK_",
        case_sensitive=False,
        extra="ignore"
    )

    config_file: Path = Path(DEFAULT_CONFIG_FILE)
    env_file: Path = Path(DEFAULT_ENV_FILE)
    debug: bool = False


class _ConfigModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True
    )


class OIDCConfig(_ConfigModel):
    issuer_url: str = Field(min_length=1)
    client_id: str = Field(min_length=1)
    client_secret: str = ""
    scopes: List[str] = Field(default_factory=list)
    # Validated by OIDCClient so an unsupported method fails at client construction.
    auth_method: str = "basic"
    redirect_uri: Optional[str] = None


class UserConfig(_ConfigModel):
    username: str = ""
    password: str = ""


class Target(_ConfigModel):
    """A (file, key) pair the access token is mirrored into."""

    file: str = Field(min_length=1)
    key: str = Field(min_length=1)


class AuthkConfig(_ConfigModel):
    oidc: OIDCConfig
    user: UserConfig = Field(default_factory=UserConfig)
    token_key: str = Field(default=DEFAULT_TOKEN_KEY, min_length=1)
    targets: List[Target] = Field(default_factory=list)

    def effective_targets(self, env_file: Union[str, Path]) -> List[Target]:
        """Return the configured targets, or the single legacy target.

        The legacy target is ``(env_file, token_key)`` and is only used when no
        explicit ``targets`` are configured, so the result is never empty.
        """
        if self.targets:
            return list(self.targets)
        return [Target(file=str(env_file), key=self.token_key)]


def expand_secret_refs(value: Any) -> Any:
    """Resolve secret references in a decoded config document.

    * ``ref+env://NAME`` becomes the value of ``$NAME``; unset variables expand to "".
    * ``ref+file://PATH`` becomes the contents of PATH (relative to the working
      directory, or absolute as in ``ref+file:///run/secrets/x``) with one
      trailing newline removed.

    Walks mappings and lists recursively.

    Raises:
        ConfigError: If a referenced file cannot be read
    """
    if isinstance(value, str):
        if value.startswith(ENV_REF_PREFIX):
            var_name = value[len(ENV_REF_PREFIX):]
            if var_name not in os.environ:
                logger.warning(f"Environment variable {var_name} referenced in config is not set")
            return os.environ.get(var_name, "")
        if value.startswith(FILE_REF_PREFIX):
            return _read_secret_file(value[len(FILE_REF_PREFIX):])
        return value
    if isinstance(value, dict):
        return {k: expand_secret_refs(v) for k, v in value.items()}
    if isinstance(value, list):
        return [expand_secret_refs(v) for v in value]
    return value


def _read_secret_file(path: str) -> str:
    try:
        with open(path, "r", encoding="utf-8") as f:
            content = f.read()
    except OSError as e:
        raise ConfigError(f"failed to read secret file {path}: {e}") from e

    if content.endswith("\r\n"):
        return content[:-2]
    if content.endswith("\n"):
        return content[:-1]
    return content


def parse_config(data: Any) -> AuthkConfig:
    """Validate an already-decoded config document."""
    if not isinstance(data, dict):
        raise ConfigError("config document must be a mapping")

    try:
        return AuthkConfig.model_validate(expand_secret_refs(data))
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e}") from e


def load_config(path: Union[str, Path]) -> AuthkConfig:
    """Load, expand and validate a YAML config file.

    Raises:
        ConfigError: If the file cannot be read, is not valid YAML or does not
            satisfy the config schema
    """
    path = Path(path)
    logger.debug(f"Loading config from: {path.absolute()}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"failed to read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"failed to parse config file {path}: {e}") from e

    return parse_config(data)
