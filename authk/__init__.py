"""authk - keeps an OIDC access token fresh and mirrors it into .env files."""

__version__ = "0.1.0"
