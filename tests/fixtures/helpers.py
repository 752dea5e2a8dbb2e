"""
Helpers for building mock HTTP responses and credentials.
"""
from typing import Any, Optional
from unittest.mock import Mock

import requests

from authk.oidc.models import Credential


def make_response(
    status_code: int = 200,
    json_data: Any = None,
    text: str = "",
    json_error: bool = False
) -> Mock:
    """Build a mock requests.Response."""
    response = Mock(spec=requests.Response)
    response.status_code = status_code
    response.text = text
    if json_error:
        response.json.side_effect = ValueError("No JSON object could be decoded")
    else:
        response.json.return_value = json_data
    return response


def make_credential(
    access_token: str = "access-1",
    refresh_token: Optional[str] = "refresh-1",
    expires_in: int = 3600
) -> Credential:
    return Credential(
        access_token=access_token,
        refresh_token=refresh_token,
        token_type="Bearer",
        expires_in=expires_in,
    )
