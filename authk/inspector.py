"""Decode and pretty-print the JWT stored in an env file.

The signature is not verified; this is a display tool for the token authk
wrote, not a validator.
"""

import json
import re
from datetime import datetime
from typing import Any, Dict, List, Tuple

import jwt

from .core.exceptions import TokenFormatError


TIMESTAMP_CLAIMS = {"exp", "iat", "nbf", "auth_time", "updated_at"}

_KEY_LINE = re.compile(r'^(\s*)("(?:[^"\\]|\\.)*")(: )(.*)$')


class Colors:
    """ANSI color codes for console output"""
    CYAN_BOLD = '\033[1;36m'
    BLUE = '\033[0;34m'
    GREEN = '\033[0;32m'
    YELLOW = '\033[0;33m'
    MAGENTA = '\033[0;35m'
    RED = '\033[0;31m'
    FAINT = '\033[2m'
    NC = '\033[0m'  # No Color


def decode_token(token: str) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Return the unverified (header, payload) of a JWT.

    Raises:
        TokenFormatError: If the token is not a three-part JWT with JSON segments
    """
    parts = token.split(".")
    if len(parts) != 3:
        raise TokenFormatError(f"invalid token format: expected 3 parts, got {len(parts)}")

    try:
        header = jwt.get_unverified_header(token)
        payload = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError as e:
        raise TokenFormatError(f"failed to decode token: {e}") from e

    return header, payload


def format_json(header: Dict[str, Any], payload: Dict[str, Any]) -> str:
    return json.dumps({"header": header, "payload": payload}, indent=2)


def _format_timestamp(value: Any) -> str:
    try:
        moment = datetime.fromtimestamp(int(value)).astimezone()
    except (TypeError, ValueError, OverflowError, OSError):
        return ""
    return moment.strftime("%Y-%m-%d %H:%M:%S %Z")


def _colorize_value(raw: str) -> str:
    value = raw.rstrip(",")
    if value.startswith('"'):
        color = Colors.GREEN
    elif value in ("true", "false"):
        color = Colors.MAGENTA
    elif value == "null":
        color = Colors.RED
    elif value[:1].isdigit() or value[:1] == "-":
        color = Colors.YELLOW
    else:
        return raw
    return f"{color}{raw}{Colors.NC}"


def format_section(title: str, claims: Dict[str, Any]) -> str:
    """Render one decoded segment as colored, indented JSON.

    Top-level timestamp claims get a readable local date appended.
    """
    lines: List[str] = [f"{Colors.CYAN_BOLD}--- {title} ---{Colors.NC}"]

    for line in json.dumps(claims, indent=2).split("\n"):
        match = _KEY_LINE.match(line)
        if not match:
            lines.append(line)
            continue

        indent, key, separator, value = match.groups()
        rendered = f"{indent}{Colors.BLUE}{key}{Colors.NC}{separator}{_colorize_value(value)}"

        key_name = json.loads(key)
        if indent == "  " and key_name in TIMESTAMP_CLAIMS:
            date = _format_timestamp(claims.get(key_name))
            if date:
                rendered += f" {Colors.FAINT}({date}){Colors.NC}"

        lines.append(rendered)

    lines.append("")
    return "\n".join(lines)


def format_pretty(header: Dict[str, Any], payload: Dict[str, Any]) -> str:
    return format_section("Header", header) + "\n" + format_section("Payload", payload)
