"""
Helpers shared by the token client and the maintenance loop.
"""


def redact_sensitive_value(value: str, show_chars: int = 8) -> str:
    """
    Mask a token or secret before it goes into a log line.

    Args:
        value: Access token, refresh token or client secret
        show_chars: Leading characters kept readable so tokens can be told apart

    Returns:
        The leading characters followed by one asterisk per hidden character;
        values no longer than ``show_chars`` are masked entirely

    Example:
        >>> redact_sensitive_value("eyJhbGciOiJSUzI1NiJ9", 8)
        'eyJhbGci************'
    """
    if not value:
        return ""
    if len(value) <= show_chars:
        return "*" * len(value)

    return value[:show_chars] + "*" * (len(value) - show_chars)
