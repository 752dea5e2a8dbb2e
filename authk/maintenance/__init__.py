"""Token maintenance loop."""

from .scheduler import (
    MIN_SLEEP_SECONDS,
    REFRESH_MARGIN_SECONDS,
    RETRY_DELAY_SECONDS,
    MaintainerState,
    TokenMaintainer,
    compute_sleep_seconds,
)

__all__ = [
    "MIN_SLEEP_SECONDS",
    "REFRESH_MARGIN_SECONDS",
    "RETRY_DELAY_SECONDS",
    "MaintainerState",
    "TokenMaintainer",
    "compute_sleep_seconds",
]
