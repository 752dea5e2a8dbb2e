"""Token maintenance loop.

Acquires a token, mirrors it into every target file, then keeps it fresh
forever: sleep until shortly before expiry, refresh, and fall back to a full
re-authentication when the refresh fails. When both fail the loop retries on
a short fixed delay until the provider answers again.

    ACQUIRING -> ACTIVE -> REFRESHING -> ACTIVE
                              |
                              v
                       REAUTHENTICATING -> ACTIVE
                              |
                              v
                        (10s) REFRESHING

Only the initial acquisition can fail the loop (state FAILED). Waiting goes
through an injectable ``wait`` callable so the loop can be cancelled and tests
can run without real sleeps.
"""

import logging
import threading
from enum import Enum
from typing import Callable, Dict, Iterable, Optional

from ..core.exceptions import TokenError
from ..env.manager import EnvFileManager
from ..oidc.client import OIDCClient
from ..oidc.models import Credential
from ..utils import redact_sensitive_value

logger = logging.getLogger(__name__)


REFRESH_MARGIN_SECONDS = 60
MIN_SLEEP_SECONDS = 10
RETRY_DELAY_SECONDS = 10


class MaintainerState(str, Enum):
    ACQUIRING = "acquiring"
    ACTIVE = "active"
    REFRESHING = "refreshing"
    REAUTHENTICATING = "reauthenticating"
    FAILED = "failed"


def compute_sleep_seconds(expires_in: int) -> int:
    """Seconds to wait before refreshing a token that lives ``expires_in`` seconds."""
    return max(expires_in - REFRESH_MARGIN_SECONDS, MIN_SLEEP_SECONDS)


class TokenMaintainer:
    """Keeps a token fresh and mirrors its access token into env files."""

    def __init__(
        self,
        client: OIDCClient,
        stores: Iterable[EnvFileManager],
        wait: Optional[Callable[[float], bool]] = None,
        stop_event: Optional[threading.Event] = None
    ):
        """Initialize the maintainer.

        Args:
            client: Token client used for acquisition and refresh
            stores: One EnvFileManager per target, must not be empty
            wait: Blocks for the given seconds and returns True if the loop
                should stop; defaults to waiting on ``stop_event``
            stop_event: Event that cancels the loop when set
        """
        self.client = client
        self.stores = list(stores)
        if not self.stores:
            raise ValueError("at least one target is required")

        self.stop_event = stop_event or threading.Event()
        self._wait = wait or self.stop_event.wait
        self.state = MaintainerState.ACQUIRING
        self.credential: Optional[Credential] = None

    def stop(self) -> None:
        """Request the loop to exit at its next wait."""
        self.stop_event.set()

    def wait(self, seconds: float) -> bool:
        return bool(self._wait(seconds)) or self.stop_event.is_set()

    def propagate(self, credential: Credential) -> Dict[EnvFileManager, Exception]:
        """Write the access token to every target.

        A failing target is logged and skipped; the others are still updated.

        Returns:
            Mapping of failed stores to the error they raised
        """
        if not credential.access_token:
            raise ValueError("refusing to propagate a credential without access token")

        failures: Dict[EnvFileManager, Exception] = {}
        for store in self.stores:
            try:
                store.update(credential.access_token)
            except (OSError, ValueError) as e:
                logger.error(f"Failed to update {store.key} in {store.file_path}: {e}")
                failures[store] = e
            else:
                logger.info(f"Token updated: {store.key} in {store.file_path}")

        if failures:
            logger.warning(f"Token propagated to {len(self.stores) - len(failures)}/{len(self.stores)} targets")
        return failures

    def start(self) -> Credential:
        """Acquire the initial token and propagate it.

        Raises:
            TokenError: If the initial acquisition fails
        """
        self.state = MaintainerState.ACQUIRING
        try:
            credential = self.client.get_token()
        except TokenError:
            self.state = MaintainerState.FAILED
            raise

        self._accept(credential)
        return credential

    def run(self, max_cycles: Optional[int] = None) -> None:
        """Acquire a token, then maintain it until stopped.

        Args:
            max_cycles: Stop after this many refresh cycles; runs forever when None

        Raises:
            TokenError: If the initial acquisition fails
        """
        self.start()

        cycles = 0
        while max_cycles is None or cycles < max_cycles:
            cycles += 1
            if not self.run_cycle():
                break

        logger.info("Token maintenance stopped")

    def run_cycle(self) -> bool:
        """Sleep until the token is due, then refresh or re-authenticate.

        Returns:
            False if the loop was cancelled while waiting, True otherwise
        """
        if self.credential is None:
            raise RuntimeError("run_cycle() called before start()")

        self.state = MaintainerState.ACTIVE
        sleep_seconds = compute_sleep_seconds(self.credential.expires_in)
        logger.info(f"Waiting {sleep_seconds}s for token refresh")
        if self.wait(sleep_seconds):
            return False

        self.state = MaintainerState.REFRESHING
        try:
            credential = self.client.refresh_token(self.credential.refresh_token)
        except TokenError as e:
            logger.error(f"Failed to refresh token: {e}")
        else:
            logger.info("Token refreshed")
            self._accept(credential)
            return True

        self.state = MaintainerState.REAUTHENTICATING
        logger.info("Re-authenticating")
        try:
            credential = self.client.get_token()
        except TokenError as e:
            logger.error(f"Failed to re-authenticate: {e}")
        else:
            logger.info("Re-authenticated")
            self._accept(credential)
            return True

        logger.warning(f"Retrying in {RETRY_DELAY_SECONDS}s")
        if self.wait(RETRY_DELAY_SECONDS):
            return False
        # Next wait is the minimum so retries stay fast until the provider recovers
        self.credential = self.credential.model_copy(update={"expires_in": 0})
        return True

    def _accept(self, credential: Credential) -> None:
        logger.debug(f"Current access token: {redact_sensitive_value(credential.access_token)}")
        self.credential = credential
        self.propagate(credential)
        self.state = MaintainerState.ACTIVE
