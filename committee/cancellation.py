"""Per-decision cancellation tokens shared between a caller and a running debate."""

import logging
import threading

logger = logging.getLogger(__name__)


class CancellationToken:
    """A thread-safe boolean that only ever flips from clear to set."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class CancellationRegistry:
    """Map of decision id -> token, at most one active token per decision."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tokens: dict[str, CancellationToken] = {}

    def register(self, decision_id: str) -> CancellationToken:
        """Create the token for a new run.

        Raises:
            RuntimeError: If a run for this decision is already registered.
        """
        with self._lock:
            if decision_id in self._tokens:
                raise RuntimeError(f"A debate is already running for decision {decision_id}")
            token = CancellationToken()
            self._tokens[decision_id] = token
            return token

    def cancel(self, decision_id: str) -> bool:
        """Flag the run for cancellation. Returns False when no run is active."""
        with self._lock:
            token = self._tokens.get(decision_id)
        if token is None:
            return False
        token.cancel()
        logger.info("Cancellation requested for decision %s", decision_id)
        return True

    def release(self, decision_id: str, token: CancellationToken) -> None:
        """Drop the token at run end; a newer token for the decision is left alone."""
        with self._lock:
            if self._tokens.get(decision_id) is token:
                del self._tokens[decision_id]

    def is_active(self, decision_id: str) -> bool:
        with self._lock:
            return decision_id in self._tokens
