"""Event names and the emitter that fans debate progress out to listeners."""

import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

DEBATE_STARTED = "debate-started"
TURN_TOKEN = "debate-agent-token"
TURN_COMPLETE = "debate-agent-response"
ROUND_COMPLETE = "debate-round-complete"
DEBATE_COMPLETE = "debate-complete"
DEBATE_ERROR = "debate-error"
SUMMARY_UPDATED = "decision-summary-updated"
SEGMENT_AUDIO_READY = "debate-segment-audio-ready"
SEGMENT_AUDIO_ERROR = "debate-segment-audio-error"
AUDIO_COMPLETE = "audio-generation-complete"
CHAT_TOKEN = "chat-token"
CHAT_TOOL_USE = "chat-tool-use"

CANCELLED_REASON = "Debate cancelled"

Listener = Callable[[str, dict[str, Any]], None]


class EventEmitter:
    """Delivers ``(name, payload)`` events to every subscribed listener.

    A failing listener is logged and skipped; it never interrupts the debate.
    """

    def __init__(self, *listeners: Listener) -> None:
        self._listeners: list[Listener] = list(listeners)

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def emit(self, name: str, payload: dict[str, Any]) -> None:
        for listener in self._listeners:
            try:
                listener(name, payload)
            except Exception:
                logger.exception("Event listener failed on %s", name)

    __call__ = emit


class EventRecorder:
    """Listener that keeps every event in order. Handy for tests and replays."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def __call__(self, name: str, payload: dict[str, Any]) -> None:
        self.events.append((name, payload))

    def named(self, name: str) -> list[dict[str, Any]]:
        return [payload for event, payload in self.events if event == name]

    @property
    def names(self) -> list[str]:
        return [event for event, _ in self.events]
