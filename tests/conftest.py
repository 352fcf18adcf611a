"""Shared pytest fixtures."""

import json
from collections.abc import AsyncIterator
from pathlib import Path

import pytest

from config.config_loader import AppConfig, AudioConfig, CompletionConfig, DebateConfig, PathsConfig
from committee import decisions
from committee.audio import SpeechError, SpeechSynthesizer
from committee.models import Decision
from committee.personas import BUILT_IN_PERSONAS, PersonaRegistry
from committee.providers.base import CompletionProvider, ProviderError, ToolCall
from committee.store import SQLiteStore

SAMPLE_SUMMARY = {
    "options": [
        {"label": "Take the Berlin offer", "description": "Senior role, relocation"},
        {"label": "Stay", "description": "Known team, slower growth"},
    ],
    "variables": [
        {"label": "Salary", "value": "+20%", "impact": "high"},
    ],
    "pros_cons": [
        {"option": "Take the Berlin offer", "pros": ["Growth"], "cons": ["Moving"], "alignment_score": 7},
    ],
}

MODERATOR_OUTPUT = """## Where the Committee Agreed
- Growth matters more than comfort right now
- The salary gap is real

## Key Disagreements
- Contrarian doubted the relocation cost estimate

## Biases & Blind Spots Identified
- Status quo bias

## Recommendation
**Choice**: Take the Berlin offer
**Confidence**: High
**Reasoning**: The upside compounds and the move is reversible.

## What You're Giving Up
Proximity to family.

## Action Plan
- Negotiate a start date
- Visit Berlin within two weeks
"""


class MockProvider(CompletionProvider):
    """Test double CompletionProvider.

    ``replies`` maps a model id or a persona prompt marker to the text that
    gets streamed back; anything else gets ``default``. ``failures`` makes the
    first N calls for a marker raise ProviderError. Every call is recorded.
    """

    def __init__(
        self,
        provider_name: str = "mock",
        default: str = "Mock response",
        replies: dict[str, str] | None = None,
        failures: dict[str, int] | None = None,
        chunk_size: int = 8,
    ) -> None:
        self._name = provider_name
        self._default = default
        self._replies = replies or {}
        self._failures = dict(failures or {})
        self._chunk_size = chunk_size
        self.calls: list[tuple[str, str, str]] = []

    def name(self) -> str:
        return self._name

    def _match(self, mapping: dict, system_prompt: str, model: str):
        for marker in mapping:
            if marker == model or marker in system_prompt:
                return marker
        return None

    async def stream(self, system_prompt: str, user_prompt: str, model: str) -> AsyncIterator[str]:
        self.calls.append((system_prompt, user_prompt, model))
        failing = self._match(self._failures, system_prompt, model)
        if failing is not None and self._failures[failing] > 0:
            self._failures[failing] -= 1
            raise ProviderError(self._name, f"simulated failure for {failing}", "unavailable")
        marker = self._match(self._replies, system_prompt, model)
        text = self._replies[marker] if marker is not None else self._default
        for i in range(0, len(text), self._chunk_size):
            yield text[i:i + self._chunk_size]


class ScriptedChat(MockProvider):
    """Replays one scripted batch of text chunks and ToolCalls per chat call."""

    def __init__(self, *batches: list[str | ToolCall]) -> None:
        super().__init__()
        self._batches = list(batches)
        self.chat_calls: list[tuple[str, list[dict], str, list[dict]]] = []

    async def stream_chat(self, system_prompt, messages, model, tools) -> AsyncIterator[str | ToolCall]:
        self.chat_calls.append((system_prompt, list(messages), model, tools))
        for item in self._batches.pop(0):
            yield item


class FakeSpeech(SpeechSynthesizer):
    """Returns 32000 bytes (two seconds at 128 kbps) unless the persona is listed as failing."""

    def __init__(self, failing: set[str] | None = None) -> None:
        super().__init__(AudioConfig(provider="openai"))
        self.failing = failing or set()
        self.requests: list[tuple[str, str, str]] = []

    def name(self) -> str:
        return "fake"

    async def synthesize(self, text: str, persona_key: str, voice_gender: str) -> bytes:
        self.requests.append((text, persona_key, voice_gender))
        if persona_key in self.failing:
            raise SpeechError("voice unavailable")
        return b"\x00" * 32000


@pytest.fixture
def mock_provider() -> MockProvider:
    return MockProvider()


@pytest.fixture
def sample_app_config(tmp_path: Path) -> AppConfig:
    data_dir = tmp_path / "data"
    return AppConfig(
        completion=CompletionConfig(
            sdk="openrouter",
            api_key_env="TEST_OPENROUTER_KEY",
            default_model="test-model-1",
            timeout_sec=30,
            max_tokens=1024,
        ),
        debate=DebateConfig(max_retries=2, retry_backoff_sec=0.0),
        audio=AudioConfig(provider="openai", api_key_env="TEST_TTS_KEY_UNSET"),
        paths=PathsConfig(
            data_dir=data_dir,
            db_path=data_dir / "committee.db",
            personas_dir=data_dir / "agents",
            profile_dir=data_dir / "profile",
            output_dir=tmp_path / "output",
        ),
    )


@pytest.fixture
def store() -> SQLiteStore:
    s = SQLiteStore(":memory:")
    yield s
    s.close()


@pytest.fixture
def registry() -> PersonaRegistry:
    return PersonaRegistry(list(BUILT_IN_PERSONAS))


@pytest.fixture
def ready_decision(store: SQLiteStore) -> Decision:
    """A decision with a conversation message and a debate-ready summary."""
    decision = decisions.create_decision(store, "Should I take the Berlin offer?")
    decisions.add_message(store, decision.id, "user", "I got an offer in Berlin.")
    decisions.add_message(store, decision.id, "assistant", "What matters most to you?")
    store.update_decision_summary(decision.id, json.loads(json.dumps(SAMPLE_SUMMARY)))
    return store.get_decision(decision.id)
