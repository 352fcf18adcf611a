"""Tests for committee/debate.py."""

import pytest

from config.config_loader import DebateConfig
from committee.cancellation import CancellationToken
from committee.debate import (
    DebateCancelled,
    DebateContext,
    PersonaCallError,
    call_persona_with_retry,
    run_round,
)
from committee.events import ROUND_COMPLETE, TURN_COMPLETE, TURN_TOKEN, EventRecorder
from committee.models import ROUND_EXCHANGE, ROUND_OPENING
from committee.providers.base import CATEGORY_AUTH, ProviderError
from tests.conftest import MockProvider


def _context(store, registry, decision, provider, recorder, debaters=None, token=None, **settings):
    return DebateContext(
        decision_id=decision.id,
        brief="# Decision Brief",
        store=store,
        provider=provider,
        registry=registry,
        debaters=debaters if debaters is not None else registry.debaters(),
        settings=DebateConfig(retry_backoff_sec=0.0, **settings),
        default_model="test-model-1",
        token=token or CancellationToken(),
        emit=recorder,
    )


async def test_call_persona_streams_tokens_and_returns_text(registry):
    provider = MockProvider(default="Take the offer, the growth is worth it.", chunk_size=5)
    recorder = EventRecorder()
    persona = registry.get("rationalist")

    text = await call_persona_with_retry(
        provider, persona, "system", "user", "m",
        decision_id="d1", round_number=1, exchange_number=1, emit=recorder,
    )

    assert text == "Take the offer, the growth is worth it."
    tokens = recorder.named(TURN_TOKEN)
    assert len(tokens) > 1
    assert "".join(t["token"] for t in tokens) == text
    assert tokens[0] == {
        "decision_id": "d1",
        "round_number": 1,
        "exchange_number": 1,
        "agent": "rationalist",
        "token": "Take ",
    }


async def test_call_persona_succeeds_on_last_attempt(registry):
    provider = MockProvider(default="Third time lucky", failures={"m": 2})
    persona = registry.get("advocate")

    text = await call_persona_with_retry(
        provider, persona, "system", "user", "m",
        decision_id="d1", round_number=1, exchange_number=1, emit=EventRecorder(),
        max_retries=2, backoff_sec=0.0,
    )

    assert text == "Third time lucky"
    assert len(provider.calls) == 3


async def test_call_persona_exhausts_retries(registry):
    provider = MockProvider(failures={"m": 99})
    persona = registry.get("contrarian")

    with pytest.raises(PersonaCallError) as exc_info:
        await call_persona_with_retry(
            provider, persona, "system", "user", "m",
            decision_id="d1", round_number=1, exchange_number=1, emit=EventRecorder(),
            max_retries=2, backoff_sec=0.0,
        )

    assert len(provider.calls) == 3
    assert exc_info.value.attempts == 3
    assert str(exc_info.value).startswith("Contrarian failed after 3 retries:")
    assert str(exc_info.value).endswith("temporarily unavailable. Try again in a moment.")
    assert "simulated failure" in str(exc_info.value.last_error)


async def test_call_persona_wraps_unexpected_errors(registry):
    class Broken(MockProvider):
        async def stream(self, system_prompt, user_prompt, model):
            self.calls.append((system_prompt, user_prompt, model))
            raise KeyError("boom")
            yield ""

    provider = Broken()
    with pytest.raises(PersonaCallError) as exc_info:
        await call_persona_with_retry(
            provider, registry.get("visionary"), "s", "u", "m",
            decision_id="d1", round_number=1, exchange_number=1, emit=EventRecorder(),
            max_retries=0, backoff_sec=0.0,
        )
    assert len(provider.calls) == 1
    assert "Unexpected error" in str(exc_info.value)


async def test_run_round_speaks_sequentially_in_roster_order(store, registry, ready_decision):
    provider = MockProvider(default="I lean toward Berlin.")
    recorder = EventRecorder()
    ctx = _context(store, registry, ready_decision, provider, recorder)

    turns = await run_round(ctx, ROUND_OPENING, 1)

    expected = [p.key for p in registry.debaters()]
    assert [t.agent for t in turns] == expected
    assert [t.agent for t in store.get_debate_turns(ready_decision.id)] == expected
    for persona, (system_prompt, _, model) in zip(registry.debaters(), provider.calls):
        assert persona.prompt in system_prompt
        assert "Debate style rules" in system_prompt
        assert model == "test-model-1"

    completes = recorder.named(TURN_COMPLETE)
    assert [c["agent"] for c in completes] == expected
    assert recorder.names[-1] == ROUND_COMPLETE
    assert recorder.named(ROUND_COMPLETE) == [
        {"decision_id": ready_decision.id, "round_number": 1, "exchange_number": 1}
    ]


async def test_run_round_normalizes_debater_output(store, registry, ready_decision):
    provider = MockProvider(default="- **Position**: Berlin\n- **Concern**: the move")
    ctx = _context(store, registry, ready_decision, provider, EventRecorder(), debaters=registry.debaters()[:1])

    turns = await run_round(ctx, ROUND_OPENING, 1)

    assert turns[0].content == "Berlin the move"


async def test_run_round_failed_persona_becomes_placeholder(store, registry, ready_decision):
    provider = MockProvider(default="Fine.", failures={"You are The Contrarian": 99})
    recorder = EventRecorder()
    ctx = _context(store, registry, ready_decision, provider, recorder)

    turns = await run_round(ctx, ROUND_OPENING, 1)

    assert "contrarian" not in [t.agent for t in turns]
    assert len(turns) == len(registry.debaters()) - 1
    placeholders = [c for c in recorder.named(TURN_COMPLETE) if c["agent"] == "error"]
    assert len(placeholders) == 1
    assert placeholders[0]["content"].startswith(
        "An agent was unable to participate: Contrarian failed after 3 retries"
    )
    # the round still finishes and later debaters still speak
    assert recorder.names[-1] == ROUND_COMPLETE
    assert turns[-1].agent == "pragmatist"


async def test_run_round_uses_per_persona_model(store, registry, ready_decision):
    provider = MockProvider()
    ctx = _context(
        store, registry, ready_decision, provider, EventRecorder(),
        debaters=[registry.get("rationalist"), registry.get("advocate")],
        agent_models={"advocate": "special-model"},
    )

    await run_round(ctx, ROUND_OPENING, 1)

    assert [call[2] for call in provider.calls] == ["test-model-1", "special-model"]


async def test_run_round_prompt_includes_prior_transcript(store, registry, ready_decision):
    store.save_debate_turn(ready_decision.id, ROUND_OPENING, 1, "rationalist", "Numbers favour Berlin.")
    provider = MockProvider()
    ctx = _context(store, registry, ready_decision, provider, EventRecorder(), debaters=[registry.get("advocate")])

    await run_round(ctx, ROUND_EXCHANGE, 1)

    user_prompt = provider.calls[0][1]
    assert "Here is Round 1 of the committee debate" in user_prompt
    assert "Round 1 (opening)\n\nRationalist: Numbers favour Berlin." in user_prompt


async def test_run_round_cancelled_before_start(store, registry, ready_decision):
    token = CancellationToken()
    token.cancel()
    provider = MockProvider()
    ctx = _context(store, registry, ready_decision, provider, EventRecorder(), token=token)

    with pytest.raises(DebateCancelled):
        await run_round(ctx, ROUND_OPENING, 1)

    assert provider.calls == []
    assert store.get_debate_turns(ready_decision.id) == []


async def test_run_round_cancelled_between_personas(store, registry, ready_decision):
    token = CancellationToken()
    recorder = EventRecorder()

    def cancel_after_first(name, payload):
        recorder(name, payload)
        if name == TURN_COMPLETE:
            token.cancel()

    provider = MockProvider()
    ctx = _context(store, registry, ready_decision, provider, cancel_after_first, token=token)

    with pytest.raises(DebateCancelled):
        await run_round(ctx, ROUND_OPENING, 1)

    assert len(provider.calls) == 1
    assert [t.agent for t in store.get_debate_turns(ready_decision.id)] == ["rationalist"]
    assert ROUND_COMPLETE not in recorder.names


async def test_run_round_later_debaters_see_earlier_turns_of_same_round(store, registry, ready_decision):
    store.save_debate_turn(ready_decision.id, ROUND_OPENING, 1, "rationalist", "Open R.")
    store.save_debate_turn(ready_decision.id, ROUND_OPENING, 1, "advocate", "Open A.")
    provider = MockProvider(replies={
        "You are The Rationalist": "Rationalist reacts in exchange one.",
        "You are The Advocate": "Advocate reacts in exchange one.",
    })
    ctx = _context(
        store, registry, ready_decision, provider, EventRecorder(),
        debaters=[registry.get("rationalist"), registry.get("advocate")],
    )

    await run_round(ctx, ROUND_EXCHANGE, 1)

    rationalist_prompt, advocate_prompt = provider.calls[0][1], provider.calls[1][1]
    assert "Rationalist: Open R." in advocate_prompt
    assert "Rationalist reacts in exchange one." not in rationalist_prompt
    assert "Rationalist reacts in exchange one." in advocate_prompt


async def test_run_round_placeholder_carries_user_facing_error(store, registry, ready_decision):
    class Unauthorized(MockProvider):
        async def stream(self, system_prompt, user_prompt, model):
            self.calls.append((system_prompt, user_prompt, model))
            raise ProviderError("openrouter", "API error (401): bad key", CATEGORY_AUTH)
            yield ""

    recorder = EventRecorder()
    ctx = _context(
        store, registry, ready_decision, Unauthorized(), recorder, debaters=[registry.get("rationalist")],
    )

    await run_round(ctx, ROUND_OPENING, 1)

    [placeholder] = recorder.named(TURN_COMPLETE)
    assert placeholder["agent"] == "error"
    assert placeholder["content"] == (
        "An agent was unable to participate: Rationalist failed after 3 retries: "
        "Invalid API key. Check the key configured for this provider."
    )
