"""Tests for committee/synthesis.py."""

import pytest

from config.config_loader import DebateConfig
from committee.cancellation import CancellationToken
from committee.debate import DebateContext, PersonaCallError
from committee.events import SUMMARY_UPDATED, TURN_COMPLETE, EventRecorder
from committee.models import ROUND_CLOSING, ROUND_OPENING, ROUND_SYNTHESIS, STATUS_RECOMMENDED
from committee.synthesis import apply_synthesis, run_moderator
from tests.conftest import MODERATOR_OUTPUT, MockProvider


def _context(store, registry, decision, provider, recorder, debaters=None, **settings):
    return DebateContext(
        decision_id=decision.id,
        brief="# Decision Brief",
        store=store,
        provider=provider,
        registry=registry,
        debaters=debaters or [registry.get("rationalist"), registry.get("contrarian")],
        settings=DebateConfig(retry_backoff_sec=0.0, **settings),
        default_model="test-model-1",
        token=CancellationToken(),
        emit=recorder,
    )


async def test_run_moderator_stores_verbatim_turn(store, registry, ready_decision):
    store.save_debate_turn(ready_decision.id, ROUND_OPENING, 1, "rationalist", "Berlin pays more.")
    store.save_debate_turn(ready_decision.id, ROUND_OPENING, 1, "contrarian", "Rent eats the raise.")
    provider = MockProvider(default=MODERATOR_OUTPUT)
    recorder = EventRecorder()
    ctx = _context(store, registry, ready_decision, provider, recorder)

    turn = await run_moderator(ctx)

    assert (turn.round_number, turn.exchange_number, turn.agent) == (ROUND_SYNTHESIS, 1, "moderator")
    assert turn.content == MODERATOR_OUTPUT
    assert store.get_debate_turns(ready_decision.id)[-1].content == MODERATOR_OUTPUT

    system_prompt, user_prompt, model = provider.calls[0]
    assert system_prompt == registry.moderator().prompt
    assert "between The Rationalist and The Contrarian:" in user_prompt
    assert "Contrarian: Rent eats the raise." in user_prompt
    assert model == "test-model-1"
    assert recorder.named(TURN_COMPLETE)[-1]["round_number"] == ROUND_SYNTHESIS


async def test_run_moderator_uses_moderator_model_override(store, registry, ready_decision):
    provider = MockProvider(default=MODERATOR_OUTPUT)
    ctx = _context(
        store, registry, ready_decision, provider, EventRecorder(),
        agent_models={"moderator": "big-model"},
    )
    await run_moderator(ctx)
    assert provider.calls[0][2] == "big-model"


async def test_run_moderator_raises_after_retries(store, registry, ready_decision):
    provider = MockProvider(failures={"You are The Moderator": 99})
    ctx = _context(store, registry, ready_decision, provider, EventRecorder(), max_retries=1)

    with pytest.raises(PersonaCallError, match="Moderator failed after 2 retries"):
        await run_moderator(ctx)
    assert store.get_debate_turns(ready_decision.id) == []


def test_apply_synthesis_merges_into_summary(store, registry, ready_decision):
    store.save_debate_turn(ready_decision.id, ROUND_OPENING, 1, "rationalist", "Opening")
    store.save_debate_turn(ready_decision.id, ROUND_CLOSING, 1, "rationalist", "My vote: Berlin")
    store.save_debate_turn(ready_decision.id, ROUND_CLOSING, 1, "contrarian", "My vote: Stay")
    store.save_debate_turn(ready_decision.id, ROUND_SYNTHESIS, 1, "moderator", MODERATOR_OUTPUT)
    recorder = EventRecorder()
    ctx = _context(store, registry, ready_decision, MockProvider(), recorder)

    merged = apply_synthesis(ctx, MODERATOR_OUTPUT)

    assert merged["debate_summary"]["final_votes"] == {
        "rationalist": "My vote: Berlin",
        "contrarian": "My vote: Stay",
    }
    assert merged["recommendation"]["choice"] == "Take the Berlin offer"
    assert merged["variables"] == [{"label": "Salary", "value": "+20%", "impact": "high"}]
    assert store.get_decision(ready_decision.id).summary == merged
    assert recorder.named(SUMMARY_UPDATED) == [
        {"decision_id": ready_decision.id, "summary": merged, "status": STATUS_RECOMMENDED}
    ]


def test_apply_synthesis_respects_vote_length(store, registry, ready_decision):
    store.save_debate_turn(ready_decision.id, ROUND_CLOSING, 1, "rationalist", "abcdefghij")
    ctx = _context(store, registry, ready_decision, MockProvider(), EventRecorder(), final_vote_chars=4)

    merged = apply_synthesis(ctx, MODERATOR_OUTPUT)

    assert merged["debate_summary"]["final_votes"] == {"rationalist": "abcd"}
