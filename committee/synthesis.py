"""Moderator synthesis: final call, parse, and merge into the decision summary."""

import logging
from typing import Any

from committee.debate import DebateContext, call_persona_with_retry
from committee.events import SUMMARY_UPDATED, TURN_COMPLETE
from committee.models import ROUND_SYNTHESIS, STATUS_RECOMMENDED, DebateTurn
from committee.moderator import build_summary_update
from committee.personas import format_participant_names, system_prompt_for
from committee.prompts import moderator_prompt
from committee.summary import merge_summary
from committee.transcript import format_transcript

logger = logging.getLogger(__name__)


async def run_moderator(ctx: DebateContext) -> DebateTurn:
    """Run the moderator over the full transcript and persist its turn.

    The moderator text is stored verbatim so its headings survive for parsing.

    Raises:
        PersonaCallError: If the moderator exhausts its retries.
    """
    moderator = ctx.registry.moderator()
    transcript = format_transcript(ctx.store.get_debate_turns(ctx.decision_id), ctx.registry.all)
    user_prompt = moderator_prompt(ctx.brief, transcript, format_participant_names(ctx.debaters))

    logger.info("Running moderator synthesis for decision %s", ctx.decision_id)
    text = await call_persona_with_retry(
        ctx.provider,
        moderator,
        system_prompt_for(moderator),
        user_prompt,
        ctx.model_for(moderator),
        decision_id=ctx.decision_id,
        round_number=ROUND_SYNTHESIS,
        exchange_number=1,
        emit=ctx.emit,
        max_retries=ctx.settings.max_retries,
        backoff_sec=ctx.settings.retry_backoff_sec,
    )

    turn = ctx.store.save_debate_turn(ctx.decision_id, ROUND_SYNTHESIS, 1, moderator.key, text)
    ctx.emit(TURN_COMPLETE, {
        "decision_id": ctx.decision_id,
        "round_number": ROUND_SYNTHESIS,
        "exchange_number": 1,
        "agent": moderator.key,
        "content": text,
    })
    if ctx.audio is not None:
        ctx.audio.spawn(turn)
    return turn


def apply_synthesis(ctx: DebateContext, moderator_text: str) -> dict[str, Any]:
    """Parse the moderator output, merge it into the stored summary and announce it.

    Returns the merged summary.
    """
    turns = [t for t in ctx.store.get_debate_turns(ctx.decision_id) if t.round_number != ROUND_SYNTHESIS]
    update = build_summary_update(moderator_text, turns, ctx.debaters, ctx.settings.final_vote_chars)

    decision = ctx.store.get_decision(ctx.decision_id)
    existing = decision.summary_json if decision is not None else None
    merged = merge_summary(existing, update)
    ctx.store.update_decision_summary(ctx.decision_id, merged)

    ctx.emit(SUMMARY_UPDATED, {
        "decision_id": ctx.decision_id,
        "summary": merged,
        "status": STATUS_RECOMMENDED,
    })
    return merged
