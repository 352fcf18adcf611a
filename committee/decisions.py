"""Decision lifecycle: creation, summary updates, choice and outcome."""

import json
import logging
from typing import Any

from committee.events import SUMMARY_UPDATED, Listener
from committee.models import (
    STATUS_ANALYZING,
    STATUS_EXPLORING,
    STATUS_RECOMMENDED,
    Decision,
    Message,
)
from committee.store import Store, StoreError
from committee.summary import has_debate_inputs, merge_summary

logger = logging.getLogger(__name__)

# Statuses a summary update may move a decision to.
SUMMARY_STATUSES = (STATUS_EXPLORING, STATUS_ANALYZING, STATUS_RECOMMENDED)


class DebateStartError(Exception):
    """A debate cannot start for this decision. Raised before any state changes."""


def validate_ready_for_debate(decision: Decision | None) -> dict[str, Any]:
    """Check a decision has enough structure to debate and return its summary.

    Raises:
        DebateStartError: With the reason the decision is not ready.
    """
    if decision is None:
        raise DebateStartError("Decision not found")
    if not decision.summary_json:
        raise DebateStartError("Decision has no summary data. Chat with the AI first to build context.")
    try:
        summary = json.loads(decision.summary_json)
    except ValueError as exc:
        raise DebateStartError("Invalid summary JSON") from exc
    if not isinstance(summary, dict) or not has_debate_inputs(summary):
        raise DebateStartError(
            "Decision needs at least one option and one variable before starting a debate."
        )
    return summary


def create_decision(store: Store, title: str) -> Decision:
    """Create a decision together with the conversation it lives in."""
    conversation = store.create_conversation(title, conv_type="decision")
    decision = store.create_decision(conversation.id, title)
    logger.info("Created decision %s (%s)", decision.id, title)
    return decision


def add_message(store: Store, decision_id: str, role: str, content: str) -> Message:
    decision = store.get_decision(decision_id)
    if decision is None:
        raise StoreError(f"Decision not found: {decision_id}")
    return store.add_message(decision.conversation_id, role, content)


def apply_summary_update(
    store: Store,
    decision_id: str,
    update: dict[str, Any],
    emit: Listener | None = None,
) -> dict[str, Any]:
    """Merge a partial summary update into the decision and persist it.

    An optional ``status`` key in the update moves the decision to that status;
    only exploring, analyzing and recommended are accepted.

    Raises:
        StoreError: If the decision does not exist.
        ValueError: For a status outside SUMMARY_STATUSES.
    """
    decision = store.get_decision(decision_id)
    if decision is None:
        raise StoreError(f"Decision not found: {decision_id}")

    status = update.get("status")
    if status is not None and status not in SUMMARY_STATUSES:
        raise ValueError(f"Summary updates cannot set status '{status}'")

    merged = merge_summary(decision.summary_json, update)
    store.update_decision_summary(decision_id, merged)
    if status is not None:
        store.update_decision_status(decision_id, status)

    if emit is not None:
        emit(SUMMARY_UPDATED, {
            "decision_id": decision_id,
            "summary": merged,
            "status": status or decision.status,
        })
    return merged


def record_choice(store: Store, decision_id: str, choice: str, reasoning: str | None = None) -> None:
    """Record what the person chose. Moves the decision to 'decided'."""
    store.update_decision_choice(decision_id, choice, reasoning)
    logger.info("Decision %s decided: %s", decision_id, choice)


def record_outcome(store: Store, decision_id: str, outcome: str) -> None:
    """Record how it turned out. Moves the decision to 'reviewed'."""
    store.update_decision_outcome(decision_id, outcome)
    logger.info("Decision %s reviewed", decision_id)
