"""Parse the moderator's markdown synthesis into structured summary data."""

import logging
from typing import Any

from committee.models import DebateTurn, Persona

logger = logging.getLogger(__name__)

SECTION_AGREED = "Where the Committee Agreed"
SECTION_DISAGREEMENTS = "Key Disagreements"
SECTION_BIASES = "Biases & Blind Spots Identified"
SECTION_RECOMMENDATION = "Recommendation"
SECTION_GIVING_UP = "What You're Giving Up"
SECTION_ACTION_PLAN = "Action Plan"

_DEFAULT_CHOICE = "See moderator's synthesis"
_CONFIDENCE_LEVELS = ("high", "low")


def extract_section(text: str, heading: str) -> str:
    """Return the body under ``## <heading>`` up to the next level-2 heading."""
    marker = f"## {heading}"
    start = text.find(marker)
    if start == -1:
        return ""
    after = text[start + len(marker):]
    end = after.find("\n## ")
    if end != -1:
        after = after[:end]
    return after.strip()


def split_to_points(text: str) -> list[str]:
    """Split a section into bullet points, dropping markers and blank lines."""
    points: list[str] = []
    for line in text.splitlines():
        point = line.strip().lstrip("-").lstrip("*").strip()
        if point:
            points.append(point)
    return points


def extract_bold_value(text: str, label: str) -> str | None:
    """Value on the same line after ``**<label>**:``, or None if absent/empty."""
    pattern = f"**{label}**:"
    pos = text.find(pattern)
    if pos == -1:
        return None
    rest = text[pos + len(pattern):]
    value = rest.split("\n", 1)[0].strip()
    return value or None


def normalize_confidence(raw: str | None) -> str:
    """Map free-text confidence to exactly one of high/medium/low."""
    lowered = (raw or "").lower()
    for level in _CONFIDENCE_LEVELS:
        if level in lowered:
            return level
    return "medium"


def parse_recommendation(rec_section: str, full_text: str) -> dict[str, Any] | None:
    """Build the recommendation object, or None when the text has none.

    A missing sub-field falls back to a default rather than failing: choice to
    a pointer at the synthesis, confidence to "medium", reasoning to the
    section's non-label lines.
    """
    if not rec_section and "**Choice**" not in full_text:
        return None

    text = rec_section or full_text

    choice = extract_bold_value(text, "Choice") or _DEFAULT_CHOICE
    confidence = normalize_confidence(extract_bold_value(text, "Confidence"))
    reasoning = extract_bold_value(text, "Reasoning")
    if reasoning is None:
        reasoning = " ".join(
            line.strip()
            for line in rec_section.splitlines()
            if line.strip() and not line.startswith("**")
        )

    tradeoffs = extract_section(full_text, SECTION_GIVING_UP)
    next_steps = split_to_points(extract_section(full_text, SECTION_ACTION_PLAN))

    return {
        "choice": choice,
        "confidence": confidence,
        "reasoning": reasoning,
        "tradeoffs": tradeoffs or None,
        "next_steps": next_steps or None,
    }


def extract_final_votes(
    turns: list[DebateTurn],
    debaters: list[Persona],
    vote_chars: int = 200,
) -> dict[str, str]:
    """Excerpt of each debater's last turn, keyed by persona key."""
    votes: dict[str, str] = {}
    for persona in debaters:
        last = None
        for turn in turns:
            if turn.agent == persona.key:
                last = turn
        if last is not None:
            votes[persona.key] = last.content[:vote_chars]
    return votes


def build_debate_summary(
    moderator_text: str,
    turns: list[DebateTurn],
    debaters: list[Persona],
    vote_chars: int = 200,
) -> dict[str, Any]:
    """Consensus, disagreements, biases and final votes from a finished debate."""
    return {
        "consensus_points": split_to_points(extract_section(moderator_text, SECTION_AGREED)),
        "key_disagreements": split_to_points(extract_section(moderator_text, SECTION_DISAGREEMENTS)),
        "biases_identified": split_to_points(extract_section(moderator_text, SECTION_BIASES)),
        "final_votes": extract_final_votes(turns, debaters, vote_chars),
    }


def build_summary_update(
    moderator_text: str,
    turns: list[DebateTurn],
    debaters: list[Persona],
    vote_chars: int = 200,
) -> dict[str, Any]:
    """Summary update for the merger: debate summary plus any recommendation."""
    update: dict[str, Any] = {
        "debate_summary": build_debate_summary(moderator_text, turns, debaters, vote_chars),
    }
    rec_section = extract_section(moderator_text, SECTION_RECOMMENDATION)
    recommendation = parse_recommendation(rec_section, moderator_text)
    if recommendation is None:
        logger.info("Moderator synthesis contained no recommendation")
    else:
        update["recommendation"] = recommendation
    return update
