"""Render debate turns as prompt text, and flatten debater output to spoken prose."""

import re

from committee.models import (
    ROUND_CLOSING,
    ROUND_EXCHANGE,
    ROUND_OPENING,
    ROUND_SYNTHESIS,
    DebateTurn,
    Persona,
)

# Template labels the round prompts ask for; stripped from spoken output.
_SPOKEN_LABELS = (
    "position:",
    "key argument:",
    "concern:",
    "my vote:",
    "shifted?:",
    "remember this:",
)
_LIST_MARKERS = ("- ", "* ", "• ")
_NUMBERED = re.compile(r"^\d+\.\s+")
_SPACE_BEFORE_PUNCT = re.compile(r" ([.,;:])")


def round_header(round_number: int, exchange_number: int) -> str:
    if round_number == ROUND_OPENING:
        return "Round 1 (opening)"
    if round_number == ROUND_EXCHANGE:
        return f"Round 2 (exchange {exchange_number})"
    if round_number == ROUND_CLOSING:
        return "Round 3 (final statements)"
    if round_number == ROUND_SYNTHESIS:
        return "Moderator synthesis"
    return f"Round {round_number}"


def format_transcript(turns: list[DebateTurn], personas: list[Persona]) -> str:
    """Format turns into labelled text, one header per (round, exchange) block.

    Turns must already be ordered. Agents missing from ``personas`` are shown
    by their raw key.
    """
    labels = {p.key: p.label for p in personas}
    sections: list[str] = []
    current: tuple[int, int] | None = None

    for turn in turns:
        coordinate = (turn.round_number, turn.exchange_number)
        if coordinate != current:
            current = coordinate
            sections.append(round_header(*coordinate))
        sections.append(f"{labels.get(turn.agent, turn.agent)}: {turn.content}")

    return "\n\n".join(sections)


def _clean_line(raw_line: str) -> str:
    line = raw_line.strip()
    line = line.lstrip("#").strip()

    for marker in _LIST_MARKERS:
        if line.startswith(marker):
            line = line[len(marker):].lstrip()
            break
    line = _NUMBERED.sub("", line, count=1)

    cleaned = line.replace("**", "").replace("__", "").replace("`", "")
    lowered = cleaned.lower()
    for label in _SPOKEN_LABELS:
        if lowered.startswith(label):
            cleaned = cleaned[len(label):].strip()
            break
    return cleaned


def normalize_spoken_text(text: str) -> str:
    """Strip markdown scaffolding so a debate turn reads as conversation.

    Falls back to the trimmed input when nothing survives cleaning.
    """
    parts = [cleaned for cleaned in (_clean_line(line) for line in text.splitlines()) if cleaned]
    compact = " ".join(" ".join(parts).split())
    compact = _SPACE_BEFORE_PUNCT.sub(r"\1", compact)
    return compact or text.strip()
