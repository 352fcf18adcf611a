"""Tests for committee/transcript.py."""

from committee.models import DebateTurn
from committee.transcript import format_transcript, normalize_spoken_text, round_header


def _turn(agent, content, round_number, exchange_number=1):
    return DebateTurn("id", "d1", round_number, exchange_number, agent, content, "2026-01-01T00:00:00")


def test_round_headers():
    assert round_header(1, 1) == "Round 1 (opening)"
    assert round_header(2, 2) == "Round 2 (exchange 2)"
    assert round_header(3, 1) == "Round 3 (final statements)"
    assert round_header(99, 1) == "Moderator synthesis"
    assert round_header(7, 1) == "Round 7"


def test_format_transcript_groups_by_round_and_exchange(registry):
    turns = [
        _turn("rationalist", "Numbers first.", 1),
        _turn("advocate", "People first.", 1),
        _turn("rationalist", "Still numbers.", 2, 1),
        _turn("advocate", "Still people.", 2, 2),
    ]
    assert format_transcript(turns, registry.all) == (
        "Round 1 (opening)\n\n"
        "Rationalist: Numbers first.\n\n"
        "Advocate: People first.\n\n"
        "Round 2 (exchange 1)\n\n"
        "Rationalist: Still numbers.\n\n"
        "Round 2 (exchange 2)\n\n"
        "Advocate: Still people."
    )


def test_format_transcript_unknown_agent_uses_key(registry):
    assert format_transcript([_turn("ghost", "Boo.", 1)], registry.all) == "Round 1 (opening)\n\nghost: Boo."


def test_format_transcript_empty():
    assert format_transcript([], []) == ""


def test_normalize_strips_markdown_and_labels():
    text = "## My take\n- **Position**: Take the job\n* Key argument: growth\n1. Concern: the move"
    assert normalize_spoken_text(text) == "My take Take the job growth the move"


def test_normalize_collapses_whitespace_and_fixes_punctuation():
    assert normalize_spoken_text("I agree  with `Rationalist` ,\n\nbut   barely .") == "I agree with Rationalist, but barely."


def test_normalize_plain_text_unchanged():
    assert normalize_spoken_text("Just take it.") == "Just take it."


def test_normalize_falls_back_to_trimmed_input():
    assert normalize_spoken_text("  **  \n\n") == "**"
