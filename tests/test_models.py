"""Tests for committee/models.py."""

from committee.models import (
    DECISION_STATUSES,
    ROUND_SYNTHESIS,
    AudioManifest,
    AudioSegment,
    Decision,
)


def _decision(summary_json):
    return Decision(
        id="d1",
        conversation_id="c1",
        title="Move?",
        status="exploring",
        created_at="2026-01-01T00:00:00",
        updated_at="2026-01-01T00:00:00",
        summary_json=summary_json,
    )


def test_decision_summary_parses_json():
    assert _decision('{"options": []}').summary == {"options": []}


def test_decision_summary_tolerates_bad_data():
    assert _decision(None).summary == {}
    assert _decision("not json").summary == {}
    assert _decision("[1]").summary == {}


def test_status_lifecycle_order():
    assert DECISION_STATUSES == ("exploring", "analyzing", "debating", "recommended", "decided", "reviewed")


def test_synthesis_round_sorts_after_debate_rounds():
    assert ROUND_SYNTHESIS > 3


def test_audio_manifest_defaults():
    manifest = AudioManifest(decision_id="d1")
    assert manifest.segments == []
    assert manifest.total_duration_ms == 0
    assert AudioSegment(0, "a", 1, 1, "t", "f.mp3", 10).start_ms == 0
