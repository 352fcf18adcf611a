"""Integration tests. Real API calls, no mocks. Requires .env with OPENROUTER_API_KEY."""

import os
from pathlib import Path

import pytest
from dotenv import load_dotenv

load_dotenv()

pytestmark = pytest.mark.integration

if not os.environ.get("OPENROUTER_API_KEY", "").strip():
    pytestmark = pytest.mark.skip(reason="OPENROUTER_API_KEY not set")


async def test_quick_debate_pipeline(tmp_path: Path):
    """Run a real quick debate with two debaters, verify a recommendation lands."""
    from config.config_loader import load_config
    from committee import decisions
    from committee.cli import build_provider
    from committee.events import DEBATE_ERROR, EventRecorder
    from committee.orchestrator import DebateOrchestrator
    from committee.output import save_to_file
    from committee.personas import load_registry
    from committee.store import SQLiteStore
    from tests.conftest import SAMPLE_SUMMARY

    config = load_config()
    config.paths.profile_dir = tmp_path / "profile"
    provider = build_provider(config.completion)
    registry = load_registry(None)
    store = SQLiteStore(":memory:")

    decision = decisions.create_decision(store, "Should I accept a job offer in Berlin?")
    decisions.add_message(store, decision.id, "user", "I live in Warsaw and got a senior role offer in Berlin.")
    decisions.apply_summary_update(store, decision.id, SAMPLE_SUMMARY)

    recorder = EventRecorder()
    orchestrator = DebateOrchestrator(store, provider, config, emit=recorder, registry=registry)
    await orchestrator.start(decision.id, quick_mode=True, agent_keys=["rationalist", "contrarian"])

    assert recorder.named(DEBATE_ERROR) == []
    turns = store.get_debate_turns(decision.id)
    assert [t.agent for t in turns] == ["rationalist", "contrarian", "moderator"]
    assert all(len(t.content) > 20 for t in turns)

    loaded = store.get_decision(decision.id)
    assert loaded.status == "recommended"
    assert "debate_summary" in loaded.summary

    saved = save_to_file(loaded, turns, registry, tmp_path / "output")
    assert saved.exists()
    store.close()


async def test_health_check_default_model():
    """The configured default model answers a ping."""
    from config.config_loader import load_config
    from committee.cli import build_provider
    from committee.healthcheck import run_health_checks

    config = load_config()
    provider = build_provider(config.completion)

    results = await run_health_checks(provider, [config.completion.default_model])

    ok, err = results[config.completion.default_model]
    assert ok, err
