"""Tests for the click CLI in committee/cli.py."""

import json
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner

from config.config_loader import CompletionConfig
from committee import cli
from committee.cli import _models_for_run, _parse_agent_keys, build_provider, main
from committee.providers.base import CATEGORY_AUTH, ProviderError, ToolCall
from committee.store import SQLiteStore
from tests.conftest import MODERATOR_OUTPUT, SAMPLE_SUMMARY, MockProvider, ScriptedChat


@pytest.fixture
def settings_file(tmp_path: Path) -> Path:
    settings = {
        "completion": {
            "sdk": "openrouter",
            "api_key_env": "TEST_CLI_COMPLETION_KEY",
            "default_model": "test-model-1",
            "timeout_sec": 30,
            "max_tokens": 512,
        },
        "debate": {"retry_backoff_sec": 0.0, "agent_models": {"moderator": "test-model-2"}},
        "audio": {"provider": "openai", "api_key_env": "TEST_CLI_TTS_KEY_UNSET"},
        "paths": {"data_dir": str(tmp_path / "data"), "output_dir": str(tmp_path / "output")},
    }
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.dump(settings), encoding="utf-8")
    return path


@pytest.fixture
def run(settings_file):
    runner = CliRunner()

    def _invoke(*args):
        return runner.invoke(main, ["--settings", str(settings_file), *args])

    return _invoke


def _new_decision(run, title="Should I take the Berlin offer?") -> str:
    result = run("new", title)
    assert result.exit_code == 0, result.output
    return result.output.split("Created decision ")[1].split()[0]


def test_parse_agent_keys():
    assert _parse_agent_keys(None) is None
    assert _parse_agent_keys("") is None
    assert _parse_agent_keys(" , ") is None
    assert _parse_agent_keys("rationalist, advocate") == ["rationalist", "advocate"]


def test_models_for_run_dedupes_in_order(sample_app_config, registry):
    sample_app_config.debate.agent_models = {"advocate": "special", "moderator": "test-model-1"}
    models = _models_for_run(sample_app_config, registry.debaters(), registry.moderator())
    assert models == ["test-model-1", "special"]


def test_build_provider_unknown_sdk():
    config = CompletionConfig(sdk="nope", api_key_env="X", default_model="m", timeout_sec=1, max_tokens=1)
    with pytest.raises(ProviderError, match="Unknown provider sdk"):
        build_provider(config)


def test_build_provider_missing_key(monkeypatch):
    monkeypatch.delenv("TEST_CLI_MISSING_KEY", raising=False)
    config = CompletionConfig(
        sdk="openrouter", api_key_env="TEST_CLI_MISSING_KEY", default_model="m", timeout_sec=1, max_tokens=1,
    )
    with pytest.raises(ProviderError):
        build_provider(config)


def test_new_and_list(run):
    decision_id = _new_decision(run)
    result = run("list")
    assert result.exit_code == 0
    assert decision_id[:8] in result.output


def test_summary_command_merges(run, tmp_path):
    decision_id = _new_decision(run)
    update = tmp_path / "update.json"
    update.write_text(json.dumps({**SAMPLE_SUMMARY, "status": "analyzing"}), encoding="utf-8")

    result = run("summary", decision_id, str(update))

    assert result.exit_code == 0, result.output
    assert "Take the Berlin offer" in result.output


def test_summary_command_rejects_non_object(run, tmp_path):
    decision_id = _new_decision(run)
    update = tmp_path / "update.json"
    update.write_text("[1, 2]", encoding="utf-8")

    result = run("summary", decision_id, str(update))

    assert result.exit_code == 1
    assert "must be a JSON object" in result.output


def test_message_unknown_decision(run):
    result = run("message", "missing", "hello")
    assert result.exit_code == 1
    assert "Decision not found" in result.output


def test_debate_rejects_unready_decision(run, monkeypatch):
    monkeypatch.setattr(cli, "build_provider", lambda config: MockProvider())
    decision_id = _new_decision(run)

    result = run("debate", decision_id, "--skip-health-check")

    assert result.exit_code == 1
    assert "no summary data" in result.output


def test_debate_quick_end_to_end(run, monkeypatch, tmp_path, settings_file):
    provider = MockProvider(default="Berlin, clearly.", replies={"You are The Moderator": MODERATOR_OUTPUT})
    monkeypatch.setattr(cli, "build_provider", lambda config: provider)
    decision_id = _new_decision(run)
    update = tmp_path / "update.json"
    update.write_text(json.dumps(SAMPLE_SUMMARY), encoding="utf-8")
    assert run("summary", decision_id, str(update)).exit_code == 0

    result = run("debate", decision_id, "--quick", "--agents", "rationalist,advocate", "--skip-health-check")

    assert result.exit_code == 0, result.output
    assert "Take the Berlin offer" in result.output
    assert [call[2] for call in provider.calls] == ["test-model-1", "test-model-1", "test-model-2"]
    assert len(list((tmp_path / "output").glob("*.md"))) == 1

    store = SQLiteStore(tmp_path / "data" / "committee.db")
    try:
        decision = store.get_decision(decision_id)
        assert decision.status == "recommended"
        assert [t.agent for t in store.get_debate_turns(decision_id)] == ["rationalist", "advocate", "moderator"]
    finally:
        store.close()


def test_choose_and_outcome(run):
    decision_id = _new_decision(run)
    assert run("choose", decision_id, "Berlin", "--reasoning", "Growth").exit_code == 0
    assert run("outcome", decision_id, "Happy with it").exit_code == 0

    result = run("show", decision_id)
    assert result.exit_code == 0
    assert "Chose: Berlin" in result.output
    assert "Outcome: Happy with it" in result.output


def test_init_and_personas(run, tmp_path):
    result = run("init")
    assert result.exit_code == 0
    assert (tmp_path / "data" / "agents" / "moderator.md").exists()
    assert (tmp_path / "data" / "profile").is_dir()

    result = run("personas")
    assert result.exit_code == 0
    assert "rationalist" in result.output


def test_chat_streams_reply_and_updates_summary(run, monkeypatch, tmp_path):
    provider = ScriptedChat(
        [ToolCall("c1", "update_decision_summary", json.dumps({"options": [{"label": "Berlin"}]}))],
        ["Got it. What about family?"],
    )
    monkeypatch.setattr(cli, "build_provider", lambda config: provider)
    decision_id = _new_decision(run)

    result = run("chat", decision_id, "I got an offer in Berlin")

    assert result.exit_code == 0, result.output
    assert "(update_decision_summary)" in result.output
    assert "Got it. What about family?" in result.output
    store = SQLiteStore(tmp_path / "data" / "committee.db")
    try:
        decision = store.get_decision(decision_id)
        assert decision.summary["options"] == [{"label": "Berlin"}]
        assert [m.role for m in store.get_messages(decision.conversation_id)] == ["user", "assistant"]
    finally:
        store.close()


def test_chat_shows_user_facing_provider_error(run, monkeypatch):
    class Unauthorized(MockProvider):
        async def stream(self, system_prompt, user_prompt, model):
            raise ProviderError("openrouter", "API error (401): bad key", CATEGORY_AUTH)
            yield ""

    monkeypatch.setattr(cli, "build_provider", lambda config: Unauthorized())
    decision_id = _new_decision(run)

    result = run("chat", decision_id, "hello")

    assert result.exit_code == 1
    assert "Invalid API key" in result.output


def test_profile_write_list_delete(run, tmp_path):
    source = tmp_path / "career.md"
    source.write_text("# Career\n- Senior engineer", encoding="utf-8")

    result = run("profile", "write", "career.md", str(source))
    assert result.exit_code == 0, result.output
    assert (tmp_path / "data" / "profile" / "career.md").read_text(encoding="utf-8") == "# Career\n- Senior engineer"

    result = run("profile", "list")
    assert result.exit_code == 0
    assert "Senior engineer" in result.output

    result = run("profile", "delete", "career.md")
    assert result.exit_code == 0
    assert "Deleted career.md" in result.output
    assert "No such profile file: career.md" in run("profile", "delete", "career.md").output


def test_profile_write_rejects_path_traversal(run, tmp_path):
    source = tmp_path / "x.md"
    source.write_text("x", encoding="utf-8")

    result = run("profile", "write", "../escape.md", str(source))

    assert result.exit_code == 1
    assert "Invalid profile filename" in result.output
