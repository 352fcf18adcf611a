"""Click CLI: decisions, chat, summaries, profile, personas, and running a committee debate."""

import asyncio
import json
import logging
import signal
import sys
import time
from pathlib import Path
from typing import Any, NoReturn

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from config.config_loader import AppConfig, CompletionConfig, ConfigError, load_config
from committee import decisions
from committee.audio import SpeechError, SpeechSynthesizer, build_synthesizer
from committee.chat import send_message as send_chat_message
from committee.decisions import DebateStartError
from committee.events import (
    CHAT_TOKEN,
    CHAT_TOOL_USE,
    DEBATE_ERROR,
    ROUND_COMPLETE,
    SEGMENT_AUDIO_ERROR,
    TURN_COMPLETE,
    TURN_TOKEN,
)
from committee.healthcheck import run_health_checks
from committee.models import Persona
from committee.orchestrator import DebateOrchestrator
from committee.output import print_decisions, print_personas, print_recommendation, print_turn, save_to_file
from committee.personas import PersonaRegistry, init_persona_files, load_registry
from committee.profile import delete_profile_file, read_all_profiles, write_profile_file
from committee.providers.anthropic import AnthropicProvider
from committee.providers.base import CompletionProvider, ProviderError
from committee.providers.gemini import GeminiProvider
from committee.providers.openrouter import OpenRouterProvider
from committee.store import SQLiteStore, StoreError
from committee.transcript import round_header

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

PROVIDER_CLASSES: dict[str, type[CompletionProvider]] = {
    "openrouter": OpenRouterProvider,
    "anthropic": AnthropicProvider,
    "gemini": GeminiProvider,
}


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _fail(message: str) -> NoReturn:
    console.print(f"[bold red]Error:[/bold red] {message}")
    sys.exit(1)


def build_provider(config: CompletionConfig) -> CompletionProvider:
    """Instantiate the configured completion provider.

    Raises:
        ProviderError: If the sdk is unknown or its API key is missing.
    """
    provider_cls = PROVIDER_CLASSES.get(config.sdk)
    if provider_cls is None:
        raise ProviderError(config.sdk, f"Unknown provider sdk '{config.sdk}'")
    return provider_cls(config)


def _parse_agent_keys(agents: str | None) -> list[str] | None:
    if not agents:
        return None
    keys = [k.strip() for k in agents.split(",") if k.strip()]
    return keys or None


def _models_for_run(config: AppConfig, debaters: list[Persona], moderator: Persona) -> list[str]:
    """Distinct models a run will call, in speaking order."""
    default = config.completion.default_model
    models = [config.debate.model_for(p.key, default) for p in [*debaters, moderator]]
    return list(dict.fromkeys(models))


async def _check_models(provider: CompletionProvider, models: list[str]) -> None:
    """Run health checks, print results, and ask whether to continue on failures."""
    console.print("\n[bold]Checking models...[/bold]")
    results = await run_health_checks(provider, models)

    failed: list[str] = []
    for model in models:
        ok, err = results[model]
        if ok:
            console.print(f"  [green]OK  [/green] {model}")
        else:
            short_err = err.splitlines()[0][:120] if err else "unknown error"
            console.print(f"  [red]FAIL[/red] {model}: {short_err}")
            failed.append(model)

    if not failed:
        console.print()
        return

    if len(failed) == len(models):
        _fail("No model passed the health check.")

    console.print(f"\n[yellow]{len(failed)} model(s) failed:[/yellow] {', '.join(failed)}")
    console.print("Turns on those models will be retried and then skipped.")
    if not click.confirm("Continue anyway?", default=True):
        sys.exit(0)
    console.print()


def _build_synthesizer(config: AppConfig) -> SpeechSynthesizer | None:
    try:
        synthesizer = build_synthesizer(config.audio)
    except SpeechError as exc:
        logger.warning("Audio disabled: %s", exc)
        return None
    if synthesizer is not None:
        logger.info("Generating audio with %s", synthesizer.name())
    return synthesizer


def _install_cancel_handler(orchestrator: DebateOrchestrator, decision_id: str) -> None:
    """Map Ctrl-C to a cooperative cancel of the running debate."""

    def _on_sigint() -> None:
        if orchestrator.cancel(decision_id):
            console.print("\n[yellow]Cancelling after the current turn...[/yellow]")

    try:
        asyncio.get_running_loop().add_signal_handler(signal.SIGINT, _on_sigint)
    except (NotImplementedError, RuntimeError):
        # Windows event loops have no signal handlers; Ctrl-C aborts the task instead
        logger.debug("SIGINT handler unavailable on this platform")


async def _run_debate(
    config: AppConfig,
    store: SQLiteStore,
    provider: CompletionProvider,
    registry: PersonaRegistry,
    decision_id: str,
    quick_mode: bool,
    agent_keys: list[str] | None,
    health_models: list[str] | None = None,
) -> str | None:
    """Health-check the models, then run one debate with live progress.

    Returns the error reason, if any.
    """
    if health_models:
        await _check_models(provider, health_models)

    errors: list[str] = []

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task_id = progress.add_task("Compiling brief...", total=None)

        def on_event(name: str, payload: dict[str, Any]) -> None:
            if name == TURN_TOKEN:
                header = round_header(payload["round_number"], payload["exchange_number"])
                progress.update(task_id, description=f"{header}: {registry.label_for(payload['agent'])} is speaking...")
            elif name == TURN_COMPLETE:
                print_turn(registry, payload)
            elif name == ROUND_COMPLETE:
                header = round_header(payload["round_number"], payload["exchange_number"])
                progress.print(f"[green]OK[/green] {header} complete")
                progress.update(task_id, description="Waiting for the next speaker...")
            elif name == SEGMENT_AUDIO_ERROR:
                progress.print(f"[yellow]Audio segment {payload['segment_index']} failed[/yellow]")
            elif name == DEBATE_ERROR:
                errors.append(payload["error"])

        synthesizer = _build_synthesizer(config)
        orchestrator = DebateOrchestrator(
            store,
            provider,
            config,
            emit=on_event,
            registry=registry,
            synthesizer=synthesizer,
        )
        try:
            task = orchestrator.start(decision_id, quick_mode=quick_mode, agent_keys=agent_keys)
            _install_cancel_handler(orchestrator, decision_id)
            await task
        except DebateStartError as exc:
            return str(exc)
        finally:
            if synthesizer is not None:
                await synthesizer.aclose()

    return errors[0] if errors else None


@click.group()
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.option("--settings", "settings_path", type=click.Path(exists=True, dir_okay=False), default=None,
              help="Path to settings.yaml (default: bundled config)")
@click.pass_context
def main(ctx: click.Context, verbose: bool, settings_path: str | None) -> None:
    """Decision Committee -- AI personas debate your decision.

    \b
    Examples:
      committee new "Should I take the Berlin offer?"
      committee chat <id> "I got an offer in Berlin"
      committee summary <id> summary.json
      committee debate <id> --quick
      committee debate <id> --agents rationalist,contrarian
    """
    # Reconfigure stdout/stderr to UTF-8 on Windows so persona emojis don't
    # crash the ANSI render path.
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config(Path(settings_path)) if settings_path else load_config()
    except (FileNotFoundError, ConfigError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    config.paths.db_path.parent.mkdir(parents=True, exist_ok=True)
    store = SQLiteStore(config.paths.db_path)
    ctx.call_on_close(store.close)
    ctx.obj = {"config": config, "store": store}


@main.command()
@click.pass_obj
def init(obj: dict[str, Any]) -> None:
    """Write the built-in persona files and create the profile folder."""
    config: AppConfig = obj["config"]
    written = init_persona_files(config.paths.personas_dir)
    config.paths.profile_dir.mkdir(parents=True, exist_ok=True)
    for path in written:
        console.print(f"Wrote {path}")
    console.print(f"Personas: {config.paths.personas_dir}")
    console.print(f"Profile:  {config.paths.profile_dir}")


@main.command()
@click.argument("title")
@click.pass_obj
def new(obj: dict[str, Any], title: str) -> None:
    """Create a decision."""
    decision = decisions.create_decision(obj["store"], title)
    console.print(f"Created decision [bold]{decision.id}[/bold]")


@main.command(name="list")
@click.pass_obj
def list_decisions(obj: dict[str, Any]) -> None:
    """List decisions, most recently updated first."""
    print_decisions(obj["store"].list_decisions())


@main.command()
@click.argument("decision_id")
@click.pass_obj
def show(obj: dict[str, Any], decision_id: str) -> None:
    """Show a decision, its summary and its debate."""
    store: SQLiteStore = obj["store"]
    decision = store.get_decision(decision_id)
    if decision is None:
        _fail(f"Decision not found: {decision_id}")

    console.print(f"[bold]{decision.title}[/bold]  ({decision.status})")
    if decision.user_choice:
        console.print(f"Chose: {decision.user_choice}")
    if decision.outcome:
        console.print(f"Outcome: {decision.outcome} ({decision.outcome_date})")
    console.print_json(data=decision.summary)

    registry = load_registry(obj["config"].paths.personas_dir)
    for turn in store.get_debate_turns(decision_id):
        print_turn(registry, {
            "agent": turn.agent,
            "content": turn.content,
            "round_number": turn.round_number,
            "exchange_number": turn.exchange_number,
        })


@main.command()
@click.argument("decision_id")
@click.argument("text")
@click.option("--role", type=click.Choice(["user", "assistant"]), default="user", show_default=True)
@click.pass_obj
def message(obj: dict[str, Any], decision_id: str, text: str, role: str) -> None:
    """Add a message to the decision's conversation."""
    try:
        decisions.add_message(obj["store"], decision_id, role, text)
    except StoreError as exc:
        _fail(str(exc))


@main.command()
@click.argument("decision_id")
@click.argument("text")
@click.pass_obj
def chat(obj: dict[str, Any], decision_id: str, text: str) -> None:
    """Talk the decision through with the AI. It keeps the summary up to date."""
    config: AppConfig = obj["config"]
    try:
        provider = build_provider(config.completion)
    except ProviderError as exc:
        _fail(f"{exc}. Check API keys in .env.")

    def on_event(name: str, payload: dict[str, Any]) -> None:
        if name == CHAT_TOKEN:
            console.print(payload["token"], end="", markup=False, highlight=False)
        elif name == CHAT_TOOL_USE:
            console.print(f"\n[dim]({payload['tool']})[/dim]")

    try:
        asyncio.run(send_chat_message(
            obj["store"],
            provider,
            config.completion.default_model,
            decision_id,
            text,
            config.paths.profile_dir,
            emit=on_event,
        ))
    except StoreError as exc:
        _fail(str(exc))
    except ProviderError as exc:
        _fail(exc.user_message)
    console.print()


@main.command()
@click.argument("decision_id")
@click.argument("update_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_obj
def summary(obj: dict[str, Any], decision_id: str, update_file: str) -> None:
    """Merge a JSON summary update (options, variables, pros_cons...) into a decision."""
    try:
        update = json.loads(Path(update_file).read_text(encoding="utf-8"))
    except ValueError as exc:
        _fail(f"{update_file} is not valid JSON: {exc}")
    if not isinstance(update, dict):
        _fail("A summary update must be a JSON object")
    try:
        merged = decisions.apply_summary_update(obj["store"], decision_id, update)
    except (StoreError, ValueError) as exc:
        _fail(str(exc))
    console.print_json(data=merged)


@main.command()
@click.argument("decision_id")
@click.option("--quick", "quick_mode", is_flag=True, help="Opening round only, then the moderator")
@click.option("--agents", default=None, help="Comma-separated debater keys (default: all debaters)")
@click.option("--skip-health-check", is_flag=True, default=False,
              help="Skip the model connectivity check at startup")
@click.option("--output", "output_path", default=None, help="Transcript directory (default: from config)")
@click.pass_obj
def debate(
    obj: dict[str, Any],
    decision_id: str,
    quick_mode: bool,
    agents: str | None,
    skip_health_check: bool,
    output_path: str | None,
) -> None:
    """Run a committee debate on a decision."""
    config: AppConfig = obj["config"]
    store: SQLiteStore = obj["store"]
    agent_keys = _parse_agent_keys(agents)

    try:
        provider = build_provider(config.completion)
    except ProviderError as exc:
        _fail(f"{exc}. Check API keys in .env.")

    registry = load_registry(config.paths.personas_dir)
    orchestrator = DebateOrchestrator(store, provider, config, registry=registry)
    try:
        _, debaters = orchestrator.validate(decision_id, agent_keys)
    except DebateStartError as exc:
        _fail(str(exc))

    health_models = None if skip_health_check else _models_for_run(config, debaters, registry.moderator())

    decision = store.get_decision(decision_id)
    mode = "quick" if quick_mode else "full"
    console.print(f"\n[bold cyan]Decision Committee[/bold cyan] -- {len(debaters)} debaters [{mode}]")
    console.print(f"Committee: {', '.join(p.label for p in debaters)}")
    console.print(f"Decision: [italic]{decision.title[:80]}{'...' if len(decision.title) > 80 else ''}[/italic]\n")

    start = time.monotonic()
    error = asyncio.run(
        _run_debate(config, store, provider, registry, decision_id, quick_mode, agent_keys, health_models)
    )
    duration = time.monotonic() - start

    decision = store.get_decision(decision_id)
    turns = store.get_debate_turns(decision_id)
    if turns:
        effective_output = Path(output_path) if output_path else config.paths.output_dir
        saved_path = save_to_file(decision, turns, registry, effective_output, duration)
        console.print(f"\n[dim]Saved to: {saved_path}[/dim]")

    if error:
        _fail(error)
    print_recommendation(decision.summary)


@main.command()
@click.argument("decision_id")
@click.argument("choice")
@click.option("--reasoning", default=None, help="Why you chose it")
@click.pass_obj
def choose(obj: dict[str, Any], decision_id: str, choice: str, reasoning: str | None) -> None:
    """Record the option you chose."""
    try:
        decisions.record_choice(obj["store"], decision_id, choice, reasoning)
    except StoreError as exc:
        _fail(str(exc))
    console.print(f"Recorded choice: [bold]{choice}[/bold]")


@main.command()
@click.argument("decision_id")
@click.argument("text")
@click.pass_obj
def outcome(obj: dict[str, Any], decision_id: str, text: str) -> None:
    """Record how the decision turned out."""
    try:
        decisions.record_outcome(obj["store"], decision_id, text)
    except StoreError as exc:
        _fail(str(exc))
    console.print("Outcome recorded.")


@main.command()
@click.pass_obj
def personas(obj: dict[str, Any]) -> None:
    """List the committee: built-in and custom personas."""
    print_personas(load_registry(obj["config"].paths.personas_dir).all)


@main.group()
def profile() -> None:
    """Read and edit the profile files the committee is briefed with."""


@profile.command(name="list")
@click.pass_obj
def profile_list(obj: dict[str, Any]) -> None:
    """Print every profile file."""
    files = read_all_profiles(obj["config"].paths.profile_dir)
    if not files:
        console.print("No profile files yet.")
    for name, content in files.items():
        console.rule(name)
        console.print(content, markup=False, highlight=False)


@profile.command(name="write")
@click.argument("filename")
@click.argument("source", type=click.File("r", encoding="utf-8"))
@click.pass_obj
def profile_write(obj: dict[str, Any], filename: str, source) -> None:
    """Create or replace FILENAME with the contents of SOURCE ('-' for stdin)."""
    try:
        path = write_profile_file(obj["config"].paths.profile_dir, filename, source.read())
    except ValueError as exc:
        _fail(str(exc))
    console.print(f"Wrote {path}")


@profile.command(name="delete")
@click.argument("filename")
@click.pass_obj
def profile_delete(obj: dict[str, Any], filename: str) -> None:
    """Delete a profile file."""
    try:
        deleted = delete_profile_file(obj["config"].paths.profile_dir, filename)
    except ValueError as exc:
        _fail(str(exc))
    console.print(f"Deleted {filename}" if deleted else f"No such profile file: {filename}")


if __name__ == "__main__":
    main()
