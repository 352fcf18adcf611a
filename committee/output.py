"""Rich console output and markdown file save for debate results."""

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from committee.models import ROUND_SYNTHESIS, Decision, DebateTurn, Persona
from committee.personas import PersonaRegistry
from committee.transcript import round_header

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def _speaker(registry: PersonaRegistry, agent: str) -> str:
    persona = registry.get(agent)
    if persona is None:
        return agent
    return f"{persona.emoji} {persona.label}".strip()


def print_turn(registry: PersonaRegistry, payload: dict[str, Any]) -> None:
    """Print one finished turn as a panel."""
    agent = payload.get("agent", "")
    if agent == "error":
        console.print(Panel(payload.get("content", ""), title="[bold red]Unavailable[/bold red]", border_style="red"))
        return
    header = round_header(payload.get("round_number", 0), payload.get("exchange_number", 0))
    content = payload.get("content", "")
    body = Markdown(content) if payload.get("round_number") == ROUND_SYNTHESIS else content
    console.print(
        Panel(
            body,
            title=f"[bold]{_speaker(registry, agent)}[/bold]",
            subtitle=header,
            border_style="dim",
        )
    )


def print_recommendation(summary: dict[str, Any]) -> None:
    """Print the parsed recommendation, or a note that there is none."""
    console.print(Rule("[bold green]Committee Recommendation[/bold green]"))
    rec = summary.get("recommendation")
    if not isinstance(rec, dict):
        console.print(Text("The moderator did not give a structured recommendation.", style="dim"))
        return
    console.print(f"[bold]Choice:[/bold] {rec.get('choice', '')}")
    console.print(f"[bold]Confidence:[/bold] {rec.get('confidence', '')}")
    if rec.get("reasoning"):
        console.print(f"[bold]Reasoning:[/bold] {rec['reasoning']}")
    if rec.get("tradeoffs"):
        console.print(Rule("What You're Giving Up", style="dim"))
        console.print(Markdown(rec["tradeoffs"]))
    if rec.get("next_steps"):
        console.print(Rule("Action Plan", style="dim"))
        for step in rec["next_steps"]:
            console.print(f"  - {step}")


def print_decisions(decisions: list[Decision]) -> None:
    table = Table(title="Decisions")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Title")
    table.add_column("Status")
    table.add_column("Updated", style="dim")
    for d in decisions:
        table.add_row(d.id, d.title, d.status, d.updated_at[:19])
    console.print(table)


def print_personas(personas: list[Persona]) -> None:
    table = Table(title="Committee")
    table.add_column("Key", no_wrap=True)
    table.add_column("Label")
    table.add_column("Role")
    table.add_column("Voice", style="dim")
    table.add_column("Built-in", style="dim")
    for p in personas:
        table.add_row(p.key, f"{p.emoji} {p.label}".strip(), p.role, p.voice_gender, "yes" if p.built_in else "")
    console.print(table)


def save_to_file(
    decision: Decision,
    turns: list[DebateTurn],
    registry: PersonaRegistry,
    output_dir: Path,
    duration_sec: float | None = None,
) -> Path:
    """Save the debate transcript as a markdown file.

    Args:
        decision: The decision that was debated (title, brief, status).
        turns: All stored turns in debate order, moderator included.
        registry: Persona roster used to label speakers.
        output_dir: Directory to save the file in.
        duration_sec: Wall-clock duration of the run, if known.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filepath = output_dir / f"{timestamp}_{_slug(decision.title)}.md"

    speakers = list(dict.fromkeys(t.agent for t in turns if t.round_number != ROUND_SYNTHESIS))
    lines: list[str] = [
        f"# Committee Debate: {decision.title[:80]}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Decision:** {decision.id}",
        f"**Status:** {decision.status}",
        f"**Committee:** {', '.join(registry.label_for(s) for s in speakers)}",
    ]
    if duration_sec is not None:
        lines.append(f"**Duration:** {duration_sec:.1f}s")
    lines += ["", "---", ""]

    current: tuple[int, int] | None = None
    for turn in turns:
        if (turn.round_number, turn.exchange_number) != current:
            current = (turn.round_number, turn.exchange_number)
            lines.append(f"## {round_header(*current)}")
            lines.append("")
        if turn.round_number != ROUND_SYNTHESIS:
            lines.append(f"### {registry.label_for(turn.agent)}")
            lines.append("")
        lines.append(turn.content)
        lines.append("")

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Debate saved to: %s", filepath)
    return filepath
