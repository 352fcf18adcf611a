"""Compile the decision brief every debate prompt starts with."""

import json
from typing import Any

from committee.models import Decision, Message

NO_PROFILE = "No profile information available."
NO_SUMMARY = "No structured summary available."


def _format_profiles(profiles: dict[str, str]) -> str:
    if not profiles:
        return NO_PROFILE
    return "\n\n".join(f"### {name}\n{content}" for name, content in profiles.items())


def _format_messages(messages: list[Message]) -> str:
    return "\n\n".join(
        f"{'User' if m.role == 'user' else 'AI'}: {m.content}" for m in messages
    )


def _format_options(options: list[Any]) -> str:
    lines: list[str] = []
    for opt in options:
        opt = opt if isinstance(opt, dict) else {}
        label = opt.get("label") or "?"
        desc = opt.get("description") or ""
        lines.append(f"- **{label}**: {desc}" if desc else str(label))
    return "## Options Under Consideration\n" + "\n".join(lines)


def _format_variables(variables: list[Any]) -> str:
    lines: list[str] = []
    for var in variables:
        var = var if isinstance(var, dict) else {}
        label = var.get("label") or "?"
        value = var.get("value") or "?"
        impact = var.get("impact") or "medium"
        lines.append(f"- **{label}**: {value} (impact: {impact})")
    return "## Key Variables & Constraints\n" + "\n".join(lines)


def _format_pros_cons(entries: list[Any]) -> str:
    blocks: list[str] = []
    for entry in entries:
        entry = entry if isinstance(entry, dict) else {}
        option = entry.get("option") or "?"
        pros = "\n".join(f"  + {p}" for p in entry.get("pros") or [] if isinstance(p, str))
        cons = "\n".join(f"  - {c}" for c in entry.get("cons") or [] if isinstance(c, str))
        score = entry.get("alignment_score")
        score_text = f" (alignment: {score}/10)" if isinstance(score, int) and not isinstance(score, bool) else ""
        blocks.append(f"### {option}{score_text}\nPros:\n{pros}\nCons:\n{cons}")
    return "## Initial Analysis\n" + "\n\n".join(blocks)


def format_summary(summary: dict[str, Any] | None) -> str:
    """Render the option, variable and pros/cons sections present in a summary."""
    if summary is None:
        return NO_SUMMARY
    parts: list[str] = []
    if isinstance(summary.get("options"), list):
        parts.append(_format_options(summary["options"]))
    if isinstance(summary.get("variables"), list):
        parts.append(_format_variables(summary["variables"]))
    if isinstance(summary.get("pros_cons"), list):
        parts.append(_format_pros_cons(summary["pros_cons"]))
    return "\n\n".join(parts)


def compile_brief(decision: Decision, messages: list[Message], profiles: dict[str, str]) -> str:
    """Build the markdown brief: profile, title, conversation context, summary.

    A decision whose summary is missing or unparseable gets the
    "No structured summary available." fallback.
    """
    summary: dict[str, Any] | None = None
    if decision.summary_json:
        try:
            parsed = json.loads(decision.summary_json)
        except ValueError:
            parsed = None
        summary = parsed if isinstance(parsed, dict) else None
    return (
        "# Decision Brief\n\n"
        "## About the Person\n"
        f"{_format_profiles(profiles)}\n\n"
        "## The Decision\n"
        f"**{decision.title}**\n\n"
        "### Conversation Context\n"
        f"{_format_messages(messages)}\n\n"
        f"{format_summary(summary)}"
    )
