"""Decision chat: the assistant interviews the user and fills in the summary.

The model works through function calls. It reads and edits the profile files,
and it merges what it has learned into the decision summary with
``update_decision_summary``. A reply may take several completion calls: after
each batch of tool calls the results are appended to the conversation and the
model continues until it answers without calling a tool.
"""

import json
import logging
from pathlib import Path
from typing import Any

from committee import decisions
from committee.events import CHAT_TOKEN, CHAT_TOOL_USE, Listener
from committee.profile import delete_profile_file, read_all_profiles, write_profile_file
from committee.providers.base import CompletionProvider, ToolCall
from committee.store import Store, StoreError

logger = logging.getLogger(__name__)

MAX_TOOL_ROUNDS = 8

CHAT_SYSTEM_PROMPT = """You are a personal decision-making assistant helping the user work through one specific decision.

Start by reading the user's profile files. They hold what is already known about the person: values, priorities, constraints, finances, career, family and goals.

Then help them think the decision through:
1. Understand it. Surface every option, including ones they have not named. Ask about timeline and reversibility.
2. Map the variables: financial, career, emotional, relational, health. Look for second-order effects, blind spots and unstated assumptions.
3. Weigh each option against their profile, their constraints and their tolerance for risk.
4. When you have enough, give a clear recommendation with a confidence rating (high, medium or low) and say what they would give up.

After each significant exchange call `update_decision_summary` with the options, variables, pros and cons you have identified so far. Update it progressively; do not wait until the end.

Ask one or two focused questions at a time. Push back on framings that are too narrow and name cognitive biases when you see them. When you learn something lasting about the user, save it with `write_profile_file`."""

_SUMMARY_PARAMETERS: dict[str, Any] = {
    "type": "object",
    "properties": {
        "options": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {"label": {"type": "string"}, "description": {"type": "string"}},
                "required": ["label"],
            },
        },
        "variables": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "label": {"type": "string"},
                    "value": {"type": "string"},
                    "impact": {"type": "string"},
                },
                "required": ["label", "value"],
            },
        },
        "pros_cons": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "option": {"type": "string"},
                    "pros": {"type": "array", "items": {"type": "string"}},
                    "cons": {"type": "array", "items": {"type": "string"}},
                    "alignment_score": {"type": "integer"},
                    "alignment_reasoning": {"type": "string"},
                },
                "required": ["option"],
            },
        },
        "recommendation": {
            "type": "object",
            "properties": {
                "choice": {"type": "string"},
                "confidence": {"type": "string"},
                "reasoning": {"type": "string"},
                "tradeoffs": {"type": "string"},
                "next_steps": {"type": "array", "items": {"type": "string"}},
            },
            "required": ["choice", "confidence", "reasoning"],
        },
        "status": {"type": "string", "enum": list(decisions.SUMMARY_STATUSES)},
    },
}


def _function(name: str, description: str, parameters: dict[str, Any]) -> dict[str, Any]:
    return {"type": "function", "function": {"name": name, "description": description, "parameters": parameters}}


def chat_tools() -> list[dict[str, Any]]:
    """Function definitions offered to the model, in OpenAI tool format."""
    filename = {"type": "string", "description": "Profile filename, e.g. 'career.md'"}
    return [
        _function(
            "read_profile_files",
            "Read every profile file. Call this at the start of a conversation.",
            {"type": "object", "properties": {}, "required": []},
        ),
        _function(
            "write_profile_file",
            "Create or replace a profile file with what you learned about the user.",
            {
                "type": "object",
                "properties": {"filename": filename, "content": {"type": "string"}},
                "required": ["filename", "content"],
            },
        ),
        _function(
            "delete_profile_file",
            "Delete a profile file that is obsolete or was merged into another.",
            {"type": "object", "properties": {"filename": filename}, "required": ["filename"]},
        ),
        _function(
            "update_decision_summary",
            "Merge options, variables, pros/cons, a recommendation or a status into the decision summary.",
            _SUMMARY_PARAMETERS,
        ),
    ]


def execute_tool(
    call: ToolCall,
    store: Store,
    decision_id: str,
    profile_dir: Path,
    emit: Listener | None = None,
) -> str:
    """Run one tool call and return the text handed back to the model.

    Failures are reported to the model as text, never raised.
    """
    try:
        args = json.loads(call.arguments) if call.arguments.strip() else {}
    except ValueError:
        logger.warning("Tool %s sent invalid JSON arguments: %r", call.name, call.arguments[:200])
        args = {}
    if not isinstance(args, dict):
        args = {}

    if call.name == "read_profile_files":
        return json.dumps(read_all_profiles(profile_dir))

    if call.name == "write_profile_file":
        name = args.get("filename") or "unknown.md"
        try:
            write_profile_file(profile_dir, name, args.get("content") or "")
        except (ValueError, OSError) as exc:
            return f"Error writing profile: {exc}"
        return f"Successfully wrote {name}"

    if call.name == "delete_profile_file":
        name = args.get("filename") or ""
        try:
            deleted = delete_profile_file(profile_dir, name)
        except (ValueError, OSError) as exc:
            return f"Error deleting profile: {exc}"
        return f"Successfully deleted {name}" if deleted else f"File {name} does not exist"

    if call.name == "update_decision_summary":
        try:
            decisions.apply_summary_update(store, decision_id, args, emit=emit)
        except (StoreError, ValueError) as exc:
            return f"Error saving summary: {exc}"
        return "Decision summary updated successfully."

    return f"Unknown tool: {call.name}"


def _assistant_tool_message(text: str, calls: list[ToolCall]) -> dict[str, Any]:
    return {
        "role": "assistant",
        "content": text or None,
        "tool_calls": [
            {"id": c.id, "type": "function", "function": {"name": c.name, "arguments": c.arguments}}
            for c in calls
        ],
    }


async def send_message(
    store: Store,
    provider: CompletionProvider,
    model: str,
    decision_id: str,
    text: str,
    profile_dir: Path,
    emit: Listener | None = None,
    max_tool_rounds: int = MAX_TOOL_ROUNDS,
) -> str:
    """Send one user message in the decision's conversation and return the reply.

    The user message is stored before the model is called; the assistant
    reply is stored once the model stops calling tools.

    Raises:
        StoreError: If the decision does not exist.
        ProviderError: If a completion call fails.
    """
    decision = store.get_decision(decision_id)
    if decision is None:
        raise StoreError(f"Decision not found: {decision_id}")

    store.add_message(decision.conversation_id, "user", text)
    history: list[dict[str, Any]] = [
        {"role": m.role, "content": m.content} for m in store.get_messages(decision.conversation_id)
    ]
    tools = chat_tools()
    parts: list[str] = []

    for _ in range(max_tool_rounds):
        chunks: list[str] = []
        calls: list[ToolCall] = []
        async for item in provider.stream_chat(CHAT_SYSTEM_PROMPT, history, model, tools):
            if isinstance(item, ToolCall):
                calls.append(item)
                if emit is not None:
                    emit(CHAT_TOOL_USE, {"decision_id": decision_id, "tool": item.name})
            else:
                chunks.append(item)
                if emit is not None:
                    emit(CHAT_TOKEN, {"decision_id": decision_id, "token": item})

        round_text = "".join(chunks)
        parts.append(round_text)
        if not calls:
            break

        history.append(_assistant_tool_message(round_text, calls))
        for call in calls:
            logger.info("Chat tool call: %s", call.name)
            result = execute_tool(call, store, decision_id, profile_dir, emit)
            history.append({"role": "tool", "tool_call_id": call.id, "content": result})
    else:
        logger.warning("Chat for %s stopped after %d tool rounds", decision_id, max_tool_rounds)

    reply = "".join(parts)
    store.add_message(decision.conversation_id, "assistant", reply)
    return reply
