"""Incremental merge of partial updates into a decision's structured summary."""

import copy
import json
import logging
from typing import Any

logger = logging.getLogger(__name__)

# Keyed list sections and the field that identifies an entry in each.
KEYED_SECTIONS: dict[str, str] = {
    "options": "label",
    "variables": "label",
    "pros_cons": "option",
}

# Update keys that describe the decision rather than its summary.
_NON_SUMMARY_KEYS = {"status"}


def _coerce_existing(existing: str | dict | None) -> dict[str, Any]:
    """Turn stored summary data into a dict. Anything unusable becomes {}."""
    if existing is None:
        return {}
    if isinstance(existing, str):
        try:
            existing = json.loads(existing) if existing.strip() else {}
        except ValueError:
            logger.warning("Existing summary is not valid JSON, starting from empty")
            return {}
    if not isinstance(existing, dict):
        logger.warning("Existing summary is %s, not an object; starting from empty", type(existing).__name__)
        return {}
    return copy.deepcopy(existing)


def merge_by_key(existing: list, new_items: list, key: str) -> list:
    """Merge two lists of objects on ``key``.

    An item in ``new_items`` whose key matches an existing item replaces it in
    place; otherwise it is appended. Items without a string key are appended.
    """
    result = list(existing)
    for item in new_items:
        item_key = item.get(key) if isinstance(item, dict) else None
        if not isinstance(item_key, str):
            result.append(item)
            continue
        for pos, current in enumerate(result):
            if isinstance(current, dict) and current.get(key) == item_key:
                result[pos] = item
                break
        else:
            result.append(item)
    return result


def merge_summary(existing: str | dict | None, update: dict[str, Any]) -> dict[str, Any]:
    """Merge ``update`` into ``existing`` and return the new summary.

    Keyed sections merge entry by entry (see KEYED_SECTIONS). ``recommendation``
    and any other top-level key replace the prior value wholesale. Malformed
    prior state is treated as an empty summary, so this never raises on it.
    """
    merged = _coerce_existing(existing)
    update = copy.deepcopy(update or {})

    for section, key in KEYED_SECTIONS.items():
        new_items = update.get(section)
        if not isinstance(new_items, list):
            continue
        current = merged.get(section)
        if not isinstance(current, list):
            current = []
        merged[section] = merge_by_key(current, new_items, key)

    for name, value in update.items():
        if name in KEYED_SECTIONS or name in _NON_SUMMARY_KEYS:
            continue
        merged[name] = value

    return merged


def has_debate_inputs(summary: dict[str, Any]) -> bool:
    """True when the summary has at least one option and one variable."""
    options = summary.get("options")
    variables = summary.get("variables")
    return bool(
        isinstance(options, list) and options
        and isinstance(variables, list) and variables
    )
