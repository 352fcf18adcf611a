"""Model health checks: ping each model a debate will use before starting."""

import asyncio
import logging

from committee.providers.base import CompletionProvider

logger = logging.getLogger(__name__)

_PING_SYSTEM = "You are a health check."
_PING_PROMPT = "Reply with the word OK only."
_TIMEOUT_SEC = 15.0


async def _collect(provider: CompletionProvider, model: str) -> str:
    chunks = [chunk async for chunk in provider.stream(_PING_SYSTEM, _PING_PROMPT, model)]
    return "".join(chunks)


async def _check_one(provider: CompletionProvider, model: str) -> tuple[str, bool, str]:
    """Ping a single model. Returns (model, ok, error_message)."""
    try:
        await asyncio.wait_for(_collect(provider, model), timeout=_TIMEOUT_SEC)
        return model, True, ""
    except asyncio.TimeoutError:
        return model, False, f"timed out after {_TIMEOUT_SEC:.0f}s"
    except Exception as exc:
        return model, False, str(exc)


async def run_health_checks(
    provider: CompletionProvider,
    models: list[str],
) -> dict[str, tuple[bool, str]]:
    """Ping every distinct model in parallel.

    Returns:
        Dict mapping model -> (ok, error_message).
        error_message is "" when ok is True.
    """
    distinct = list(dict.fromkeys(models))
    results = await asyncio.gather(*(_check_one(provider, m) for m in distinct))
    for model, ok, err in results:
        if not ok:
            logger.debug("Health check failed for %s: %s", model, err)
    return {model: (ok, err) for model, ok, err in results}
