"""Debate rounds: sequential persona turns with retries, streaming and placeholders."""

import asyncio
import logging
from dataclasses import dataclass

from config.config_loader import DebateConfig
from committee.audio import LiveAudio
from committee.cancellation import CancellationToken
from committee.events import CANCELLED_REASON, ROUND_COMPLETE, TURN_COMPLETE, TURN_TOKEN, Listener
from committee.models import DebateTurn, Persona
from committee.personas import PersonaRegistry, system_prompt_for
from committee.prompts import round_prompt
from committee.providers.base import CompletionProvider, ProviderError
from committee.store import Store
from committee.transcript import format_transcript, normalize_spoken_text

logger = logging.getLogger(__name__)

ERROR_AGENT = "error"


class PersonaCallError(Exception):
    """A persona turn failed on every attempt."""

    def __init__(self, label: str, attempts: int, last_error: Exception) -> None:
        self.label = label
        self.attempts = attempts
        self.last_error = last_error
        reason = last_error.user_message if isinstance(last_error, ProviderError) else str(last_error)
        super().__init__(f"{label} failed after {attempts} retries: {reason}")


class DebateCancelled(Exception):
    """The run's cancellation token was set."""

    def __init__(self) -> None:
        super().__init__(CANCELLED_REASON)


@dataclass
class DebateContext:
    """Everything a round needs, fixed for the lifetime of one run."""

    decision_id: str
    brief: str
    store: Store
    provider: CompletionProvider
    registry: PersonaRegistry
    debaters: list[Persona]
    settings: DebateConfig
    default_model: str
    token: CancellationToken
    emit: Listener
    audio: LiveAudio | None = None

    def check_cancelled(self) -> None:
        if self.token.cancelled:
            raise DebateCancelled()

    def model_for(self, persona: Persona) -> str:
        return self.settings.model_for(persona.key, self.default_model)


async def call_persona_with_retry(
    provider: CompletionProvider,
    persona: Persona,
    system_prompt: str,
    user_prompt: str,
    model: str,
    *,
    decision_id: str,
    round_number: int,
    exchange_number: int,
    emit: Listener,
    max_retries: int = 2,
    backoff_sec: float = 1.0,
) -> str:
    """Stream one persona turn, retrying up to ``max_retries`` extra times.

    Each chunk is emitted as a token event. Tokens from a failed attempt stay
    emitted; listeners see the retry start from scratch.

    Raises:
        PersonaCallError: When every attempt failed.
    """
    attempts = max_retries + 1
    last_error: Exception | None = None

    for attempt in range(1, attempts + 1):
        chunks: list[str] = []
        try:
            async for chunk in provider.stream(system_prompt, user_prompt, model):
                chunks.append(chunk)
                emit(TURN_TOKEN, {
                    "decision_id": decision_id,
                    "round_number": round_number,
                    "exchange_number": exchange_number,
                    "agent": persona.key,
                    "token": chunk,
                })
            return "".join(chunks)
        except ProviderError as exc:
            last_error = exc
        except Exception as exc:
            last_error = ProviderError(provider.name(), f"Unexpected error: {exc}")

        logger.warning(
            "%s attempt %d/%d failed in round %d.%d: %s",
            persona.label, attempt, attempts, round_number, exchange_number, last_error,
        )
        if attempt < attempts:
            await asyncio.sleep(backoff_sec)

    raise PersonaCallError(persona.label, attempts, last_error)


async def run_round(ctx: DebateContext, round_number: int, exchange_number: int) -> list[DebateTurn]:
    """Run one round: every debater speaks once, in roster order.

    Each debater sees the transcript so far, including the turns already
    taken earlier in this round.

    A debater that exhausts its retries is replaced by a placeholder event and
    the round moves on.

    Raises:
        DebateCancelled: If the token is set before the round or between turns.
    """
    ctx.check_cancelled()

    logger.info(
        "Starting round %d.%d with %d debaters", round_number, exchange_number, len(ctx.debaters),
    )

    turns: list[DebateTurn] = []
    for persona in ctx.debaters:
        ctx.check_cancelled()
        transcript = format_transcript(ctx.store.get_debate_turns(ctx.decision_id), ctx.registry.all)
        user_prompt = round_prompt(ctx.brief, transcript, round_number, exchange_number)
        try:
            text = await call_persona_with_retry(
                ctx.provider,
                persona,
                system_prompt_for(persona),
                user_prompt,
                ctx.model_for(persona),
                decision_id=ctx.decision_id,
                round_number=round_number,
                exchange_number=exchange_number,
                emit=ctx.emit,
                max_retries=ctx.settings.max_retries,
                backoff_sec=ctx.settings.retry_backoff_sec,
            )
        except PersonaCallError as exc:
            logger.error("Agent call failed: %s", exc)
            ctx.emit(TURN_COMPLETE, {
                "decision_id": ctx.decision_id,
                "round_number": round_number,
                "exchange_number": exchange_number,
                "agent": ERROR_AGENT,
                "content": f"An agent was unable to participate: {exc}",
            })
            continue

        content = normalize_spoken_text(text)
        turn = ctx.store.save_debate_turn(ctx.decision_id, round_number, exchange_number, persona.key, content)
        ctx.emit(TURN_COMPLETE, {
            "decision_id": ctx.decision_id,
            "round_number": round_number,
            "exchange_number": exchange_number,
            "agent": persona.key,
            "content": content,
        })
        if ctx.audio is not None:
            ctx.audio.spawn(turn)
        turns.append(turn)

    ctx.emit(ROUND_COMPLETE, {
        "decision_id": ctx.decision_id,
        "round_number": round_number,
        "exchange_number": exchange_number,
    })
    logger.info(
        "Round %d.%d complete: %d/%d debaters responded",
        round_number, exchange_number, len(turns), len(ctx.debaters),
    )
    return turns
