"""Top-level debate state machine.

One run per decision: compile the brief, run the rounds in order, let the
moderator synthesize, merge the result into the decision summary, then close
out the audio pipeline. Every step checks the run's cancellation token first.
A cancelled run reports "Debate cancelled" and, once the decision has been
marked as debating, resets it to 'analyzing'. A fatal failure resets it with
its own reason. The task that runs the debate never raises for either.
"""

import asyncio
import copy
import logging
from typing import Any

from config.config_loader import AppConfig
from committee.audio import LiveAudio, SpeechSynthesizer
from committee.brief import compile_brief
from committee.cancellation import CancellationRegistry, CancellationToken
from committee.debate import DebateCancelled, DebateContext, run_round
from committee.decisions import DebateStartError, validate_ready_for_debate
from committee.events import (
    CANCELLED_REASON,
    DEBATE_COMPLETE,
    DEBATE_ERROR,
    DEBATE_STARTED,
    EventEmitter,
    Listener,
)
from committee.models import (
    ROUND_CLOSING,
    ROUND_EXCHANGE,
    ROUND_OPENING,
    STATUS_ANALYZING,
    STATUS_RECOMMENDED,
    Persona,
)
from committee.personas import PersonaRegistry, load_registry
from committee.profile import read_all_profiles
from committee.providers.base import CompletionProvider
from committee.store import Store
from committee.synthesis import apply_synthesis, run_moderator

logger = logging.getLogger(__name__)

# (round, exchange) pairs of the full debate; quick mode keeps only the opening.
FULL_SCHEDULE: tuple[tuple[int, int], ...] = (
    (ROUND_OPENING, 1),
    (ROUND_EXCHANGE, 1),
    (ROUND_EXCHANGE, 2),
    (ROUND_CLOSING, 1),
)
QUICK_SCHEDULE: tuple[tuple[int, int], ...] = ((ROUND_OPENING, 1),)


class DebateOrchestrator:
    """Starts, runs and cancels committee debates against one store."""

    def __init__(
        self,
        store: Store,
        provider: CompletionProvider,
        config: AppConfig,
        emit: Listener | None = None,
        registry: PersonaRegistry | None = None,
        synthesizer: SpeechSynthesizer | None = None,
        cancellations: CancellationRegistry | None = None,
    ) -> None:
        self._store = store
        self._provider = provider
        self._config = config
        if isinstance(emit, EventEmitter):
            self._emitter = emit
        else:
            self._emitter = EventEmitter(*([emit] if emit is not None else []))
        self._registry = registry
        self._synthesizer = synthesizer
        self.cancellations = cancellations or CancellationRegistry()

    @property
    def emitter(self) -> EventEmitter:
        return self._emitter

    def _load_registry(self) -> PersonaRegistry:
        if self._registry is not None:
            return self._registry
        return load_registry(self._config.paths.personas_dir)

    def validate(self, decision_id: str, agent_keys: list[str] | None = None) -> tuple[PersonaRegistry, list[Persona]]:
        """Check a debate could start now. Returns the roster it would use.

        Raises:
            DebateStartError: If the decision is missing or not ready, no
                debaters remain after selection, or a run is already active.
        """
        validate_ready_for_debate(self._store.get_decision(decision_id))
        registry = self._load_registry()
        debaters = registry.select_debaters(agent_keys)
        if not debaters:
            raise DebateStartError("No debaters selected for the debate")
        if self.cancellations.is_active(decision_id):
            raise DebateStartError("A debate is already running for this decision")
        return registry, debaters

    def start(
        self,
        decision_id: str,
        quick_mode: bool = False,
        agent_keys: list[str] | None = None,
    ) -> asyncio.Task:
        """Validate, register the cancellation token and launch the run.

        Must be called from a running event loop.

        Raises:
            DebateStartError: Before any state is touched.
        """
        registry, debaters = self.validate(decision_id, agent_keys)
        try:
            token = self.cancellations.register(decision_id)
        except RuntimeError as exc:
            raise DebateStartError(str(exc)) from exc

        config = copy.deepcopy(self._config)
        logger.info(
            "Starting %s debate for %s with %s",
            "quick" if quick_mode else "full", decision_id, ", ".join(p.key for p in debaters),
        )
        return asyncio.create_task(
            self.run(decision_id, quick_mode, registry, debaters, config, token),
            name=f"debate-{decision_id}",
        )

    def cancel(self, decision_id: str) -> bool:
        """Request cancellation. Returns False when no run is active."""
        return self.cancellations.cancel(decision_id)

    def _emit(self, name: str, payload: dict[str, Any]) -> None:
        self._emitter.emit(name, payload)

    def _reset_to_analyzing(self, decision_id: str) -> None:
        try:
            self._store.update_decision_status(decision_id, STATUS_ANALYZING)
        except Exception:
            logger.exception("Could not reset decision %s to analyzing", decision_id)

    async def run(
        self,
        decision_id: str,
        quick_mode: bool,
        registry: PersonaRegistry,
        debaters: list[Persona],
        config: AppConfig,
        token: CancellationToken,
    ) -> None:
        """Run a registered debate to completion, cancellation or failure."""
        ctx: DebateContext | None = None
        audio: LiveAudio | None = None
        if self._synthesizer is not None:
            audio = LiveAudio(self._synthesizer, decision_id, config.paths.audio_dir, registry, self._emit)

        try:
            ctx = self._begin(decision_id, registry, debaters, config, token, audio)

            for round_number, exchange_number in (QUICK_SCHEDULE if quick_mode else FULL_SCHEDULE):
                await run_round(ctx, round_number, exchange_number)

            ctx.check_cancelled()
            moderator_turn = await run_moderator(ctx)
            ctx.check_cancelled()
            apply_synthesis(ctx, moderator_turn.content)

            self._store.mark_debate_completed(decision_id)
            self._store.update_decision_status(decision_id, STATUS_RECOMMENDED)
            self._emit(DEBATE_COMPLETE, {"decision_id": decision_id})
            logger.info("Debate complete for %s", decision_id)

            if audio is not None:
                await self._finish_audio(audio)
        except DebateCancelled:
            logger.info("Debate cancelled for %s", decision_id)
            if audio is not None:
                await audio.cancel()
            if ctx is not None:
                self._reset_to_analyzing(decision_id)
            self._emit(DEBATE_ERROR, {"decision_id": decision_id, "error": CANCELLED_REASON})
        except asyncio.CancelledError:
            logger.info("Debate task cancelled for %s", decision_id)
            if audio is not None:
                await audio.cancel()
            if ctx is not None:
                self._reset_to_analyzing(decision_id)
            self._emit(DEBATE_ERROR, {"decision_id": decision_id, "error": CANCELLED_REASON})
            raise
        except Exception as exc:
            logger.error("Debate failed for %s: %s", decision_id, exc)
            if audio is not None:
                await audio.cancel()
            self._reset_to_analyzing(decision_id)
            self._emit(DEBATE_ERROR, {"decision_id": decision_id, "error": str(exc)})
        finally:
            self.cancellations.release(decision_id, token)

    def _begin(
        self,
        decision_id: str,
        registry: PersonaRegistry,
        debaters: list[Persona],
        config: AppConfig,
        token: CancellationToken,
        audio: LiveAudio | None,
    ) -> DebateContext:
        """Compile and persist the brief, clear old turns, mark the decision debating."""
        if token.cancelled:
            raise DebateCancelled()

        decision = self._store.get_decision(decision_id)
        if decision is None:
            raise DebateStartError("Decision not found")
        messages = self._store.get_messages(decision.conversation_id)
        profiles = read_all_profiles(config.paths.profile_dir)
        brief = compile_brief(decision, messages, profiles)

        self._store.delete_debate_turns(decision_id)
        self._store.update_debate_brief(decision_id, brief)
        self._store.mark_debate_started(decision_id)
        self._emit(DEBATE_STARTED, {"decision_id": decision_id})

        return DebateContext(
            decision_id=decision_id,
            brief=brief,
            store=self._store,
            provider=self._provider,
            registry=registry,
            debaters=debaters,
            settings=config.debate,
            default_model=config.completion.default_model,
            token=token,
            emit=self._emit,
            audio=audio,
        )

    async def _finish_audio(self, audio: LiveAudio) -> None:
        try:
            await audio.finish(self._store)
        except Exception:
            logger.exception("Audio manifest failed; the debate result is unaffected")
