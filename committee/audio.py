"""Text-to-speech side pipeline: one mp3 per debate turn plus a playback manifest.

Audio runs beside the debate, never inside it. Each finished turn gets its own
asyncio task; the tasks are joined once when the debate completes and the
resulting segments are stitched into a manifest with cumulative start times.
A failed segment is logged and evented, never raised into the debate.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

import httpx
from openai import AsyncOpenAI, OpenAIError

from config.config_loader import AudioConfig
from committee.events import AUDIO_COMPLETE, SEGMENT_AUDIO_ERROR, SEGMENT_AUDIO_READY, Listener
from committee.models import AudioManifest, AudioSegment, DebateTurn
from committee.personas import PersonaRegistry
from committee.store import Store
from committee.transcript import normalize_spoken_text

logger = logging.getLogger(__name__)

ELEVENLABS_URL = "https://api.elevenlabs.io/v1/text-to-speech/{voice_id}"
ELEVENLABS_MODEL = "eleven_multilingual_v2"
MANIFEST_FILENAME = "manifest.json"

# 128 kbps CBR mp3
_BYTES_PER_SECOND = 16000
_TTS_TIMEOUT_SEC = 60.0


class SpeechError(Exception):
    """Raised when a TTS call fails or returns no audio."""


@dataclass(frozen=True)
class ElevenLabsVoice:
    voice_id: str
    stability: float
    similarity_boost: float
    style: float


OPENAI_VOICES: dict[str, str] = {
    "rationalist": "onyx",
    "advocate": "nova",
    "contrarian": "echo",
    "visionary": "shimmer",
    "pragmatist": "fable",
    "moderator": "alloy",
}

ELEVENLABS_VOICES: dict[str, ElevenLabsVoice] = {
    "rationalist": ElevenLabsVoice("onwK4e9ZLuTAKqWW03F9", 0.7, 0.8, 0.3),  # Daniel
    "advocate": ElevenLabsVoice("21m00Tcm4TlvDq8ikWAM", 0.4, 0.7, 0.6),  # Rachel
    "contrarian": ElevenLabsVoice("ErXwobaYiN019PkySvjV", 0.3, 0.7, 0.8),  # Antoni
    "visionary": ElevenLabsVoice("EXAVITQu4vr4xnSDxMaL", 0.6, 0.8, 0.4),  # Bella
    "pragmatist": ElevenLabsVoice("VR6AewLTigWG4xSOukaG", 0.6, 0.7, 0.3),  # Arnold
    "moderator": ElevenLabsVoice("2EiwWnXFnvU5JabPnv8n", 0.7, 0.9, 0.5),  # Clyde
}

_ELEVENLABS_FEMALE = ElevenLabsVoice("21m00Tcm4TlvDq8ikWAM", 0.5, 0.75, 0.5)
_ELEVENLABS_MALE = ElevenLabsVoice("onwK4e9ZLuTAKqWW03F9", 0.5, 0.75, 0.5)


def default_openai_voice(persona_key: str, voice_gender: str) -> str:
    if persona_key in OPENAI_VOICES:
        return OPENAI_VOICES[persona_key]
    return "nova" if voice_gender == "female" else "onyx"


def default_elevenlabs_voice(persona_key: str, voice_gender: str) -> ElevenLabsVoice:
    if persona_key in ELEVENLABS_VOICES:
        return ELEVENLABS_VOICES[persona_key]
    return _ELEVENLABS_FEMALE if voice_gender == "female" else _ELEVENLABS_MALE


def estimate_duration_ms(num_bytes: int) -> int:
    return num_bytes * 1000 // _BYTES_PER_SECOND


def segment_filename(index: int, agent: str, round_number: int) -> str:
    return f"{index + 1:03d}_{agent}_r{round_number}.mp3"


def build_manifest_from_segments(decision_id: str, segments: list[AudioSegment]) -> AudioManifest:
    """Sort segments by index and lay them end to end."""
    ordered = sorted(segments, key=lambda s: s.index)
    cumulative_ms = 0
    for seg in ordered:
        seg.start_ms = cumulative_ms
        cumulative_ms += seg.duration_ms
    return AudioManifest(decision_id=decision_id, segments=ordered, total_duration_ms=cumulative_ms)


def manifest_to_dict(manifest: AudioManifest) -> dict[str, Any]:
    return asdict(manifest)


class SpeechSynthesizer(ABC):
    """Turns text into mp3 bytes in a persona's voice."""

    def __init__(self, config: AudioConfig) -> None:
        self._config = config

    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    async def synthesize(self, text: str, persona_key: str, voice_gender: str) -> bytes:
        """Return mp3 bytes. Raises SpeechError on any failure."""
        ...

    async def aclose(self) -> None:
        """Release HTTP resources held by the synthesizer."""


class OpenAISpeech(SpeechSynthesizer):
    """OpenAI TTS via the openai SDK (any OpenAI-compatible base_url works)."""

    def __init__(self, config: AudioConfig) -> None:
        super().__init__(config)
        if not config.api_key:
            raise SpeechError(f"Missing API key: {config.api_key_env}")
        self._client = AsyncOpenAI(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=_TTS_TIMEOUT_SEC,
        )

    def name(self) -> str:
        return "openai"

    def voice_for(self, persona_key: str, voice_gender: str) -> str:
        return self._config.voices.get(persona_key) or default_openai_voice(persona_key, voice_gender)

    async def aclose(self) -> None:
        await self._client.close()

    async def synthesize(self, text: str, persona_key: str, voice_gender: str) -> bytes:
        try:
            response = await self._client.audio.speech.create(
                model=self._config.model,
                voice=self.voice_for(persona_key, voice_gender),
                input=text,
                response_format="mp3",
            )
        except OpenAIError as exc:
            raise SpeechError(f"OpenAI TTS request failed: {exc}") from exc
        return response.content


class ElevenLabsSpeech(SpeechSynthesizer):
    """ElevenLabs text-to-speech over its REST API with httpx."""

    def __init__(self, config: AudioConfig, client: httpx.AsyncClient | None = None) -> None:
        super().__init__(config)
        if not config.api_key:
            raise SpeechError(f"Missing API key: {config.api_key_env}")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=_TTS_TIMEOUT_SEC)

    def name(self) -> str:
        return "elevenlabs"

    def voice_for(self, persona_key: str, voice_gender: str) -> ElevenLabsVoice:
        voice = default_elevenlabs_voice(persona_key, voice_gender)
        custom_id = self._config.voices.get(persona_key)
        if custom_id:
            voice = ElevenLabsVoice(custom_id, voice.stability, voice.similarity_boost, voice.style)
        return voice

    async def synthesize(self, text: str, persona_key: str, voice_gender: str) -> bytes:
        voice = self.voice_for(persona_key, voice_gender)
        url = (self._config.base_url or ELEVENLABS_URL).format(voice_id=voice.voice_id)
        try:
            response = await self._client.post(
                url,
                headers={"xi-api-key": self._config.api_key},
                json={
                    "text": text,
                    "model_id": ELEVENLABS_MODEL,
                    "voice_settings": {
                        "stability": voice.stability,
                        "similarity_boost": voice.similarity_boost,
                        "style": voice.style,
                    },
                },
            )
        except httpx.HTTPError as exc:
            raise SpeechError(f"ElevenLabs request failed: {exc}") from exc
        if response.status_code >= 400:
            raise SpeechError(f"ElevenLabs API error ({response.status_code}): {response.text}")
        return response.content

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def build_synthesizer(config: AudioConfig) -> SpeechSynthesizer | None:
    """Return the configured synthesizer, or None when audio is disabled."""
    if not config.enabled:
        return None
    if config.provider == "openai":
        return OpenAISpeech(config)
    return ElevenLabsSpeech(config)


async def generate_segment_audio(
    synthesizer: SpeechSynthesizer,
    out_dir: Path,
    index: int,
    turn: DebateTurn,
    voice_gender: str,
) -> AudioSegment:
    """Synthesize one turn into ``out_dir`` and describe the file as a segment."""
    text = normalize_spoken_text(turn.content)
    audio = await synthesizer.synthesize(text, turn.agent, voice_gender)
    if not audio:
        raise SpeechError(f"{synthesizer.name()} returned no audio")

    out_dir.mkdir(parents=True, exist_ok=True)
    filename = segment_filename(index, turn.agent, turn.round_number)
    (out_dir / filename).write_bytes(audio)

    return AudioSegment(
        index=index,
        agent=turn.agent,
        round=turn.round_number,
        exchange=turn.exchange_number,
        text=text,
        audio_file=filename,
        duration_ms=estimate_duration_ms(len(audio)),
    )


class LiveAudio:
    """Per-run audio state: a segment counter and the list of spawned tasks."""

    def __init__(
        self,
        synthesizer: SpeechSynthesizer,
        decision_id: str,
        audio_root: Path,
        registry: PersonaRegistry,
        emit: Listener,
    ) -> None:
        self._synthesizer = synthesizer
        self._decision_id = decision_id
        self._registry = registry
        self._emit = emit
        self.out_dir = audio_root / decision_id
        self._counter = 0
        self._tasks: list[asyncio.Task[AudioSegment | None]] = []

    def spawn(self, turn: DebateTurn) -> None:
        """Start synthesizing a turn in the background."""
        index = self._counter
        self._counter += 1
        self._tasks.append(asyncio.create_task(self._run_segment(index, turn)))

    async def _run_segment(self, index: int, turn: DebateTurn) -> AudioSegment | None:
        persona = self._registry.get(turn.agent)
        voice_gender = persona.voice_gender if persona else "male"
        try:
            segment = await generate_segment_audio(self._synthesizer, self.out_dir, index, turn, voice_gender)
        except Exception as exc:
            logger.warning("Audio failed for segment %d (%s): %s", index, turn.agent, exc)
            self._emit(SEGMENT_AUDIO_ERROR, {
                "decision_id": self._decision_id,
                "segment_index": index,
                "error": str(exc),
            })
            return None

        self._emit(SEGMENT_AUDIO_READY, {
            "decision_id": self._decision_id,
            "segment_index": index,
            "agent": segment.agent,
            "round_number": segment.round,
            "exchange_number": segment.exchange,
            "audio_file": segment.audio_file,
            "duration_ms": segment.duration_ms,
            "audio_dir": str(self.out_dir),
        })
        return segment

    async def finish(self, store: Store) -> AudioManifest | None:
        """Join every task, then persist and announce the manifest.

        Returns None when no segment succeeded.
        """
        tasks, self._tasks = self._tasks, []
        results = await asyncio.gather(*tasks)
        segments = [seg for seg in results if seg is not None]
        if not segments:
            logger.info("No audio segments produced for decision %s", self._decision_id)
            return None

        manifest = build_manifest_from_segments(self._decision_id, segments)
        payload = manifest_to_dict(manifest)
        self.out_dir.mkdir(parents=True, exist_ok=True)
        (self.out_dir / MANIFEST_FILENAME).write_text(json.dumps(payload, indent=2), encoding="utf-8")
        store.save_debate_audio(self._decision_id, payload, manifest.total_duration_ms, str(self.out_dir))

        self._emit(AUDIO_COMPLETE, {"decision_id": self._decision_id, "manifest": payload})
        logger.info(
            "Audio manifest saved for %s: %d segments, %d ms",
            self._decision_id, len(segments), manifest.total_duration_ms,
        )
        return manifest

    async def cancel(self) -> None:
        """Cancel every pending segment and wait for the tasks to unwind."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
