"""Load settings.yaml into typed dataclasses. Resolves API keys from the environment."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"

_COMPLETION_SDKS = {"openrouter", "anthropic", "gemini"}
_TTS_PROVIDERS = {"openai", "elevenlabs"}


class ConfigError(Exception):
    """Raised when settings.yaml is present but malformed."""


@dataclass
class CompletionConfig:
    sdk: str
    api_key_env: str
    default_model: str
    timeout_sec: int
    max_tokens: int
    temperature: float = 0.7
    base_url: str | None = None

    @property
    def api_key(self) -> str:
        return os.environ.get(self.api_key_env, "").strip()


@dataclass
class DebateConfig:
    max_retries: int = 2
    retry_backoff_sec: float = 1.0
    final_vote_chars: int = 200
    agent_models: dict[str, str] = field(default_factory=dict)

    def model_for(self, persona_key: str, default_model: str) -> str:
        """Per-persona model override, falling back to the default model."""
        return self.agent_models.get(persona_key) or default_model


@dataclass
class AudioConfig:
    provider: str = "elevenlabs"
    api_key_env: str = "ELEVENLABS_API_KEY"
    model: str = "tts-1"
    base_url: str | None = None
    voices: dict[str, str] = field(default_factory=dict)

    @property
    def api_key(self) -> str:
        return os.environ.get(self.api_key_env, "").strip()

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)


@dataclass
class PathsConfig:
    data_dir: Path
    db_path: Path
    personas_dir: Path
    profile_dir: Path
    output_dir: Path

    @property
    def audio_dir(self) -> Path:
        return self.data_dir / "debates"


@dataclass
class AppConfig:
    completion: CompletionConfig
    debate: DebateConfig
    audio: AudioConfig
    paths: PathsConfig


def _resolve(base: Path, raw: str | None, default: str) -> Path:
    value = Path(raw if raw else default).expanduser()
    return value if value.is_absolute() else base / value


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if the settings file is missing and ConfigError
    if a required section or value is malformed. A missing completion API key
    is only logged; callers decide whether it is fatal.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    try:
        completion_raw = raw["completion"]
        completion = CompletionConfig(
            sdk=str(completion_raw["sdk"]),
            api_key_env=str(completion_raw["api_key_env"]),
            default_model=str(completion_raw["default_model"]),
            timeout_sec=int(completion_raw["timeout_sec"]),
            max_tokens=int(completion_raw["max_tokens"]),
            temperature=float(completion_raw.get("temperature", 0.7)),
            base_url=completion_raw.get("base_url"),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid 'completion' section: {exc}") from exc

    if completion.sdk not in _COMPLETION_SDKS:
        raise ConfigError(
            f"Unknown completion sdk '{completion.sdk}', expected one of {sorted(_COMPLETION_SDKS)}"
        )

    debate_raw = raw.get("debate") or {}
    try:
        debate = DebateConfig(
            max_retries=int(debate_raw.get("max_retries", 2)),
            retry_backoff_sec=float(debate_raw.get("retry_backoff_sec", 1.0)),
            final_vote_chars=int(debate_raw.get("final_vote_chars", 200)),
            agent_models={k: str(v) for k, v in (debate_raw.get("agent_models") or {}).items() if v},
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid 'debate' section: {exc}") from exc

    if debate.max_retries < 0:
        raise ConfigError("debate.max_retries must be >= 0")

    audio_raw = raw.get("audio") or {}
    audio = AudioConfig(
        provider=str(audio_raw.get("provider", "elevenlabs")),
        api_key_env=str(audio_raw.get("api_key_env", "ELEVENLABS_API_KEY")),
        model=str(audio_raw.get("model", "tts-1")),
        base_url=audio_raw.get("base_url"),
        voices={k: str(v) for k, v in (audio_raw.get("voices") or {}).items()},
    )
    if audio.provider not in _TTS_PROVIDERS:
        raise ConfigError(
            f"Unknown audio provider '{audio.provider}', expected one of {sorted(_TTS_PROVIDERS)}"
        )

    paths_raw = raw.get("paths") or {}
    data_dir = Path(paths_raw.get("data_dir", "./data")).expanduser()
    paths = PathsConfig(
        data_dir=data_dir,
        db_path=_resolve(data_dir, paths_raw.get("db_path"), "committee.db"),
        personas_dir=_resolve(data_dir, paths_raw.get("personas_dir"), "agents"),
        profile_dir=_resolve(data_dir, paths_raw.get("profile_dir"), "profile"),
        output_dir=Path(paths_raw.get("output_dir", "./output")).expanduser(),
    )

    if completion.api_key:
        logger.info("Completion provider available: %s", completion.sdk)
    else:
        logger.info(
            "Completion provider has no API key: %s (set %s in .env)",
            completion.sdk,
            completion.api_key_env,
        )

    if audio.enabled:
        logger.info("Audio pipeline enabled: %s", audio.provider)
    else:
        logger.debug("Audio pipeline disabled: %s not set", audio.api_key_env)

    return AppConfig(completion=completion, debate=debate, audio=audio, paths=paths)
