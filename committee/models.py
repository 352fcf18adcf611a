"""Plain dataclasses for the decision committee. No I/O."""

import json
import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

# Fixed round coordinates
ROUND_OPENING = 1
ROUND_EXCHANGE = 2
ROUND_CLOSING = 3
ROUND_SYNTHESIS = 99

STATUS_EXPLORING = "exploring"
STATUS_ANALYZING = "analyzing"
STATUS_DEBATING = "debating"
STATUS_RECOMMENDED = "recommended"
STATUS_DECIDED = "decided"
STATUS_REVIEWED = "reviewed"

DECISION_STATUSES = (
    STATUS_EXPLORING,
    STATUS_ANALYZING,
    STATUS_DEBATING,
    STATUS_RECOMMENDED,
    STATUS_DECIDED,
    STATUS_REVIEWED,
)

ROLE_DEBATER = "debater"
ROLE_MODERATOR = "moderator"


@dataclass
class Conversation:
    id: str
    title: str
    type: str              # "chat" or "decision"
    created_at: str
    updated_at: str


@dataclass
class Message:
    id: str
    conversation_id: str
    role: str              # "user" or "assistant"
    content: str
    created_at: str


@dataclass
class Decision:
    id: str
    conversation_id: str
    title: str
    status: str
    created_at: str
    updated_at: str
    summary_json: str | None = None
    user_choice: str | None = None
    user_choice_reasoning: str | None = None
    outcome: str | None = None
    outcome_date: str | None = None
    debate_brief: str | None = None
    debate_started_at: str | None = None
    debate_completed_at: str | None = None

    @property
    def summary(self) -> dict:
        """Parsed summary. Missing or corrupt JSON reads as an empty summary."""
        if not self.summary_json:
            return {}
        try:
            parsed = json.loads(self.summary_json)
        except ValueError:
            logger.warning("Decision %s has unparseable summary JSON", self.id)
            return {}
        return parsed if isinstance(parsed, dict) else {}


@dataclass(frozen=True)
class Persona:
    key: str
    label: str
    role: str              # "debater" or "moderator"
    prompt: str
    voice_gender: str = "male"
    emoji: str = ""
    built_in: bool = False
    order: int = 100

    @property
    def is_debater(self) -> bool:
        return self.role == ROLE_DEBATER


@dataclass
class DebateTurn:
    id: str
    decision_id: str
    round_number: int
    exchange_number: int
    agent: str             # persona key
    content: str
    created_at: str


@dataclass
class AudioSegment:
    index: int
    agent: str
    round: int
    exchange: int
    text: str
    audio_file: str
    duration_ms: int
    start_ms: int = 0


@dataclass
class AudioManifest:
    decision_id: str
    segments: list[AudioSegment] = field(default_factory=list)
    total_duration_ms: int = 0
