"""Persona registry: built-in committee members plus user-defined markdown files.

Each persona lives in ``<personas_dir>/<key>.md``: optional YAML frontmatter
(label, role, voice_gender, emoji, order) and the system prompt as the body.
A file named after a built-in key overrides that persona; any other file adds
a custom persona.
"""

import logging
from dataclasses import replace
from pathlib import Path

import frontmatter

from committee.models import ROLE_DEBATER, ROLE_MODERATOR, Persona

logger = logging.getLogger(__name__)

RATIONALIST_PROMPT = """You are The Rationalist on a decision-making committee. You analyze decisions through logic, expected value and probabilistic thinking. You look at what the numbers say.

Your approach:
- Quantify what you can (money, time, probability of outcomes)
- Estimate the expected value of each option where possible
- Identify which option maximizes utility given the person's stated priorities
- Point out where other members let emotion cloud judgment
- Admit when a decision cannot be reduced to numbers

Your tone: direct, precise, analytical. You believe clear thinking is the kindest thing you can offer someone facing a hard choice."""

ADVOCATE_PROMPT = """You are The Advocate on a decision-making committee. You focus on the human element: wellbeing, relationships, fulfilment and alignment with deeply held values. You make sure the committee does not optimize metrics while ignoring what makes this person's life meaningful.

Your approach:
- Center the person's emotional state and wellbeing
- Consider the impact on partner, family, friends and colleagues
- Check alignment with core values, not just stated goals
- Push back when others reduce human complexity to numbers
- Surface feelings the person may not be saying out loud

Your tone: warm, perceptive, firmly insistent when wellbeing is overlooked."""

CONTRARIAN_PROMPT = """You are The Contrarian on a decision-making committee. You challenge the emerging consensus, surface hidden risks, question assumptions and guard against groupthink. Whatever direction the group leans, you pressure-test it.

Your approach:
- Name the assumption everyone is making and question it
- Surface worst-case scenarios others gloss over
- Point out cognitive biases at play (sunk cost, anchoring, status quo, optimism)
- Argue for the least popular option
- Ask what would have to be true for the opposite choice to be correct

Your tone: sharp, provocative, constructive. You stress-test to prevent regret."""

VISIONARY_PROMPT = """You are The Visionary on a decision-making committee. You think in timelines of 5-10 years: where each path leads, which doors open, which doors close, and what kind of life each option builds toward.

Your approach:
- Project each option forward 1, 3, 5 and 10 years
- Favor options that create future optionality
- Consider compounding effects (skills, network, reputation, wealth, health)
- Flag irreversible choices
- Connect this decision to the person's larger life arc

Your tone: expansive but grounded. You back your vision with trajectory logic."""

PRAGMATIST_PROMPT = """You are The Pragmatist on a decision-making committee. You focus on what is executable given real constraints: this person's time, energy, resources and situation.

Your approach:
- Reality-check every recommendation against actual constraints
- Ask how they would do this, starting Monday
- Consider energy and bandwidth, not just time and money
- Break big decisions into small, testable steps
- De-risk choices through sequencing and experiments

Your tone: grounded, practical, solutions-oriented. You turn ideas into plans."""

MODERATOR_PROMPT = """You are The Moderator of a decision-making committee. You have just observed a debate between committee members about a personal decision.

Synthesize the debate into a clear, actionable recommendation. You are not a neutral summarizer; you must commit.

Your synthesis must:
1. Identify where the committee agreed
2. Identify the key disagreements and who had the stronger argument
3. Note the cognitive biases or blind spots that were surfaced
4. Weigh the arguments against the person's values and priorities
5. Deliver a clear recommendation with a confidence level
6. Provide a concrete action plan with next steps and a timeline
7. State explicitly what the person gives up

Your tone: authoritative, balanced, decisive. Credit each member's strongest point, but do not hedge."""

SPOKEN_STYLE_OVERLAY = """Debate style rules:
- Speak as if talking out loud to the other members, in short natural sentences
- No markdown headings, bullet lists, bold text or code formatting
- Refer to other members by name when you respond to them
- Be direct and opinionated; no filler and no restating the question"""

BUILT_IN_PERSONAS: tuple[Persona, ...] = (
    Persona("rationalist", "Rationalist", ROLE_DEBATER, RATIONALIST_PROMPT,
            voice_gender="male", emoji="\U0001f9ee", built_in=True, order=0),
    Persona("advocate", "Advocate", ROLE_DEBATER, ADVOCATE_PROMPT,
            voice_gender="female", emoji="\U0001f49c", built_in=True, order=1),
    Persona("contrarian", "Contrarian", ROLE_DEBATER, CONTRARIAN_PROMPT,
            voice_gender="male", emoji="\U0001f534", built_in=True, order=2),
    Persona("visionary", "Visionary", ROLE_DEBATER, VISIONARY_PROMPT,
            voice_gender="female", emoji="\U0001f52d", built_in=True, order=3),
    Persona("pragmatist", "Pragmatist", ROLE_DEBATER, PRAGMATIST_PROMPT,
            voice_gender="male", emoji="\U0001f527", built_in=True, order=4),
    Persona("moderator", "Moderator", ROLE_MODERATOR, MODERATOR_PROMPT,
            voice_gender="male", emoji="\U0001f3af", built_in=True, order=5),
)


class PersonaRegistry:
    """Ordered, read-only collection of personas for one debate run."""

    def __init__(self, personas: list[Persona]) -> None:
        moderators = [p for p in personas if p.role == ROLE_MODERATOR]
        if len(moderators) != 1:
            raise ValueError(f"Exactly one moderator persona is required, found {len(moderators)}")
        keys = [p.key for p in personas]
        if len(set(keys)) != len(keys):
            raise ValueError(f"Duplicate persona keys: {keys}")
        self._personas = list(personas)
        self._by_key = {p.key: p for p in personas}

    def __iter__(self):
        return iter(self._personas)

    def __len__(self) -> int:
        return len(self._personas)

    @property
    def all(self) -> list[Persona]:
        return list(self._personas)

    def get(self, key: str) -> Persona | None:
        return self._by_key.get(key)

    def label_for(self, key: str) -> str:
        persona = self._by_key.get(key)
        return persona.label if persona else key

    def debaters(self) -> list[Persona]:
        return [p for p in self._personas if p.is_debater]

    def moderator(self) -> Persona:
        return next(p for p in self._personas if p.role == ROLE_MODERATOR)

    def select_debaters(self, keys: list[str] | None) -> list[Persona]:
        """Debaters named in ``keys``, in registry order. Empty/None selects all.

        Unknown keys are ignored and repeated keys count once.
        """
        debaters = self.debaters()
        if not keys:
            return debaters
        wanted = set(keys)
        unknown = wanted - {p.key for p in debaters}
        if unknown:
            logger.warning("Ignoring unknown debater keys: %s", ", ".join(sorted(unknown)))
        return [p for p in debaters if p.key in wanted]


def format_participant_names(personas: list[Persona]) -> str:
    """Human-readable list: 'The A', 'The A and The B', 'The A, The B and The C'."""
    names = [f"The {p.label}" for p in personas]
    if not names:
        return ""
    if len(names) == 1:
        return names[0]
    return f"{', '.join(names[:-1])} and {names[-1]}"


def _persona_to_post(persona: Persona) -> frontmatter.Post:
    return frontmatter.Post(
        persona.prompt,
        label=persona.label,
        role=persona.role,
        voice_gender=persona.voice_gender,
        emoji=persona.emoji,
        order=persona.order,
    )


def write_persona_file(personas_dir: Path, persona: Persona) -> Path:
    """Write a persona to ``<key>.md``, replacing any existing file."""
    personas_dir.mkdir(parents=True, exist_ok=True)
    path = personas_dir / f"{persona.key}.md"
    path.write_text(frontmatter.dumps(_persona_to_post(persona)) + "\n", encoding="utf-8")
    return path


def init_persona_files(personas_dir: Path) -> list[Path]:
    """Write default files for any built-in persona missing on disk."""
    written: list[Path] = []
    for persona in BUILT_IN_PERSONAS:
        if not (personas_dir / f"{persona.key}.md").exists():
            written.append(write_persona_file(personas_dir, persona))
    if written:
        logger.info("Wrote %d default persona file(s) to %s", len(written), personas_dir)
    return written


def _persona_from_file(path: Path, base: Persona | None) -> Persona | None:
    try:
        post = frontmatter.load(str(path))
    except Exception as exc:
        logger.warning("Skipping unreadable persona file %s: %s", path.name, exc)
        return None

    key = path.stem
    meta = post.metadata
    prompt = post.content.strip() or (base.prompt if base else "")
    if not prompt:
        logger.warning("Skipping persona %s: empty prompt", key)
        return None

    role = str(meta.get("role", base.role if base else ROLE_DEBATER))
    if role not in (ROLE_DEBATER, ROLE_MODERATOR):
        logger.warning("Skipping persona %s: unknown role '%s'", key, role)
        return None

    try:
        order = int(meta.get("order", base.order if base else 100))
    except (TypeError, ValueError):
        order = base.order if base else 100

    return Persona(
        key=key,
        label=str(meta.get("label", base.label if base else key.replace("_", " ").title())),
        role=role,
        prompt=prompt,
        voice_gender=str(meta.get("voice_gender", base.voice_gender if base else "male")),
        emoji=str(meta.get("emoji", base.emoji if base else "")),
        built_in=base is not None,
        order=order,
    )


def load_registry(personas_dir: Path | None = None) -> PersonaRegistry:
    """Built-ins (with file overrides) in fixed order, then custom personas.

    Custom personas sort by their ``order`` field, then key. A custom file
    declaring a second moderator is skipped.
    """
    built_in = {p.key: p for p in BUILT_IN_PERSONAS}
    overrides: dict[str, Persona] = {}
    custom: list[Persona] = []

    if personas_dir is not None and personas_dir.is_dir():
        for path in sorted(personas_dir.glob("*.md")):
            base = built_in.get(path.stem)
            persona = _persona_from_file(path, base)
            if persona is None:
                continue
            if base is not None:
                # the moderator slot stays with the built-in moderator key
                if (base.role == ROLE_MODERATOR) != (persona.role == ROLE_MODERATOR):
                    logger.warning("Persona %s cannot change its role, keeping '%s'", persona.key, base.role)
                    persona = replace(persona, role=base.role)
                overrides[persona.key] = persona
            elif persona.role == ROLE_MODERATOR:
                logger.warning("Skipping custom moderator %s: the committee has one moderator", persona.key)
            else:
                custom.append(persona)

    personas = [overrides.get(p.key, p) for p in BUILT_IN_PERSONAS]
    personas.extend(sorted(custom, key=lambda p: (p.order, p.key)))
    return PersonaRegistry(personas)


def system_prompt_for(persona: Persona) -> str:
    """System prompt for a turn; debaters get the spoken-style overlay."""
    if persona.is_debater:
        return f"{persona.prompt}\n\n{SPOKEN_STYLE_OVERLAY}"
    return persona.prompt
