"""User-prompt templates for each round of the committee debate."""

from committee.models import ROUND_CLOSING, ROUND_EXCHANGE, ROUND_OPENING

OPENING_TEMPLATE = """{brief}

You are in Round 1 of a committee debate. State your opening position on this decision.

Structure your response as:
- **Position**: Which option you lean toward (1 sentence)
- **Key argument**: The most important factor from your viewpoint (2-3 sentences)
- **Concern**: Your biggest worry (1-2 sentences)

STRICT LIMIT: Under 150 words. Be punchy and direct, this is a debate, not a monologue."""

EXCHANGE_FIRST_TEMPLATE = """{brief}

Here is Round 1 of the committee debate:

{transcript}

You are in Round 2. This is the debate: engage directly with what others said.

Rules:
- Address at least 1 specific member by name ("@Contrarian's point about X misses...")
- Challenge the weakest argument you heard
- Reinforce or adjust your own position based on what you've heard
- Use bullet points, not paragraphs

STRICT LIMIT: Under 150 words. Punchy and direct."""

EXCHANGE_FOLLOWUP_TEMPLATE = """{brief}

{transcript}

Continue the debate. Respond to the latest exchange specifically.

- Has your position shifted? Say so directly
- Call out the strongest counter-argument and address it
- Note any emerging consensus or remaining disagreement

STRICT LIMIT: Under 120 words."""

CLOSING_TEMPLATE = """{brief}

{transcript}

Final statement. Be brief and decisive.

- **My vote**: [Option name], one sentence why
- **Shifted?** Yes/No. If yes, what convinced you (one sentence)
- **Remember this**: The ONE thing this person must not forget

STRICT LIMIT: Under 80 words. No hedging."""

MODERATOR_TEMPLATE = """{brief}

Here is the full committee debate between {participants}:

{transcript}

Synthesize this debate into a clear recommendation. Give credit to each of {participants} where it is due. Structure your response as:

## Where the Committee Agreed
[Key points of consensus]

## Key Disagreements
[Where members differed and who had the stronger argument]

## Biases & Blind Spots Identified
[Any cognitive biases surfaced during the debate]

## Recommendation
**Choice**: [Clear choice]
**Confidence**: [High/Medium/Low]
**Reasoning**: [Why this is the right call, weighing the debate]

## What You're Giving Up
[Explicit tradeoffs of the recommended choice]

## Action Plan
[Specific next steps with timeline]"""


def round_prompt(brief: str, transcript: str, round_number: int, exchange_number: int) -> str:
    """Build the shared user prompt for one debater round.

    Raises:
        ValueError: For a round number that debaters never speak in.
    """
    if round_number == ROUND_OPENING:
        return OPENING_TEMPLATE.format(brief=brief)
    if round_number == ROUND_EXCHANGE:
        template = EXCHANGE_FIRST_TEMPLATE if exchange_number == 1 else EXCHANGE_FOLLOWUP_TEMPLATE
        return template.format(brief=brief, transcript=transcript)
    if round_number == ROUND_CLOSING:
        return CLOSING_TEMPLATE.format(brief=brief, transcript=transcript)
    raise ValueError(f"Invalid round number: {round_number}")


def moderator_prompt(brief: str, transcript: str, participants: str) -> str:
    return MODERATOR_TEMPLATE.format(brief=brief, transcript=transcript, participants=participants)
