# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Profile prompt builder. Pure computation, no side effects.

Renders a care-recipient profile into the opening line, the system prompt
and the voice used for one call. Every narrative field falls back to a
neutral phrase so the prompt never shows a blank or missing placeholder.
"""

from typing import Optional, Union

from carecall.core.config import settings
from carecall.models.domain import (
    CareRecipientProfile,
    FailureKind,
    PromptPackage,
    ValidationFailure,
    Voice,
)

FIELD_DEFAULTS: dict[str, str] = {
    "life_story": "Long-time community member with rich life experiences",
    "family_info": "Has family who cares about their wellbeing",
    "hobbies_interests": "Enjoys various activities and conversations",
    "favorite_topics": "General life topics, family, memories",
    "personality_traits": "Warm, friendly, appreciates caring conversation",
    "health_status": "General wellness check",
    "conversation_style": "Gentle and caring",
    "special_notes": "No special considerations",
}

VOICE_CATALOG: list[Voice] = [
    Voice(id="QZOPTHiWteIgblFWoaMc", name="Old American Man",
          description="Warm, caring older male voice - current default", gender="male"),
    Voice(id="EXAVITQu4vr4xnSDxMaL", name="Sarah",
          description="Clear, friendly female voice with excellent clarity", gender="female"),
    Voice(id="AZnzlk1XvdvUeBnXmlld", name="Domi",
          description="Confident, warm female voice", gender="female"),
    Voice(id="CYw3kZ02Hs0563khs1Fj", name="Dave",
          description="Professional, trustworthy male voice", gender="male"),
    Voice(id="FGY2WhTYpPnrIDTdsKH5", name="Laura",
          description="Gentle, caring female voice", gender="female"),
    Voice(id="IKne3meq5aSn9XLyUdCD", name="Charlie",
          description="Calm, reassuring male voice", gender="male"),
    Voice(id="JBFqnCBsd6RMkjVDRZzb", name="George",
          description="Mature, wise male voice", gender="male"),
]

# Friendly aliases accepted wherever a voice id is expected.
VOICE_PRESETS: dict[str, str] = {
    "old-american-man": "QZOPTHiWteIgblFWoaMc",
    "sarah-warm": "EXAVITQu4vr4xnSDxMaL",
    "rachel-friendly": "21m00Tcm4TlvDq8ikWAM",
    "adam-calm": "pNInz6obpgDQGcFmaJgB",
    "antoni-gentle": "ErXwobaYiN019PkySvjV",
    "josh-trustworthy": "TxGEqnHWrfWFTfGW9XjX",
}

SYSTEM_PROMPT_TEMPLATE = """\
You are a caring AI companion calling to check on {preferred_name}.

PATIENT CONTEXT:
- Name: {name} (prefers: {preferred_name})
- Life Story: {life_story}
- Family: {family_info}
- Hobbies & Interests: {hobbies_interests}
- Favorite Topics: {favorite_topics}
- Personality: {personality_traits}
- Health Status: {health_status}
- Conversation Style: {conversation_style}
- Special Notes: {special_notes}

CONVERSATION GUIDELINES:
- Always address them by their preferred name, {preferred_name}
- Be warm, caring, and patient
- Ask about their day, health, family, and interests
- Listen actively and respond with empathy
- Keep conversations natural and engaging
- If they seem sad, worried, or distressed, slow down, acknowledge their feelings, and offer gentle reassurance and support
- End calls naturally when they're ready, never abruptly
- Remember this is their routine check-in call

IMPORTANT: Maintain a consistent, caring tone throughout the entire conversation. Focus on their wellbeing and making them feel heard and valued."""

OPENING_LINE_TEMPLATE = (
    "Hello {preferred_name}, this is your daily check-in call. "
    "How are you doing today?"
)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def resolve_voice_id(voice_id: Optional[str]) -> str:
    """Map a preset alias to its voice id; fall back to the baseline voice."""
    cleaned = _clean(voice_id)
    if cleaned is None:
        return settings.DEFAULT_VOICE_ID
    return VOICE_PRESETS.get(cleaned.lower(), cleaned)


def build_prompt_package(
    profile: CareRecipientProfile,
) -> Union[PromptPackage, ValidationFailure]:
    name = _clean(profile.name)
    if name is None:
        return ValidationFailure(
            kind=FailureKind.MISSING_IDENTITY,
            detail="Care recipient profile has no name",
            field="name",
        )
    preferred_name = _clean(profile.preferred_name) or name

    fields = {
        key: _clean(getattr(profile, key)) or default
        for key, default in FIELD_DEFAULTS.items()
    }
    system_prompt = SYSTEM_PROMPT_TEMPLATE.format(
        name=name, preferred_name=preferred_name, **fields
    )
    return PromptPackage(
        opening_line=OPENING_LINE_TEMPLATE.format(preferred_name=preferred_name),
        system_prompt=system_prompt,
        voice_id=resolve_voice_id(profile.voice_id),
        recipient_name=preferred_name,
    )
