"""
Persona Resolver
Decides which coach persona applies to a conversation and renders its prompt.

A coach is either a catalog persona (fixed prompt looked up by key) or a
user-authored persona whose prompt is rendered from six style knobs.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Union

from coach.errors import NoCoachConfigured
from coach.models import Coach
from coach.prompt_library import load_prompt

logger = logging.getLogger(__name__)

DEFAULT_PERSONA_KEY = "clarity"
AUTHORED_COACH_TYPES = ("private", "creator")

SAFETY_BOUNDARIES = """SAFETY BOUNDARIES (non-negotiable):
• Never provide medical, mental health, or crisis advice
• Encourage professional help when appropriate
• Maintain coaching boundaries"""


# ============ Phrase Tables ============

TONE_PHRASES = {
    "gentle": "calm, patient, supportive",
    "direct": "straightforward, action-oriented, challenging",
    "balanced": "balanced, warm but honest",
}

PACING_PHRASES = {
    "slow": "take time to reflect",
    "fast": "move quickly to action",
    "medium": "balance reflection and action",
}

CHALLENGE_PHRASES = {
    "low": "gentle guidance",
    "high": "push back respectfully",
    "medium": "balanced support and challenge",
}

ADVICE_POLICY_PHRASES = {
    "never": "• Never offer direct advice. Only ask questions.",
    "optional": "• Offer suggestions only when helpful, framed as experiments.",
    "always": "• Provide actionable suggestions when appropriate.",
}

QUESTION_DEPTH_PHRASES = {
    "surface": "• Ask clarifying questions about the immediate situation.",
    "moderate": "• Explore underlying patterns and values.",
    "deep": "• Dive deep into root causes and beliefs.",
}

WARMTH_PHRASES = {
    "low": "• Keep responses analytical and objective.",
    "medium": "• Balance logic with empathy.",
    "high": "• Show high emotional intelligence and warmth.",
}


def _phrase(table: Dict[str, str], value: Optional[str], default: str) -> str:
    return table.get(value or default, table[default])


# ============ Persona Variants ============

@dataclass(frozen=True)
class SystemPersona:
    """Catalog persona with a fixed prompt."""
    key: str
    name: str
    style: str
    philosophy: str = ""
    techniques: List[str] = field(default_factory=list)
    best_for: List[str] = field(default_factory=list)

    def render_prompt(self) -> str:
        return load_prompt(f"personas/{self.key}")


@dataclass(frozen=True)
class AuthoredPersona:
    """User-authored persona, rendered from style knobs."""
    name: str
    description: str = ""
    philosophy: str = ""
    tone: str = "balanced"
    pacing: str = "medium"
    challenge_level: str = "medium"
    advice_policy: str = "optional"
    question_depth: str = "moderate"
    emotional_warmth: str = "medium"

    @property
    def style(self) -> str:
        return self.tone

    def render_prompt(self) -> str:
        sections = [
            f"You are {self.name}.",
            self.description or "",
            "COACHING APPROACH:\n"
            f"• Tone: {_phrase(TONE_PHRASES, self.tone, 'balanced')}\n"
            f"• Pacing: {_phrase(PACING_PHRASES, self.pacing, 'medium')}\n"
            f"• Challenge level: {_phrase(CHALLENGE_PHRASES, self.challenge_level, 'medium')}",
            "ADVICE POLICY:\n" + _phrase(ADVICE_POLICY_PHRASES, self.advice_policy, "optional"),
            "QUESTION DEPTH:\n" + _phrase(QUESTION_DEPTH_PHRASES, self.question_depth, "moderate"),
            "EMOTIONAL WARMTH:\n" + _phrase(WARMTH_PHRASES, self.emotional_warmth, "medium"),
            "PHILOSOPHY:\n" + (self.philosophy or ""),
            # Always last so no knob can override it
            SAFETY_BOUNDARIES,
        ]
        return "\n\n".join(sections).strip()


Persona = Union[SystemPersona, AuthoredPersona]


PERSONA_CATALOG: Dict[str, SystemPersona] = {
    "clarity": SystemPersona(
        key="clarity",
        name="Clarity Coach",
        style="gentle",
        philosophy="Confusion is the enemy of action. Clarity comes from slowing down, not speeding up.",
        techniques=["Reflective listening", "Values clarification", "Pattern recognition", "Questioning assumptions"],
        best_for=["Overwhelm", "Decision paralysis", "Feeling lost", "Unclear priorities"],
    ),
    "focus": SystemPersona(
        key="focus",
        name="Focus Coach",
        style="direct",
        philosophy="Focus is about saying no to everything except the one thing that matters.",
        techniques=["Priority clarification", "Action commitment", "Accountability", "Obstacle removal"],
        best_for=["Distraction", "Procrastination", "Too many projects", "Lack of momentum"],
    ),
    "growth": SystemPersona(
        key="growth",
        name="Growth Coach",
        style="balanced",
        philosophy="Growth happens at the edge of comfort.",
        techniques=["Belief reframing", "Pattern recognition", "Values alignment", "Resilience building"],
        best_for=["Limiting beliefs", "Self-doubt", "Personal development", "Building resilience"],
    ),
}


def persona_from_coach(coach: Coach) -> Persona:
    """Map a coach row onto its persona variant."""
    if coach.coach_type in AUTHORED_COACH_TYPES:
        style_config = coach.style_config or {}
        rules = coach.coaching_rules or {}
        return AuthoredPersona(
            name=coach.name,
            description=coach.description or "",
            philosophy=coach.philosophy or "",
            tone=style_config.get("tone") or coach.style or "balanced",
            pacing=style_config.get("pacing") or "medium",
            challenge_level=style_config.get("challenge_level") or "medium",
            advice_policy=rules.get("advice_policy") or "optional",
            question_depth=rules.get("question_depth") or "moderate",
            emotional_warmth=rules.get("emotional_warmth") or "medium",
        )

    key = coach.persona_key or DEFAULT_PERSONA_KEY
    persona = PERSONA_CATALOG.get(key)
    if persona is None:
        logger.warning(f"Unknown persona key '{key}' on coach {coach.id}, using '{DEFAULT_PERSONA_KEY}'")
        persona = PERSONA_CATALOG[DEFAULT_PERSONA_KEY]
    return persona


@dataclass
class ResolvedPersona:
    coach: Coach
    persona: Persona

    @property
    def prompt(self) -> str:
        return self.persona.render_prompt()


class PersonaResolver:
    """
    Resolves the coach for a turn.
    Priority: explicit coach id -> profile's selected coach -> default coach.
    """

    def __init__(self, repo):
        self.repo = repo

    def resolve(self, requested_coach_id: Optional[str] = None, profile=None) -> ResolvedPersona:
        coach = None
        coach_id = requested_coach_id or (profile.selected_coach_id if profile is not None else None)

        if coach_id:
            coach = self.repo.get_coach(coach_id)
            if coach is None:
                logger.info(f"Coach {coach_id} not found, falling back to default coach")

        if coach is None:
            coach = self.repo.get_default_coach()

        if coach is None:
            raise NoCoachConfigured(
                "Create at least one coach row in the 'coaches' table and flag it as default."
            )

        return ResolvedPersona(coach=coach, persona=persona_from_coach(coach))

    def resolve_for_conversation(self, conversation, profile=None, requested_coach_id: Optional[str] = None) -> ResolvedPersona:
        """An existing conversation keeps the coach it was created with."""
        if conversation is not None and conversation.coach_id:
            coach = self.repo.get_coach(conversation.coach_id)
            if coach is not None:
                return ResolvedPersona(coach=coach, persona=persona_from_coach(coach))
        return self.resolve(requested_coach_id, profile)
