"""
Sentiment / Crisis Classifier
Optional pre-turn analysis of the user message.

Stage 1 checks for crisis indicators. Only when no crisis is reported does
stage 2 label the emotional state. Both stages are best-effort: a failed call
or an unparseable response leaves that stage empty and the turn continues.
"""
import json
import logging
import re
from dataclasses import dataclass, field, asdict
from typing import Optional, List, Dict, Any

from config import TurnConfig
from coach.errors import CompletionError
from coach.prompt_library import load_prompt, contextual_questions

logger = logging.getLogger(__name__)

SEVERITIES = ("low", "medium", "high", "critical")
RECOMMENDED_RESPONSES = ("validate_and_refer", "normal_coaching", "immediate_support")
SENTIMENTS = (
    "anxious", "hopeful", "frustrated", "calm", "excited", "overwhelmed",
    "sad", "angry", "confused", "motivated", "neutral",
)
CONTEXTS = (
    "stuck", "overwhelmed", "decision_paralysis", "self_doubt", "unclear_values",
    "avoiding_action", "relationship_conflict", "goal_clarity", "other",
)
NEEDS = ("validation", "challenge", "clarity", "support", "action", "reflection")

TONE_ADJUSTMENTS = {
    "anxious": "- Be gentle, validating, and calming. Slow down the pace.",
    "frustrated": "- Acknowledge the frustration first. Then explore what's underneath.",
    "overwhelmed": "- Simplify. Focus on one thing. Reduce options.",
    "sad": "- Be compassionate and supportive. Validate feelings before problem-solving.",
    "excited": "- Match their energy appropriately. Channel it into clarity and action.",
    "confused": "- Slow down. Ask clarifying questions. Help them name what's unclear.",
}

_FENCE_RE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)


def _as_list(value) -> list:
    return value if isinstance(value, list) else []


@dataclass
class CrisisAssessment:
    is_crisis: bool = False
    severity: str = "low"
    indicators: List[str] = field(default_factory=list)
    recommended_response: str = "normal_coaching"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CrisisAssessment":
        severity = data.get("severity")
        recommended = data.get("recommended_response")
        return cls(
            is_crisis=data.get("is_crisis") is True,
            severity=severity if severity in SEVERITIES else "low",
            indicators=[str(i) for i in _as_list(data.get("indicators")) if i],
            recommended_response=recommended if recommended in RECOMMENDED_RESPONSES else "validate_and_refer",
        )


@dataclass
class SentimentAssessment:
    sentiment: str = "neutral"
    intensity: int = 5
    context: str = "other"
    needs: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SentimentAssessment":
        sentiment = data.get("sentiment")
        context = data.get("context")
        try:
            intensity = int(data.get("intensity", 5))
        except (TypeError, ValueError):
            intensity = 5
        return cls(
            sentiment=sentiment if sentiment in SENTIMENTS else "neutral",
            intensity=min(10, max(1, intensity)),
            context=context if context in CONTEXTS else "other",
            needs=[n for n in _as_list(data.get("needs")) if isinstance(n, str) and n in NEEDS],
        )


@dataclass
class Classification:
    crisis: Optional[CrisisAssessment] = None
    sentiment: Optional[SentimentAssessment] = None
    ran: bool = False

    @property
    def crisis_detected(self) -> bool:
        return bool(self.crisis and self.crisis.is_crisis)

    @property
    def has_result(self) -> bool:
        return self.crisis is not None or self.sentiment is not None

    def to_metadata(self) -> Dict[str, Any]:
        """Fields merged into the user message metadata."""
        return {
            "sentiment": asdict(self.sentiment) if self.sentiment else None,
            "crisis_detected": self.crisis_detected,
        }


def parse_json_response(text: str) -> Optional[Dict[str, Any]]:
    """Strip markdown code fences and parse a JSON object. None on failure."""
    if not text:
        return None
    cleaned = _FENCE_RE.sub("", text.strip()).replace("```", "").strip()
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


class MessageClassifier:
    """Runs the crisis and sentiment stages through the completion client."""

    def __init__(self, client, config: TurnConfig):
        self.client = client
        self.config = config

    def is_enabled(self, skip_sentiment_analysis: Optional[bool]) -> bool:
        """Explicit request flag wins; otherwise the operating mode decides."""
        if skip_sentiment_analysis is not None:
            return not skip_sentiment_analysis
        return self.config.classification_enabled

    async def _instruction_call(self, instruction_name: str, message: str) -> Optional[Dict[str, Any]]:
        try:
            result = await self.client.generate(
                prompt=f"User message: {message}",
                system_instruction=load_prompt(instruction_name),
                model=self.config.instruction_model,
                temperature=self.config.instruction_temperature,
            )
        except CompletionError as e:
            logger.warning(f"{instruction_name} call failed: {e}")
            return None
        except Exception as e:
            logger.exception(f"{instruction_name} call raised unexpectedly: {e}")
            return None

        data = parse_json_response(result.text)
        if data is None:
            logger.warning(f"{instruction_name}: could not parse response: {result.text[:200]}")
        return data

    async def classify(self, message: str, enabled: bool) -> Classification:
        if not enabled:
            logger.info("Skipping sentiment analysis (disabled for this turn)")
            return Classification()

        classification = Classification(ran=True)

        crisis_data = await self._instruction_call("crisis_detection", message)
        if crisis_data is not None:
            classification.crisis = CrisisAssessment.from_dict(crisis_data)

        if classification.crisis_detected:
            logger.warning(f"Crisis detected (severity={classification.crisis.severity})")
            return classification

        sentiment_data = await self._instruction_call("sentiment_analysis", message)
        if sentiment_data is not None:
            classification.sentiment = SentimentAssessment.from_dict(sentiment_data)

        return classification


# ============ Guidance ============

def render_guidance(classification: Optional[Classification]) -> str:
    """Guidance appended to the session context for the coach turn."""
    response_types = load_prompt("response_type_guidance")

    if classification is not None and classification.crisis_detected:
        crisis = classification.crisis
        block = (
            f"CRISIS DETECTED ({crisis.severity}):\n"
            f"- Indicators: {', '.join(crisis.indicators) or 'detected'}\n"
            f"- Response: {crisis.recommended_response}\n\n"
            "CRITICAL: Respond with care, validation, and appropriate crisis resources. "
            "Set clear boundaries about being a coach, not a therapist."
        )
        return f"{block}\n\n{load_prompt('crisis_response_template')}"

    if classification is not None and classification.sentiment is not None:
        s = classification.sentiment
        lines = [
            "USER'S CURRENT STATE:",
            f"- Emotional state: {s.sentiment} (intensity: {s.intensity}/10)",
            f"- Context: {s.context}",
            f"- Needs: {', '.join(s.needs) or 'support'}",
        ]
        tone = TONE_ADJUSTMENTS.get(s.sentiment)
        if tone:
            lines.extend(["", "ADJUST YOUR TONE:", tone])

        questions = contextual_questions(s.context)
        if questions:
            lines.extend(["", "CONTEXTUAL QUESTIONS (use when appropriate):"])
            lines.extend(f"{i}. {q}" for i, q in enumerate(questions, 1))

        return "\n".join(lines) + f"\n\n{response_types}"

    return response_types
