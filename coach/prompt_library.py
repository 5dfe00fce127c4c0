"""
Prompt Library
Loads prompt templates from coach/prompts and holds the small structured tables
(session types, contextual question library) used by the turn pipeline.
"""
from pathlib import Path
from typing import Dict, List

# Prompt templates directory
PROMPTS_DIR = Path(__file__).parent / "prompts"

SESSION_TYPES = (
    "quick_checkin",
    "deep_dive",
    "reflection",
    "goal_review",
    "celebration",
    "grounding",
)
DEFAULT_SESSION_TYPE = "deep_dive"


def load_prompt(name: str) -> str:
    """
    Load a prompt template by relative name (without .txt).
    e.g. "core_system", "personas/clarity", "session_types/deep_dive"
    """
    prompt_file = PROMPTS_DIR / f"{name}.txt"
    return prompt_file.read_text(encoding="utf-8").strip()


def normalize_session_type(session_type) -> str:
    """Unknown or missing session types fall back to deep_dive."""
    if session_type in SESSION_TYPES:
        return session_type
    return DEFAULT_SESSION_TYPE


def session_type_instructions(session_type: str) -> str:
    return load_prompt(f"session_types/{normalize_session_type(session_type)}")


# Powerful questions organized by situational context (sentiment "context" tag)
QUESTION_LIBRARY: Dict[str, List[str]] = {
    "stuck": [
        "What would need to be true for this to feel possible?",
        "If you weren't afraid, what would you do?",
        "What's the smallest step that would move you forward?",
        "What's keeping you from taking that step?",
        "What if you gave yourself permission to try and fail?",
    ],
    "overwhelmed": [
        "What's actually urgent vs what feels urgent?",
        "If you could only do one thing today, what would it be?",
        "What can you let go of right now?",
        "What would it look like if you simplified this?",
    ],
    "decision_paralysis": [
        "What values are most important to you in this decision?",
        "What would you tell a friend in this situation?",
        "What's the cost of not deciding?",
        "If you had to decide in 5 minutes, what would you choose?",
    ],
    "self_doubt": [
        "What evidence do you have that you can't do this?",
        "What would you do if you believed you could?",
        "What's the worst that could happen if you tried?",
        "What have you overcome before that felt impossible?",
    ],
    "unclear_values": [
        "What matters most to you in life?",
        "What would make you proud of yourself a year from now?",
        "What makes you feel most alive?",
        "What would you do if you had complete freedom?",
    ],
    "avoiding_action": [
        "What are you avoiding by not taking action?",
        "What's the story you're telling yourself about why you can't?",
        "What would happen if you just started, even imperfectly?",
        "What's the real cost of staying where you are?",
    ],
    "relationship_conflict": [
        "What do you need from this relationship?",
        "What's your part in this dynamic?",
        "What would it look like to communicate this need directly?",
        "What boundaries do you need to set?",
    ],
    "goal_clarity": [
        "Why does this goal matter to you?",
        "What would achieving this goal give you?",
        "What would success look like specifically?",
        "What's the first step that feels doable?",
    ],
}


def contextual_questions(context: str, limit: int = 3) -> List[str]:
    return QUESTION_LIBRARY.get(context, [])[:limit]
