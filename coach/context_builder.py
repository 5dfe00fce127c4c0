"""
Context Assembler
Renders the single prompt body sent to the completion service.

Section order is fixed:
    1) Coach Persona
    2) User Context        (optional)
    3) Memory Summary      (optional)
    4) Session Context
    5) Recent Conversation (optional, windowed)
    6) Current Turn

Everything here is pure: time is passed in, never read from the clock.
"""
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from coach.errors import InvalidRequest
from coach.prompt_library import session_type_instructions, normalize_session_type

RECENT_WINDOW = 10
MOOD_MAX_AGE_HOURS = 24


@dataclass(frozen=True)
class ConversationMessage:
    role: str  # "user" | "coach"
    content: str

    @property
    def speaker(self) -> str:
        return "Coach" if self.role == "coach" else "User"

    @classmethod
    def from_row(cls, row) -> "ConversationMessage":
        return cls(role="coach" if row.sender == "coach" else "user", content=str(row.content or ""))


def render_transcript(messages: Sequence[ConversationMessage]) -> str:
    return "\n".join(f"{m.speaker}: {m.content}" for m in messages)


def build_context_block(
    persona_prompt: str,
    user_message: str,
    session_context_block: str,
    user_context_block: str = "",
    memory_summary_block: str = "",
    recent_messages: Optional[Sequence[ConversationMessage]] = None,
) -> str:
    """
    Build the full context block (everything except the system instruction).

    Raises:
        InvalidRequest: user_message is empty or whitespace-only
    """
    if not user_message or not user_message.strip():
        raise InvalidRequest("Field 'message' must be a non-empty string")

    sections = [f"# Coach Persona\n{persona_prompt.strip()}"]

    if user_context_block and user_context_block.strip():
        sections.append(f"# User Context\n{user_context_block.strip()}")

    if memory_summary_block and memory_summary_block.strip():
        sections.append(f"# Memory Summary\n{memory_summary_block.strip()}")

    if session_context_block and session_context_block.strip():
        sections.append(f"# Session Context\n{session_context_block.strip()}")

    window = list(recent_messages or [])[-RECENT_WINDOW:]
    if window:
        sections.append(f"# Recent Conversation (windowed)\n{render_transcript(window)}")

    sections.append(f"# Current Turn\nUser: {user_message.strip()}")

    return "\n\n".join(sections)


# ============ Block Renderers ============

def build_user_context_block(identity, profile, user_context, now: datetime) -> str:
    """
    USER CONTEXT block: profile facts plus goals, commitments, patterns,
    important memories, fresh mood and recent session summaries.
    """
    lines = ["USER CONTEXT:"]
    lines.append(f"- User id: {identity.subject}")
    email = (profile.email if profile is not None and profile.email else None) or identity.email or "unknown"
    lines.append(f"- Email: {email}")

    if profile is not None:
        if profile.display_name:
            lines.append(f"- Display name: {profile.display_name}")
        if profile.coaching_style_preference:
            lines.append(f"- Preferred coaching style: {profile.coaching_style_preference}")
        if profile.life_context:
            lines.append(f"- Life context: {profile.life_context}")
        if profile.values:
            lines.append(f"- Core values: {', '.join(profile.values)}")
        intake = profile.intake_data or {}
        if intake.get("goal"):
            lines.append(f"- Intake goal: {intake['goal']}")
        if intake.get("challenge"):
            lines.append(f"- Intake challenge: {intake['challenge']}")

    if user_context is None:
        return "\n".join(lines)

    if user_context.goals:
        lines.append("\nACTIVE GOALS:")
        for g in user_context.goals:
            line = f"- {g.title}"
            if g.category:
                line += f" ({g.category})"
            if g.target_date:
                line += f" - target: {g.target_date.isoformat()}"
            lines.append(line)

    if user_context.pending_commitments:
        lines.append("\nPENDING COMMITMENTS (follow up on these!):")
        for c in user_context.pending_commitments:
            due = f" (due: {c.due_date.isoformat()})" if c.due_date else ""
            lines.append(f'- "{c.commitment}"{due}')

    if user_context.recent_patterns:
        lines.append("\nOBSERVED PATTERNS:")
        for p in user_context.recent_patterns:
            lines.append(f"- {p.title}: {p.description}")

    if user_context.important_memories:
        lines.append("\nIMPORTANT THINGS TO REMEMBER:")
        for m in user_context.important_memories:
            lines.append(f"- [{m.memory_type}] {m.content}")

    mood = user_context.recent_mood
    if mood is not None and mood.created_at is not None:
        hours_ago = int((now - mood.created_at).total_seconds() // 3600)
        if 0 <= hours_ago < MOOD_MAX_AGE_HOURS:
            line = f"\nRECENT MOOD ({hours_ago}h ago): {mood.mood_score}/10 - {mood.mood_label or ''}"
            if mood.note:
                line += f" ({mood.note})"
            lines.append(line)

    if user_context.recent_summaries:
        lines.append("\nRECENT SESSIONS:")
        for s in user_context.recent_summaries:
            day = s.created_at.date().isoformat() if s.created_at else "unknown date"
            lines.append(f"- {day}: {s.summary}")

    return "\n".join(lines)


def build_memory_summary_block(memory_row) -> str:
    """COACHING MEMORY SUMMARY from the conversation's rolling memory row."""
    if memory_row is None:
        return ""
    lines = ["COACHING MEMORY SUMMARY:"]
    if memory_row.last_updated_at:
        lines.append(f"- Last updated at: {memory_row.last_updated_at.isoformat()}")
    if memory_row.summary:
        lines.append(f"- Summary: {memory_row.summary}")
    if memory_row.themes:
        lines.append(f"- Themes: {json.dumps(memory_row.themes, ensure_ascii=False)}")
    return "\n".join(lines)


def build_session_context_block(coach_name: str, mode: Optional[str], session_type: Optional[str], guidance: str = "") -> str:
    """CURRENT SESSION block plus session-type instructions and classifier guidance."""
    effective = normalize_session_type(session_type)
    parts = [
        "CURRENT SESSION:\n"
        f"- Coach: {coach_name}\n"
        f"- Mode: {mode or 'text'}\n"
        f"- Session type: {effective}",
        session_type_instructions(effective),
    ]
    if guidance and guidance.strip():
        parts.append(guidance.strip())
    return "\n\n".join(parts)
