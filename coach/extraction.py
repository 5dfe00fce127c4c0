"""
Extraction Engine
Periodically distils the conversation transcript into durable memory:
session summary, commitments, typed user memories and one insight.

Runs after the coach reply has been persisted and never fails a turn.
"""
import calendar
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional, List, Dict, Any

from config import TurnConfig
from coach.classifier import parse_json_response
from coach.context_builder import ConversationMessage, render_transcript
from coach.errors import CompletionError, StoreError
from coach.prompt_library import load_prompt

logger = logging.getLogger(__name__)

MIN_MESSAGES = 6
EARLY_WINDOW_END = 11
BATCH_EVERY = 8

MEMORY_TYPES = ("fact", "preference", "relationship", "challenge", "win", "value")
MEMORY_IMPORTANCE = ("normal", "high")


def should_extract(message_count: int, enabled: bool = True) -> bool:
    """
    Extraction trigger.
    Nothing below 6 messages; every turn from 6 to 11; afterwards every 8th message.
    """
    if not enabled or message_count < MIN_MESSAGES:
        return False
    return message_count % BATCH_EVERY == 0 or message_count <= EARLY_WINDOW_END


def _add_one_month(day: date) -> date:
    year = day.year + (1 if day.month == 12 else 0)
    month = 1 if day.month == 12 else day.month + 1
    last_day = calendar.monthrange(year, month)[1]
    return day.replace(year=year, month=month, day=min(day.day, last_day))


def normalize_due_date(timeframe: Optional[str], today: date) -> Optional[date]:
    """Map a free-text timeframe onto a due date relative to `today`."""
    if not timeframe or not isinstance(timeframe, str):
        return None
    lower = timeframe.lower()
    if "today" in lower:
        return today
    if "tomorrow" in lower:
        return today + timedelta(days=1)
    if "week" in lower:
        return today + timedelta(days=7)
    if "month" in lower:
        return _add_one_month(today)
    return None


# ============ Parsed Result ============

@dataclass
class ExtractedSummary:
    text: str
    key_topics: List[str] = field(default_factory=list)
    emotional_tone: Optional[str] = None
    breakthroughs: List[str] = field(default_factory=list)


@dataclass
class ExtractedCommitment:
    commitment: str
    timeframe: Optional[str] = None
    context: Optional[str] = None


@dataclass
class ExtractedMemory:
    memory_type: str
    content: str
    importance: str = "normal"


@dataclass
class ExtractionResult:
    summary: Optional[ExtractedSummary] = None
    commitments: List[ExtractedCommitment] = field(default_factory=list)
    memories: List[ExtractedMemory] = field(default_factory=list)
    insight: Optional[str] = None


@dataclass
class ExtractionReport:
    """What a single extraction run wrote."""
    triggered: bool = False
    message_count: int = 0
    summary_saved: bool = False
    commitments_saved: int = 0
    memories_saved: int = 0
    insight_saved: bool = False
    error: Optional[str] = None


def _str_list(value) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if v and str(v).strip()]


def _clean_str(value) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def parse_extraction(data: Dict[str, Any]) -> ExtractionResult:
    """Validate each facet of the extraction payload independently."""
    result = ExtractionResult()

    summary = data.get("summary")
    if isinstance(summary, dict) and _clean_str(summary.get("text")):
        result.summary = ExtractedSummary(
            text=_clean_str(summary.get("text")),
            key_topics=_str_list(summary.get("key_topics")),
            emotional_tone=_clean_str(summary.get("emotional_tone")),
            breakthroughs=_str_list(summary.get("breakthroughs")),
        )

    commitments = data.get("commitments")
    for c in commitments if isinstance(commitments, list) else []:
        if not isinstance(c, dict):
            continue
        text = _clean_str(c.get("commitment"))
        # Only commitments the user actually accepted
        if not text or c.get("user_agreed") is False:
            continue
        result.commitments.append(ExtractedCommitment(
            commitment=text,
            timeframe=_clean_str(c.get("timeframe")),
            context=_clean_str(c.get("context")),
        ))

    memories = data.get("memories")
    for m in memories if isinstance(memories, list) else []:
        if not isinstance(m, dict):
            continue
        memory_type = _clean_str(m.get("type"))
        content = _clean_str(m.get("content"))
        if memory_type not in MEMORY_TYPES or not content:
            continue
        importance = m.get("importance")
        result.memories.append(ExtractedMemory(
            memory_type=memory_type,
            content=content,
            importance=importance if importance in MEMORY_IMPORTANCE else "normal",
        ))

    result.insight = _clean_str(data.get("insight"))
    return result


class ExtractionEngine:
    """
    One combined LLM call per run, then independent best-effort writes.
    """

    def __init__(self, repo, client, config: TurnConfig):
        self.repo = repo
        self.client = client
        self.config = config

    async def _call_with_retry(self, transcript: str) -> Optional[str]:
        attempts = max(1, self.config.extraction_max_attempts)
        for attempt in range(1, attempts + 1):
            try:
                result = await self.client.generate(
                    prompt=transcript,
                    system_instruction=load_prompt("extraction"),
                    model=self.config.instruction_model,
                    temperature=self.config.instruction_temperature,
                )
                return result.text
            except CompletionError as e:
                logger.warning(f"Extraction call failed (attempt {attempt}/{attempts}): {e}")
            except Exception as e:
                logger.exception(f"Extraction call raised unexpectedly (attempt {attempt}/{attempts}): {e}")
        return None

    async def run(self, user_id: str, conversation_id: str, today: date,
                  enabled: Optional[bool] = None) -> ExtractionReport:
        enabled = self.config.extraction_enabled if enabled is None else enabled
        report = ExtractionReport()

        try:
            report.message_count = self.repo.count_messages(conversation_id)
        except StoreError as e:
            report.error = str(e)
            logger.warning(f"Extraction skipped, could not count messages: {e}")
            return report

        if not should_extract(report.message_count, enabled):
            logger.debug(f"Extraction not due for {conversation_id} ({report.message_count} messages)")
            return report
        report.triggered = True

        rows = self.repo.get_transcript(conversation_id, limit=self.config.extraction_transcript_limit)
        transcript = render_transcript([ConversationMessage.from_row(r) for r in rows])

        response_text = await self._call_with_retry(transcript)
        if response_text is None:
            report.error = "completion failed"
            return report

        data = parse_json_response(response_text)
        if data is None:
            report.error = "unparseable response"
            logger.warning(f"Extraction response for {conversation_id} was not JSON, nothing written")
            return report

        result = parse_extraction(data)
        self._persist(user_id, conversation_id, today, result, report)

        logger.info(
            f"Extraction complete for {conversation_id}: summary={report.summary_saved} "
            f"commitments={report.commitments_saved} memories={report.memories_saved} "
            f"insight={report.insight_saved}"
        )
        return report

    def _persist(self, user_id: str, conversation_id: str, today: date,
                 result: ExtractionResult, report: ExtractionReport):
        if result.summary:
            s = result.summary
            try:
                self.repo.add_session_summary(
                    user_id, conversation_id, s.text, s.key_topics, s.emotional_tone, s.breakthroughs
                )
                self.repo.upsert_conversation_memory(conversation_id, s.text, s.key_topics)
                report.summary_saved = True
            except StoreError as e:
                logger.warning(f"Failed to save session summary: {e}")

        for c in result.commitments:
            try:
                self.repo.add_commitment(
                    user_id, conversation_id, c.commitment, c.context,
                    normalize_due_date(c.timeframe, today),
                )
                report.commitments_saved += 1
            except StoreError as e:
                logger.warning(f"Failed to save commitment: {e}")

        for m in result.memories:
            try:
                self.repo.add_memory(user_id, m.memory_type, m.content, m.importance,
                                     source_conversation_id=conversation_id)
                report.memories_saved += 1
            except StoreError as e:
                logger.warning(f"Failed to save memory: {e}")

        if result.insight:
            try:
                self.repo.add_insight(user_id, conversation_id, result.insight)
                report.insight_saved = True
            except StoreError as e:
                logger.warning(f"Failed to save insight: {e}")
