"""
Turn metrics: elapsed time, token usage and model actually used.
Logged once per successful turn.
"""
import logging
import time
from dataclasses import dataclass, field, asdict
from typing import Optional

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4


def estimate_tokens(text: Optional[str]) -> int:
    """Rough token estimate, four characters per token, rounded up."""
    if not text:
        return 0
    return -(-len(text) // CHARS_PER_TOKEN)


@dataclass
class TurnMetrics:
    conversation_id: Optional[str] = None
    model: Optional[str] = None
    fell_back: bool = False
    input_tokens: int = 0
    output_tokens: int = 0
    tokens_estimated: bool = False
    classification_ran: bool = False
    crisis_detected: bool = False
    elapsed_ms: int = 0
    _started: float = field(default_factory=time.perf_counter, repr=False)

    def record_generation(self, result):
        self.model = result.model
        self.fell_back = result.fell_back
        self.input_tokens = result.usage.input_tokens
        self.output_tokens = result.usage.output_tokens
        self.tokens_estimated = result.usage.estimated

    def finish(self) -> "TurnMetrics":
        self.elapsed_ms = int((time.perf_counter() - self._started) * 1000)
        return self

    def to_dict(self) -> dict:
        data = asdict(self)
        data.pop("_started", None)
        return data

    def log(self):
        logger.info(
            f"turn conversation={self.conversation_id} model={self.model} fell_back={self.fell_back} "
            f"tokens={self.input_tokens}+{self.output_tokens}{' (est)' if self.tokens_estimated else ''} "
            f"crisis={self.crisis_detected} elapsed_ms={self.elapsed_ms}"
        )
