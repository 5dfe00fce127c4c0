import os
import logging
from dataclasses import dataclass
from dotenv import load_dotenv

# .env dosyasını yükle
load_dotenv()

logger = logging.getLogger(__name__)


class Settings:
    """
    Application settings and environment variables.
    Read once at import; components receive a TurnConfig built from these values.
    """
    # Gemini completion service
    GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
    GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-3-flash-preview")
    GEMINI_FALLBACK_MODEL = os.getenv("GEMINI_FALLBACK_MODEL", "gemini-2.5-flash")
    GEMINI_INSTRUCTION_MODEL = os.getenv("GEMINI_INSTRUCTION_MODEL") or GEMINI_MODEL
    GEMINI_TEMPERATURE = float(os.getenv("GEMINI_TEMPERATURE", "0.7"))
    GEMINI_TOP_P = float(os.getenv("GEMINI_TOP_P", "0.95"))

    # full -> classification + extraction enabled, mvp -> both disabled
    COMPASS_FEATURE_MODE = os.getenv("COMPASS_FEATURE_MODE", "full").lower()

    # Bearer token verification (HS256). Empty = decode-only
    AUTH_JWT_SECRET = os.getenv("AUTH_JWT_SECRET")

    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./compass.db")

    EXTRACTION_MAX_ATTEMPTS = int(os.getenv("EXTRACTION_MAX_ATTEMPTS", "2"))

    @classmethod
    def validate(cls):
        """
        Verifies that critical variables are set.
        """
        missing = []
        if not cls.GEMINI_API_KEY:
            missing.append("GEMINI_API_KEY")
        if cls.COMPASS_FEATURE_MODE not in ("full", "mvp"):
            raise ValueError(f"COMPASS_FEATURE_MODE must be 'full' or 'mvp', got '{cls.COMPASS_FEATURE_MODE}'")

        if missing:
            raise ValueError(f"Missing environment variables: {', '.join(missing)}")


@dataclass(frozen=True)
class TurnConfig:
    """Explicit configuration handed to each turn component."""
    model: str = "gemini-3-flash-preview"
    fallback_model: str = "gemini-2.5-flash"
    instruction_model: str = "gemini-3-flash-preview"
    temperature: float = 0.7
    top_p: float = 0.95
    instruction_temperature: float = 0.2
    feature_mode: str = "full"
    recent_window: int = 10
    extraction_transcript_limit: int = 50
    extraction_max_attempts: int = 2

    @property
    def classification_enabled(self) -> bool:
        return self.feature_mode != "mvp"

    @property
    def extraction_enabled(self) -> bool:
        return self.feature_mode != "mvp"

    @classmethod
    def from_settings(cls, settings=Settings) -> "TurnConfig":
        return cls(
            model=settings.GEMINI_MODEL,
            fallback_model=settings.GEMINI_FALLBACK_MODEL,
            instruction_model=settings.GEMINI_INSTRUCTION_MODEL,
            temperature=settings.GEMINI_TEMPERATURE,
            top_p=settings.GEMINI_TOP_P,
            feature_mode=settings.COMPASS_FEATURE_MODE,
            extraction_max_attempts=max(1, settings.EXTRACTION_MAX_ATTEMPTS),
        )


# Ayarları doğrula (Import edildiğinde çalışır)
try:
    Settings.validate()
except ValueError as e:
    logger.warning(f"UYARI: {e}")
