"""
Gemini Client for the Coach Turn Pipeline
Handles LLM calls with token tracking and the single model-fallback retry.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from coach.errors import CompletionError, EmptyCompletion
from coach.metrics import estimate_tokens

logger = logging.getLogger(__name__)


@dataclass
class TokenUsage:
    """Token usage tracking."""
    input_tokens: int = 0
    output_tokens: int = 0
    estimated: bool = False

    @property
    def total(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class GenerationResult:
    """Result from LLM generation."""
    text: str
    model: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    fell_back: bool = False


class GeminiClient:
    """
    Wrapper for the Gemini API with:
    - Model fallback (one retry when the requested model is not found)
    - Token tracking
    - Empty-response detection
    """

    def __init__(self, api_key: Optional[str], model: str, fallback_model: Optional[str] = None,
                 temperature: float = 0.7, top_p: float = 0.95):
        """
        Initialize Gemini client.

        Args:
            api_key: Gemini API key
            model: Default model for coach turns
            fallback_model: Model retried once when `model` is not found
        """
        self.model_name = model
        self.fallback_model = fallback_model
        self.temperature = temperature
        self.top_p = top_p

        if api_key:
            genai.configure(api_key=api_key)
        else:
            logger.warning("GeminiClient created without an API key")

    @staticmethod
    def _extract_text(response) -> str:
        """Extract response text; blocked or part-less candidates give ''."""
        if response is None:
            return ""
        try:
            if response.text:
                return response.text
        except (ValueError, AttributeError):
            # .text raises when the candidate has no parts
            pass

        text_parts = []
        for candidate in (getattr(response, "candidates", None) or [])[:1]:
            content = getattr(candidate, "content", None)
            for part in (getattr(content, "parts", None) or []):
                if getattr(part, "text", None):
                    text_parts.append(part.text)
        return "".join(text_parts)

    def _usage(self, response, prompt: str, system_instruction: Optional[str], text: str) -> TokenUsage:
        metadata = getattr(response, "usage_metadata", None)
        prompt_tokens = getattr(metadata, "prompt_token_count", None) if metadata else None
        output_tokens = getattr(metadata, "candidates_token_count", None) if metadata else None
        if prompt_tokens and output_tokens is not None:
            return TokenUsage(input_tokens=prompt_tokens, output_tokens=output_tokens)
        return TokenUsage(
            input_tokens=estimate_tokens((system_instruction or "") + prompt),
            output_tokens=estimate_tokens(text),
            estimated=True,
        )

    async def _call(self, model: str, prompt: str, system_instruction: Optional[str],
                    temperature: float, top_p: float):
        llm = genai.GenerativeModel(
            model_name=model,
            system_instruction=system_instruction or None,
        )
        generation_config = genai.GenerationConfig(
            temperature=temperature,
            top_p=top_p,
        )
        return await llm.generate_content_async(prompt, generation_config=generation_config)

    async def generate(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        top_p: Optional[float] = None,
    ) -> GenerationResult:
        """
        Generate a response from Gemini.

        Args:
            prompt: Assembled prompt body
            system_instruction: System instruction for the model
            model: Model override (default: client model)
            temperature: Sampling temperature override
            top_p: Nucleus sampling override

        Returns:
            GenerationResult with text, model actually used and usage

        Raises:
            CompletionError: upstream failure (after at most one fallback retry)
            EmptyCompletion: the model returned no text
        """
        requested = model or self.model_name
        temperature = self.temperature if temperature is None else temperature
        top_p = self.top_p if top_p is None else top_p

        used = requested
        fell_back = False
        try:
            response = await self._call(requested, prompt, system_instruction, temperature, top_p)
        except google_exceptions.NotFound as e:
            if not self.fallback_model or self.fallback_model == requested:
                raise CompletionError(f"Model {requested} not found: {e}",
                                      upstream_status=_status_of(e), model=requested)

            logger.warning(f"Model {requested} not found, retrying once with {self.fallback_model}")
            used = self.fallback_model
            fell_back = True
            try:
                response = await self._call(used, prompt, system_instruction, temperature, top_p)
            except google_exceptions.GoogleAPIError as retry_error:
                raise CompletionError(f"Fallback model {used} failed: {retry_error}",
                                      upstream_status=_status_of(retry_error), model=used)
            except Exception as retry_error:
                raise CompletionError(f"Fallback model {used} failed: {retry_error}", model=used)
        except google_exceptions.GoogleAPIError as e:
            raise CompletionError(f"Gemini call failed: {e}",
                                  upstream_status=_status_of(e), model=requested)
        except Exception as e:
            # Errors outside the api_core hierarchy (auth, transport)
            raise CompletionError(f"Gemini call failed: {e}", model=requested)

        text = self._extract_text(response).strip()
        if not text:
            raise EmptyCompletion(f"Model {used} returned an empty response", model=used)

        return GenerationResult(
            text=text,
            model=used,
            usage=self._usage(response, prompt, system_instruction, text),
            fell_back=fell_back,
        )


def _status_of(error: google_exceptions.GoogleAPIError) -> Optional[int]:
    code = getattr(error, "code", None)
    return int(code) if code is not None else None


def create_client(settings) -> GeminiClient:
    """Create a GeminiClient from the application Settings."""
    return GeminiClient(
        api_key=settings.GEMINI_API_KEY,
        model=settings.GEMINI_MODEL,
        fallback_model=settings.GEMINI_FALLBACK_MODEL,
        temperature=settings.GEMINI_TEMPERATURE,
        top_p=settings.GEMINI_TOP_P,
    )
