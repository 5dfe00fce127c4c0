"""
Gemini Client Fallback Tests
============================

genai is patched; no network.
"""
import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

from google.api_core import exceptions as google_exceptions

from coach.errors import CompletionError, EmptyCompletion
from coach.gemini_client import GeminiClient

PRIMARY = "gemini-3-flash-preview"
FALLBACK = "gemini-2.5-flash"


def _response(text="Hello there.", prompt_tokens=12, output_tokens=3):
    usage = SimpleNamespace(prompt_token_count=prompt_tokens, candidates_token_count=output_tokens)
    return SimpleNamespace(text=text, candidates=[], usage_metadata=usage)


def _model_returning(outcome):
    model = MagicMock()
    if isinstance(outcome, Exception):
        model.generate_content_async = AsyncMock(side_effect=outcome)
    else:
        model.generate_content_async = AsyncMock(return_value=outcome)
    return model


def _run(outcomes, model=None, fallback=FALLBACK):
    """Run one generate() call where each GenerativeModel(...) yields the next outcome."""
    with patch("coach.gemini_client.genai") as mock_genai:
        mock_genai.GenerativeModel.side_effect = [_model_returning(o) for o in outcomes]
        client = GeminiClient(api_key="test-key", model=PRIMARY, fallback_model=fallback)
        try:
            result = asyncio.run(client.generate("prompt", system_instruction="system", model=model))
            error = None
        except CompletionError as e:
            result, error = None, e
        names = [c.kwargs["model_name"] for c in mock_genai.GenerativeModel.call_args_list]
    return result, error, names


class TestGenerate:

    def test_1_success_on_primary(self):
        result, error, names = _run([_response()])

        assert error is None
        assert names == [PRIMARY]
        assert result.text == "Hello there."
        assert result.fell_back is False
        assert (result.usage.input_tokens, result.usage.output_tokens) == (12, 3)

    def test_2_not_found_retries_once_on_fallback(self):
        result, error, names = _run([google_exceptions.NotFound("no such model"), _response("From fallback")])

        assert error is None
        assert names == [PRIMARY, FALLBACK]
        assert result.model == FALLBACK
        assert result.fell_back is True
        assert result.text == "From fallback"

    def test_3_fallback_failure_is_fatal_without_loop(self):
        result, error, names = _run([
            google_exceptions.NotFound("no such model"),
            google_exceptions.NotFound("fallback missing too"),
        ])

        assert result is None
        assert names == [PRIMARY, FALLBACK]
        assert error.upstream_status == 404
        assert error.to_dict()["upstream_status"] == 404

    def test_4_no_retry_when_requested_is_fallback(self):
        result, error, names = _run([google_exceptions.NotFound("gone")], model=FALLBACK)

        assert names == [FALLBACK]
        assert error.upstream_status == 404

    def test_5_other_errors_not_retried(self):
        result, error, names = _run([google_exceptions.InternalServerError("boom")])

        assert names == [PRIMARY]
        assert error.upstream_status == 500
        assert error.status_code == 500

    def test_6_empty_text_is_a_failure(self):
        result, error, names = _run([_response(text="   ")])

        assert isinstance(error, EmptyCompletion)

    def test_7_usage_estimated_without_metadata(self):
        response = SimpleNamespace(text="abcdefgh", candidates=[], usage_metadata=None)
        result, error, names = _run([response])

        assert result.usage.estimated is True
        assert result.usage.output_tokens == 2

    def test_8_non_api_errors_become_completion_errors(self):
        result, error, names = _run([RuntimeError("transport reset")])

        assert names == [PRIMARY]
        assert isinstance(error, CompletionError)
        assert error.upstream_status is None
        assert "transport reset" in error.to_dict()["details"]

    def test_9_non_api_error_on_fallback(self):
        result, error, names = _run([google_exceptions.NotFound("no such model"), ValueError("bad candidate")])

        assert names == [PRIMARY, FALLBACK]
        assert isinstance(error, CompletionError)
        assert "bad candidate" in error.to_dict()["details"]
