"""
EchoLog Backend — Gemini Service Unit Tests (Mocked)
======================================================

What:  Tests for GeminiService with the Google Generative AI SDK patched out.
How:   Patches the genai module and model to simulate success and failure.

What we test:
    ✅ A successful call returns the reply text unparsed
    ✅ Sampling parameters reach the SDK
    ✅ Any SDK failure becomes ExternalServiceError carrying the upstream message
    ✅ The call is made exactly once (no retries)
    ✅ Health check returns a bool and never raises
    ❌ Real API calls
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from echolog.exceptions import ExternalServiceError
from echolog.services.gemini_service import GeminiService
from echolog.services.llm_base import GenerationSettings


class TestGeminiServiceMocked:
    @pytest.mark.asyncio
    async def test_generate_success(self):
        with patch("echolog.services.gemini_service.genai") as mock_genai:
            mock_response = MagicMock()
            mock_response.text = '{"summary": "ok"}'
            mock_model = MagicMock()
            mock_model.generate_content_async = AsyncMock(return_value=mock_response)
            mock_genai.GenerativeModel.return_value = mock_model

            service = GeminiService(api_key="k", model_name="gemini-1.5-flash")
            result = await service.generate("prompt", GenerationSettings(temperature=0.1, top_k=20))

            assert result == '{"summary": "ok"}'
            mock_genai.configure.assert_called_once_with(api_key="k")
            mock_genai.types.GenerationConfig.assert_called_once_with(
                temperature=0.1, top_p=0.8, top_k=20, max_output_tokens=4096
            )
            mock_model.generate_content_async.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failure_is_wrapped_and_not_retried(self):
        with patch("echolog.services.gemini_service.genai") as mock_genai:
            mock_model = MagicMock()
            mock_model.generate_content_async = AsyncMock(side_effect=RuntimeError("429 quota exhausted"))
            mock_genai.GenerativeModel.return_value = mock_model

            service = GeminiService(api_key="k")

            with pytest.raises(ExternalServiceError) as exc_info:
                await service.generate("prompt", GenerationSettings())

            assert exc_info.value.details == "429 quota exhausted"
            assert exc_info.value.service == "Gemini"
            assert mock_model.generate_content_async.await_count == 1

    @pytest.mark.asyncio
    async def test_empty_reply_is_returned_as_empty_string(self):
        with patch("echolog.services.gemini_service.genai") as mock_genai:
            mock_response = MagicMock()
            mock_response.text = None
            mock_genai.GenerativeModel.return_value.generate_content_async = AsyncMock(
                return_value=mock_response
            )

            service = GeminiService(api_key="k")
            assert await service.generate("prompt", GenerationSettings()) == ""

    def test_placeholder_key_is_not_configured(self):
        with patch("echolog.services.gemini_service.genai") as mock_genai:
            GeminiService(api_key="your_gemini_api_key_here")
            mock_genai.configure.assert_not_called()

    @pytest.mark.asyncio
    async def test_health_check_returns_bool(self):
        with patch("echolog.services.gemini_service.genai") as mock_genai:
            mock_genai.list_models.return_value = [MagicMock()]

            service = GeminiService(api_key="k")
            result = await service.health_check()
            assert isinstance(result, bool)

    @pytest.mark.asyncio
    async def test_health_check_failure_returns_false(self):
        with patch("echolog.services.gemini_service.genai") as mock_genai:
            mock_genai.list_models.side_effect = ConnectionError("unreachable")

            service = GeminiService(api_key="k")
            assert await service.health_check() is False
