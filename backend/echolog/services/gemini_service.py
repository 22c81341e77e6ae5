"""
EchoLog Backend — Google Gemini Service Implementation
========================================================

What:  Concrete LLM service using Google Gemini for transcript analysis.
How:   Sends a text prompt with explicit sampling parameters and returns the
       reply text. Failures are translated to ExternalServiceError with the
       upstream message; nothing is retried.
Who:   Built lazily by echolog.dependencies; called by AnalysisService.
"""

import logging
import time
import uuid
from typing import Optional

import google.generativeai as genai

from echolog.config import settings
from echolog.exceptions import ExternalServiceError
from echolog.services.llm_base import GenerationSettings, LLMService

logger = logging.getLogger(__name__)


class GeminiService(LLMService):
    """
    Google Gemini text generation.

    The SDK is configured once per instance; the GenerativeModel object is
    reusable across requests.
    """

    def __init__(self, api_key: Optional[str] = None, model_name: Optional[str] = None):
        api_key = api_key if api_key is not None else settings.gemini_api_key
        if api_key and api_key != "your_gemini_api_key_here":
            genai.configure(api_key=api_key)

        self.model_name = model_name or settings.gemini_model
        self.model = genai.GenerativeModel(self.model_name)

        logger.info("GeminiService initialized with model=%s", self.model_name)

    async def generate(self, prompt: str, generation: GenerationSettings) -> str:
        request_id = str(uuid.uuid4())[:8]
        start_time = time.time()

        logger.info(
            "[%s] Gemini request: %d prompt chars, temperature=%.2f",
            request_id,
            len(prompt),
            generation.temperature,
        )

        try:
            response = await self.model.generate_content_async(
                prompt,
                generation_config=genai.types.GenerationConfig(
                    temperature=generation.temperature,
                    top_p=generation.top_p,
                    top_k=generation.top_k,
                    max_output_tokens=generation.max_output_tokens,
                ),
                request_options={"timeout": 60},
            )
            text = response.text or ""
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                "[%s] Gemini call failed after %.0fms: %s",
                request_id,
                duration_ms,
                str(e),
            )
            raise ExternalServiceError(
                service="Gemini",
                upstream_message=str(e),
                message="The AI analysis service request failed.",
                context={"request_id": request_id, "error_type": type(e).__name__},
            ) from e

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "[%s] Gemini reply in %.0fms, %d chars",
            request_id,
            duration_ms,
            len(text),
        )
        return text

    async def health_check(self) -> bool:
        """
        Lists available models (no token cost) to verify key and connectivity.
        """
        try:
            model_names = [m.name for m in genai.list_models()]
            target = f"models/{self.model_name}"
            if target not in model_names:
                logger.warning("Configured model %s not found in available models", target)
            return True
        except Exception as e:
            logger.warning("Gemini health check failed: %s", str(e))
            return False
