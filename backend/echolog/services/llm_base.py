"""
EchoLog Backend — Abstract LLM Service Interface
==================================================

What:  Abstract base class defining the contract for generative text services.
How:   Concrete implementations inherit from LLMService and implement generate().
Who:   Called by AnalysisService to analyse transcripts.

Implementations:
    - GeminiService: Google Gemini (google-generativeai)
    - Test fakes in tests/conftest.py
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class GenerationSettings:
    """Sampling parameters passed through to the model."""

    temperature: float = 0.2
    top_p: float = 0.8
    top_k: int = 40
    max_output_tokens: int = 4096


class LLMService(ABC):
    """
    Abstract interface for text generation.

    Contract:
        - generate() returns the model's raw text reply, unparsed
        - Provider errors are wrapped in ExternalServiceError
        - No retries: the caller decides whether to resubmit
    """

    @abstractmethod
    async def generate(self, prompt: str, generation: GenerationSettings) -> str:
        """
        Send a prompt and return the reply text.

        Raises:
            ExternalServiceError: When the provider call fails. The upstream
                message is carried in `details`.
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Lightweight reachability check used by GET /health."""
        ...
