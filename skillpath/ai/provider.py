"""
skillpath/ai/provider.py
Text-generation backends

Providers turn a prompt into raw text and report failures as
AiGenerationError with a stable code. Parsing and retry live in
recommendation_client.py.
"""
import abc
import asyncio
import logging
from typing import Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from skillpath.config.settings import GEMINI_API_KEY, GEMINI_MODEL
from skillpath.errors import AiGenerationError

logger = logging.getLogger(__name__)


class TextGenerationProvider(abc.ABC):
    name: str = "unknown"

    @abc.abstractmethod
    def is_configured(self) -> bool:
        raise NotImplementedError

    @abc.abstractmethod
    async def generate_text(self, prompt: str) -> Optional[str]:
        """
        Generate text for a prompt.

        Returns None for an empty completion.

        Raises:
            AiGenerationError: the backend refused or failed the request
        """
        raise NotImplementedError


class GeminiProvider(TextGenerationProvider):
    """Google Gemini via google-generativeai."""

    name = "gemini"

    def __init__(
        self,
        api_key: Optional[str] = GEMINI_API_KEY,
        model_name: str = GEMINI_MODEL,
        timeout_seconds: float = 30.0,
        temperature: float = 0.4
    ):
        self.model_name = model_name
        self.timeout_seconds = timeout_seconds
        self.temperature = temperature
        self.model = None
        if api_key:
            genai.configure(api_key=api_key)
            self.model = genai.GenerativeModel(model_name)
            logger.info(f"Gemini provider initialized ({model_name})")
        else:
            logger.warning("GEMINI_API_KEY not set, AI recommendations unavailable")

    def is_configured(self) -> bool:
        return self.model is not None

    async def generate_text(self, prompt: str) -> Optional[str]:
        if not self.model:
            raise AiGenerationError(AiGenerationError.INVALID_API_KEY, "Gemini not initialized (GEMINI_API_KEY missing)")

        generation_config = genai.types.GenerationConfig(
            temperature=self.temperature,
            response_mime_type="application/json"
        )

        try:
            response = await asyncio.wait_for(
                self.model.generate_content_async(prompt, generation_config=generation_config),
                timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError as e:
            raise AiGenerationError(
                AiGenerationError.TIMEOUT, f"Gemini timeout after {self.timeout_seconds}s"
            ) from e
        except (google_exceptions.Unauthenticated, google_exceptions.PermissionDenied) as e:
            raise AiGenerationError(AiGenerationError.INVALID_API_KEY, str(e)) from e
        except google_exceptions.ResourceExhausted as e:
            raise AiGenerationError(AiGenerationError.QUOTA_EXCEEDED, str(e)) from e
        except google_exceptions.InvalidArgument as e:
            raise AiGenerationError(AiGenerationError.INVALID_REQUEST, str(e)) from e
        except (genai.types.BlockedPromptException, genai.types.StopCandidateException) as e:
            raise AiGenerationError(AiGenerationError.CONTENT_POLICY_VIOLATION, str(e)) from e
        except google_exceptions.GoogleAPIError as e:
            raise AiGenerationError(AiGenerationError.PROVIDER_ERROR, str(e)) from e

        try:
            text = response.text
        except ValueError as e:
            # .text raises when every candidate was blocked
            raise AiGenerationError(AiGenerationError.CONTENT_POLICY_VIOLATION, str(e)) from e

        return text.strip() if text and text.strip() else None
