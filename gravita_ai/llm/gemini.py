"""Google Gemini provider client."""
import logging
from typing import Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from google.generativeai.types import GenerationConfig

from .base import LLMRequest, LLMResponse, ProviderClient
from .errors import EmptyResponse, ProviderCallFailed
from ..core.cost_tracker import Provider

logger = logging.getLogger(__name__)

# Gemini names the assistant role "model"
ROLE_MAP = {"user": "user", "assistant": "model"}


class GeminiProvider(ProviderClient):
    """
    Google Gemini client using the Google AI Studio API.

    Serves the simple and standard tiers by default
    (Gemini 2.0 Flash Lite / Flash).
    """

    provider = Provider.GEMINI

    def __init__(self, api_key: Optional[str] = None):
        """
        Initialize Gemini client.

        Args:
            api_key: Google AI API key (GOOGLE_GEMINI_API_KEY).
        """
        if not api_key:
            raise ValueError("Google Gemini API key required. Set GOOGLE_GEMINI_API_KEY.")
        self.api_key = api_key
        genai.configure(api_key=self.api_key)

    def _get_client(self, model: str, system_instruction: Optional[str]) -> genai.GenerativeModel:
        """Get a GenerativeModel for the model and system prompt."""
        return genai.GenerativeModel(model, system_instruction=system_instruction)

    @staticmethod
    def _to_contents(request: LLMRequest) -> list[dict]:
        """Convert messages to Gemini content format."""
        return [
            {"role": ROLE_MAP.get(msg.role, "user"), "parts": [msg.content]}
            for msg in request.conversation()
        ]

    async def complete(
        self,
        request: LLMRequest,
        *,
        model: str,
        max_tokens: int,
    ) -> LLMResponse:
        """Run one Gemini completion."""
        client = self._get_client(model, request.effective_system_prompt())
        config = GenerationConfig(
            temperature=request.temperature,
            max_output_tokens=max_tokens,
        )

        try:
            response = await client.generate_content_async(
                self._to_contents(request),
                generation_config=config,
            )
        except google_exceptions.GoogleAPICallError as e:
            status = int(e.code) if e.code is not None else None
            raise ProviderCallFailed(self.provider.value, e.message or str(e), status) from e
        except (google_exceptions.GoogleAPIError, OSError, TimeoutError) as e:
            raise ProviderCallFailed(self.provider.value, str(e)) from e

        # response.text raises ValueError when the candidate has no text parts
        try:
            content = response.text
        except ValueError as e:
            raise EmptyResponse(self.provider.value, model) from e
        if not content or not content.strip():
            raise EmptyResponse(self.provider.value, model)

        usage = {}
        if getattr(response, "usage_metadata", None):
            usage = {
                "input_tokens": response.usage_metadata.prompt_token_count,
                "output_tokens": response.usage_metadata.candidates_token_count,
            }

        return LLMResponse(
            content=content,
            model=model,
            provider=self.provider.value,
            usage=usage,
            finish_reason=response.candidates[0].finish_reason.name if response.candidates else "unknown",
            raw_response=response,
        )
