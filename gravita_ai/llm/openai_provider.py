"""OpenAI-compatible provider clients (OpenAI and DeepSeek)."""
import logging
from typing import Optional

import openai
from openai import AsyncOpenAI

from .base import LLMRequest, LLMResponse, ProviderClient
from .errors import EmptyResponse, ProviderCallFailed
from ..core.cost_tracker import Provider

logger = logging.getLogger(__name__)


class OpenAIProvider(ProviderClient):
    """
    OpenAI chat completions client.

    Also accepts a ChatLLM key and a custom base URL for OpenAI-compatible
    gateways.
    """

    provider = Provider.OPENAI
    default_base_url: Optional[str] = None

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None):
        """
        Initialize the client.

        Args:
            api_key: API key for the endpoint
            base_url: Override for the API base URL
        """
        if not api_key:
            raise ValueError(f"{self.provider.value} API key required.")
        self.api_key = api_key
        self.base_url = base_url or self.default_base_url
        self._client: Optional[AsyncOpenAI] = None

    def _get_client(self) -> AsyncOpenAI:
        """Lazy load the async client."""
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self.api_key, base_url=self.base_url)
        return self._client

    @staticmethod
    def _to_messages(request: LLMRequest) -> list[dict]:
        """Convert to chat completion format, system prompt first."""
        messages = []
        system_prompt = request.effective_system_prompt()
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.extend(m.to_dict() for m in request.conversation())
        return messages

    async def complete(
        self,
        request: LLMRequest,
        *,
        model: str,
        max_tokens: int,
    ) -> LLMResponse:
        """Run one chat completion."""
        client = self._get_client()

        try:
            response = await client.chat.completions.create(
                model=model,
                messages=self._to_messages(request),
                temperature=request.temperature,
                max_tokens=max_tokens,
            )
        except openai.APIStatusError as e:
            raise ProviderCallFailed(self.provider.value, e.message, e.status_code) from e
        except openai.APIError as e:
            raise ProviderCallFailed(self.provider.value, str(e)) from e

        if not response.choices:
            raise EmptyResponse(self.provider.value, model)
        content = response.choices[0].message.content
        if not content or not content.strip():
            raise EmptyResponse(self.provider.value, model)

        usage = {}
        if response.usage:
            usage = {
                "input_tokens": response.usage.prompt_tokens,
                "output_tokens": response.usage.completion_tokens,
            }

        return LLMResponse(
            content=content,
            model=model,
            provider=self.provider.value,
            usage=usage,
            finish_reason=response.choices[0].finish_reason or "unknown",
            raw_response=response,
        )


class DeepSeekProvider(OpenAIProvider):
    """DeepSeek V3 via its OpenAI-compatible API. Serves the advanced tier."""

    provider = Provider.DEEPSEEK
    default_base_url = "https://api.deepseek.com"
