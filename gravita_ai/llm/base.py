"""Base provider interface and request/result types."""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from ..core.cost_tracker import ModelTier, Provider


@dataclass
class Message:
    """A message in a conversation."""
    role: str  # "user", "assistant", "system"
    content: str

    def to_dict(self) -> dict:
        return {"role": self.role, "content": self.content}


@dataclass
class LLMRequest:
    """Role-tagged messages plus generation options."""
    messages: list[Message]
    system_prompt: Optional[str] = None
    temperature: float = 0.7
    max_tokens: Optional[int] = None

    @classmethod
    def from_prompt(cls, prompt: str, **kwargs) -> "LLMRequest":
        return cls(messages=[Message(role="user", content=prompt)], **kwargs)

    def effective_system_prompt(self) -> Optional[str]:
        """The override if set, else the first system message."""
        if self.system_prompt:
            return self.system_prompt
        for msg in self.messages:
            if msg.role == "system":
                return msg.content
        return None

    def conversation(self) -> list[Message]:
        """Messages without system entries."""
        return [m for m in self.messages if m.role != "system"]

    def prompt_text(self) -> str:
        """Flattened text, used for token estimates."""
        parts = [self.effective_system_prompt() or ""]
        parts.extend(m.content for m in self.conversation())
        return "\n\n".join(p for p in parts if p)


@dataclass
class LLMResponse:
    """Raw completion returned by a provider client."""
    content: str
    model: str
    provider: str
    usage: dict[str, int] = field(default_factory=dict)
    finish_reason: str = "stop"
    raw_response: Optional[Any] = None

    @property
    def input_tokens(self) -> int:
        return self.usage.get("input_tokens", 0)

    @property
    def output_tokens(self) -> int:
        return self.usage.get("output_tokens", 0)

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class LLMResult:
    """Normalized router output. Callers must inspect `success`."""
    content: str
    provider: Provider
    model_used: str
    tier: ModelTier
    attempts: int
    success: bool
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "content": self.content,
            "provider": self.provider.value,
            "model_used": self.model_used,
            "tier": self.tier.value,
            "attempts": self.attempts,
            "success": self.success,
            "error": self.error,
        }


@dataclass(frozen=True)
class ModelConfig:
    """Default model served for a tier."""
    name: str
    tier: ModelTier
    provider: Provider
    cost_per_million_tokens: float
    max_output_tokens: int
    description: str = ""

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "tier": self.tier.value,
            "provider": self.provider.value,
            "cost_per_million_tokens": self.cost_per_million_tokens,
            "max_output_tokens": self.max_output_tokens,
            "description": self.description,
        }


class ProviderClient(ABC):
    """Base class for provider clients."""

    provider: Provider

    @abstractmethod
    async def complete(
        self,
        request: LLMRequest,
        *,
        model: str,
        max_tokens: int,
    ) -> LLMResponse:
        """
        Run one completion.

        Args:
            request: Messages and generation options
            model: Model ID to use
            max_tokens: Output token cap

        Returns:
            LLMResponse with generated content

        Raises:
            ProviderCallFailed: Network, timeout or provider error
            EmptyResponse: The reply carried no usable content
        """
        pass
