"""Provider registration and lookup."""
from typing import Callable, Optional

from .base import ProviderClient
from .errors import ProviderNotConfigured
from .gemini import GeminiProvider
from .openai_provider import DeepSeekProvider, OpenAIProvider
from ..core.config import Settings
from ..core.cost_tracker import Provider

ClientFactory = Callable[[Settings], ProviderClient]
CredentialCheck = Callable[[Settings], Optional[str]]


class ProviderRegistry:
    """
    Maps each Provider to the client that serves it.

    Clients are built lazily from settings and cached. A provider counts as
    configured when its credential lookup returns a non-empty key; checking
    never touches the network.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self._factories: dict[Provider, ClientFactory] = {}
        self._credentials: dict[Provider, CredentialCheck] = {}
        self._clients: dict[Provider, ProviderClient] = {}

    def register(
        self,
        provider: Provider,
        factory: ClientFactory,
        credential: CredentialCheck,
    ) -> None:
        """Register a client factory and its credential lookup."""
        self._factories[provider] = factory
        self._credentials[provider] = credential
        self._clients.pop(provider, None)

    def register_client(self, provider: Provider, client: ProviderClient) -> None:
        """Register a ready-made client. It is always considered configured."""
        self._factories[provider] = lambda _settings: client
        self._credentials[provider] = lambda _settings: "preconfigured"
        self._clients[provider] = client

    def is_configured(self, provider: Provider) -> bool:
        credential = self._credentials.get(provider)
        if credential is None:
            return False
        return bool(credential(self.settings))

    def get(self, provider: Provider) -> ProviderClient:
        """
        Get the client for a provider.

        Raises:
            ProviderNotConfigured: If the provider is unknown or lacks credentials
        """
        if not self.is_configured(provider):
            raise ProviderNotConfigured(provider.value)
        if provider not in self._clients:
            self._clients[provider] = self._factories[provider](self.settings)
        return self._clients[provider]

    def configured_providers(self) -> list[dict]:
        """Configuration status of every known provider."""
        return [
            {"provider": provider.value, "configured": self.is_configured(provider)}
            for provider in Provider
        ]


def default_registry(settings: Settings) -> ProviderRegistry:
    """Registry with the Gemini, DeepSeek and OpenAI clients."""
    registry = ProviderRegistry(settings)
    registry.register(
        Provider.GEMINI,
        lambda s: GeminiProvider(api_key=s.google_gemini_api_key),
        lambda s: s.google_gemini_api_key,
    )
    registry.register(
        Provider.DEEPSEEK,
        lambda s: DeepSeekProvider(api_key=s.deepseek_api_key, base_url=s.deepseek_base_url),
        lambda s: s.deepseek_api_key,
    )
    registry.register(
        Provider.OPENAI,
        lambda s: OpenAIProvider(api_key=s.openai_key, base_url=s.openai_base_url),
        lambda s: s.openai_key,
    )
    return registry
