"""Abstract base for all LLM providers."""

from abc import ABC, abstractmethod

from personity.models import ChatMessage, ModelResponse


class ProviderError(Exception):
    """Raised when a provider call fails."""

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


class AIProvider(ABC):
    """Abstract base for all LLM providers."""

    @abstractmethod
    def name(self) -> str:
        """Return the short provider name (e.g. 'azure', 'gemini')."""
        ...

    @abstractmethod
    def model_string(self) -> str:
        """Return the actual model identifier string."""
        ...

    @abstractmethod
    async def generate(
        self,
        messages: list[ChatMessage],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> ModelResponse:
        """Generate a completion for the given chat messages.

        Args:
            messages: System/user/assistant messages, oldest first.
            temperature: Sampling temperature; provider default when None.
            max_tokens: Output token cap; config value when None.

        Returns:
            ModelResponse dataclass with content and metadata.

        Raises:
            ProviderError: On API failure, timeout, or empty response.
        """
        ...
