"""Azure OpenAI provider using the openai SDK with native async."""

import asyncio
import logging
import os
import time

from openai import AsyncAzureOpenAI

from config.config_loader import ModelConfig
from personity.models import ChatMessage, ModelResponse
from personity.providers.base import AIProvider, ProviderError

logger = logging.getLogger(__name__)

_DEFAULT_API_VERSION = "2024-02-15-preview"


class AzureOpenAIProvider(AIProvider):
    """Azure-hosted OpenAI chat deployment. ``config.model`` is the deployment name."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        endpoint = os.environ.get(config.endpoint_env or "", "").strip()
        if not endpoint:
            raise ProviderError(config.name, f"Missing endpoint: {config.endpoint_env}")
        self._client = AsyncAzureOpenAI(
            api_key=api_key,
            azure_endpoint=endpoint,
            api_version=config.api_version or _DEFAULT_API_VERSION,
        )

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def generate(
        self,
        messages: list[ChatMessage],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> ModelResponse:
        start = time.monotonic()
        kwargs = {}
        if temperature is not None:
            kwargs["temperature"] = temperature
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=self._config.model,
                    messages=[{"role": m.role.value, "content": m.content} for m in messages],
                    max_tokens=max_tokens or self._config.max_tokens,
                    **kwargs,
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        choice = response.choices[0] if response.choices else None
        if not choice or not choice.message.content:
            raise ProviderError(self._config.name, "Empty response content")

        token_count: int | None = None
        if response.usage:
            token_count = response.usage.total_tokens

        logger.debug("Azure OpenAI: %.2fs, %s tokens", latency, token_count)

        return ModelResponse(
            provider=self._config.name,
            model=self._config.model,
            content=choice.message.content,
            latency_sec=latency,
            token_count=token_count,
        )
