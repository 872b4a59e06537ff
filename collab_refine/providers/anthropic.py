"""Anthropic messages adapter. Large output budgets go through the streaming helper."""

import logging
import time

import anthropic as anthropic_sdk

from config.config_loader import ProviderConfig
from collab_refine.models import ModelResponse
from collab_refine.providers.base import AIProvider, ProviderError

logger = logging.getLogger(__name__)

# Above this output budget the SDK refuses non-streaming requests.
_STREAMING_THRESHOLD = 4000


class AnthropicProvider(AIProvider):
    def __init__(self, config: ProviderConfig, api_key: str) -> None:
        self._config = config
        key = api_key.strip()
        if not key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = anthropic_sdk.AsyncAnthropic(api_key=key)

    def name(self) -> str:
        return self._config.name

    async def _create(self, model: str, prompt: str, max_tokens: int, temperature: float):
        params = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if max_tokens <= _STREAMING_THRESHOLD:
            return await self._client.messages.create(**params)
        async with self._client.messages.stream(**params) as stream:
            return await stream.get_final_message()

    async def generate(
        self,
        model: str,
        prompt: str,
        max_tokens: int,
        temperature: float,
    ) -> ModelResponse:
        started = time.monotonic()
        message = await self._guarded(
            self._create(model, prompt, max_tokens, temperature),
            self._config.timeout_sec,
        )
        latency = time.monotonic() - started

        if not message.content:
            raise ProviderError(self._config.name, "Empty response content")
        text = "\n".join(block.text for block in message.content if block.type == "text").strip()
        if not text:
            raise ProviderError(self._config.name, "No text blocks in response")

        tokens = None
        if message.usage:
            tokens = message.usage.input_tokens + message.usage.output_tokens
        logger.info("Anthropic %s: %.2fs, %s tokens", model, latency, tokens)

        return ModelResponse(
            provider=self._config.name,
            model=model,
            content=text,
            latency_sec=latency,
            token_count=tokens,
        )
