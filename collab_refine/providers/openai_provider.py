"""OpenAI chat completions adapter (also any OpenAI-compatible endpoint via base_url)."""

import logging
import time

from openai import AsyncOpenAI

from config.config_loader import ProviderConfig
from collab_refine.models import ModelResponse
from collab_refine.providers.base import AIProvider, ProviderError

logger = logging.getLogger(__name__)


class OpenAIProvider(AIProvider):
    def __init__(self, config: ProviderConfig, api_key: str) -> None:
        self._config = config
        key = api_key.strip()
        if not key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        client_kwargs = {"api_key": key}
        if config.base_url:
            client_kwargs["base_url"] = config.base_url
        self._client = AsyncOpenAI(**client_kwargs)

    def name(self) -> str:
        return self._config.name

    async def generate(
        self,
        model: str,
        prompt: str,
        max_tokens: int,
        temperature: float,
    ) -> ModelResponse:
        started = time.monotonic()
        response = await self._guarded(
            self._client.chat.completions.create(
                model=model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=max_tokens,
                temperature=temperature,
            ),
            self._config.timeout_sec,
        )
        latency = time.monotonic() - started

        text = ""
        if response.choices:
            text = (response.choices[0].message.content or "").strip()
        if not text:
            raise ProviderError(self._config.name, "Empty response content")

        tokens = response.usage.total_tokens if response.usage else None
        logger.info("OpenAI %s: %.2fs, %s tokens", model, latency, tokens)

        return ModelResponse(
            provider=self._config.name,
            model=model,
            content=text,
            latency_sec=latency,
            token_count=tokens,
        )
