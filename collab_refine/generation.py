"""Generation service: routes a model id + prompt to the right provider adapter."""

import logging
import math

from config.config_loader import ProviderConfig
from collab_refine.errors import (
    PromptTooLongError,
    ProviderCallError,
    ProviderUnavailableError,
    UnknownModelError,
)
from collab_refine.models import ModelDescriptor
from collab_refine.providers.anthropic import AnthropicProvider
from collab_refine.providers.base import AIProvider, ProviderError
from collab_refine.providers.openai_provider import OpenAIProvider
from collab_refine.registry import ModelRegistry

logger = logging.getLogger(__name__)

PROVIDER_CLASSES: dict[str, type[AIProvider]] = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
}

# Share of a model's token budget a prompt may use; the rest is kept for output.
_INPUT_BUDGET_RATIO = 0.7
_CHARS_PER_TOKEN = 4


def estimate_token_count(text: str) -> int:
    """Rough estimate: ~4 characters per token for English text."""
    return math.ceil(len(text) / _CHARS_PER_TOKEN)


class GenerationService:
    """Stateless per call; holds only the registry and the enabled adapters."""

    def __init__(
        self,
        registry: ModelRegistry,
        provider_configs: dict[str, ProviderConfig] | None = None,
    ) -> None:
        self._registry = registry
        self._provider_configs = provider_configs or {}
        self._providers: dict[str, AIProvider] = {}

    @property
    def registry(self) -> ModelRegistry:
        return self._registry

    def set_credentials(self, credentials: dict[str, str]) -> list[str]:
        """Validate key shapes and (re)build adapters. Returns accepted providers.

        Only the format is checked (configured prefix per provider), never
        whether the key actually works. Replaces any previously set keys.
        """
        accepted: dict[str, AIProvider] = {}
        for provider_name, raw_key in credentials.items():
            key = (raw_key or "").strip()
            if not key:
                continue
            config = self._provider_configs.get(provider_name)
            if config is None or provider_name not in PROVIDER_CLASSES:
                logger.warning("Credential for unknown provider '%s' ignored", provider_name)
                continue
            if config.key_prefix and not key.startswith(config.key_prefix):
                logger.warning("%s API key format appears invalid", provider_name)
                continue
            try:
                accepted[provider_name] = PROVIDER_CLASSES[provider_name](config, key)
            except ProviderError as exc:
                logger.warning("Failed to instantiate provider '%s': %s", provider_name, exc)
                continue
            logger.info("%s API key accepted", provider_name)

        self._providers = accepted
        logger.info(
            "Enabled models: %s",
            ", ".join(m.id for m in self.available_models()) or "(none)",
        )
        return sorted(accepted)

    def register_provider(self, provider: AIProvider) -> None:
        self._providers[provider.name()] = provider

    def remove_provider(self, provider_name: str) -> None:
        self._providers.pop(provider_name, None)

    def enabled_providers(self) -> list[str]:
        return sorted(self._providers)

    def provider(self, provider_name: str) -> AIProvider | None:
        return self._providers.get(provider_name)

    def available_models(self) -> list[ModelDescriptor]:
        """Models whose provider has a credential, in registry (tier) order."""
        return self._registry.for_providers(self._providers)

    def is_model_available(self, model_id: str) -> bool:
        descriptor = self._registry.by_id(model_id)
        return descriptor is not None and descriptor.provider.value in self._providers

    def validate_prompt_length(self, model_id: str, prompt: str) -> None:
        descriptor = self._require(model_id)
        estimated = estimate_token_count(prompt)
        max_input_tokens = descriptor.max_output_tokens * _INPUT_BUDGET_RATIO
        if estimated > max_input_tokens:
            raise PromptTooLongError(model_id, estimated, max_input_tokens)

    async def generate(
        self,
        model_id: str,
        prompt: str,
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> str:
        """Generate text with a registry model.

        Raises:
            UnknownModelError: model_id not in the registry.
            ProviderUnavailableError: no credential for the model's provider.
            PromptTooLongError: prompt estimate exceeds 70% of the model's budget.
            ProviderCallError: the adapter failed or returned nothing usable.
        """
        descriptor = self._require(model_id)
        provider = self._providers.get(descriptor.provider.value)
        if provider is None:
            raise ProviderUnavailableError(model_id, descriptor.provider.value)

        self.validate_prompt_length(model_id, prompt)

        effective_max = max_tokens if max_tokens is not None else descriptor.max_output_tokens
        effective_temp = temperature if temperature is not None else descriptor.temperature

        logger.debug(
            "Generating with %s (%s, %s tier), max_tokens=%d",
            model_id,
            descriptor.provider.value,
            descriptor.tier.value,
            effective_max,
        )

        try:
            response = await provider.generate(
                descriptor.model_name,
                prompt,
                max_tokens=effective_max,
                temperature=effective_temp,
            )
        except ProviderError as exc:
            raise ProviderCallError(model_id, str(exc)) from exc
        except Exception as exc:
            raise ProviderCallError(model_id, f"Unexpected error: {exc}") from exc

        if not response.content or not response.content.strip():
            raise ProviderCallError(model_id, "Empty response content")

        return response.content

    def _require(self, model_id: str) -> ModelDescriptor:
        descriptor = self._registry.by_id(model_id)
        if descriptor is None:
            raise UnknownModelError(model_id)
        return descriptor
