"""Abstract base for all AI model providers."""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable
from typing import TypeVar

from collab_refine.models import ModelResponse

T = TypeVar("T")


class ProviderError(Exception):
    """Raised when a provider call fails."""

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


class AIProvider(ABC):
    """One implementation per provider family; serves every model of that family."""

    @abstractmethod
    def name(self) -> str:
        """Return the provider family name (e.g. 'openai', 'anthropic')."""
        ...

    @abstractmethod
    async def generate(
        self,
        model: str,
        prompt: str,
        max_tokens: int,
        temperature: float,
    ) -> ModelResponse:
        """Generate a response for the given prompt.

        Args:
            model: Vendor model string to call.
            prompt: The full prompt text to send.
            max_tokens: Output token budget for this call.
            temperature: Sampling temperature for this call.

        Returns:
            ModelResponse dataclass with content and metadata.

        Raises:
            ProviderError: On API failure, timeout, or empty response.
        """
        ...

    async def _guarded(self, call: Awaitable[T], timeout_sec: float) -> T:
        """Await an SDK call under a timeout. Any SDK failure becomes ProviderError."""
        try:
            return await asyncio.wait_for(call, timeout=timeout_sec)
        except TimeoutError as exc:
            raise ProviderError(self.name(), f"Request timed out after {timeout_sec}s") from exc
        except Exception as exc:
            raise ProviderError(self.name(), f"API call failed: {exc}") from exc
