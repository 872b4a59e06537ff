"""Provider adapters with the SDK clients replaced by mocks."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from collab_refine.providers.anthropic import AnthropicProvider
from collab_refine.providers.base import ProviderError
from collab_refine.providers.openai_provider import OpenAIProvider


def _openai_response(content: str | None):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(total_tokens=42),
    )


def _anthropic_message(*texts: str):
    return SimpleNamespace(
        content=[SimpleNamespace(type="text", text=t) for t in texts],
        usage=SimpleNamespace(input_tokens=10, output_tokens=5),
    )


@pytest.fixture
def openai_provider(provider_configs) -> OpenAIProvider:
    provider = OpenAIProvider(provider_configs["openai"], "sk-test")
    provider._client = MagicMock()
    return provider


@pytest.fixture
def anthropic_provider(provider_configs) -> AnthropicProvider:
    provider = AnthropicProvider(provider_configs["anthropic"], "sk-ant-test")
    provider._client = MagicMock()
    return provider


def test_missing_key_rejected(provider_configs):
    with pytest.raises(ProviderError, match="Missing API key"):
        OpenAIProvider(provider_configs["openai"], "  ")


async def test_openai_generate(openai_provider):
    create = AsyncMock(return_value=_openai_response("  A haiku.  "))
    openai_provider._client.chat.completions.create = create

    response = await openai_provider.generate("gpt-4o", "Write a haiku", max_tokens=100, temperature=0.2)

    assert response.content == "A haiku."
    assert response.token_count == 42
    assert response.provider == "openai"
    kwargs = create.call_args.kwargs
    assert kwargs["model"] == "gpt-4o"
    assert kwargs["max_tokens"] == 100
    assert kwargs["messages"] == [{"role": "user", "content": "Write a haiku"}]


async def test_openai_empty_content(openai_provider):
    openai_provider._client.chat.completions.create = AsyncMock(return_value=_openai_response(None))
    with pytest.raises(ProviderError, match="Empty response"):
        await openai_provider.generate("gpt-4o", "hi", max_tokens=10, temperature=0.7)


async def test_openai_api_failure(openai_provider):
    openai_provider._client.chat.completions.create = AsyncMock(side_effect=RuntimeError("401 Unauthorized"))
    with pytest.raises(ProviderError, match="401"):
        await openai_provider.generate("gpt-4o", "hi", max_tokens=10, temperature=0.7)


async def test_openai_timeout(openai_provider):
    async def hang(**kwargs):
        await asyncio.sleep(9999)

    openai_provider._config.timeout_sec = 0.05
    openai_provider._client.chat.completions.create = hang
    with pytest.raises(ProviderError, match="timed out"):
        await openai_provider.generate("gpt-4o", "hi", max_tokens=10, temperature=0.7)


async def test_anthropic_small_budget_uses_create(anthropic_provider):
    create = AsyncMock(return_value=_anthropic_message("First.", "Second."))
    anthropic_provider._client.messages.create = create

    response = await anthropic_provider.generate("claude-3-5", "hi", max_tokens=4000, temperature=0.7)

    assert response.content == "First.\nSecond."
    assert response.token_count == 15
    create.assert_awaited_once()
    anthropic_provider._client.messages.stream.assert_not_called()


async def test_anthropic_large_budget_streams(anthropic_provider):
    stream = MagicMock()
    stream.get_final_message = AsyncMock(return_value=_anthropic_message("Long answer"))
    manager = MagicMock()
    manager.__aenter__ = AsyncMock(return_value=stream)
    manager.__aexit__ = AsyncMock(return_value=False)
    anthropic_provider._client.messages.stream = MagicMock(return_value=manager)
    anthropic_provider._client.messages.create = AsyncMock()

    response = await anthropic_provider.generate("claude-sonnet-4", "hi", max_tokens=60000, temperature=0.7)

    assert response.content == "Long answer"
    assert anthropic_provider._client.messages.stream.call_args.kwargs["max_tokens"] == 60000
    anthropic_provider._client.messages.create.assert_not_awaited()


async def test_anthropic_no_text_blocks(anthropic_provider):
    message = SimpleNamespace(
        content=[SimpleNamespace(type="tool_use", text="")],
        usage=None,
    )
    anthropic_provider._client.messages.create = AsyncMock(return_value=message)
    with pytest.raises(ProviderError, match="No text blocks"):
        await anthropic_provider.generate("claude-3-5", "hi", max_tokens=100, temperature=0.7)
