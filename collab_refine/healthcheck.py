"""Provider health checks: ping each enabled provider before a refinement run."""

import asyncio
import logging

from collab_refine.generation import GenerationService

logger = logging.getLogger(__name__)

_PING_PROMPT = "Reply with the word OK only."
_PING_MAX_TOKENS = 16
_TIMEOUT_SEC = 15.0


def _ping_targets(service: GenerationService) -> dict[str, str]:
    """Cheapest (lowest tier) enabled model per provider."""
    targets: dict[str, str] = {}
    for model in service.available_models():
        targets[model.provider.value] = model.id
    return targets


async def _check_one(service: GenerationService, provider: str, model_id: str) -> tuple[str, bool, str]:
    """Ping one provider through one of its models. Returns (provider, ok, error_message)."""
    try:
        await asyncio.wait_for(
            service.generate(model_id, _PING_PROMPT, max_tokens=_PING_MAX_TOKENS),
            timeout=_TIMEOUT_SEC,
        )
        return provider, True, ""
    except Exception as exc:
        logger.debug("Health check failed for %s via %s: %s", provider, model_id, exc)
        return provider, False, str(exc) or type(exc).__name__


async def run_health_checks(service: GenerationService) -> dict[str, tuple[bool, str]]:
    """Ping all enabled providers in parallel.

    Returns:
        Dict mapping provider name -> (ok, error_message).
        error_message is "" when ok is True.
    """
    targets = _ping_targets(service)
    results = await asyncio.gather(
        *(_check_one(service, provider, model_id) for provider, model_id in targets.items())
    )
    return {provider: (ok, err) for provider, ok, err in results}
