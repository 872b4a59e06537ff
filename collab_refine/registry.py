"""Static model catalogue: ids, provider family, capability tags, tier."""

from collections.abc import Iterable

from config.config_loader import ModelConfig
from collab_refine.models import ModelDescriptor, Provider, Tier

TIER_ORDER: dict[Tier, int] = {Tier.PREMIUM: 0, Tier.ADVANCED: 1, Tier.STANDARD: 2}


def rank_by_tier(models: Iterable[ModelDescriptor]) -> list[ModelDescriptor]:
    """Sort premium -> advanced -> standard, keeping input order within a tier."""
    return sorted(models, key=lambda m: TIER_ORDER[m.tier])


class ModelRegistry:
    """Read-only after construction; safe to share between sessions."""

    def __init__(self, descriptors: Iterable[ModelDescriptor]) -> None:
        ordered = rank_by_tier(descriptors)
        self._by_id: dict[str, ModelDescriptor] = {}
        for descriptor in ordered:
            if descriptor.id in self._by_id:
                raise ValueError(f"Duplicate model id: {descriptor.id}")
            self._by_id[descriptor.id] = descriptor
        self._ordered = tuple(ordered)

    @classmethod
    def from_config(cls, models: dict[str, ModelConfig]) -> "ModelRegistry":
        return cls(
            ModelDescriptor(
                id=cfg.name,
                provider=Provider(cfg.provider),
                model_name=cfg.model,
                tier=Tier(cfg.tier),
                capabilities=frozenset(cfg.capabilities),
                max_output_tokens=cfg.max_tokens,
                temperature=cfg.temperature,
                display_name=cfg.display_name or cfg.name,
            )
            for cfg in models.values()
        )

    def list_models(self) -> list[ModelDescriptor]:
        return list(self._ordered)

    def by_id(self, model_id: str) -> ModelDescriptor | None:
        return self._by_id.get(model_id)

    def for_providers(self, providers: Iterable[str]) -> list[ModelDescriptor]:
        wanted = {str(Provider(p).value) for p in providers}
        return [m for m in self._ordered if m.provider.value in wanted]

    def __contains__(self, model_id: object) -> bool:
        return model_id in self._by_id

    def __len__(self) -> int:
        return len(self._ordered)
