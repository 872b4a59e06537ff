"""Handoff strategies: which model takes the next pipeline phase.

Each strategy is a pure function over an explicit HandoffTable. Handoff is a
quality heuristic, so strategies never raise: they fall back to the current
model or the first available one.
"""

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field

from collab_refine.errors import ConfigurationError
from collab_refine.models import ModelDescriptor, Phase
from collab_refine.registry import rank_by_tier

PHASE_CAPABILITIES: dict[Phase, tuple[str, ...]] = {
    Phase.INITIAL: ("creative", "comprehensive"),
    Phase.CRITIQUE: ("analytical", "thoughtful"),
    Phase.IMPROVEMENT: ("precise", "nuanced"),
    Phase.FINAL: ("detailed", "reliable"),
}

PHASE_SPECIALIZATIONS: dict[Phase, str] = {
    Phase.INITIAL: "creative_generation",
    Phase.CRITIQUE: "analytical_critique",
    Phase.IMPROVEMENT: "technical_improvement",
    Phase.FINAL: "comprehensive_review",
}

FINAL_REVIEW_CAPABILITIES = ("detailed", "comprehensive")


@dataclass(frozen=True)
class HandoffTable:
    """Read-only inputs shared by every strategy call.

    models: the available models in registry order.
    specializations: specialization name -> model id.
    """

    models: tuple[ModelDescriptor, ...]
    specializations: Mapping[str, str] = field(default_factory=dict)

    def by_id(self, model_id: str) -> ModelDescriptor | None:
        return next((m for m in self.models if m.id == model_id), None)

    def ids(self) -> list[str]:
        return [m.id for m in self.models]


Strategy = Callable[..., str]


def _best_overlap(
    models: list[ModelDescriptor],
    required: set[str],
    exclude: str | None,
) -> str | None:
    scored = [
        (len(required & m.capabilities), index, m)
        for index, m in enumerate(models)
        if m.id != exclude
    ]
    scored = [entry for entry in scored if entry[0] > 0]
    if not scored:
        return None
    scored.sort(key=lambda entry: (-entry[0], entry[1]))
    return scored[0][2].id


def select_by_capabilities(
    models: Iterable[ModelDescriptor],
    required: Iterable[str],
    exclude: str | None = None,
) -> str | None:
    """Best capability overlap, skipping ``exclude``; ties keep registry order.

    Without any overlap, the first model other than ``exclude`` wins.
    """
    models = list(models)
    best = _best_overlap(models, set(required), exclude)
    if best:
        return best

    others = [m for m in models if m.id != exclude]
    if others:
        return others[0].id
    return models[0].id if models else None


def cross_provider(
    table: HandoffTable,
    current_model: str,
    iteration: int,
    total_iterations: int,
    phase: Phase,
    default: str | None = None,
) -> str:
    """Alternate provider family, rotating through the other family by iteration."""
    current = table.by_id(current_model)
    current_provider = current.provider if current else None
    opposite = [m for m in table.models if m.provider != current_provider]
    if not opposite:
        return default or current_model
    return opposite[iteration % len(opposite)].id


def capability_based(
    table: HandoffTable,
    current_model: str,
    iteration: int,
    total_iterations: int,
    phase: Phase,
    default: str | None = None,
) -> str:
    """Pick the model whose capability tags best match the phase."""
    required = PHASE_CAPABILITIES.get(phase, ("balanced",))
    chosen = select_by_capabilities(table.models, required, exclude=current_model)
    return chosen or default or current_model


def model_specialization(
    table: HandoffTable,
    current_model: str,
    iteration: int,
    total_iterations: int,
    phase: Phase,
    default: str | None = None,
) -> str:
    """Fixed phase -> specialization -> model table; current model when unmapped."""
    specialization = PHASE_SPECIALIZATIONS.get(phase)
    mapped = table.specializations.get(specialization) if specialization else None
    if mapped and table.by_id(mapped) is not None:
        return mapped
    return current_model


STRATEGIES: dict[str, Strategy] = {
    "cross_provider": cross_provider,
    "capability_based": capability_based,
    "model_specialization": model_specialization,
}

_ALIASES = {"capability_progression": "capability_based"}


def strategy_names() -> list[str]:
    return list(STRATEGIES)


def get_strategy(name: str) -> Strategy:
    key = _ALIASES.get(name, name)
    try:
        return STRATEGIES[key]
    except KeyError:
        raise ConfigurationError(
            f"Unknown handoff strategy '{name}' (expected one of: {', '.join(STRATEGIES)})"
        ) from None


def resolve_final_review_model(table: HandoffTable, explicit: str | None = None) -> str | None:
    """Explicit choice, else capability pick, else best tier available."""
    if explicit:
        return explicit
    picked = _best_overlap(list(table.models), set(FINAL_REVIEW_CAPABILITIES), None)
    if picked:
        return picked
    ranked = rank_by_tier(table.models)
    return ranked[0].id if ranked else None
