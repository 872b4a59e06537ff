"""Load settings.yaml into typed dataclasses."""

import logging
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


@dataclass
class ProviderConfig:
    name: str
    api_key_env: str
    key_prefix: str
    timeout_sec: int
    base_url: str | None = None


@dataclass
class ModelConfig:
    name: str
    provider: str
    model: str
    tier: str
    max_tokens: int
    temperature: float = 0.7
    capabilities: list[str] = field(default_factory=list)
    display_name: str | None = None


@dataclass
class PromptsConfig:
    analysis: str
    clarification: str
    polish: str
    clarified_refinement: str
    critique: str
    improvement: str
    final_review: str


@dataclass
class DefaultsConfig:
    iterations: int
    max_iterations: int
    handoff_strategy: str
    primary_model: str
    refinement_model: str
    output_dir: Path
    final_review_model: str | None = None


@dataclass
class InboxConfig:
    dir: Path
    archive_dir: Path


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    providers: dict[str, ProviderConfig]
    models: dict[str, ModelConfig]
    prompts: PromptsConfig
    inbox: InboxConfig
    specializations: dict[str, str] = field(default_factory=dict)


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing.
    Credentials are not read here; GenerationService checks the key
    for each provider when it is built.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    final_review = defaults_raw.get("final_review_model")
    defaults = DefaultsConfig(
        iterations=int(defaults_raw["iterations"]),
        max_iterations=int(defaults_raw["max_iterations"]),
        handoff_strategy=str(defaults_raw["handoff_strategy"]),
        primary_model=str(defaults_raw["primary_model"]),
        refinement_model=str(defaults_raw["refinement_model"]),
        output_dir=Path(defaults_raw["output_dir"]),
        final_review_model=str(final_review) if final_review else None,
    )

    inbox_raw = raw.get("inbox", {})
    inbox = InboxConfig(
        dir=Path(inbox_raw.get("dir", "./inbox")),
        archive_dir=Path(inbox_raw.get("archive_dir", "./inbox/archive")),
    )

    prompts_raw = raw["prompts"]
    prompts = PromptsConfig(
        analysis=prompts_raw["analysis"],
        clarification=prompts_raw["clarification"],
        polish=prompts_raw["polish"],
        clarified_refinement=prompts_raw["clarified_refinement"],
        critique=prompts_raw["critique"],
        improvement=prompts_raw["improvement"],
        final_review=prompts_raw["final_review"],
    )

    providers: dict[str, ProviderConfig] = {}
    for provider_name, provider_raw in raw["providers"].items():
        providers[provider_name] = ProviderConfig(
            name=provider_name,
            api_key_env=provider_raw["api_key_env"],
            key_prefix=str(provider_raw.get("key_prefix", "")),
            timeout_sec=int(provider_raw["timeout_sec"]),
            base_url=provider_raw.get("base_url"),
        )

    models: dict[str, ModelConfig] = {}
    for model_id, model_raw in raw["models"].items():
        if model_raw["provider"] not in providers:
            raise ValueError(f"Model '{model_id}' references unknown provider '{model_raw['provider']}'")
        models[model_id] = ModelConfig(
            name=model_id,
            provider=model_raw["provider"],
            model=model_raw["model"],
            tier=str(model_raw["tier"]),
            max_tokens=int(model_raw["max_tokens"]),
            temperature=float(model_raw.get("temperature", 0.7)),
            capabilities=list(model_raw.get("capabilities", [])),
            display_name=model_raw.get("display_name"),
        )

    specializations = {str(k): str(v) for k, v in (raw.get("specializations") or {}).items()}
    logger.debug(
        "Loaded %d providers, %d models from %s", len(providers), len(models), settings_path
    )

    return AppConfig(
        defaults=defaults,
        providers=providers,
        models=models,
        prompts=prompts,
        inbox=inbox,
        specializations=specializations,
    )
