"""Shared pytest fixtures."""

import asyncio
from pathlib import Path

import pytest

from config.config_loader import (
    AppConfig,
    DefaultsConfig,
    InboxConfig,
    ModelConfig,
    PromptsConfig,
    ProviderConfig,
)
from collab_refine.engine import RefinementEngine
from collab_refine.generation import GenerationService
from collab_refine.models import ModelResponse, ModelSelection
from collab_refine.providers.base import AIProvider, ProviderError
from collab_refine.registry import ModelRegistry

CLEAR_ANALYSIS = """CLARITY_SCORE: 0.9
COMPLETENESS_SCORE: 0.85
SPECIFICITY_SCORE: 0.8
OVERALL_SCORE: 0.85
NEEDS_CLARIFICATION: NO
MISSING_ELEMENTS: none
POTENTIAL_IMPROVEMENTS: mention the target audience
REASONING: The request is clear enough to answer."""

VAGUE_ANALYSIS = "OVERALL_SCORE: 0.3, NEEDS_CLARIFICATION: YES"

QUESTIONS_REPLY = """QUESTION_1: What language is the code written in?
QUESTION_2: What error message do you see?
QUESTION_3: What should the code do when it works?"""

SPECIALIZATIONS = {
    "creative_generation": "gpt-4o",
    "analytical_critique": "claude-sonnet-4",
    "technical_improvement": "gpt-4.1",
    "comprehensive_review": "claude-sonnet-4",
}


class ScriptedLLM:
    """Plays every model. Replies depend on the prompt's leading keyword.

    Records (model, prompt) for every call in order. ``fail_on_call`` makes the
    n-th call (1-based) raise a ProviderError instead of answering.
    """

    def __init__(
        self,
        analysis_reply: str = CLEAR_ANALYSIS,
        questions_reply: str = QUESTIONS_REPLY,
        fail_on_call: int | None = None,
    ) -> None:
        self.analysis_reply = analysis_reply
        self.questions_reply = questions_reply
        self.fail_on_call = fail_on_call
        self.calls: list[tuple[str, str]] = []
        self._critiques = 0
        self._improvements = 0

    def prompts_starting_with(self, prefix: str) -> list[str]:
        return [prompt for _, prompt in self.calls if prompt.startswith(prefix)]

    def __call__(self, model: str, prompt: str) -> str:
        self.calls.append((model, prompt))
        if self.fail_on_call == len(self.calls):
            raise ProviderError("stub", f"scripted failure on call {len(self.calls)}")
        if prompt.startswith("ANALYZE:"):
            return self.analysis_reply
        if prompt.startswith("QUESTIONS:"):
            return self.questions_reply
        if prompt.startswith("POLISH:"):
            return "Refined: write a haiku about autumn rain"
        if prompt.startswith("CLARIFIED:"):
            return "Refined with answers: fix the Python parser crash"
        if prompt.startswith("CRITIQUE"):
            self._critiques += 1
            return f"Critique {self._critiques} by {model}: tighten the structure."
        if prompt.startswith("IMPROVE"):
            self._improvements += 1
            return f"Improved draft {self._improvements} by {model}"
        if prompt.startswith("FINAL"):
            return "Final polished output"
        return f"Initial draft by {model}"


class StubProvider(AIProvider):
    """Test double provider; delegates every call to a responder callable."""

    def __init__(self, provider_name: str, responder=None) -> None:
        self._name = provider_name
        self._responder = responder or (lambda model, prompt: f"{model} reply")
        self.calls: list[dict] = []

    def name(self) -> str:
        return self._name

    async def generate(self, model: str, prompt: str, max_tokens: int, temperature: float) -> ModelResponse:
        self.calls.append(
            {"model": model, "prompt": prompt, "max_tokens": max_tokens, "temperature": temperature}
        )
        await asyncio.sleep(0)
        content = self._responder(model, prompt)
        return ModelResponse(
            provider=self._name,
            model=model,
            content=content,
            latency_sec=0.01,
            token_count=5,
        )


def _model(name, provider, tier, max_tokens, capabilities, display_name) -> ModelConfig:
    return ModelConfig(
        name=name,
        provider=provider,
        model=name,
        tier=tier,
        max_tokens=max_tokens,
        temperature=0.7,
        capabilities=capabilities,
        display_name=display_name,
    )


@pytest.fixture
def sample_model_configs() -> dict[str, ModelConfig]:
    return {
        "claude-sonnet-4": _model(
            "claude-sonnet-4", "anthropic", "premium", 60000,
            ["comprehensive", "detailed", "analytical", "thoughtful", "advanced"], "Claude 4 Sonnet",
        ),
        "gpt-4.1": _model(
            "gpt-4.1", "openai", "premium", 32000,
            ["advanced", "nuanced", "precise", "technical", "comprehensive"], "GPT-4.1",
        ),
        "gpt-4o": _model(
            "gpt-4o", "openai", "advanced", 8000,
            ["creative", "analytical", "technical", "fast"], "GPT-4o",
        ),
        "gpt-4-turbo": _model(
            "gpt-4-turbo", "openai", "advanced", 4000,
            ["analytical", "comprehensive", "reliable", "fast"], "GPT-4 Turbo",
        ),
        "claude-3-5-sonnet": _model(
            "claude-3-5-sonnet", "anthropic", "standard", 6000,
            ["balanced", "reliable", "clear"], "Claude 3.5 Sonnet",
        ),
    }


@pytest.fixture
def registry(sample_model_configs) -> ModelRegistry:
    return ModelRegistry.from_config(sample_model_configs)


@pytest.fixture
def provider_configs() -> dict[str, ProviderConfig]:
    return {
        "openai": ProviderConfig(name="openai", api_key_env="TEST_OPENAI_KEY", key_prefix="sk-", timeout_sec=30),
        "anthropic": ProviderConfig(
            name="anthropic", api_key_env="TEST_ANTHROPIC_KEY", key_prefix="sk-ant-", timeout_sec=30
        ),
    }


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        analysis="ANALYZE: {prompt}",
        clarification=(
            "QUESTIONS: {prompt} | missing={missing_elements} | "
            "improve={potential_improvements} | why={reasoning}"
        ),
        polish=(
            "POLISH: {prompt} | scores={clarity_score}/{completeness_score}/{specificity_score} | "
            "improve={potential_improvements}"
        ),
        clarified_refinement="CLARIFIED: {prompt}\n{clarifications}",
        critique=(
            "CRITIQUE {iteration}/{total_iterations} after {previous_iterations}\n"
            "REQUEST: {original_prompt}\nRESPONSE: {current_response}\n"
            "{previous_critiques}FOCUS: {focus}"
        ),
        improvement=(
            "IMPROVE {iteration}/{total_iterations} ({progress_context}; {iteration_guidance}; {next_step})\n"
            "REQUEST: {original_prompt}\nRESPONSE: {current_response}\nFEEDBACK: {critique}"
        ),
        final_review=(
            "FINAL after {completed_iterations}: models={models_involved} "
            "tally={model_tally} steps={total_steps}\n"
            "REQUEST: {original_prompt}\nRESPONSE: {final_response}"
        ),
    )


@pytest.fixture
def sample_app_config(
    tmp_path: Path,
    sample_model_configs,
    provider_configs,
    sample_prompts_config,
) -> AppConfig:
    return AppConfig(
        defaults=DefaultsConfig(
            iterations=2,
            max_iterations=5,
            handoff_strategy="model_specialization",
            primary_model="gpt-4o",
            refinement_model="claude-sonnet-4",
            output_dir=tmp_path / "output",
        ),
        providers=provider_configs,
        models=sample_model_configs,
        prompts=sample_prompts_config,
        inbox=InboxConfig(dir=tmp_path / "inbox", archive_dir=tmp_path / "inbox" / "archive"),
        specializations=dict(SPECIALIZATIONS),
    )


@pytest.fixture
def llm() -> ScriptedLLM:
    return ScriptedLLM()


@pytest.fixture
def service(registry, provider_configs, llm) -> GenerationService:
    svc = GenerationService(registry, provider_configs)
    svc.register_provider(StubProvider("openai", llm))
    svc.register_provider(StubProvider("anthropic", llm))
    return svc


@pytest.fixture
def engine(service, sample_prompts_config) -> RefinementEngine:
    return RefinementEngine(
        service,
        sample_prompts_config,
        specializations=dict(SPECIALIZATIONS),
        max_iterations=5,
    )


@pytest.fixture
def selection() -> ModelSelection:
    return ModelSelection(
        primary_model="gpt-4o",
        refinement_model="claude-sonnet-4",
        handoff_strategy="model_specialization",
    )
