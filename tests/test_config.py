"""Tests for config/config_loader.py."""

from pathlib import Path

import pytest
import yaml

from config.config_loader import AppConfig, ModelConfig, PromptsConfig, load_config


def _settings(**overrides) -> dict:
    settings = {
        "defaults": {
            "iterations": 2,
            "max_iterations": 4,
            "handoff_strategy": "cross_provider",
            "primary_model": "gpt-4o",
            "refinement_model": "claude-sonnet-4",
            "output_dir": "./output",
        },
        "providers": {
            "openai": {"api_key_env": "TEST_OPENAI_KEY", "key_prefix": "sk-", "timeout_sec": 30},
            "anthropic": {"api_key_env": "TEST_ANTHROPIC_KEY", "key_prefix": "sk-ant-", "timeout_sec": 60},
        },
        "models": {
            "gpt-4o": {
                "provider": "openai",
                "model": "gpt-4o",
                "tier": "advanced",
                "max_tokens": 8000,
                "capabilities": ["creative", "analytical"],
            },
            "claude-sonnet-4": {
                "provider": "anthropic",
                "model": "claude-sonnet-4-20250514",
                "display_name": "Claude 4 Sonnet",
                "tier": "premium",
                "max_tokens": 60000,
                "temperature": 0.5,
            },
        },
        "specializations": {"analytical_critique": "claude-sonnet-4"},
        "prompts": {
            "analysis": "Analyze: {prompt}",
            "clarification": "Ask about: {prompt}",
            "polish": "Polish: {prompt}",
            "clarified_refinement": "Refine: {prompt}\n{clarifications}",
            "critique": "Critique: {current_response}",
            "improvement": "Improve: {current_response}\n{critique}",
            "final_review": "Review: {final_response}",
        },
    }
    settings.update(overrides)
    return settings


@pytest.fixture
def minimal_settings(tmp_path: Path) -> Path:
    """Write a minimal valid settings.yaml to a temp path."""
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.dump(_settings()), encoding="utf-8")
    return path


def test_load_config_returns_app_config(minimal_settings):
    config = load_config(minimal_settings)
    assert isinstance(config, AppConfig)


def test_load_config_defaults(minimal_settings):
    config = load_config(minimal_settings)
    assert config.defaults.iterations == 2
    assert config.defaults.max_iterations == 4
    assert config.defaults.handoff_strategy == "cross_provider"
    assert config.defaults.final_review_model is None
    assert isinstance(config.defaults.output_dir, Path)


def test_load_config_inbox_defaults_when_missing(minimal_settings):
    config = load_config(minimal_settings)
    assert config.inbox.dir == Path("./inbox")
    assert config.inbox.archive_dir == Path("./inbox/archive")


def test_load_config_models(minimal_settings):
    config = load_config(minimal_settings)
    gpt = config.models["gpt-4o"]
    assert isinstance(gpt, ModelConfig)
    assert gpt.capabilities == ["creative", "analytical"]
    assert gpt.temperature == 0.7
    assert gpt.display_name is None

    claude = config.models["claude-sonnet-4"]
    assert claude.model == "claude-sonnet-4-20250514"
    assert claude.temperature == 0.5
    assert claude.capabilities == []


def test_load_config_providers(minimal_settings):
    config = load_config(minimal_settings)
    assert config.providers["anthropic"].key_prefix == "sk-ant-"
    assert config.providers["anthropic"].timeout_sec == 60
    assert config.providers["openai"].base_url is None


def test_load_config_prompts(minimal_settings):
    config = load_config(minimal_settings)
    assert isinstance(config.prompts, PromptsConfig)
    assert "{clarifications}" in config.prompts.clarified_refinement


def test_load_config_specializations(minimal_settings):
    config = load_config(minimal_settings)
    assert config.specializations == {"analytical_critique": "claude-sonnet-4"}



def test_load_config_missing_file():
    with pytest.raises(FileNotFoundError):
        load_config(Path("/nonexistent/settings.yaml"))


def test_load_config_unknown_provider_rejected(tmp_path: Path):
    settings = _settings()
    settings["models"]["gemini"] = {"provider": "google", "model": "g", "tier": "premium", "max_tokens": 100}
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.dump(settings), encoding="utf-8")
    with pytest.raises(ValueError, match="unknown provider"):
        load_config(path)


def test_shipped_settings_load():
    """The bundled settings.yaml parses and its prompts carry the expected placeholders."""
    config = load_config()
    assert len(config.models) == 5
    assert set(config.providers) == {"openai", "anthropic"}
    assert config.defaults.primary_model in config.models
    assert config.defaults.refinement_model in config.models
    assert set(config.specializations.values()) <= set(config.models)
    assert "{prompt}" in config.prompts.analysis
    assert "{previous_critiques}" in config.prompts.critique
    assert "{critique}" in config.prompts.improvement
    assert "{model_tally}" in config.prompts.final_review
