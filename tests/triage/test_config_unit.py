"""Unit tests for TriageSettings loading and validation."""

import pytest
from pydantic import ValidationError

from src.triage.config import REDACTED, TriageSettings

REQUIRED_ENV = {
    "GITHUB_TOKEN": "ghp_env_token",
    "GITHUB_WEBHOOK_SECRET": "env-webhook-secret",
    "GITHUB_REPO_OWNER": "acme",
    "GITHUB_REPO_NAME": "widgets",
    "OPENAI_API_KEY": "sk-env-key",
}


@pytest.fixture
def env(monkeypatch):
    for key, value in REQUIRED_ENV.items():
        monkeypatch.setenv(key, value)
    return monkeypatch


def _load() -> TriageSettings:
    return TriageSettings(_env_file=None)


def test_defaults(env):
    settings = _load()
    assert settings.github_base_url == "https://api.github.com"
    assert settings.openai_model == "gpt-4o"
    assert settings.openai_base_url is None
    assert settings.labels == ("bug", "feature-request", "documentation", "question", "enhancement")
    assert settings.confidence_threshold == 0.75
    assert settings.auto_comment is True
    assert settings.request_timeout_seconds == 30.0
    assert settings.port == 3000
    assert settings.environment == "development"
    assert settings.log_level == "info"
    assert settings.target_repository == "acme/widgets"


def test_environment_overrides(env):
    env.setenv("TRIAGE_LABELS", " bug , docs ,, question ")
    env.setenv("CONFIDENCE_THRESHOLD", "0.9")
    env.setenv("AUTO_COMMENT", "false")
    env.setenv("GITHUB_BASE_URL", "https://ghe.example.com/api/v3/")
    env.setenv("LOG_LEVEL", "warn")

    settings = _load()

    assert settings.labels == ("bug", "docs", "question")
    assert settings.confidence_threshold == 0.9
    assert settings.auto_comment is False
    assert settings.github_base_url == "https://ghe.example.com/api/v3"
    assert settings.log_level == "warn"


@pytest.mark.parametrize("threshold", ["0.05", "1.5"])
def test_threshold_out_of_range(env, threshold):
    env.setenv("CONFIDENCE_THRESHOLD", threshold)
    with pytest.raises(ValidationError):
        _load()


def test_short_webhook_secret_rejected(env):
    env.setenv("GITHUB_WEBHOOK_SECRET", "short")
    with pytest.raises(ValidationError):
        _load()


def test_blank_labels_rejected(env):
    env.setenv("TRIAGE_LABELS", " , ,")
    with pytest.raises(ValidationError):
        _load()


def test_missing_required_setting(env):
    env.delenv("OPENAI_API_KEY")
    with pytest.raises(ValidationError):
        _load()


def test_non_http_url_rejected(env):
    env.setenv("OPENAI_BASE_URL", "ftp://models.example.com")
    with pytest.raises(ValidationError):
        _load()


def test_settings_are_immutable(env):
    settings = _load()
    with pytest.raises(ValidationError):
        settings.confidence_threshold = 0.2


def test_sanitized_redacts_secrets(env):
    data = _load().sanitized()
    assert data["github_token"] == REDACTED
    assert data["github_webhook_secret"] == REDACTED
    assert data["openai_api_key"] == REDACTED
    assert data["github_repo_owner"] == "acme"
    assert isinstance(data["triage_labels"], list)
    assert "ghp_env_token" not in str(data)
