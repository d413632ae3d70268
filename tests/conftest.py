"""Pytest configuration for all tests."""

import pytest

from src.triage.config import TriageSettings


def make_settings(**overrides) -> TriageSettings:
    values = dict(
        github_token="ghp_test_token",
        github_webhook_secret="webhook-secret-value",
        github_repo_owner="acme",
        github_repo_name="widgets",
        openai_api_key="sk-test-key",
        environment="test",
    )
    values.update(overrides)
    return TriageSettings(_env_file=None, **values)


@pytest.fixture
def triage_settings() -> TriageSettings:
    """Settings for the acme/widgets target repository."""
    return make_settings()
