"""Triage service configuration using pydantic-settings.

This module defines the TriageSettings class that reads configuration
from environment variables (GITHUB_TOKEN, OPENAI_API_KEY, ...). Settings
are loaded once at startup into a frozen model and passed to each
component's constructor; nothing mutates them while requests are handled.
"""

from typing import Any, Dict, Literal, Optional, Tuple

from pydantic import ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_TRIAGE_LABELS = "bug,feature-request,documentation,question,enhancement"

REDACTED = "[REDACTED]"


class TriageSettings(BaseSettings):
    """Triage service configuration from environment variables.

    Required fields (must be set via environment variables):
    - github_token: GitHub API token used for labels, comments and issues
    - github_webhook_secret: Shared secret for webhook HMAC verification
    - github_repo_owner / github_repo_name: The single target repository
    - openai_api_key: API key for the classification model endpoint
    """

    model_config = SettingsConfigDict(
        case_sensitive=False,
        frozen=True,
        env_file=".env",
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # GitHub Configuration
    # -------------------------------------------------------------------------
    github_token: str

    github_webhook_secret: str

    github_repo_owner: str

    github_repo_name: str

    # Base URL for GitHub API (supports GitHub Enterprise)
    github_base_url: str = "https://api.github.com"

    # -------------------------------------------------------------------------
    # Classifier Configuration
    # -------------------------------------------------------------------------
    openai_api_key: str

    openai_model: str = "gpt-4o"

    # OpenAI-compatible endpoint; None uses the provider default
    openai_base_url: Optional[str] = None

    # -------------------------------------------------------------------------
    # Triage Configuration
    # -------------------------------------------------------------------------
    # Comma-separated label names the classifier may choose from
    triage_labels: str = DEFAULT_TRIAGE_LABELS

    # Minimum classifier confidence required before touching the issue
    confidence_threshold: float = 0.75

    # Post a triage comment after labeling
    auto_comment: bool = True

    # Per-call deadline for every upstream request
    request_timeout_seconds: float = 30.0

    # -------------------------------------------------------------------------
    # Server Configuration
    # -------------------------------------------------------------------------
    host: str = "0.0.0.0"

    port: int = 3000

    environment: Literal["development", "production", "test"] = "development"

    log_level: Literal["error", "warn", "info", "debug"] = "info"

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator(
        "github_token",
        "github_repo_owner",
        "github_repo_name",
        "openai_api_key",
    )
    @classmethod
    def validate_not_blank(cls, v: str, info: ValidationInfo) -> str:
        """Validate that required string settings are not blank."""
        if not v or not v.strip():
            raise ValueError(f"{info.field_name} cannot be empty")
        return v.strip()

    @field_validator("github_webhook_secret")
    @classmethod
    def validate_webhook_secret(cls, v: str) -> str:
        """Validate that the webhook secret is long enough to be useful."""
        if len(v) < 10:
            raise ValueError("github_webhook_secret must be at least 10 characters")
        return v

    @field_validator("github_base_url", "openai_base_url")
    @classmethod
    def validate_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate that URLs use http or https."""
        if v is None:
            return v
        if not v.startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("triage_labels")
    @classmethod
    def validate_triage_labels(cls, v: str) -> str:
        """Validate that at least one label remains after trimming."""
        labels = [label.strip() for label in v.split(",") if label.strip()]
        if not labels:
            raise ValueError("triage_labels must name at least one label")
        return ",".join(labels)

    @field_validator("confidence_threshold")
    @classmethod
    def validate_confidence_threshold(cls, v: float) -> float:
        """Validate that the threshold is within 0.1 and 1.0."""
        if not 0.1 <= v <= 1.0:
            raise ValueError("confidence_threshold must be between 0.1 and 1.0")
        return v

    @field_validator("request_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate that the request timeout is positive."""
        if v <= 0:
            raise ValueError("request_timeout_seconds must be positive")
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate that port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v

    # -------------------------------------------------------------------------
    # Derived values
    # -------------------------------------------------------------------------
    @property
    def labels(self) -> Tuple[str, ...]:
        """The configured label set, in declaration order."""
        return tuple(self.triage_labels.split(","))

    @property
    def target_repository(self) -> str:
        """Full name of the target repository ("owner/name")."""
        return f"{self.github_repo_owner}/{self.github_repo_name}"

    def sanitized(self) -> Dict[str, Any]:
        """Return the configuration with secrets redacted, for logging."""
        data = self.model_dump()
        for key in ("github_token", "github_webhook_secret", "openai_api_key"):
            if data.get(key):
                data[key] = REDACTED
        data["triage_labels"] = list(self.labels)
        return data


def get_settings() -> TriageSettings:
    """Create and return a TriageSettings instance.

    Reads configuration from environment variables (and a .env file when
    present). Raises a validation error if required fields are missing or
    invalid.

    Returns:
        TriageSettings: Configured, immutable settings instance.

    Raises:
        pydantic.ValidationError: If required fields are missing or invalid.
    """
    return TriageSettings()
