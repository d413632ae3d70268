"""Return types of the GitHub client."""

from typing import List

from pydantic import BaseModel, ConfigDict


class CreatedIssue(BaseModel):
    """Identity of a newly created issue."""

    model_config = ConfigDict(frozen=True)

    id: int
    number: int
    url: str


class RateLimitStatus(BaseModel):
    """Core API quota as reported by ``GET /rate_limit``.

    Attributes:
        limit: Maximum requests in the window.
        remaining: Requests left in the window.
        reset: Unix timestamp when the window resets.
        used: Requests used in the window.
    """

    model_config = ConfigDict(frozen=True)

    limit: int
    remaining: int
    reset: int
    used: int


class LabelValidation(BaseModel):
    """Which configured labels exist in the repository.

    Attributes:
        existing: Configured labels present in the repository.
        missing: Configured labels the repository lacks.
    """

    model_config = ConfigDict(frozen=True)

    existing: List[str]
    missing: List[str]
