"""GitHub API client for the triage service.

This module provides an async wrapper around the GitHub REST API for the
single target repository:
- Adding and removing issue labels
- Posting the triage comment
- Creating issues
- Repository, label and rate-limit introspection

Every request is bounded by a per-call timeout. The client does not retry;
failures are raised as AppError with the retryable flag of their kind and
the caller decides what to do:
- 401 → AUTH_ERROR
- 403 with ``x-ratelimit-remaining: 0``, or 429 → RATE_LIMIT
- any other status >= 400 → NETWORK_ERROR carrying ``api_status_code``
- transport timeout → TIMEOUT, other transport failure → NETWORK_ERROR
"""

import asyncio
import time
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

import httpx
import structlog

from src.triage.classifier.models import ClassificationResult
from src.triage.errors import (
    AppError,
    ErrorKind,
    auth_failed,
    network_failure,
    rate_limited,
    timed_out,
)
from src.triage.github.comments import format_triage_comment
from src.triage.github.models import CreatedIssue, LabelValidation, RateLimitStatus
from src.triage.logs import current_correlation_id

logger = structlog.get_logger(__name__)


def is_not_found(error: BaseException) -> bool:
    """True for a NETWORK_ERROR raised from a 404 response."""
    return (
        isinstance(error, AppError)
        and error.kind == ErrorKind.NETWORK_ERROR
        and error.details.get("api_status_code") == 404
    )


class GitHubClient:
    """Async GitHub API client bound to one repository.

    Attributes:
        owner: Repository owner (user or organization).
        repo: Repository name.
        base_url: Base URL for GitHub API (default: https://api.github.com).
        timeout: Per-request deadline in seconds.

    Example:
        >>> client = GitHubClient(token="ghp_xxx", owner="org", repo="app")
        >>> async with client:
        ...     await client.add_labels(123, ["bug"])
    """

    def __init__(
        self,
        token: str,
        owner: str,
        repo: str,
        base_url: str = "https://api.github.com",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the GitHub client.

        Args:
            token: GitHub API token for authentication.
            owner: Owner of the target repository.
            repo: Name of the target repository.
            base_url: Base URL for GitHub API. Use this to support
                      GitHub Enterprise Server endpoints.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport, used by tests.
        """
        self.token = token
        self.owner = owner
        self.repo = repo
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def repository(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, creating it if necessary."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._default_headers(),
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    def _default_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "github-triage-agent/1.0",
        }

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _parse_int_header(self, headers: httpx.Headers, name: str) -> Optional[int]:
        value = headers.get(name)
        if value is not None:
            try:
                return int(value)
            except ValueError:
                pass
        return None

    def _rate_limit_error(self, response: httpx.Response) -> AppError:
        reset_at = self._parse_int_header(response.headers, "x-ratelimit-reset")
        retry_after = self._parse_int_header(response.headers, "retry-after")
        if retry_after is None and reset_at is not None:
            retry_after = max(0, reset_at - int(time.time()))

        logger.warning(
            "github_rate_limit_exceeded",
            reset_at=reset_at,
            retry_after=retry_after,
            limit=self._parse_int_header(response.headers, "x-ratelimit-limit"),
            component="github-client",
        )
        return rate_limited(
            "GitHub API rate limit exceeded",
            retry_after=retry_after,
            reset_at=reset_at,
        )

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return f"HTTP {response.status_code}"
        if isinstance(data, dict) and data.get("message"):
            return f"HTTP {response.status_code}: {data['message']}"
        return f"HTTP {response.status_code}"

    async def _request(
        self,
        method: str,
        path: str,
        json_data: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """Make one HTTP request and map failures onto the error taxonomy.

        Args:
            method: HTTP method (GET, POST, DELETE, ...).
            path: API path (e.g., /repos/owner/repo/issues/1/labels).
            json_data: Optional JSON body for the request.

        Returns:
            The successful HTTP response.

        Raises:
            AppError: AUTH_ERROR, RATE_LIMIT, TIMEOUT or NETWORK_ERROR.
        """
        context = {"correlation_id": current_correlation_id(), "path": path}
        try:
            response = await asyncio.wait_for(
                self.client.request(method=method, url=path, json=json_data),
                timeout=self.timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise timed_out(f"GitHub {method} {path}", self.timeout, context=context) from e
        except httpx.RequestError as e:
            raise network_failure(f"Request failed: {e}", context=context) from e

        remaining = self._parse_int_header(response.headers, "x-ratelimit-remaining")
        logger.debug(
            "github_request",
            method=method,
            path=path,
            status=response.status_code,
            rate_limit_remaining=remaining,
            component="github-client",
        )

        if response.status_code == 401:
            raise auth_failed("GitHub authentication failed", context=context)

        if response.status_code == 429 or (response.status_code == 403 and remaining == 0):
            raise self._rate_limit_error(response).with_context(**context)

        if response.status_code >= 400:
            raise network_failure(
                self._error_message(response),
                api_status_code=response.status_code,
                context=context,
            )

        return response

    # -------------------------------------------------------------------------
    # Labels
    # -------------------------------------------------------------------------

    async def get_issue_labels(self, issue_number: int) -> List[str]:
        """Return the names of the labels currently on an issue."""
        response = await self._request(
            "GET", f"/repos/{self.owner}/{self.repo}/issues/{issue_number}/labels"
        )
        return [label["name"] for label in response.json()]

    async def add_labels(self, issue_number: int, labels: Sequence[str]) -> List[str]:
        """Add labels to an issue.

        Args:
            issue_number: Issue to label.
            labels: Label names to add.

        Returns:
            The requested labels that GitHub confirmed as present on the
            issue afterwards, in request order. Empty when labels is empty.
        """
        if not labels:
            logger.debug("no_labels_to_add", issue_number=issue_number)
            return []

        response = await self._request(
            "POST",
            f"/repos/{self.owner}/{self.repo}/issues/{issue_number}/labels",
            json_data={"labels": list(labels)},
        )
        present = {label["name"] for label in response.json()}
        confirmed = [label for label in labels if label in present]

        logger.info(
            "labels_added",
            issue_number=issue_number,
            labels_added=confirmed,
            component="github-client",
        )
        return confirmed

    async def _remove_label(self, issue_number: int, label: str) -> None:
        path = (
            f"/repos/{self.owner}/{self.repo}/issues/{issue_number}"
            f"/labels/{quote(label, safe='')}"
        )
        try:
            await self._request("DELETE", path)
        except AppError as e:
            if not is_not_found(e):
                raise
            logger.debug("label_not_on_issue", issue_number=issue_number, label=label)

    async def remove_labels(self, issue_number: int, labels: Sequence[str]) -> None:
        """Remove labels from an issue, one concurrent request per label.

        A label that is not on the issue (404) counts as removed. Every
        removal runs to completion before the first real failure, if any,
        is raised.

        Raises:
            AppError: The first non-404 failure among the removals.
        """
        if not labels:
            return

        results = await asyncio.gather(
            *(self._remove_label(issue_number, label) for label in labels),
            return_exceptions=True,
        )
        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            logger.error(
                "label_removal_failed",
                issue_number=issue_number,
                labels=list(labels),
                failed=len(failures),
                component="github-client",
            )
            raise failures[0]

        logger.info(
            "labels_removed",
            issue_number=issue_number,
            labels_removed=list(labels),
            component="github-client",
        )

    async def validate_repository_labels(self, required: Sequence[str]) -> LabelValidation:
        """Report which of the required labels exist in the repository."""
        response = await self._request("GET", f"/repos/{self.owner}/{self.repo}/labels")
        existing = {label["name"] for label in response.json()}
        result = LabelValidation(
            existing=[label for label in required if label in existing],
            missing=[label for label in required if label not in existing],
        )
        logger.info(
            "repository_labels_validated",
            existing=result.existing,
            missing=result.missing,
            component="github-client",
        )
        return result

    # -------------------------------------------------------------------------
    # Issues and comments
    # -------------------------------------------------------------------------

    async def post_comment(
        self, issue_number: int, classification: ClassificationResult
    ) -> None:
        """Post the rendered triage comment on an issue."""
        body = format_triage_comment(classification)
        await self._request(
            "POST",
            f"/repos/{self.owner}/{self.repo}/issues/{issue_number}/comments",
            json_data={"body": body},
        )
        logger.info("comment_posted", issue_number=issue_number, component="github-client")

    async def create_issue(
        self,
        title: str,
        body: str,
        labels: Optional[Sequence[str]] = None,
    ) -> CreatedIssue:
        """Create an issue in the target repository."""
        payload: Dict[str, Any] = {"title": title, "body": body}
        if labels:
            payload["labels"] = list(labels)

        response = await self._request(
            "POST", f"/repos/{self.owner}/{self.repo}/issues", json_data=payload
        )
        data = response.json()
        created = CreatedIssue(id=data["id"], number=data["number"], url=data["html_url"])
        logger.info(
            "issue_created",
            issue_number=created.number,
            url=created.url,
            component="github-client",
        )
        return created

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    async def get_repository_info(self) -> Dict[str, Any]:
        response = await self._request("GET", f"/repos/{self.owner}/{self.repo}")
        return response.json()

    async def get_rate_limit_status(self) -> RateLimitStatus:
        response = await self._request("GET", "/rate_limit")
        rate = response.json()["rate"]
        return RateLimitStatus(
            limit=rate["limit"],
            remaining=rate["remaining"],
            reset=rate["reset"],
            used=rate["used"],
        )

    async def health_check(self) -> bool:
        """Probe the repository endpoint; any failure counts as unhealthy."""
        try:
            await self.get_repository_info()
            return True
        except Exception as e:
            logger.warning(
                "github_health_check_failed",
                error=str(e),
                component="github-client",
            )
            return False
