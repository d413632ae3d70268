"""Error taxonomy shared by every triage component.

All failures that cross a component boundary are instances of a single
exception type, AppError, tagged with an ErrorKind. Each kind carries:
- An HTTP status-code equivalent
- A retryable flag the caller uses to decide whether to try again
- A stable machine-readable code
- A message template

Components raise the most specific kind they can. Callers that cannot
recover re-wrap unknown lower-level failures with wrap_exception() so that
no opaque exception escapes the taxonomy.
"""

import asyncio
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, NamedTuple, Optional

import httpx


class _KindTraits(NamedTuple):
    name: str
    status_code: int
    retryable: bool
    code: str
    template: str
    default_message: str


class ErrorKind(str, Enum):
    """Closed catalog of failure kinds.

    Attributes:
        VERIFICATION_ERROR: Webhook signature missing or invalid.
        PAYLOAD_ERROR: Webhook payload violates the event schema.
        CLASSIFICATION_ERROR: Classifier call failed or returned unusable data.
        LOW_CONFIDENCE: Classification confidence below the threshold.
            Not a system error; surfaced as "no action taken".
        RATE_LIMIT: Upstream quota exhausted.
        AUTH_ERROR: Upstream credential rejected.
        TIMEOUT: Upstream call exceeded its deadline.
        NETWORK_ERROR: Transport-level failure with no specific status.
        VALIDATION_ERROR: Generic input validation failure.
    """

    VERIFICATION_ERROR = "verification_error"
    PAYLOAD_ERROR = "payload_error"
    CLASSIFICATION_ERROR = "classification_error"
    LOW_CONFIDENCE = "low_confidence"
    RATE_LIMIT = "rate_limit"
    AUTH_ERROR = "auth_error"
    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"
    VALIDATION_ERROR = "validation_error"

    @property
    def traits(self) -> _KindTraits:
        return _KIND_TRAITS[self]

    @property
    def error_name(self) -> str:
        """Human-facing name of the kind, used in HTTP error bodies."""
        return self.traits.name

    @property
    def status_code(self) -> int:
        return self.traits.status_code

    @property
    def retryable(self) -> bool:
        return self.traits.retryable

    @property
    def code(self) -> str:
        return self.traits.code


_KIND_TRAITS: Dict[ErrorKind, _KindTraits] = {
    ErrorKind.VERIFICATION_ERROR: _KindTraits(
        name="VerificationError",
        status_code=401,
        retryable=False,
        code="WEBHOOK_VERIFICATION_FAILED",
        template="{message}",
        default_message="Webhook signature verification failed",
    ),
    ErrorKind.PAYLOAD_ERROR: _KindTraits(
        name="PayloadError",
        status_code=400,
        retryable=False,
        code="WEBHOOK_PAYLOAD_INVALID",
        template="Invalid webhook payload: {message}",
        default_message="failed to validate payload",
    ),
    ErrorKind.CLASSIFICATION_ERROR: _KindTraits(
        name="ClassificationError",
        status_code=500,
        retryable=True,
        code="CLASSIFICATION_ERROR",
        template="Classification Error: {message}",
        default_message="classification failed",
    ),
    ErrorKind.LOW_CONFIDENCE: _KindTraits(
        name="LowConfidence",
        status_code=200,
        retryable=False,
        code="LOW_CONFIDENCE",
        template="Classification confidence {confidence} below threshold {threshold}",
        default_message="",
    ),
    ErrorKind.RATE_LIMIT: _KindTraits(
        name="RateLimit",
        status_code=429,
        retryable=True,
        code="RATE_LIMIT",
        template="{message}",
        default_message="Upstream rate limit exceeded",
    ),
    ErrorKind.AUTH_ERROR: _KindTraits(
        name="AuthError",
        status_code=401,
        retryable=False,
        code="AUTH_ERROR",
        template="{message}",
        default_message="Upstream authentication failed",
    ),
    ErrorKind.TIMEOUT: _KindTraits(
        name="Timeout",
        status_code=504,
        retryable=True,
        code="TIMEOUT_ERROR",
        template="Operation '{operation}' timed out after {timeout_ms}ms",
        default_message="",
    ),
    ErrorKind.NETWORK_ERROR: _KindTraits(
        name="NetworkError",
        status_code=502,
        retryable=True,
        code="NETWORK_ERROR",
        template="Network Error: {message}",
        default_message="request failed",
    ),
    ErrorKind.VALIDATION_ERROR: _KindTraits(
        name="ValidationError",
        status_code=400,
        retryable=False,
        code="VALIDATION_ERROR",
        template="Validation Error: {message}",
        default_message="invalid input",
    ),
}


def _render(kind: ErrorKind, message: Optional[str], details: Dict[str, Any]) -> str:
    text = message or kind.traits.default_message
    try:
        return kind.traits.template.format(message=text, **details)
    except KeyError:
        # Template placeholders not supplied; fall back to the plain message.
        return text or kind.error_name


class AppError(Exception):
    """The only exception type that crosses a component boundary.

    The kind determines the status-code equivalent and retryability;
    the message is rendered from the kind's template. Extra keyword
    arguments are kind-specific details (e.g. retry_after for RATE_LIMIT,
    api_status_code for NETWORK_ERROR) and are also used to fill the
    template.

    Attributes:
        kind: The ErrorKind tag.
        message: Rendered human-readable message.
        context: Free-form logging context (at minimum a correlation id
            when one is known).
        details: Kind-specific details.
        timestamp: ISO-8601 UTC creation time.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        **details: Any,
    ):
        self.kind = kind
        self.context: Dict[str, Any] = dict(context or {})
        self.details: Dict[str, Any] = details
        self.message = _render(kind, message, details)
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return self.kind.status_code

    @property
    def retryable(self) -> bool:
        return self.kind.retryable

    @property
    def code(self) -> str:
        return self.kind.code

    @property
    def correlation_id(self) -> Optional[str]:
        return self.context.get("correlation_id")

    def with_context(self, **context: Any) -> "AppError":
        """Merge additional context keys, keeping existing values."""
        for key, value in context.items():
            self.context.setdefault(key, value)
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the error for structured logging."""
        return {
            "name": self.kind.error_name,
            "kind": self.kind.value,
            "message": self.message,
            "code": self.code,
            "status_code": self.status_code,
            "retryable": self.retryable,
            "context": self.context,
            "details": self.details,
            "timestamp": self.timestamp,
        }

    def __repr__(self) -> str:
        return f"AppError(kind={self.kind.value!r}, message={self.message!r})"


# ---------------------------------------------------------------------------
# Constructors
# ---------------------------------------------------------------------------


def verification_failed(
    message: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None,
) -> AppError:
    return AppError(ErrorKind.VERIFICATION_ERROR, message, context)


def invalid_payload(
    message: str,
    path: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None,
) -> AppError:
    return AppError(ErrorKind.PAYLOAD_ERROR, message, context, path=path)


def classification_failed(
    message: str,
    context: Optional[Dict[str, Any]] = None,
) -> AppError:
    return AppError(ErrorKind.CLASSIFICATION_ERROR, message, context)


def low_confidence(
    confidence: float,
    threshold: float,
    context: Optional[Dict[str, Any]] = None,
) -> AppError:
    return AppError(
        ErrorKind.LOW_CONFIDENCE,
        context=context,
        confidence=confidence,
        threshold=threshold,
    )


def rate_limited(
    message: Optional[str] = None,
    retry_after: Optional[int] = None,
    reset_at: Optional[int] = None,
    context: Optional[Dict[str, Any]] = None,
) -> AppError:
    return AppError(
        ErrorKind.RATE_LIMIT,
        message,
        context,
        retry_after=retry_after,
        reset_at=reset_at,
    )


def auth_failed(
    message: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None,
) -> AppError:
    return AppError(ErrorKind.AUTH_ERROR, message, context)


def timed_out(
    operation: str,
    timeout_seconds: float,
    context: Optional[Dict[str, Any]] = None,
) -> AppError:
    return AppError(
        ErrorKind.TIMEOUT,
        context=context,
        operation=operation,
        timeout_ms=int(timeout_seconds * 1000),
    )


def network_failure(
    message: str,
    api_status_code: Optional[int] = None,
    context: Optional[Dict[str, Any]] = None,
) -> AppError:
    return AppError(
        ErrorKind.NETWORK_ERROR,
        message,
        context,
        api_status_code=api_status_code,
    )


def validation_failed(
    message: str,
    field: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None,
) -> AppError:
    return AppError(ErrorKind.VALIDATION_ERROR, message, context, field=field)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def is_retryable(error: BaseException) -> bool:
    """Return the retryable flag; unknown failures count as retryable."""
    if isinstance(error, AppError):
        return error.retryable
    return True


def status_code_for(error: BaseException) -> int:
    """Return the status-code equivalent; unknown failures map to 500."""
    if isinstance(error, AppError):
        return error.status_code
    return 500


def error_response(error: BaseException) -> Dict[str, Any]:
    """Build a generic HTTP error body for an exception."""
    if isinstance(error, AppError):
        return {
            "error": {
                "name": error.kind.error_name,
                "message": error.message,
                "code": error.code,
                "retryable": error.retryable,
                "timestamp": error.timestamp,
            }
        }
    return {
        "error": {
            "name": type(error).__name__,
            "message": str(error),
            "code": "INTERNAL_ERROR",
            "retryable": True,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    }


def wrap_exception(
    error: BaseException,
    default_kind: ErrorKind = ErrorKind.CLASSIFICATION_ERROR,
    context: Optional[Dict[str, Any]] = None,
    operation: str = "upstream request",
    timeout_seconds: float = 30.0,
) -> AppError:
    """Re-wrap an arbitrary failure as the closest taxonomy member.

    AppErrors pass through unchanged (with the context merged in).
    Timeouts become TIMEOUT, transport failures become NETWORK_ERROR and
    everything else becomes default_kind.

    Args:
        error: The failure to wrap.
        default_kind: Kind used when nothing more specific matches.
        context: Logging context to attach.
        operation: Operation name used in the TIMEOUT message.
        timeout_seconds: Deadline used in the TIMEOUT message.

    Returns:
        AppError describing the failure.
    """
    if isinstance(error, AppError):
        return error.with_context(**(context or {}))

    if isinstance(error, (asyncio.TimeoutError, TimeoutError, httpx.TimeoutException)):
        return timed_out(operation, timeout_seconds, context)

    if isinstance(error, (httpx.RequestError, ConnectionError)):
        return network_failure(str(error) or type(error).__name__, context=context)

    return AppError(
        default_kind,
        str(error) or type(error).__name__,
        context,
    )
