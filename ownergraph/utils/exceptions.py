"""Error taxonomy: kinds, severities, recoverability and recovery strategy."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Iterable

import structlog


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NETWORK = "network"
    DATABASE = "database"
    RATE_LIMIT = "rate_limit"
    AUTHENTICATION = "authentication"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"
    INTERNAL = "internal"
    EXTERNAL = "external"


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


RECOVERABLE_KINDS = frozenset(
    {ErrorKind.NETWORK, ErrorKind.RATE_LIMIT, ErrorKind.TIMEOUT, ErrorKind.EXTERNAL}
)

# Seconds before a retry is worth attempting, scaled by severity.
_BASE_RETRY_DELAYS: dict[ErrorKind, float] = {
    ErrorKind.NETWORK: 5.0,
    ErrorKind.RATE_LIMIT: 60.0,
    ErrorKind.TIMEOUT: 10.0,
    ErrorKind.EXTERNAL: 30.0,
    ErrorKind.DATABASE: 2.0,
}

_SEVERITY_MULTIPLIERS: dict[Severity, float] = {
    Severity.CRITICAL: 2.0,
    Severity.HIGH: 1.5,
    Severity.MEDIUM: 1.0,
    Severity.LOW: 0.5,
    Severity.INFO: 0.1,
}

_SEVERITY_ORDER = (
    Severity.CRITICAL,
    Severity.HIGH,
    Severity.MEDIUM,
    Severity.LOW,
    Severity.INFO,
)


def is_recoverable(kind: ErrorKind) -> bool:
    return kind in RECOVERABLE_KINDS


def default_retry_delay(kind: ErrorKind, severity: Severity) -> float:
    base = _BASE_RETRY_DELAYS.get(kind)
    if base is None:
        return 0.0
    return base * _SEVERITY_MULTIPLIERS[severity]


class ContractViolation(AssertionError):
    """A programmer-controlled invariant was broken (internal caller bug).

    Distinct from :class:`OwnerGraphError`: these are never retried and never
    reported to external callers as ordinary failures.
    """


def require(condition: bool, message: str) -> None:
    if not condition:
        raise ContractViolation(message)


class OwnerGraphError(Exception):
    """Base exception for all classified failures."""

    kind: ClassVar[ErrorKind] = ErrorKind.INTERNAL
    default_severity: ClassVar[Severity] = Severity.CRITICAL
    default_code: ClassVar[str] = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        severity: Severity | None = None,
        details: str = "",
        context: str = "",
        retry_after: float | None = None,
    ) -> None:
        require(bool(message), "error message cannot be empty")
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.severity = severity or self.default_severity
        self.details = details
        self.context = context
        self.timestamp = datetime.now(timezone.utc)
        self.retry_after = (
            retry_after
            if retry_after is not None
            else default_retry_delay(self.kind, self.severity)
        )

    @property
    def recoverable(self) -> bool:
        return is_recoverable(self.kind)

    def __str__(self) -> str:
        if self.details:
            return f"[{self.code}] {self.message}: {self.details}"
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.kind.value,
            "severity": self.severity.value,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "recoverable": self.recoverable,
            "retry_after": self.retry_after,
        }


class InputValidationError(OwnerGraphError):
    kind = ErrorKind.VALIDATION
    default_severity = Severity.MEDIUM
    default_code = "VALIDATION_FAILED"

    def __init__(self, field_name: str, message: str, *, code: str | None = None) -> None:
        super().__init__(
            f"Validation failed for field '{field_name}': {message}",
            code=code,
        )
        self.field = field_name
        self.reason = message

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["field"] = self.field
        return data


class NetworkError(OwnerGraphError):
    kind = ErrorKind.NETWORK
    default_severity = Severity.HIGH
    default_code = "NETWORK_ERROR"


class DatabaseError(OwnerGraphError):
    kind = ErrorKind.DATABASE
    default_severity = Severity.CRITICAL
    default_code = "DATABASE_ERROR"


class RateLimitError(OwnerGraphError):
    kind = ErrorKind.RATE_LIMIT
    default_severity = Severity.MEDIUM
    default_code = "RATE_LIMIT_EXCEEDED"


class AuthenticationError(OwnerGraphError):
    kind = ErrorKind.AUTHENTICATION
    default_severity = Severity.HIGH
    default_code = "AUTHENTICATION_FAILED"


class NotFoundError(OwnerGraphError):
    kind = ErrorKind.NOT_FOUND
    default_severity = Severity.MEDIUM
    default_code = "RESOURCE_NOT_FOUND"


class OperationTimeoutError(OwnerGraphError):
    kind = ErrorKind.TIMEOUT
    default_severity = Severity.HIGH
    default_code = "OPERATION_TIMEOUT"


class InternalError(OwnerGraphError):
    kind = ErrorKind.INTERNAL
    default_severity = Severity.CRITICAL
    default_code = "INTERNAL_ERROR"


class ExternalServiceError(OwnerGraphError):
    kind = ErrorKind.EXTERNAL
    default_severity = Severity.HIGH
    default_code = "EXTERNAL_SERVICE_ERROR"


# ── Factories ────────────────────────────────────────────────────────


def required_field_error(field_name: str) -> InputValidationError:
    return InputValidationError(
        field_name, "required field is missing or empty", code="REQUIRED_FIELD_MISSING"
    )


def invalid_format_error(field_name: str, expected: str) -> InputValidationError:
    return InputValidationError(
        field_name, f"invalid format, expected {expected}", code="INVALID_FORMAT"
    )


def _describe(exc: BaseException | None) -> str:
    return str(exc) if exc is not None else ""


def network_error(operation: str, exc: BaseException | None = None) -> NetworkError:
    return NetworkError(f"Network error during {operation}", details=_describe(exc))


def timeout_error(operation: str, seconds: float | None) -> OperationTimeoutError:
    if seconds is None:
        return OperationTimeoutError(f"Operation '{operation}' timed out")
    return OperationTimeoutError(f"Operation '{operation}' timed out after {seconds}s")


def rate_limit_error(
    reset_at: datetime | None,
    remaining: int = 0,
    *,
    now: datetime | None = None,
) -> RateLimitError:
    """Build a rate-limit error whose ``retry_after`` follows the reset time when known."""
    if reset_at is None:
        return RateLimitError(f"Rate limit exceeded. {remaining} requests remaining")
    now = now or datetime.now(timezone.utc)
    wait = max((reset_at - now).total_seconds(), 0.0)
    return RateLimitError(
        f"Rate limit exceeded. {remaining} requests remaining. "
        f"Reset at {reset_at.isoformat()}",
        retry_after=wait,
    )


def database_error(operation: str, exc: BaseException | None = None) -> DatabaseError:
    return DatabaseError(f"Database error during {operation}", details=_describe(exc))


def connection_error(exc: BaseException | None = None) -> DatabaseError:
    return DatabaseError(
        "Failed to connect to database",
        code="DATABASE_CONNECTION_FAILED",
        details=_describe(exc),
    )


def not_found_error(resource: str, identifier: str) -> NotFoundError:
    return NotFoundError(f"{resource} with identifier '{identifier}' not found")


def external_service_error(
    service: str, operation: str, exc: BaseException | None = None
) -> ExternalServiceError:
    return ExternalServiceError(
        f"External service '{service}' error during {operation}",
        details=_describe(exc),
    )


def github_api_error(operation: str, status_code: int, message: str) -> ExternalServiceError:
    return ExternalServiceError(
        f"GitHub API error during {operation} (HTTP {status_code}): {message}",
        code="GITHUB_API_ERROR",
    )


def configuration_error(setting: str, issue: str) -> InternalError:
    return InternalError(
        f"Configuration error for setting '{setting}': {issue}",
        code="CONFIGURATION_ERROR",
    )


def with_context(
    err: OwnerGraphError,
    component: str,
    operation: str,
    *,
    user: str = "",
    correlation_id: str = "",
) -> OwnerGraphError:
    err.context = f"{component}.{operation}"
    if user:
        err.details = f"{err.details} [User: {user}]".strip()
    if correlation_id:
        err.details = f"{err.details} [Correlation: {correlation_id}]".strip()
    return err


def log_error(logger: structlog.stdlib.BoundLogger, event: str, err: OwnerGraphError) -> None:
    """Emit ``err`` at a level matching its severity."""
    fields = {
        "code": err.code,
        "kind": err.kind.value,
        "error": err.message,
        "details": err.details,
        "recoverable": err.recoverable,
    }
    if err.severity in (Severity.CRITICAL, Severity.HIGH):
        logger.error(event, **fields)
    elif err.severity is Severity.MEDIUM:
        logger.warning(event, **fields)
    else:
        logger.info(event, **fields)


# ── Recovery ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RecoveryStrategy:
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    backoff_factor: float = 2.0
    retryable_kinds: frozenset[ErrorKind] = field(
        default_factory=lambda: frozenset(
            {ErrorKind.NETWORK, ErrorKind.TIMEOUT, ErrorKind.RATE_LIMIT, ErrorKind.EXTERNAL}
        )
    )

    def __post_init__(self) -> None:
        require(self.max_attempts >= 1, "max_attempts must be at least 1")
        require(self.base_delay >= 0, "base_delay cannot be negative")
        require(self.max_delay >= self.base_delay, "max_delay must be >= base_delay")
        require(self.backoff_factor >= 1.0, "backoff_factor must be >= 1")

    def backoff_delay(self, attempt: int) -> float:
        """``base_delay * backoff_factor ** attempt`` capped at ``max_delay``."""
        if attempt <= 0:
            return min(self.base_delay, self.max_delay)
        try:
            delay = self.base_delay * (self.backoff_factor**attempt)
        except OverflowError:
            return self.max_delay
        return min(delay, self.max_delay)

    def is_retryable(self, err: OwnerGraphError) -> bool:
        return err.recoverable and err.kind in self.retryable_kinds

    def should_retry(self, attempt: int, err: OwnerGraphError) -> bool:
        if attempt >= self.max_attempts:
            return False
        return self.is_retryable(err)

    def delay_for(self, attempt: int, err: OwnerGraphError) -> float:
        """Backoff for ``attempt``, stretched to the error's retry-after hint for rate limits."""
        delay = self.backoff_delay(attempt)
        if err.kind is ErrorKind.RATE_LIMIT and err.retry_after:
            delay = max(delay, err.retry_after)
        return min(delay, self.max_delay)


DEFAULT_RECOVERY_STRATEGY = RecoveryStrategy()


# ── Aggregation ──────────────────────────────────────────────────────


class AggregatedError(Exception):
    """Several related failures reported together; individual errors are kept."""

    def __init__(self, operation: str, errors: Iterable[OwnerGraphError]) -> None:
        require(bool(operation), "operation cannot be empty")
        self.operation = operation
        self.errors: list[OwnerGraphError] = list(errors)
        self.timestamp = datetime.now(timezone.utc)
        super().__init__(self.summary)

    def __str__(self) -> str:
        if not self.errors:
            return "No errors"
        if len(self.errors) == 1:
            return str(self.errors[0])
        return f"{self.operation}: {len(self.errors)} errors occurred"

    def counts_by_kind(self) -> dict[ErrorKind, int]:
        return dict(Counter(err.kind for err in self.errors))

    @property
    def summary(self) -> str:
        if not self.errors:
            return "No errors"
        if len(self.errors) == 1:
            return self.errors[0].message
        parts = []
        for kind, count in self.counts_by_kind().items():
            noun = "error" if count == 1 else "errors"
            parts.append(f"{count} {kind.value} {noun}")
        return ", ".join(parts)

    def has_critical(self) -> bool:
        return any(err.severity is Severity.CRITICAL for err in self.errors)

    def retryable(self) -> list[OwnerGraphError]:
        return [err for err in self.errors if err.recoverable]

    def highest_severity(self) -> Severity:
        present = {err.severity for err in self.errors}
        for severity in _SEVERITY_ORDER:
            if severity in present:
                return severity
        return Severity.INFO
