"""Pure classification of raw faults into ErrorInfo.

Maps any raised exception (plus a free-form context string) onto the
category / recoverable / retryable / severity tuple that drives retry,
circuit-breaker and task-outcome decisions. No state is touched here; the
bookkeeping side lives in ``ErrorHandler.handle``.
"""

from __future__ import annotations

import errno
import json
import re

from smart_ast.entities.errors import (
    ErrorCategory,
    ErrorInfo,
    RecoveryStrategy,
    Severity,
)
from smart_ast.resilience.errors import (
    AnalysisError,
    CircuitOpenError,
    ExternalServiceError,
    ParsingFault,
    ValidationFault,
)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 1.0

NETWORK_CODES = frozenset({
    "ENOTFOUND", "ECONNREFUSED", "ETIMEDOUT", "ECONNRESET",
    "EADDRINUSE", "EADDRNOTAVAIL", "ENETDOWN", "ENETUNREACH",
    "EHOSTDOWN", "EHOSTUNREACH", "EPIPE", "TIMEOUT",
})
FILESYSTEM_CODES = frozenset({
    "ENOENT", "EACCES", "EPERM", "EEXIST", "ENOTDIR",
    "EISDIR", "EMFILE", "ENFILE", "ENOSPC", "EROFS",
})
TRANSIENT_NETWORK_CODES = frozenset({"ETIMEDOUT", "ECONNREFUSED", "ECONNRESET", "TIMEOUT"})
EXHAUSTION_CODES = frozenset({"EMFILE", "ENFILE"})
PERMISSION_CODES = frozenset({"EACCES", "EPERM", "EROFS"})

_NETWORK_MESSAGE = re.compile(r"timeout|timed out|network|connection", re.IGNORECASE)
_SERVICE_CONTEXT = re.compile(r"\b(ai|analysis)\b", re.IGNORECASE)
_SERVICE_MESSAGE = re.compile(r"\bapi\b", re.IGNORECASE)
_VALIDATION_MESSAGE = re.compile(r"invalid|validation|required", re.IGNORECASE)

MESSAGES: dict[ErrorCategory, dict[str, str]] = {
    ErrorCategory.NETWORK: {
        "ENOTFOUND": "Network connection failed - unable to resolve hostname",
        "ECONNREFUSED": "Network connection was refused by the server",
        "ETIMEDOUT": "Network operation timed out",
        "TIMEOUT": "Request timed out waiting for response",
        "default": "Network communication error occurred",
    },
    ErrorCategory.FILESYSTEM: {
        "ENOENT": "File or directory not found",
        "EACCES": "Permission denied - insufficient file access rights",
        "EPERM": "Operation not permitted - administrative privileges required",
        "ENOTDIR": "Path component is not a directory",
        "EISDIR": "Expected file but found directory",
        "ENOSPC": "No space left on device",
        "default": "File system operation failed",
    },
    ErrorCategory.PARSING: {
        "default": "Invalid data format - unable to parse content",
    },
    ErrorCategory.EXTERNAL_SERVICE: {
        "ECIRCUITOPEN": "External service calls suspended - circuit breaker is open",
        "default": "AI service communication error",
    },
    ErrorCategory.VALIDATION: {
        "default": "Configuration validation failed",
    },
}

SUGGESTIONS: dict[ErrorCategory, dict[str, str]] = {
    ErrorCategory.NETWORK: {
        "ENOTFOUND": "Check internet connection and verify the API endpoint URL is correct",
        "TIMEOUT": "Increase timeout value or check network stability",
        "ETIMEDOUT": "Increase timeout value or check network stability",
        "ECONNREFUSED": "Verify the service is running and accessible on the specified port",
        "ECIRCUITOPEN": "Wait for the circuit breaker cooldown before retrying",
        "default": "Check network connectivity and service availability",
    },
    ErrorCategory.FILESYSTEM: {
        "ENOENT": "Check if the file path is correct and ensure the file exists",
        "EACCES": "Check file permissions or run with appropriate privileges",
        "EPERM": "Check file permissions or run with appropriate privileges",
        "ENOSPC": "Free up disk space and try again",
        "default": "Verify file paths and permissions are correct",
    },
    ErrorCategory.PARSING: {
        "default": "Check the JSON syntax and validate the file format is correct",
    },
    ErrorCategory.EXTERNAL_SERVICE: {
        "ECIRCUITOPEN": "Wait for the circuit breaker cooldown before retrying",
        "default": "Check AI service availability and verify API credentials are valid",
    },
    ErrorCategory.VALIDATION: {
        "default": "Check configuration values and ensure all required fields are provided",
    },
    ErrorCategory.UNKNOWN: {
        "default": "Check the application logs for more details and contact support if needed",
    },
}


def coerce_fault(fault: object) -> BaseException:
    """Turn None, strings and other non-exceptions into an exception."""
    if fault is None:
        return AnalysisError("Unknown error occurred")
    if isinstance(fault, BaseException):
        return fault
    if isinstance(fault, str):
        return AnalysisError(fault or "Unknown error occurred")
    return AnalysisError(str(fault) or "Unknown error occurred")


def fault_code(fault: BaseException) -> str | None:
    """Extract a symbolic fault code (``ECONNREFUSED`` style) if any."""
    code = getattr(fault, "code", None)
    if isinstance(code, str) and code:
        return code
    if isinstance(fault, OSError) and fault.errno is not None:
        return errno.errorcode.get(fault.errno)
    if isinstance(fault, TimeoutError):
        return "ETIMEDOUT"
    return None


def fault_message(fault: BaseException) -> str:
    message = str(fault)
    if not message and isinstance(fault, OSError) and fault.strerror:
        message = fault.strerror
    return message or type(fault).__name__


def categorize(
    fault: BaseException, code: str | None, message: str, context: str
) -> ErrorCategory:
    """Resolve the category in fixed precedence order."""
    if isinstance(fault, CircuitOpenError):
        return fault.category
    if isinstance(fault, ValidationFault):
        return ErrorCategory.VALIDATION
    if isinstance(fault, ParsingFault):
        return ErrorCategory.PARSING
    if isinstance(fault, ExternalServiceError):
        return ErrorCategory.EXTERNAL_SERVICE
    if code in NETWORK_CODES:
        return ErrorCategory.NETWORK
    if code in FILESYSTEM_CODES:
        return ErrorCategory.FILESYSTEM
    if _NETWORK_MESSAGE.search(message):
        return ErrorCategory.NETWORK
    if isinstance(fault, (SyntaxError, json.JSONDecodeError, UnicodeDecodeError)):
        return ErrorCategory.PARSING
    if _SERVICE_CONTEXT.search(context) or _SERVICE_MESSAGE.search(message):
        return ErrorCategory.EXTERNAL_SERVICE
    if _VALIDATION_MESSAGE.search(message):
        return ErrorCategory.VALIDATION
    return ErrorCategory.UNKNOWN


def is_recoverable(category: ErrorCategory, code: str | None) -> bool:
    match category:
        case ErrorCategory.NETWORK | ErrorCategory.EXTERNAL_SERVICE:
            return True
        case ErrorCategory.FILESYSTEM:
            return code not in PERMISSION_CODES
        case _:
            return False


def is_retryable(category: ErrorCategory, code: str | None) -> bool:
    match category:
        case ErrorCategory.NETWORK:
            return code in TRANSIENT_NETWORK_CODES
        case ErrorCategory.EXTERNAL_SERVICE:
            return True
        case ErrorCategory.FILESYSTEM:
            return code in EXHAUSTION_CODES
        case _:
            return False


def assess_severity(category: ErrorCategory, code: str | None) -> Severity:
    if code in PERMISSION_CODES:
        return Severity.CRITICAL
    if category in (ErrorCategory.VALIDATION, ErrorCategory.PARSING):
        return Severity.HIGH
    if category in (ErrorCategory.NETWORK, ErrorCategory.EXTERNAL_SERVICE):
        return Severity.MEDIUM
    if code == "ENOENT":
        return Severity.LOW
    return Severity.MEDIUM


def recovery_strategy_for(
    category: ErrorCategory, recoverable: bool, retryable: bool
) -> RecoveryStrategy:
    if retryable:
        return RecoveryStrategy(
            type="retry",
            max_attempts=DEFAULT_MAX_ATTEMPTS,
            base_delay=DEFAULT_BASE_DELAY,
            backoff="exponential",
            jitter=True,
        )
    if recoverable:
        return RecoveryStrategy(type="fallback", action="use_cached_results")
    if category == ErrorCategory.VALIDATION:
        return RecoveryStrategy(type="skip", action="continue_with_defaults")
    return RecoveryStrategy(type="none", action="abort_operation")


def _lookup(table: dict[str, str], code: str | None) -> str:
    if code and code in table:
        return table[code]
    return table["default"]


def classify_error(
    fault: object,
    context: str = "",
    category: ErrorCategory | None = None,
) -> ErrorInfo:
    """Classify a fault. Pure: equal inputs always give equal results.

    Args:
        fault: Anything that was raised (None and strings are accepted).
        context: Free-form description of what was being attempted.
        category: Force a category instead of resolving one.

    Returns:
        ErrorInfo describing category, recoverability and suggested action.
    """
    exc = coerce_fault(fault)
    code = fault_code(exc)
    original = fault_message(exc)
    resolved = category or categorize(exc, code, original, context)

    recoverable = is_recoverable(resolved, code)
    retryable = is_retryable(resolved, code)

    if resolved == ErrorCategory.UNKNOWN:
        message = original or "An unexpected error occurred"
    else:
        message = _lookup(MESSAGES[resolved], code)

    return ErrorInfo(
        category=resolved,
        message=message,
        original_message=original,
        code=code,
        context=context,
        recoverable=recoverable,
        retryable=retryable,
        severity=assess_severity(resolved, code),
        suggested_action=_lookup(SUGGESTIONS[resolved], code),
        recovery_strategy=recovery_strategy_for(resolved, recoverable, retryable),
    )
