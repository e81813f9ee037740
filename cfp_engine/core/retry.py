"""Retry and error-classification framework shared by every pipeline stage.

Classification is purely pattern based: an error is retryable when its
message contains (case-insensitively) one of the configured patterns.

Backoff strategy:
  delay = min(base * multiplier^(attempt-1), max_delay)
  jitter = uniform(-25%, +25%) of the capped delay
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field, replace
from typing import Any, TypeVar

from cfp_engine.core.logging import redact_secrets, sanitize_error_for_logging

logger = logging.getLogger(__name__)

T = TypeVar("T")

JITTER_RATIO = 0.25


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RetryConfig:
    """Static retry policy for one class of operation."""

    max_attempts: int
    base_delay_ms: int
    max_delay_ms: int
    backoff_multiplier: float = 2.0
    retryable_errors: tuple[str, ...] = ()


RETRY_CONFIGS: dict[str, RetryConfig] = {
    "crawl": RetryConfig(
        max_attempts=3,
        base_delay_ms=2000,
        max_delay_ms=30000,
        backoff_multiplier=2,
        retryable_errors=("Rate Limit", "timeout", "network", "429", "502", "503", "504"),
    ),
    "llm": RetryConfig(
        max_attempts=2,
        base_delay_ms=1000,
        max_delay_ms=10000,
        backoff_multiplier=2,
        retryable_errors=("Rate Limit", "timeout", "network", "429", "500", "502", "503", "504"),
    ),
    "database": RetryConfig(
        max_attempts=3,
        base_delay_ms=500,
        max_delay_ms=5000,
        backoff_multiplier=1.5,
        retryable_errors=("connection", "timeout", "deadlock"),
    ),
}


@dataclass
class ErrorContext:
    """Diagnostic context attached to pipeline errors. Never holds secrets."""

    operation: str
    business_id: int | None = None
    job_id: int | None = None
    url: str | None = None
    attempt: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def with_attempt(self, attempt: int) -> ErrorContext:
        return replace(self, attempt=attempt)

    def as_log_extra(self) -> dict[str, Any]:
        extra = {k: v for k, v in asdict(self).items() if v is not None and k != "metadata"}
        if self.url:
            extra["url"] = redact_secrets(self.url)
        return extra

    def to_dict(self) -> dict[str, Any]:
        data = {k: v for k, v in asdict(self).items() if v is not None}
        if not data.get("metadata"):
            data.pop("metadata", None)
        return data


class ProcessingError(Exception):
    """Typed pipeline error carrying a code, a retry flag and its context."""

    def __init__(
        self,
        message: str,
        code: str,
        retryable: bool = False,
        context: ErrorContext | None = None,
    ):
        super().__init__(message)
        self.code = code
        self.retryable = retryable
        self.context = context or ErrorContext(operation="unknown")

    @property
    def status_code(self) -> int:
        """HTTP-like status of the underlying cause, 0 when unknown."""
        return getattr(self.__cause__, "status_code", 0) or 0


@dataclass(frozen=True)
class ParallelErrorDecision:
    should_continue: bool
    degraded_mode: bool
    errors: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Classification and backoff
# ---------------------------------------------------------------------------


def is_retryable_error(error: BaseException, config: RetryConfig) -> bool:
    """Return True iff the error message matches one of the retryable patterns."""
    if not config.retryable_errors:
        return False
    message = str(error).lower()
    return any(pattern.lower() in message for pattern in config.retryable_errors)


def calculate_retry_delay(attempt: int, config: RetryConfig, rng: random.Random | None = None) -> float:
    """Backoff delay in milliseconds before retrying after ``attempt`` failures.

    Never exceeds ``max_delay_ms * 1.25``.
    """
    attempt = max(1, attempt)
    exponential = config.base_delay_ms * config.backoff_multiplier ** (attempt - 1)
    capped = min(exponential, config.max_delay_ms)
    jitter = capped * (rng or random).uniform(-JITTER_RATIO, JITTER_RATIO)
    return max(0.0, capped + jitter)


# ---------------------------------------------------------------------------
# Retry wrapper
# ---------------------------------------------------------------------------


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    context: ErrorContext,
    config: RetryConfig = RETRY_CONFIGS["crawl"],
    *,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """Run ``operation`` with exponential backoff.

    A non-retryable error is re-raised as-is after a single attempt.
    Exhausting every attempt on retryable errors raises
    ``ProcessingError(code="MAX_RETRIES_EXCEEDED")`` chained to the last error.
    """
    last_error: Exception | None = None

    for attempt in range(1, config.max_attempts + 1):
        logger.debug(
            "%s: attempt %d/%d", context.operation, attempt, config.max_attempts,
            extra=context.with_attempt(attempt).as_log_extra(),
        )
        try:
            result = await operation()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            last_error = e
            retryable = is_retryable_error(e, config)
            will_retry = retryable and attempt < config.max_attempts
            logger.warning(
                "%s failed (attempt %d/%d, will_retry=%s): %s",
                context.operation,
                attempt,
                config.max_attempts,
                will_retry,
                sanitize_error_for_logging(e)["message"],
                extra=context.with_attempt(attempt).as_log_extra(),
            )
            if not retryable:
                raise
            if not will_retry:
                break
            delay_ms = calculate_retry_delay(attempt, config)
            logger.debug("%s: waiting %.0fms before retry", context.operation, delay_ms)
            await sleep(delay_ms / 1000)
            continue

        if attempt > 1:
            logger.info("%s succeeded after %d attempts", context.operation, attempt)
        return result

    final = ProcessingError(
        f"Operation failed after {config.max_attempts} attempts: {redact_secrets(str(last_error))}",
        "MAX_RETRIES_EXCEEDED",
        retryable=False,
        context=context.with_attempt(config.max_attempts),
    )
    logger.error(
        "%s failed after all retries: %s",
        context.operation,
        final,
        extra=final.context.as_log_extra(),
    )
    raise final from last_error


def handle_parallel_processing_error(
    crawl_error: BaseException | None,
    fingerprint_error: BaseException | None,
    context: ErrorContext,
) -> ParallelErrorDecision:
    """Decide whether orchestration continues after the crawl and fingerprint stages.

    crawl ok, fingerprint ok     -> continue normally
    crawl ok, fingerprint failed -> continue in degraded mode
    crawl failed                 -> stop
    """
    errors: list[str] = []
    if crawl_error is not None:
        errors.append(f"Crawl failed: {redact_secrets(str(crawl_error))}")
    if fingerprint_error is not None:
        errors.append(f"Fingerprint failed: {redact_secrets(str(fingerprint_error))}")

    if crawl_error is not None:
        logger.error("%s: cannot continue, crawl failed", context.operation, extra=context.as_log_extra())
        return ParallelErrorDecision(should_continue=False, degraded_mode=False, errors=errors)

    if fingerprint_error is not None:
        logger.warning(
            "%s: continuing in degraded mode, fingerprint failed", context.operation, extra=context.as_log_extra()
        )
        return ParallelErrorDecision(should_continue=True, degraded_mode=True, errors=errors)

    return ParallelErrorDecision(should_continue=True, degraded_mode=False)


def create_error_response(error: BaseException, context: ErrorContext) -> dict[str, Any]:
    """Standardized, sanitized error body for API responses."""
    if isinstance(error, ProcessingError):
        return {
            "error": redact_secrets(str(error)),
            "code": error.code,
            "retryable": error.retryable,
            "context": error.context.to_dict(),
        }
    return {
        "error": redact_secrets(str(error)) or "Internal server error",
        "context": context.to_dict(),
    }
