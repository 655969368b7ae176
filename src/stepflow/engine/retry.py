"""Retry utility with exponential backoff for calls to external services."""

from __future__ import annotations

import asyncio
import math
import random
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from ..core.config import RetryConfig
from ..core.logger import get_logger

logger = get_logger("engine.retry")

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[Any]]


@dataclass
class RetryResult(Generic[T]):
    """Outcome of :func:`with_retry`.

    ``total_delay`` is the sum of the sleeps actually taken, in milliseconds.
    """

    success: bool
    attempts: int
    total_delay: int = 0
    data: T | None = None
    error: str | None = None


def calculate_delay(attempt: int, config: RetryConfig) -> int:
    """Delay in milliseconds before retrying after 0-indexed ``attempt``."""
    try:
        delay = min(config.base_delay * (config.backoff_multiplier**attempt), config.max_delay)
    except OverflowError:
        delay = config.max_delay
    if config.jitter:
        delay = delay * (0.5 + random.random() * 0.5)
    return math.floor(delay)


def is_retryable_error(exc: BaseException, config: RetryConfig) -> bool:
    """Match the exception's class name and message against the retryable patterns."""
    text = f"{type(exc).__name__} {exc}".lower()
    return any(pattern.lower() in text for pattern in config.retryable_error_patterns)


def is_retryable_status(result: Any, config: RetryConfig) -> bool:
    """Return True if ``result`` is an HTTP-style response with a retryable status."""
    status = getattr(result, "status_code", None)
    return isinstance(status, int) and status in config.retryable_statuses


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    *,
    sleep: SleepFunc = asyncio.sleep,
) -> RetryResult[T]:
    """Run ``operation`` with bounded retries.

    Args:
        operation: Zero-argument coroutine factory performing one attempt
        config: Retry policy; defaults apply when omitted
        sleep: Awaitable sleep taking seconds, replaceable in tests

    Returns:
        RetryResult describing the final outcome. A response whose status stays
        retryable after the last attempt is still returned as ``data`` with
        ``success=True`` so the caller can inspect the provider's answer.
    """
    config = config or RetryConfig()
    max_attempts = config.max_retries + 1
    total_delay = 0
    last_error: BaseException | None = None
    attempts = 0

    for attempt in range(max_attempts):
        attempts = attempt + 1
        has_more = attempt < max_attempts - 1
        try:
            data = await operation()
        except Exception as exc:
            last_error = exc
            if has_more and is_retryable_error(exc, config):
                delay = calculate_delay(attempt, config)
                logger.warning(
                    "Operation failed (attempt %d/%d): %s. Retrying in %dms...",
                    attempts,
                    max_attempts,
                    exc,
                    delay,
                )
                total_delay += delay
                await sleep(delay / 1000)
                continue
            if attempts > 1:
                logger.error(
                    "Operation failed after %d attempts: %s", attempts, exc, exc_info=True
                )
            break

        if has_more and is_retryable_status(data, config):
            delay = calculate_delay(attempt, config)
            logger.warning(
                "Retryable status %s (attempt %d/%d). Retrying in %dms...",
                data.status_code,  # type: ignore[attr-defined]
                attempts,
                max_attempts,
                delay,
            )
            total_delay += delay
            await sleep(delay / 1000)
            continue

        return RetryResult(success=True, data=data, attempts=attempts, total_delay=total_delay)

    return RetryResult(
        success=False,
        error=(str(last_error) or type(last_error).__name__)
        if last_error
        else "Operation failed after retries",
        attempts=attempts,
        total_delay=total_delay,
    )


def parse_retry_directive(
    value: bool | int | Mapping[str, Any] | RetryConfig | None,
    default: RetryConfig | None = None,
) -> RetryConfig | None:
    """Turn a step's ``retry`` setting into a policy.

    ``None``, ``False`` or ``0`` disables retries, ``True`` selects the default policy, an
    integer overrides ``max_retries`` and a mapping overrides any field.
    """
    if not value:
        return None
    base = default or RetryConfig()
    if value is True:
        return base.model_copy()
    if isinstance(value, RetryConfig):
        return value
    if isinstance(value, int):
        return base.model_copy(update={"max_retries": max(value, 0)})
    if isinstance(value, Mapping):
        merged = base.model_dump()
        merged.update(RetryConfig.model_validate(value).model_dump(exclude_unset=True))
        return RetryConfig.model_validate(merged)
    raise TypeError(f"Invalid retry directive: {value!r}")
