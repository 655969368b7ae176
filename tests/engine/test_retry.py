"""Tests for the retry utility."""

from __future__ import annotations

from dataclasses import dataclass
from unittest.mock import patch

import pytest

from stepflow.core.config import RetryConfig
from stepflow.engine.retry import calculate_delay, parse_retry_directive, with_retry


@dataclass
class FakeResponse:
    status_code: int


class RecordingSleep:
    """Collects requested sleep durations instead of sleeping."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def flaky(failures: list[BaseException], result: object = "ok"):
    """Operation raising each exception in turn, then returning ``result``."""
    calls = {"count": 0}

    async def operation():
        calls["count"] += 1
        if failures:
            raise failures.pop(0)
        return result

    return operation, calls


class TestWithRetry:
    """Tests for with_retry."""

    @pytest.mark.anyio
    async def test_success_after_retryable_failures(self) -> None:
        """Test two retryable failures then success gives attempts=3."""
        operation, calls = flaky([ConnectionError("ECONNRESET"), TimeoutError("timed out")])
        sleep = RecordingSleep()
        config = RetryConfig(max_retries=2, base_delay=100, jitter=False)

        result = await with_retry(operation, config, sleep=sleep)

        assert result.success is True
        assert result.data == "ok"
        assert result.attempts == 3
        assert calls["count"] == 3
        assert result.total_delay == 100 + 200
        assert sleep.calls == [0.1, 0.2]

    @pytest.mark.anyio
    async def test_non_retryable_error_fails_immediately(self) -> None:
        """Test an error matching no pattern is not retried."""
        operation, calls = flaky([ValueError("bad payload")])
        sleep = RecordingSleep()

        result = await with_retry(operation, RetryConfig(max_retries=3), sleep=sleep)

        assert result.success is False
        assert result.attempts == 1
        assert result.error == "bad payload"
        assert result.total_delay == 0
        assert sleep.calls == []
        assert calls["count"] == 1

    @pytest.mark.anyio
    async def test_exhaustion_reports_attempts_and_last_error(self) -> None:
        """Test retries stop at max_retries and report the last error."""
        operation, calls = flaky(
            [ConnectionError("network down %d" % i) for i in range(5)]
        )
        sleep = RecordingSleep()
        config = RetryConfig(max_retries=2, base_delay=10, jitter=False)

        result = await with_retry(operation, config, sleep=sleep)

        assert result.success is False
        assert result.attempts == 3
        assert result.error == "network down 2"
        assert len(sleep.calls) == 2
        assert calls["count"] == 3

    @pytest.mark.anyio
    async def test_class_name_matches_pattern(self) -> None:
        """Test the exception class name is matched as well as the message."""

        class ConnectError(Exception):
            pass

        operation, _ = flaky([ConnectError("")])
        config = RetryConfig(max_retries=1, base_delay=1, jitter=False)

        result = await with_retry(operation, config, sleep=RecordingSleep())

        assert result.success is True
        assert result.attempts == 2

    @pytest.mark.anyio
    async def test_pattern_match_is_case_insensitive(self) -> None:
        """Test custom patterns match regardless of case."""
        operation, _ = flaky([RuntimeError("Upstream BUSY")])
        config = RetryConfig(
            max_retries=1, base_delay=1, jitter=False, retryable_error_patterns=["busy"]
        )

        result = await with_retry(operation, config, sleep=RecordingSleep())

        assert result.success is True

    @pytest.mark.anyio
    async def test_retryable_status_retried_then_success(self) -> None:
        """Test a 503 response is retried and a 200 returned."""
        responses = [FakeResponse(503), FakeResponse(200)]

        async def operation():
            return responses.pop(0)

        config = RetryConfig(max_retries=3, base_delay=1, jitter=False)
        result = await with_retry(operation, config, sleep=RecordingSleep())

        assert result.success is True
        assert result.attempts == 2
        assert result.data.status_code == 200

    @pytest.mark.anyio
    async def test_retryable_status_exhausted_returns_last_response(self) -> None:
        """Test the last retryable response is handed back for inspection."""

        async def operation():
            return FakeResponse(429)

        config = RetryConfig(max_retries=2, base_delay=1, jitter=False)
        result = await with_retry(operation, config, sleep=RecordingSleep())

        assert result.success is True
        assert result.attempts == 3
        assert result.data.status_code == 429

    @pytest.mark.anyio
    async def test_non_retryable_status_returned_at_once(self) -> None:
        """Test a 400 response is not retried."""
        calls = {"count": 0}

        async def operation():
            calls["count"] += 1
            return FakeResponse(400)

        result = await with_retry(operation, RetryConfig(), sleep=RecordingSleep())

        assert result.attempts == 1
        assert calls["count"] == 1

    @pytest.mark.anyio
    async def test_zero_retries_single_attempt(self) -> None:
        """Test max_retries=0 makes exactly one attempt."""
        operation, calls = flaky([ConnectionError("ECONNREFUSED")])

        result = await with_retry(
            operation, RetryConfig(max_retries=0), sleep=RecordingSleep()
        )

        assert result.success is False
        assert result.attempts == 1
        assert calls["count"] == 1


class TestCalculateDelay:
    """Tests for calculate_delay."""

    def test_exponential_growth_and_cap(self) -> None:
        """Test delays double per attempt and stop at max_delay."""
        config = RetryConfig(base_delay=1000, max_delay=5000, jitter=False)

        assert [calculate_delay(n, config) for n in range(5)] == [1000, 2000, 4000, 5000, 5000]

    def test_large_attempt_is_capped(self) -> None:
        """Test a very late attempt yields max_delay instead of overflowing."""
        config = RetryConfig(max_retries=5000, base_delay=1000, max_delay=5000, jitter=False)

        assert calculate_delay(4999, config) == 5000

    def test_jitter_bounds(self) -> None:
        """Test jitter scales the delay into [0.5, 1.0] and floors it."""
        config = RetryConfig(base_delay=1000, jitter=True)

        with patch("stepflow.engine.retry.random.random", return_value=0.0):
            assert calculate_delay(0, config) == 500
        with patch("stepflow.engine.retry.random.random", return_value=0.999):
            assert calculate_delay(0, config) == 999


class TestParseRetryDirective:
    """Tests for parse_retry_directive."""

    def test_disabled_values(self) -> None:
        """Test absent or false directives disable retries."""
        assert parse_retry_directive(None) is None
        assert parse_retry_directive(False) is None
        assert parse_retry_directive(0) is None

    def test_true_uses_defaults(self) -> None:
        """Test True selects the default policy."""
        default = RetryConfig(max_retries=5)

        assert parse_retry_directive(True, default).max_retries == 5
        assert parse_retry_directive(True).max_retries == 3

    def test_int_overrides_max_retries(self) -> None:
        """Test a number overrides only the retry count."""
        config = parse_retry_directive(2)

        assert config.max_retries == 2
        assert config.base_delay == 1000

    def test_mapping_with_camel_case_keys(self) -> None:
        """Test a mapping overrides individual fields, camelCase accepted."""
        config = parse_retry_directive(
            {"maxRetries": 1, "baseDelay": 250, "retryableErrors": ["busy"]},
            RetryConfig(max_delay=9000),
        )

        assert config.max_retries == 1
        assert config.base_delay == 250
        assert config.max_delay == 9000
        assert config.retryable_error_patterns == ["busy"]

    def test_invalid_directive(self) -> None:
        """Test unsupported types raise TypeError."""
        with pytest.raises(TypeError):
            parse_retry_directive("often")  # type: ignore[arg-type]
