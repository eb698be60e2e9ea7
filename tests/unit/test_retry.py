"""
Unit tests for retry with exponential backoff.
"""

from unittest.mock import Mock

import pytest
import requests

from src.config.validation import ConfigurationError
from src.scraper.errors import BlockedError, ParsingError, RateLimitExceeded, TransportError
from src.scraper.retry import backoff_delay_ms, run_with_retry, with_retry


class RecordingSleep:
    """Sleep replacement that records requested waits in seconds."""

    def __init__(self):
        self.calls = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class TestBackoffDelay:
    """Test cases for the backoff schedule."""

    def test_schedule_doubles_without_cap(self):
        """Delay before the k-th retry is base * 2^(k-1)."""
        assert [backoff_delay_ms(5000, attempt) for attempt in range(5)] == [5000, 10000, 20000, 40000, 80000]

    def test_zero_base(self):
        """A zero base never waits."""
        assert backoff_delay_ms(0, 3) == 0


class TestRunWithRetry:
    """Test cases for run_with_retry."""

    def test_success_on_first_attempt(self):
        """A successful operation runs once and never sleeps."""
        sleep = RecordingSleep()
        operation = Mock(return_value="ok")

        assert run_with_retry(operation, max_retries=3, base_delay_ms=1000, sleep=sleep) == "ok"
        assert operation.call_count == 1
        assert sleep.calls == []

    def test_success_after_transient_failures(self):
        """Transport failures are retried until the operation succeeds."""
        sleep = RecordingSleep()
        operation = Mock(side_effect=[TransportError("reset"), TransportError("reset"), "page"])

        assert run_with_retry(operation, max_retries=3, base_delay_ms=1000, sleep=sleep) == "page"
        assert operation.call_count == 3
        assert sleep.calls == [1.0, 2.0]

    @pytest.mark.parametrize("max_retries", [0, 1, 3, 5])
    def test_exhaustion_invokes_at_most_n_plus_one_times(self, max_retries):
        """With max_retries = n the operation runs n + 1 times, then the last error propagates."""
        sleep = RecordingSleep()
        errors = [TransportError(f"failure {i}") for i in range(max_retries + 1)]
        operation = Mock(side_effect=errors)

        with pytest.raises(TransportError) as exc_info:
            run_with_retry(operation, max_retries=max_retries, base_delay_ms=100, sleep=sleep)

        assert exc_info.value is errors[-1]
        assert operation.call_count == max_retries + 1
        assert sleep.calls == [100 * 2 ** k / 1000.0 for k in range(max_retries)]

    def test_parsing_error_is_not_retried(self):
        """Re-fetching will not fix malformed markup."""
        sleep = RecordingSleep()
        operation = Mock(side_effect=ParsingError("no title"))

        with pytest.raises(ParsingError):
            run_with_retry(operation, max_retries=3, base_delay_ms=100, sleep=sleep)

        assert operation.call_count == 1
        assert sleep.calls == []

    def test_configuration_error_is_not_retried(self):
        """Configuration errors propagate immediately."""
        operation = Mock(side_effect=ConfigurationError("bad profile"))

        with pytest.raises(ConfigurationError):
            run_with_retry(operation, max_retries=3, base_delay_ms=100, sleep=RecordingSleep())

        assert operation.call_count == 1

    def test_unexpected_error_is_not_retried(self):
        """Programming errors are not masked by retries."""
        operation = Mock(side_effect=KeyError("missing"))

        with pytest.raises(KeyError):
            run_with_retry(operation, max_retries=3, base_delay_ms=100, sleep=RecordingSleep())

        assert operation.call_count == 1

    def test_non_retryable_transport_error(self):
        """A transport error flagged as non-retryable propagates at once."""
        operation = Mock(side_effect=TransportError("Too many redirects", retryable=False))

        with pytest.raises(TransportError):
            run_with_retry(operation, max_retries=3, base_delay_ms=100, sleep=RecordingSleep())

        assert operation.call_count == 1

    def test_blocked_and_requests_errors_are_retried(self):
        """403 responses and raw requests exceptions are treated as transient."""
        sleep = RecordingSleep()
        operation = Mock(side_effect=[BlockedError(), requests.exceptions.ConnectionError(), "ok"])

        assert run_with_retry(operation, max_retries=2, base_delay_ms=10, sleep=sleep) == "ok"
        assert operation.call_count == 3

    def test_rate_limit_waits_at_least_retry_after(self):
        """A rate-limit denial waits for the larger of backoff and retry_after_ms."""
        sleep = RecordingSleep()
        operation = Mock(side_effect=[RateLimitExceeded("src", retry_after_ms=45000), "ok"])

        assert run_with_retry(operation, max_retries=1, base_delay_ms=5000, sleep=sleep) == "ok"
        assert sleep.calls == [45.0]

    def test_rate_limit_uses_backoff_when_larger(self):
        """When backoff exceeds retry_after_ms, backoff wins."""
        sleep = RecordingSleep()
        operation = Mock(side_effect=[RateLimitExceeded("src", retry_after_ms=10), "ok"])

        run_with_retry(operation, max_retries=1, base_delay_ms=5000, sleep=sleep)

        assert sleep.calls == [5.0]

    def test_on_retry_hook(self):
        """The hook sees attempt index, error and delay for every retry."""
        hook = Mock()
        error = TransportError("timeout")
        operation = Mock(side_effect=[error, "ok"])

        run_with_retry(operation, max_retries=2, base_delay_ms=250, sleep=RecordingSleep(), on_retry=hook)

        hook.assert_called_once_with(0, error, 250)

    def test_negative_max_retries_rejected(self):
        """Negative retry counts are invalid."""
        with pytest.raises(ValueError):
            run_with_retry(Mock(), max_retries=-1, base_delay_ms=100)


class TestWithRetryDecorator:
    """Test cases for the with_retry decorator."""

    def test_decorated_function_is_retried(self):
        """Arguments pass through and failures are retried."""
        sleep = RecordingSleep()
        calls = []

        @with_retry(max_retries=2, base_delay_ms=100, sleep=sleep)
        def fetch(url, suffix=""):
            calls.append(url)
            if len(calls) < 2:
                raise TransportError("flaky")
            return url + suffix

        assert fetch("https://example.com", suffix="/a") == "https://example.com/a"
        assert len(calls) == 2
        assert sleep.calls == [0.1]
        assert fetch.__name__ == "fetch"
