"""Tests for the bounded retry helper."""

from __future__ import annotations

import pytest

from wp_porter.errors import FetchError
from wp_porter.retry import Outcome, retry_async


class TestRetryAsync:
    """Tests for retry_async."""

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        """Test that failed outcomes are retried until one succeeds."""
        calls = []

        async def operation():
            calls.append(1)
            if len(calls) < 3:
                return Outcome.failure(FetchError("boom"))
            return Outcome.success("ok")

        outcome = await retry_async(operation, attempts=3, base_delay=0)
        assert outcome.ok
        assert outcome.value == "ok"
        assert outcome.attempts == 3

    @pytest.mark.asyncio
    async def test_returns_last_failure_when_exhausted(self):
        """Test that exhaustion yields the last failed outcome, not an exception."""
        calls = []

        async def operation():
            calls.append(1)
            return Outcome.failure(FetchError(f"failure {len(calls)}"))

        outcome = await retry_async(operation, attempts=2, base_delay=0)
        assert not outcome.ok
        assert outcome.attempts == 2
        assert str(outcome.error) == "failure 2"
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_exceptions_are_not_retried(self):
        """Test that unexpected exceptions propagate immediately."""
        calls = []

        async def operation():
            calls.append(1)
            raise ValueError("bug")

        with pytest.raises(ValueError):
            await retry_async(operation, attempts=3, base_delay=0)
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_single_attempt(self):
        """Test that attempts below one still run the operation once."""

        async def operation():
            return Outcome.success(1)

        outcome = await retry_async(operation, attempts=0, base_delay=0)
        assert outcome.ok
        assert outcome.attempts == 1
