"""
Tests for the retry combinator and the small text helpers.
"""

import asyncio

import pytest

from manualgen.utils import RetryHandler, clean_text, count_words, slugify, with_retry


class Flaky:
    def __init__(self, failures, exc=RuntimeError):
        self.failures = failures
        self.exc = exc
        self.attempts = []

    async def __call__(self, attempt):
        self.attempts.append(attempt)
        if len(self.attempts) <= self.failures:
            raise self.exc(f"failure {len(self.attempts)}")
        return "done"


class TestRetryHandler:

    def test_succeeds_after_failures(self, sleep):
        op = Flaky(2)
        handler = RetryHandler(max_attempts=3, backoff=1.0, sleep=sleep)
        assert asyncio.run(handler.run(op)) == "done"
        assert op.attempts == [0, 1, 2]
        assert sleep.calls == [1.0, 2.0]

    def test_raises_last_exception(self, sleep):
        op = Flaky(5)
        handler = RetryHandler(max_attempts=2, sleep=sleep)
        with pytest.raises(RuntimeError, match="failure 2"):
            asyncio.run(handler.run(op))
        assert len(sleep.calls) == 1

    def test_no_delay_and_give_up(self, sleep):
        op = Flaky(1, exc=KeyError)
        handler = RetryHandler(max_attempts=3, sleep=sleep)
        assert asyncio.run(handler.run(op, no_delay_on=(KeyError,))) == "done"
        assert sleep.calls == []

        op = Flaky(1, exc=ValueError)
        with pytest.raises(ValueError):
            asyncio.run(handler.run(op, give_up_on=(ValueError,)))
        assert op.attempts == [0]

    def test_exceptions_outside_retry_on_propagate(self, sleep):
        op = Flaky(1, exc=KeyError)
        with pytest.raises(KeyError):
            asyncio.run(RetryHandler(max_attempts=3, sleep=sleep).run(op, retry_on=(ValueError,)))

    def test_delay_is_capped(self):
        handler = RetryHandler(backoff=10, max_delay=15)
        assert handler.calculate_delay(0) == 10
        assert handler.calculate_delay(3) == 15

    def test_with_retry(self):
        op = Flaky(2)
        assert asyncio.run(with_retry(3, 0.0, op)) == "done"
        assert len(op.attempts) == 3


class TestTextHelpers:

    def test_clean_text(self):
        assert clean_text("  a \n\t b  ") == "a b"
        assert clean_text(None) == ""

    def test_count_words(self):
        assert count_words("Save the form, then close it.") == 6
        assert count_words("") == 0

    def test_slugify(self):
        assert slugify("Save #1 (draft)") == "save_1_draft"
        assert slugify("!!!") == "item"
