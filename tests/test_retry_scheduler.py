# tests/test_retry_scheduler.py

import asyncio

import pytest

from conftest import expo_token
from goalpush.schemas.enums import PushPriority
from goalpush.schemas.push import PushMessage
from goalpush.services.retry_scheduler import (
    AsyncioScheduler,
    RetryableError,
    RetryScheduler,
    build_retry_message,
)


class TestAsyncioScheduler:

    @pytest.mark.asyncio
    async def test_runs_callback_after_delay(self):
        scheduler = AsyncioScheduler()
        done = asyncio.Event()
        seen = []

        async def callback(value):
            seen.append(value)
            done.set()

        scheduler.run_after(10, callback, "hello")
        await asyncio.wait_for(done.wait(), timeout=1)

        assert seen == ["hello"]

    @pytest.mark.asyncio
    async def test_failing_callback_is_contained(self):
        scheduler = AsyncioScheduler()
        ran = asyncio.Event()

        async def boom():
            ran.set()
            raise RuntimeError("resend blew up")

        scheduler.run_after(0, boom)
        await asyncio.wait_for(ran.wait(), timeout=1)
        await asyncio.sleep(0)

        assert scheduler.pending == 0

    @pytest.mark.asyncio
    async def test_accepts_plain_callables(self):
        scheduler = AsyncioScheduler()
        done = asyncio.Event()

        scheduler.run_after(0, done.set)
        await asyncio.wait_for(done.wait(), timeout=1)


class TestRetryScheduler:

    def test_build_retry_message(self):
        original = PushMessage(
            to=expo_token(1), title="T", body="B", data={"k": 1},
            sound=None, badge=4, channel_id="goals", priority=PushPriority.high, ttl=5,
        )

        retry = build_retry_message(original)

        assert retry.to == expo_token(1)
        assert (retry.title, retry.body, retry.data) == ("T", "B", {"k": 1})
        assert retry.sound == "default"
        assert retry.channel_id == "default"
        assert retry.priority is PushPriority.normal
        assert retry.ttl == 28 * 24 * 60 * 60
        assert retry.badge is None

    def test_enqueue_uses_retry_after(self, scheduler):
        async def resend(message):
            return message

        retries = RetryScheduler(scheduler, resend)
        message = PushMessage(to=expo_token(1), title="T", body="B")

        count = retries.enqueue([
            RetryableError(token=expo_token(1), message=message, retry_after_seconds=12),
            RetryableError(token=expo_token(1), message=message),
        ])

        assert count == 2
        assert [c[0] for c in scheduler.calls] == [12_000, 60_000]
        assert all(c[1] is resend for c in scheduler.calls)

    def test_skips_messages_without_text(self, scheduler):
        async def resend(message):
            return message

        retries = RetryScheduler(scheduler, resend)

        count = retries.enqueue([
            RetryableError(token=expo_token(1), message=PushMessage(to=expo_token(1), body="B")),
            RetryableError(token=expo_token(2), message=PushMessage(to=expo_token(2), title="T")),
        ])

        assert count == 0
        assert scheduler.calls == []
