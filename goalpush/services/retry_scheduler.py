from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Protocol, Set

from loguru import logger

from goalpush.core.logging import short_token
from goalpush.core.push_config import (
    DEFAULT_CHANNEL_ID,
    DEFAULT_RETRY_AFTER_SECONDS,
    DEFAULT_SOUND,
    DEFAULT_TTL_SECONDS,
)
from goalpush.schemas.enums import PushPriority
from goalpush.schemas.push import PushMessage, SendResult


class Scheduler(Protocol):
    def run_after(self, delay_ms: int, callback: Callable[..., Any], *args: Any) -> None:
        ...


class AsyncioScheduler:
    """
    One-shot delayed callbacks on the running event loop.

    Fire-at-most-once, no cancellation. A failing callback is logged and
    dropped; it never reaches the loop's exception handler.
    """

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def run_after(self, delay_ms: int, callback: Callable[..., Any], *args: Any) -> None:
        loop = asyncio.get_running_loop()
        loop.call_later(max(delay_ms, 0) / 1000, self._spawn, callback, args)

    def _spawn(self, callback: Callable[..., Any], args: tuple) -> None:
        task = asyncio.ensure_future(self._run(callback, args))
        # keep a strong ref until done, the loop only holds weak ones
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, callback: Callable[..., Any], args: tuple) -> None:
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception(f"Scheduled callback failed | callback={getattr(callback, '__name__', callback)}")

    @property
    def pending(self) -> int:
        return len(self._tasks)


@dataclass
class RetryableError:
    token: str
    message: PushMessage
    retry_after_seconds: int = DEFAULT_RETRY_AFTER_SECONDS


def build_retry_message(message: PushMessage) -> PushMessage:
    return PushMessage(
        to=message.to,
        title=message.title,
        body=message.body,
        data=message.data,
        sound=DEFAULT_SOUND,
        channel_id=DEFAULT_CHANNEL_ID,
        priority=PushPriority.normal,
        ttl=DEFAULT_TTL_SECONDS,
    )


class RetryScheduler:
    """
    Defers gateway rate-limited messages for one delayed resend.

    Resends skip the per-user rate limiter: they are system-initiated.
    The resend callback must not queue again, so a chain never grows past
    one retry.
    """

    def __init__(self, scheduler: Scheduler, resend: Callable[[PushMessage], Awaitable[SendResult]]):
        self._scheduler = scheduler
        self._resend = resend

    def enqueue(self, retryables: Iterable[RetryableError]) -> int:
        scheduled = 0
        for item in retryables:
            if not item.message.title or not item.message.body:
                logger.debug(f"Skipping retry for message without title/body | token={short_token(item.token)}")
                continue

            delay_seconds = item.retry_after_seconds
            if delay_seconds is None:
                delay_seconds = DEFAULT_RETRY_AFTER_SECONDS

            self._scheduler.run_after(
                delay_seconds * 1000,
                self._resend,
                build_retry_message(item.message),
            )
            scheduled += 1
            logger.info(f"Queued push retry | token={short_token(item.token)} delay={delay_seconds}s")
        return scheduled
