from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from loguru import logger
from sqlalchemy.orm import Session

from goalpush.core.errors import (
    ConfigurationError,
    TransientGatewayError,
    UserRateLimited,
    ValidationError,
)
from goalpush.core.logging import short_token
from goalpush.core.push_config import (
    DEFAULT_CHANNEL_ID,
    DEFAULT_RETRY_AFTER_SECONDS,
    DEFAULT_SOUND,
    DEFAULT_TTL_SECONDS,
    MAX_BATCH_SIZE,
    MAX_NOTIF_BODY_LENGTH,
    MAX_NOTIF_TITLE_LENGTH,
    TEST_NOTIFICATION_TTL_SECONDS,
)
from goalpush.schemas.enums import PushPriority, TicketOutcome
from goalpush.schemas.push import (
    NotificationCheckResult,
    PushMessage,
    PushResponse,
    SendPushIn,
    SendResult,
    SuccessTicket,
)
from goalpush.services.expo_gateway import ExpoGateway, chunked
from goalpush.services.rate_limiter import check_and_record
from goalpush.services.receipt_store import store_pending_receipts
from goalpush.services.retry_scheduler import (
    AsyncioScheduler,
    RetryableError,
    RetryScheduler,
    Scheduler,
)
from goalpush.services.ticket_classifier import classify_ticket, ticket_error_message
from goalpush.services.token_registry import delete_token_by_value, tokens_for_user

NO_TOKENS_ERROR = "No push tokens for user"


def no_tokens_result() -> SendResult:
    return SendResult(success=False, sent=0, failed=0, errors=[NO_TOKENS_ERROR])


def validate_notification(title: str, body: str) -> None:
    if len(title) > MAX_NOTIF_TITLE_LENGTH:
        raise ValidationError(f"Title cannot exceed {MAX_NOTIF_TITLE_LENGTH} characters")
    if len(body) > MAX_NOTIF_BODY_LENGTH:
        raise ValidationError(f"Body cannot exceed {MAX_NOTIF_BODY_LENGTH} characters")


@dataclass
class _Tally:
    sent: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)
    retryable: List[RetryableError] = field(default_factory=list)

    def fail_batch(self, batch: Sequence[PushMessage], reasons: List[str]) -> None:
        self.failed += len(batch)
        self.errors.extend(reasons)

    def result(self) -> SendResult:
        retry_queued = len(self.retryable)
        return SendResult(
            success=self.failed == 0 and retry_queued == 0,
            sent=self.sent,
            failed=self.failed + retry_queued,
            errors=self.errors or None,
        )


class Dispatcher:
    """
    Fans one logical notification out to every device of a user.

    Batches go out one after another. Within a batch, ticket[j] answers
    message[j]; nothing here may reorder or filter the batch between the
    request and the ticket walk.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        gateway: ExpoGateway,
        scheduler: Optional[Scheduler] = None,
    ):
        self._session_factory = session_factory
        self.gateway = gateway
        self.retries = RetryScheduler(scheduler or AsyncioScheduler(), self.retry_message)

    # ---------------------------
    # Entry points
    # ---------------------------

    async def send_to_user(self, user_id: str, request: SendPushIn) -> SendResult:
        """User-initiated send: credential, size limits and the per-user rate limit all apply."""
        self._require_configured()
        validate_notification(request.title, request.body)

        with self._session_factory() as db:
            if not check_and_record(db, user_id):
                raise UserRateLimited(user_id)
            tokens = [t.token for t in tokens_for_user(db, user_id)]

        if not tokens:
            return no_tokens_result()

        messages = [
            PushMessage(
                to=token,
                title=request.title,
                body=request.body,
                data=request.data,
                sound=request.sound,
                badge=request.badge,
                channel_id=request.channel_id or DEFAULT_CHANNEL_ID,
                priority=request.priority or PushPriority.high,
                ttl=request.ttl if request.ttl is not None else DEFAULT_TTL_SECONDS,
                expiration=request.expiration,
            )
            for token in tokens
        ]

        logger.info(f"Dispatching push | user={user_id} devices={len(messages)}")
        return await self.dispatch(messages, queue_retries=True)

    async def send_internal(
        self,
        user_id: str,
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None,
        ttl: Optional[int] = None,
    ) -> SendResult:
        """System-initiated send from other services. No user rate limit."""
        self._require_configured()
        validate_notification(title, body)

        with self._session_factory() as db:
            tokens = [t.token for t in tokens_for_user(db, user_id)]
        if not tokens:
            return no_tokens_result()

        messages = [
            PushMessage(
                to=token,
                title=title,
                body=body,
                data=data,
                sound=DEFAULT_SOUND,
                channel_id=DEFAULT_CHANNEL_ID,
                priority=PushPriority.high,
                ttl=ttl if ttl is not None else DEFAULT_TTL_SECONDS,
            )
            for token in tokens
        ]
        return await self.dispatch(messages)

    async def send_test_notification(self, user_id: str) -> NotificationCheckResult:
        self._require_configured()

        with self._session_factory() as db:
            tokens = [t.token for t in tokens_for_user(db, user_id)]
        if not tokens:
            return NotificationCheckResult(success=False, error=NO_TOKENS_ERROR)

        messages = [
            PushMessage(
                to=token,
                title="Notifications On",
                body="You're all set. We'll keep you posted on your goals.",
                data={"test": True},
                sound=DEFAULT_SOUND,
                channel_id=DEFAULT_CHANNEL_ID,
                priority=PushPriority.high,
                ttl=TEST_NOTIFICATION_TTL_SECONDS,
            )
            for token in tokens
        ]
        result = await self.dispatch(messages)
        return NotificationCheckResult(
            success=result.success,
            error=result.errors[0] if result.errors else None,
        )

    async def retry_message(self, message: PushMessage) -> SendResult:
        """Scheduled resend of one rate-limited message. Never queues again."""
        result = await self.dispatch([message])
        logger.info(
            f"Push retry finished | token={short_token(message.to)} "
            f"sent={result.sent} failed={result.failed}"
        )
        return result

    # ---------------------------
    # Pipeline
    # ---------------------------

    async def dispatch(self, messages: Sequence[PushMessage], queue_retries: bool = False) -> SendResult:
        self._require_configured()
        tally = _Tally()

        for batch in chunked(messages, MAX_BATCH_SIZE):
            await self._send_batch(batch, tally, queue_retries)

        if tally.retryable:
            self.retries.enqueue(tally.retryable)

        result = tally.result()
        if not result.success:
            logger.warning(
                f"Push dispatch incomplete | sent={result.sent} failed={result.failed} "
                f"errors={len(result.errors or [])}"
            )
        return result

    async def _send_batch(self, batch: List[PushMessage], tally: _Tally, queue_retries: bool) -> None:
        try:
            response = await self.gateway.send_messages(batch)
        except TransientGatewayError as e:
            logger.error(f"Push batch failed after retries | size={len(batch)} error={e}")
            tally.fail_batch(batch, [str(e)])
            return

        if response.errors:
            tally.fail_batch(batch, [err.message for err in response.errors])
            return

        if response.data is None:
            tally.fail_batch(batch, ["Expo returned no tickets"])
            return

        with self._session_factory() as db:
            receipts = self._apply_tickets(db, batch, response, tally, queue_retries)
            store_pending_receipts(db, receipts)

    def _apply_tickets(
        self,
        db: Session,
        batch: List[PushMessage],
        response: PushResponse,
        tally: _Tally,
        queue_retries: bool,
    ) -> List[tuple]:
        tickets = response.data or []
        receipts = []

        if len(tickets) != len(batch):
            logger.error(f"Ticket count mismatch | messages={len(batch)} tickets={len(tickets)}")

        for j, message in enumerate(batch):
            if j >= len(tickets):
                tally.failed += 1
                tally.errors.append(f"{message.to}: Missing ticket")
                continue

            ticket = tickets[j]
            outcome = classify_ticket(ticket)

            if outcome is TicketOutcome.sent:
                tally.sent += 1
                if isinstance(ticket, SuccessTicket) and ticket.id:
                    receipts.append((ticket.id, message.to))
                continue

            reason = ticket_error_message(ticket)

            if outcome is TicketOutcome.device_removed:
                delete_token_by_value(db, message.to)
                tally.failed += 1
                tally.errors.append(f"{message.to}: {reason}")
            elif outcome is TicketOutcome.rate_limited and queue_retries:
                tally.retryable.append(
                    RetryableError(
                        token=message.to,
                        message=message,
                        retry_after_seconds=(
                            response.retry_after
                            if response.retry_after is not None
                            else DEFAULT_RETRY_AFTER_SECONDS
                        ),
                    )
                )
                tally.errors.append(f"{message.to}: Rate limited, will retry")
            else:
                tally.failed += 1
                tally.errors.append(f"{message.to}: {reason}")

        return receipts

    def _require_configured(self) -> None:
        if not self.gateway.configured:
            raise ConfigurationError("EXPO_ACCESS_TOKEN not configured")
