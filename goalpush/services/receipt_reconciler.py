from __future__ import annotations

from datetime import datetime
from typing import Callable, Dict, Optional

from loguru import logger
from sqlalchemy.orm import Session

from goalpush.core.db import utc_now
from goalpush.core.errors import PermanentDeviceError, TransientGatewayError
from goalpush.core.push_config import MAX_RECEIPT_IDS_PER_REQUEST, RECEIPT_CHECK_LIMIT
from goalpush.schemas.enums import ReceiptStatus
from goalpush.schemas.push import OkReceipt, ReconcileResult
from goalpush.services import receipt_store
from goalpush.services.expo_gateway import ExpoGateway, chunked
from goalpush.services.token_registry import delete_token_by_value


class ReceiptReconciler:
    """
    Polls Expo for receipts of tickets older than the check delay.

    State machine per receipt:
      pending -> ok | error   (once, on the gateway's report)
      any     -> deleted      (age sweep, regardless of status)
    """

    def __init__(self, session_factory: Callable[[], Session], gateway: ExpoGateway):
        self.session_factory = session_factory
        self.gateway = gateway

    async def check_receipts(self, now: Optional[datetime] = None) -> ReconcileResult:
        if not self.gateway.configured:
            logger.warning("EXPO_ACCESS_TOKEN not configured, skipping receipt check")
            return ReconcileResult()

        now = now or utc_now()
        with self.session_factory() as db:
            pending = receipt_store.pending_receipts(db, now=now, limit=RECEIPT_CHECK_LIMIT)
            # the token is read from the row, never re-derived from the ticket
            token_by_ticket: Dict[str, str] = {r.ticket_id: r.token for r in pending}

        if not token_by_ticket:
            return ReconcileResult()

        result = ReconcileResult()
        for batch in chunked(list(token_by_ticket), MAX_RECEIPT_IDS_PER_REQUEST):
            try:
                response = await self.gateway.get_receipts(batch)
            except TransientGatewayError as e:
                logger.error(f"Failed to check receipts | batch={len(batch)} error={e}")
                continue

            if response.errors:
                logger.error(f"Expo receipt lookup errors | {[err.message for err in response.errors]}")

            with self.session_factory() as db:
                for ticket_id, receipt in response.data.items():
                    if isinstance(receipt, OkReceipt):
                        row = receipt_store.mark_receipt(db, ticket_id, ReceiptStatus.ok, now=now)
                        if row is not None:
                            result.checked += 1
                        continue

                    row = receipt_store.mark_receipt(
                        db, ticket_id, ReceiptStatus.error, error=receipt.reason, now=now
                    )
                    if row is None:
                        continue
                    result.checked += 1
                    result.errors += 1

                    if receipt.error_code == PermanentDeviceError.code:
                        token = token_by_ticket.get(ticket_id)
                        if token:
                            delete_token_by_value(db, token)

        logger.info(f"Receipt check done | checked={result.checked} errors={result.errors}")
        return result

    def cleanup_old_receipts(self, now: Optional[datetime] = None) -> int:
        with self.session_factory() as db:
            return receipt_store.cleanup_old_receipts(db, now=now)
