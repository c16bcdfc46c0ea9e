from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Tuple

from loguru import logger
from sqlalchemy.orm import Session

from goalpush.core.db import utc_now
from goalpush.core.push_config import (
    RECEIPT_CHECK_DELAY_MINUTES,
    RECEIPT_CHECK_LIMIT,
    RECEIPT_RETENTION_HOURS,
)
from goalpush.models.push_receipt import PushReceipt
from goalpush.schemas.enums import ReceiptStatus


def store_pending_receipts(
    db: Session,
    receipts: Iterable[Tuple[str, str]],
    now: Optional[datetime] = None,
) -> int:
    """
    Insert (ticket_id, token) pairs as pending receipts.

    A ticket id repeated within the call or already stored is skipped; the
    first occurrence wins.
    """
    now = now or utc_now()
    pairs = list(receipts)
    if not pairs:
        return 0

    stored = {
        ticket_id
        for (ticket_id,) in db.query(PushReceipt.ticket_id)
        .filter(PushReceipt.ticket_id.in_([t for t, _ in pairs]))
        .all()
    }
    rows = []
    for ticket_id, token in pairs:
        if ticket_id in stored:
            logger.warning(f"Duplicate push ticket id skipped | ticket={ticket_id}")
            continue
        stored.add(ticket_id)
        rows.append(
            PushReceipt(
                ticket_id=ticket_id,
                token=token,
                status=ReceiptStatus.pending.value,
                created_at=now,
            )
        )
    if not rows:
        return 0
    db.add_all(rows)
    db.commit()
    return len(rows)


def get_receipt(db: Session, ticket_id: str) -> Optional[PushReceipt]:
    return db.query(PushReceipt).filter(PushReceipt.ticket_id == ticket_id).first()


def pending_receipts(
    db: Session,
    now: Optional[datetime] = None,
    limit: int = RECEIPT_CHECK_LIMIT,
) -> List[PushReceipt]:
    # Expo only has receipts ready some minutes after the ticket
    cutoff = (now or utc_now()) - timedelta(minutes=RECEIPT_CHECK_DELAY_MINUTES)
    return (
        db.query(PushReceipt)
        .filter(
            PushReceipt.status == ReceiptStatus.pending.value,
            PushReceipt.created_at < cutoff,
        )
        .order_by(PushReceipt.created_at.asc())
        .limit(limit)
        .all()
    )


def mark_receipt(
    db: Session,
    ticket_id: str,
    status: ReceiptStatus,
    error: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Optional[PushReceipt]:
    receipt = get_receipt(db, ticket_id)
    if not receipt:
        logger.debug(f"Receipt for unknown ticket ignored | ticket={ticket_id}")
        return None
    if receipt.status != ReceiptStatus.pending.value:
        # terminal states never move again
        return receipt

    receipt.status = status.value
    receipt.error = error
    receipt.checked_at = now or utc_now()
    db.commit()
    return receipt


def cleanup_old_receipts(db: Session, now: Optional[datetime] = None) -> int:
    cutoff = (now or utc_now()) - timedelta(hours=RECEIPT_RETENTION_HOURS)
    removed = (
        db.query(PushReceipt)
        .filter(PushReceipt.created_at < cutoff)
        .delete(synchronize_session=False)
    )
    db.commit()
    if removed:
        logger.info(f"Removed old push receipts | count={removed}")
    return removed
