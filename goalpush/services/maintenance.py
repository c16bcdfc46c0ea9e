from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Callable, Optional

from loguru import logger
from sqlalchemy.orm import Session

from goalpush.schemas.push import MaintenanceReport
from goalpush.services.expo_gateway import Sleep
from goalpush.services.receipt_reconciler import ReceiptReconciler
from goalpush.services.token_registry import cleanup_stale_tokens


async def run_maintenance(
    reconciler: ReceiptReconciler,
    session_factory: Callable[[], Session],
    now: Optional[datetime] = None,
) -> MaintenanceReport:
    """One pass: reconcile receipts, drop receipts past retention, drop stale tokens."""
    receipts = await reconciler.check_receipts(now=now)
    receipts_deleted = reconciler.cleanup_old_receipts(now=now)
    with session_factory() as db:
        tokens_deleted = cleanup_stale_tokens(db, now=now)

    return MaintenanceReport(
        receipts=receipts,
        receipts_deleted=receipts_deleted,
        tokens_deleted=tokens_deleted,
    )


async def maintenance_loop(
    reconciler: ReceiptReconciler,
    session_factory: Callable[[], Session],
    interval_seconds: float,
    sleep: Sleep = asyncio.sleep,
    max_runs: Optional[int] = None,
) -> None:
    runs = 0
    logger.info(f"Push maintenance loop started | interval={interval_seconds}s")
    while max_runs is None or runs < max_runs:
        try:
            report = await run_maintenance(reconciler, session_factory)
            logger.info(f"Push maintenance run | {report.model_dump()}")
        except Exception:
            # retried on the next tick
            logger.exception("Push maintenance run failed")
        runs += 1
        await sleep(interval_seconds)
