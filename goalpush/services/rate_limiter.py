from datetime import datetime, timedelta
from typing import Optional

from loguru import logger
from sqlalchemy import func
from sqlalchemy.orm import Session

from goalpush.core.db import utc_now
from goalpush.core.push_config import PUSH_RATE_LIMIT, PUSH_RATE_WINDOW_SECONDS
from goalpush.models.rate_limit import PushRateLimit


def check_and_record(db: Session, user_id: str, now: Optional[datetime] = None) -> bool:
    """
    Sliding window: allow iff fewer than PUSH_RATE_LIMIT sends in the trailing window.
    A rejected call writes nothing.

    Count-then-insert is not atomic; two concurrent requests can both pass at
    the boundary. Deterrent only.
    """
    now = now or utc_now()
    cutoff = now - timedelta(seconds=PUSH_RATE_WINDOW_SECONDS)

    recent = (
        db.query(func.count(PushRateLimit.id))
        .filter(PushRateLimit.user_id == user_id, PushRateLimit.created_at >= cutoff)
        .scalar()
    )

    if recent >= PUSH_RATE_LIMIT:
        logger.warning(f"Push rate limit hit | user={user_id} recent={recent}")
        return False

    db.add(PushRateLimit(user_id=user_id, created_at=now))
    db.commit()
    return True
