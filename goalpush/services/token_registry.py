from __future__ import annotations

from datetime import datetime, timedelta
from typing import List, Optional

from loguru import logger
from sqlalchemy.orm import Session

from goalpush.core.db import utc_now
from goalpush.core.errors import ValidationError
from goalpush.core.logging import short_token
from goalpush.core.push_config import (
    EXPO_TOKEN_PREFIX,
    MAX_TOKEN_LENGTH,
    MAX_TOKENS_PER_USER,
    STALE_TOKEN_DAYS,
)
from goalpush.models.push_token import DeviceToken
from goalpush.schemas.enums import Platform


# ---------- VALIDATION ----------

def validate_push_token(token: str) -> None:
    if not token:
        raise ValidationError("Invalid token")
    if len(token) > MAX_TOKEN_LENGTH:
        raise ValidationError("Invalid token")
    if not token.startswith(EXPO_TOKEN_PREFIX):
        raise ValidationError("Invalid token format")


def _platform_value(platform) -> str:
    try:
        return Platform(platform).value
    except ValueError:
        raise ValidationError(f"Unsupported platform: {platform}")


# ---------- REGISTRATION ----------

def register_token(
    db: Session,
    user_id: str,
    token: str,
    platform,
    device_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> DeviceToken:
    """
    Guarantees:
      - a token value belongs to at most one user (reassigned devices move over)
      - re-registering by the same owner patches in place, no duplicate row
      - a user never holds more than MAX_TOKENS_PER_USER tokens
    """
    validate_push_token(token)
    platform_value = _platform_value(platform)
    now = now or utc_now()

    existing = get_token_by_value(db, token)

    if existing and existing.user_id == user_id:
        existing.platform = platform_value
        existing.device_id = device_id
        existing.last_used = now
        db.commit()
        db.refresh(existing)
        logger.debug(f"Refreshed push token | user={user_id} token={short_token(token)}")
        return existing

    if existing:
        # device reinstalled under a different account
        logger.info(
            f"Push token changed owner | from={existing.user_id} to={user_id} token={short_token(token)}"
        )
        db.delete(existing)
        db.flush()

    # the cap also holds when a device changes hands
    owned = tokens_for_user(db, user_id)
    if len(owned) >= MAX_TOKENS_PER_USER:
        oldest = min(owned, key=lambda t: (t.created_at, t.id))
        logger.info(f"Evicting oldest push token | user={user_id} token_id={oldest.id}")
        db.delete(oldest)
        db.flush()

    row = DeviceToken(
        user_id=user_id,
        token=token,
        platform=platform_value,
        device_id=device_id,
        last_used=now,
        created_at=now,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info(f"Registered push token | user={user_id} platform={platform_value}")
    return row


def unregister_tokens(db: Session, user_id: str, token: Optional[str] = None) -> int:
    if token:
        existing = get_token_by_value(db, token)
        if not existing or existing.user_id != user_id:
            return 0
        db.delete(existing)
        db.commit()
        logger.info(f"Unregistered push token | user={user_id} token={short_token(token)}")
        return 1

    removed = (
        db.query(DeviceToken)
        .filter(DeviceToken.user_id == user_id)
        .delete(synchronize_session=False)
    )
    db.commit()
    logger.info(f"Unregistered all push tokens | user={user_id} count={removed}")
    return removed


# ---------- LOOKUP ----------

def tokens_for_user(db: Session, user_id: str) -> List[DeviceToken]:
    return (
        db.query(DeviceToken)
        .filter(DeviceToken.user_id == user_id)
        .order_by(DeviceToken.created_at.asc(), DeviceToken.id.asc())
        .all()
    )


def get_token_by_value(db: Session, token: str) -> Optional[DeviceToken]:
    return db.query(DeviceToken).filter(DeviceToken.token == token).first()


# ---------- INTERNAL DELETES ----------

def delete_token_by_value(db: Session, token: str) -> bool:
    existing = get_token_by_value(db, token)
    if not existing:
        return False
    owner = existing.user_id
    db.delete(existing)
    db.commit()
    logger.info(f"Deleted push token | user={owner} token={short_token(token)}")
    return True


def cleanup_stale_tokens(db: Session, now: Optional[datetime] = None) -> int:
    cutoff = (now or utc_now()) - timedelta(days=STALE_TOKEN_DAYS)
    removed = (
        db.query(DeviceToken)
        .filter(DeviceToken.last_used < cutoff)
        .delete(synchronize_session=False)
    )
    db.commit()
    if removed:
        logger.info(f"Removed stale push tokens | count={removed}")
    return removed
