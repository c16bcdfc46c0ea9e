from sqlalchemy import Column, DateTime, Index, Integer, String

from goalpush.core.db import Base, utc_now


class PushRateLimit(Base):
    """Append-only log of user-initiated sends."""

    __tablename__ = "push_rate_limits"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utc_now)

    __table_args__ = (
        Index("ix_push_rate_limits_user_created", "user_id", "created_at"),
    )
