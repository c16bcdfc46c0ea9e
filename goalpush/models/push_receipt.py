from sqlalchemy import CheckConstraint, Column, DateTime, Index, Integer, String

from goalpush.core.db import Base, utc_now


class PushReceipt(Base):
    __tablename__ = "push_receipts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ticket_id = Column(String, nullable=False, unique=True)

    # copied at dispatch time; reconciliation never re-derives it
    token = Column(String(200), nullable=False)

    status = Column(
        String,
        CheckConstraint(
            "status IN ('pending','ok','error')",
            name="push_receipts_status_check",
        ),
        nullable=False,
        default="pending",
    )
    error = Column(String, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utc_now)
    checked_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_push_receipts_status_created", "status", "created_at"),
        Index("ix_push_receipts_created_at", "created_at"),
    )
