from sqlalchemy import Column, DateTime, Index, Integer, String

from goalpush.core.db import Base, utc_now


class DeviceToken(Base):
    __tablename__ = "push_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False, index=True)

    # one owner per token value at any time
    token = Column(String(200), nullable=False, unique=True)

    platform = Column(String, nullable=False)  # ios | android
    device_id = Column(String, nullable=True)

    last_used = Column(DateTime, nullable=False, default=utc_now)
    created_at = Column(DateTime, nullable=False, default=utc_now)

    __table_args__ = (
        Index("ix_push_tokens_last_used", "last_used"),
    )

    def __repr__(self) -> str:
        return f"<DeviceToken id={self.id} user={self.user_id} platform={self.platform}>"
