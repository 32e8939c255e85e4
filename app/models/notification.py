import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, Text, DateTime, JSON, Index
from app.core.database import Base
from app.core.constants import NotificationStatusEnum, NotificationPriorityEnum


def _utcnow():
    return datetime.now(timezone.utc)


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    type = Column(String(64), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    recipient_id = Column(String(64), nullable=False, index=True)
    sender_id = Column(String(64), nullable=True)
    status = Column(String(16), nullable=False, default=NotificationStatusEnum.UNREAD.value, index=True)
    priority = Column(String(16), nullable=False, default=NotificationPriorityEnum.MEDIUM.value)
    # "metadata" is reserved on declarative classes
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)
    related_entity_type = Column(String(64), nullable=True)  # e.g. 'booking', 'payment', 'new_service'
    related_entity_id = Column(String(64), nullable=True)
    admin_user_id = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)
    read_at = Column(DateTime(timezone=True), nullable=True)
    dismissed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_notifications_recipient_status", "recipient_id", "status"),
    )
