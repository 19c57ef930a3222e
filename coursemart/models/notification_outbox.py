"""Notification outbox model."""
from sqlalchemy import Column, String, Integer, DateTime, Text, ForeignKey, JSON
from sqlalchemy.sql import func
from coursemart.database import Base, BigId


class NotificationOutbox(Base):
    """Notification queued inside a commerce transaction, delivered later."""

    __tablename__ = 'notification_outbox'

    id = Column(BigId, primary_key=True, autoincrement=True)
    user_id = Column(BigId, ForeignKey('app_user.id'), nullable=False, index=True)
    category = Column(String(50), nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    action_url = Column(String(255), nullable=True)
    payload_json = Column(JSON, nullable=True)

    status = Column(String(20), nullable=False, default='PENDING', index=True)  # PENDING, SENT, FAILED
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    sent_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def is_sent(self):
        return self.status == 'SENT'

    def __repr__(self):
        return f"<NotificationOutbox(id={self.id}, user_id={self.user_id}, category='{self.category}', status='{self.status}')>"
