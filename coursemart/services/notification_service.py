"""
Notification outbox.

Commerce operations queue rows inside their own database transaction;
delivery happens later and can never affect commerce state.
"""
import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Any

from sqlalchemy.orm import Session

from coursemart.models import NotificationOutbox, AppUser
from coursemart.services import email_service

logger = logging.getLogger(__name__)


def queue_notification(
    session: Session,
    user_id: int,
    category: str,
    title: str,
    message: str,
    action_url: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None
) -> NotificationOutbox:
    """Add a notification to the outbox. Commit is handled by the caller."""
    entry = NotificationOutbox(
        user_id=user_id,
        category=category,
        title=title,
        message=message,
        action_url=action_url,
        payload_json=payload or {},
        status='PENDING',
        attempts=0
    )
    session.add(entry)
    return entry


def dispatch_pending_notifications(session: Session, limit: int = 50, max_attempts: int = 5) -> Dict[str, int]:
    """
    Deliver pending outbox rows.

    Every delivery failure is caught and recorded on the row; rows that keep
    failing are parked as FAILED after ``max_attempts``.

    Returns:
        Counters: {'sent': n, 'failed': n, 'retrying': n}
    """
    stats = {'sent': 0, 'failed': 0, 'retrying': 0}

    pending = (
        session.query(NotificationOutbox)
        .filter(NotificationOutbox.status == 'PENDING')
        .order_by(NotificationOutbox.id)
        .limit(limit)
        .all()
    )

    for entry in pending:
        entry.attempts = (entry.attempts or 0) + 1
        try:
            user = session.get(AppUser, entry.user_id)
            if not user or not user.email:
                raise ValueError(f"User {entry.user_id} has no deliverable email")

            label = (entry.payload_json or {}).get('action_label')
            email_service.send_notification_email(
                to_email=user.email,
                title=entry.title,
                message=entry.message,
                action_url=entry.action_url,
                action_label=label
            )
            entry.status = 'SENT'
            entry.sent_at = datetime.now(timezone.utc)
            entry.last_error = None
            stats['sent'] += 1
        except Exception as e:
            logger.warning(f"[OUTBOX] Delivery of notification {entry.id} failed: {e}")
            entry.last_error = str(e)[:500]
            if entry.attempts >= max_attempts:
                entry.status = 'FAILED'
                stats['failed'] += 1
            else:
                stats['retrying'] += 1

    session.commit()
    if pending:
        logger.info(f"[OUTBOX] Dispatch finished: {stats}")
    return stats
