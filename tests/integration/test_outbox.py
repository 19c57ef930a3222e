"""
Integration tests for the notification outbox.
"""

import smtplib
from unittest.mock import patch

from coursemart.models import NotificationOutbox
from coursemart.services.notification_service import dispatch_pending_notifications, queue_notification


class TestNotificationOutbox:

    def test_queue_does_not_commit(self, session, buyer):
        queue_notification(session, buyer.id, 'test', 'Hello', 'World')
        session.rollback()

        assert session.query(NotificationOutbox).count() == 0

    def test_dispatch_marks_rows_sent(self, session, buyer):
        queue_notification(session, buyer.id, 'test', 'Hello', 'World', action_url='/student',
                           payload={'action_label': 'Open dashboard'})
        session.commit()

        with patch('coursemart.services.email_service.send_notification_email', return_value=True) as send:
            stats = dispatch_pending_notifications(session)

        assert stats == {'sent': 1, 'failed': 0, 'retrying': 0}
        send.assert_called_once_with(
            to_email=buyer.email, title='Hello', message='World',
            action_url='/student', action_label='Open dashboard'
        )
        entry = session.query(NotificationOutbox).one()
        assert entry.is_sent
        assert entry.sent_at is not None

    def test_suppressed_mail_counts_as_sent(self, session, buyer):
        queue_notification(session, buyer.id, 'test', 'Hello', 'World')
        session.commit()

        assert dispatch_pending_notifications(session)['sent'] == 1

    def test_failures_are_recorded_and_parked(self, session, buyer):
        queue_notification(session, buyer.id, 'test', 'Hello', 'World')
        session.commit()

        with patch('coursemart.services.email_service.send_notification_email',
                   side_effect=smtplib.SMTPException('relay down')):
            first = dispatch_pending_notifications(session, max_attempts=2)
            second = dispatch_pending_notifications(session, max_attempts=2)
            third = dispatch_pending_notifications(session, max_attempts=2)

        assert first == {'sent': 0, 'failed': 0, 'retrying': 1}
        assert second == {'sent': 0, 'failed': 1, 'retrying': 0}
        assert third == {'sent': 0, 'failed': 0, 'retrying': 0}

        entry = session.query(NotificationOutbox).one()
        assert entry.status == 'FAILED'
        assert entry.attempts == 2
        assert 'relay down' in entry.last_error

    def test_batch_limit(self, session, buyer):
        for i in range(3):
            queue_notification(session, buyer.id, 'test', f'Hello {i}', 'World')
        session.commit()

        assert dispatch_pending_notifications(session, limit=2)['sent'] == 2
        assert session.query(NotificationOutbox).filter_by(status='PENDING').count() == 1

    def test_dispatch_cli_command(self, app, session, buyer):
        queue_notification(session, buyer.id, 'test', 'Hello', 'World')
        session.commit()

        result = app.test_cli_runner().invoke(args=['dispatch-notifications'])

        assert result.exit_code == 0
        assert 'Sent: 1' in result.output
