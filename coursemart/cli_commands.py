"""
Flask CLI commands for operations.

Commands:
- flask init-db: Create all tables
- flask dispatch-notifications: Deliver queued notification emails
- flask activate-group: Open a group after its creator's payment cleared
- flask rerun-group-fanout: Re-run enrollment fan-out for a completed group
"""

import click
from flask import current_app
from coursemart.database import create_schema, get_session
from coursemart.exceptions import CommerceError
from coursemart.services.group_purchase_service import GroupPurchaseCoordinator
from coursemart.services.notification_service import dispatch_pending_notifications


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create database tables for all models."""
        create_schema()
        click.echo(click.style('Database schema created.', fg='green'))

    @app.cli.command('dispatch-notifications')
    @click.option('--limit', type=int, default=None, help='Max notifications to process')
    def dispatch_notifications(limit):
        """Deliver pending outbox notifications."""
        stats = dispatch_pending_notifications(
            get_session(),
            limit=limit or current_app.config.get('OUTBOX_BATCH_SIZE', 50),
            max_attempts=current_app.config.get('OUTBOX_MAX_ATTEMPTS', 5)
        )
        click.echo(
            f"Sent: {stats['sent']}  Retrying: {stats['retrying']}  Failed: {stats['failed']}"
        )

    @app.cli.command('activate-group')
    @click.argument('reference')
    def activate_group(reference):
        """Activate a group by id or by its creator's payment reference."""
        try:
            group = GroupPurchaseCoordinator(get_session()).activate_group(reference)
        except CommerceError as e:
            click.echo(click.style(f'Error: {e.message}', fg='red'))
            raise SystemExit(1)
        click.echo(click.style(f'Group {group.invite_code} is {group.status.value}', fg='green'))

    @app.cli.command('rerun-group-fanout')
    @click.argument('group_id', type=int)
    def rerun_group_fanout(group_id):
        """Enroll missing members of a completed group."""
        try:
            created = GroupPurchaseCoordinator(get_session()).run_completion_fanout(group_id)
        except CommerceError as e:
            click.echo(click.style(f'Error: {e.message}', fg='red'))
            raise SystemExit(1)
        click.echo(click.style(f'{created} enrollment(s) created', fg='green'))
