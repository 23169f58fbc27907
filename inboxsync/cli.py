"""
inboxsync - command line host for the notification inbox
"""

import asyncio
import sys

import click

from .api.client import GatewayError
from .auth.session import SessionManager
from .config import config
from .events.broker import TOAST_SHOWN
from .notifications.center import NotificationCenter
from .notifications.commands import CommandResult
from .notifications.presentation import render_line, tone_for
from .utils.logger import setup_logging


def _require_session() -> SessionManager:
    session = SessionManager()
    if not session.is_signed_in():
        click.echo("Not signed in. Please run: python main.py login")
        sys.exit(1)
    return session


async def _with_inbox(session, action):
    """Load the inbox once, then run an async action against the center."""
    center = NotificationCenter(session=session)
    async with center.gateway:
        snapshot = await center.gateway.fetch_active_notifications(session.user_id)
        center.store.replace_all(snapshot)
        return await action(center)


def _run_inbox(action):
    session = _require_session()
    try:
        return asyncio.run(_with_inbox(session, action))
    except GatewayError as e:
        click.echo(f"Could not load notifications: {e}")
        sys.exit(1)


def _report(result: CommandResult, done: str) -> None:
    if result:
        click.echo(done)
        return
    click.echo(f"Failed ({result.reason})")
    if result.failed_ids:
        click.echo(f"Not acknowledged: {', '.join(str(i) for i in result.failed_ids)}")
    sys.exit(1)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log to the console as well")
def cli(verbose):
    """inboxsync - notification inbox for the anti-fraud dashboard"""
    setup_logging(console=verbose)


@cli.command()
def login():
    """Sign in and remember the session"""
    click.echo(f"\nSigning in to {config.API_BASE_URL}\n")
    username = click.prompt("Username", type=str)
    insurance_company = click.prompt("Insurance company", type=str)
    password = click.prompt("Password", type=str, hide_input=True)

    session = SessionManager()
    if asyncio.run(session.sign_in(username, insurance_company, password)):
        click.echo(f"Signed in as {session.user_id}")
    else:
        click.echo("Sign-in failed!")
        sys.exit(1)


@cli.command()
def logout():
    """Forget the saved session"""
    SessionManager().sign_out()
    click.echo("Signed out")


@cli.command()
def whoami():
    """Show the signed-in user"""
    session = _require_session()
    user = session.user
    click.echo(f"{user.name} ({user.role})")
    if user.insurance_company:
        click.echo(f"Insurance company: {user.insurance_company}")


@cli.command(name="list")
@click.option("--unread", is_flag=True, help="Only unread notifications")
def list_notifications(unread):
    """List the inbox"""

    async def _list(center):
        items = [n for n in center.notifications if not (unread and n.read)]
        if not items:
            click.echo("No notifications")
            return
        for notification in items:
            click.secho(render_line(notification), fg=tone_for(notification))
            if notification.message:
                click.echo(f"      {notification.message}")
        click.echo("-" * 40)
        click.echo(f"{center.unread_count} unread / {len(center.notifications)} total")

    _run_inbox(_list)


@cli.command()
def trash():
    """List trashed notifications"""

    async def _trash(center):
        return await center.load_trash(), center.trash

    result, items = _run_inbox(_trash)
    if not result:
        _report(result, "")
    if not items:
        click.echo("Trash is empty")
        return
    for notification in items:
        click.echo(render_line(notification))
    click.echo(f"{len(items)} item(s) in trash")


@cli.command()
def count():
    """Show the server-side unread count"""
    session = _require_session()

    async def _count():
        center = NotificationCenter(session=session)
        async with center.gateway:
            return await center.gateway.fetch_unread_count(session.user_id)

    try:
        click.echo(asyncio.run(_count()))
    except GatewayError as e:
        click.echo(f"Could not fetch unread count: {e}")
        sys.exit(1)


@cli.command()
@click.argument("notification_id", type=int)
def read(notification_id):
    """Mark one notification as read"""

    async def _read(center):
        return await center.mark_as_read(notification_id)

    _report(_run_inbox(_read), f"Notification {notification_id} marked as read")


@cli.command(name="read-all")
def read_all():
    """Mark every unread notification as read"""

    async def _read_all(center):
        return await center.mark_all_as_read()

    result = _run_inbox(_read_all)
    _report(result, f"{len(result.ids)} notification(s) marked as read")


@cli.command()
@click.argument("notification_id", type=int)
@click.confirmation_option(prompt="Delete this notification?")
def delete(notification_id):
    """Move one notification to the trash"""

    async def _delete(center):
        return await center.delete(notification_id)

    _report(_run_inbox(_delete), f"Notification {notification_id} moved to trash")


@cli.command(name="delete-all")
@click.confirmation_option(prompt="Delete all your notifications?")
def delete_all():
    """Delete every notification"""

    async def _delete_all(center):
        return await center.delete_all()

    result = _run_inbox(_delete_all)
    _report(result, f"{len(result.ids)} notification(s) deleted")


@cli.command()
@click.argument("notification_id", type=int)
def restore(notification_id):
    """Restore a notification from the trash"""

    async def _restore(center):
        return await center.restore(notification_id)

    _report(_run_inbox(_restore), f"Notification {notification_id} restored")


@cli.command()
@click.option("--interval", type=int, default=None, help="Poll interval in seconds")
def watch(interval):
    """Poll the inbox and print new notifications as they arrive"""
    session = _require_session()

    def _show_toast(notification):
        click.secho(f"🔔 {render_line(notification)}", fg=tone_for(notification), bold=True)
        if notification.message:
            click.echo(f"      {notification.message}")

    def _show_count(unread):
        click.echo(f"Unread: {unread}")

    async def _watch():
        center = NotificationCenter(
            session=session,
            interval_ms=interval * 1000 if interval else None,
        )
        center.broker.subscribe(TOAST_SHOWN, _show_toast)
        center.on_unread_count(_show_count)

        async with center:
            click.echo(f"Watching notifications for {session.user_id} (Ctrl+C to stop)")
            await asyncio.Event().wait()

    try:
        asyncio.run(_watch())
    except KeyboardInterrupt:
        click.echo("\nStopped")


def main():
    cli()


if __name__ == "__main__":
    main()
