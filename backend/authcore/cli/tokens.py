"""Flask CLI commands for schema bootstrap and token maintenance."""

from __future__ import annotations

import logging

import click
from flask.cli import with_appcontext

from authcore.core.auth import get_auth_service
from authcore.core.extensions import db
from authcore.services._shared.errors import StoreUnavailableError
from authcore.uow.sqlalchemy_uow import SQLAlchemyUnitOfWork

LOGGER = logging.getLogger(__name__)


def _echo_counters(title: str, counters: dict[str, int]) -> None:
    """Pretty-print a two-column counter table."""
    click.echo(f"{title}:")
    if not counters:
        click.echo("  (none)")
        return
    width = max(len(name) for name in counters)
    for name, value in counters.items():
        click.echo(f"  {name.ljust(width)}  {value:>6}")


@click.group("tokens")
def tokens_cli() -> None:
    """Token store maintenance commands."""


@tokens_cli.command("init-db")
@with_appcontext
def init_db_command() -> None:
    """Create the ``users``, ``refresh_tokens`` and ``revoked_tokens`` tables."""
    LOGGER.info("Creating database schema...")
    db.create_all()
    click.echo("Schema ready.")


@tokens_cli.command("create-user")
@click.option("--email", required=True, help="Login email of the new user.")
@click.password_option(help="Password of the new user.")
@with_appcontext
def create_user_command(email: str, password: str) -> None:
    """Create a login identity for the credential verifier."""
    try:
        with SQLAlchemyUnitOfWork() as uow:
            if uow.users.get_by_email(email) is not None:
                raise click.UsageError(f"User {email!r} already exists.")
            user = uow.users.create(email=email, password=password)
            user_id = user.id
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--email") from exc
    click.echo(f"Created user {user_id} ({email}).")


@tokens_cli.command("cleanup")
@click.option(
    "--revoked-days",
    type=click.IntRange(min=0),
    default=30,
    show_default=True,
    help="Also delete revoked records older than this many days.",
)
@with_appcontext
def cleanup_command(revoked_days: int) -> None:
    """Delete expired refresh records, lapsed revocations and old revoked records."""
    service = get_auth_service()
    try:
        expired = service.cleanup_expired_tokens()
        revoked = service.cleanup_revoked_tokens(revoked_days)
    except StoreUnavailableError as exc:
        raise click.ClickException(f"Cleanup failed: {exc.message}") from exc
    _echo_counters("Cleanup summary", {"expired": expired, "revoked": revoked})


@tokens_cli.command("stats")
@click.option("--user-id", type=int, default=None, help="Restrict counters to one user.")
@with_appcontext
def stats_command(user_id: int | None) -> None:
    """Print refresh token and revocation list counters (system-wide or for one user)."""
    service = get_auth_service()
    try:
        if user_id is None:
            counters = service.get_system_stats().to_dict()
        else:
            counters = service.get_user_token_stats(user_id).to_dict()
        revocations = service.get_revocation_stats(user_id).to_dict()
    except StoreUnavailableError as exc:
        raise click.ClickException(f"Stats unavailable: {exc.message}") from exc
    title = "Token stats" if user_id is None else f"Token stats for user {user_id}"
    _echo_counters(title, counters)
    suffix = "" if user_id is None else f" for user {user_id}"
    click.echo(f"Revocations{suffix}: {revocations['total']}")
    _echo_counters("  by type", revocations["by_type"])
    _echo_counters("  by reason", revocations["by_reason"])
