"""
Operator commands, available as `flask --app api <command>`:
- create-admin
- revoke-sessions
- prune-refresh-tokens
"""
import click
from flask import current_app
from flask.cli import with_appcontext

from services.exceptions import DuplicateAccount


def _service():
    return current_app.extensions["session_service"]


@click.command("create-admin")
@click.option("--email", envvar="ADMIN_EMAIL", required=True, help="Admin email (or ADMIN_EMAIL).")
@click.option(
    "--password",
    envvar="ADMIN_PASSWORD",
    required=True,
    prompt=True,
    hide_input=True,
    confirmation_prompt=True,
    help="Admin password (or ADMIN_PASSWORD).",
)
@with_appcontext
def create_admin(email, password):
    """Create an admin account."""
    try:
        account = _service().create_account(email, password, role="admin", profile={})
    except DuplicateAccount:
        raise click.ClickException(f"An account for {email} already exists")
    except ValueError as exc:
        raise click.ClickException(str(exc))
    click.echo(f"Admin account created: id={account.id} email={account.email}")
    click.echo("Change the password after the first login.")


@click.command("revoke-sessions")
@click.option("--email", required=True, help="Account whose refresh tokens are revoked.")
@with_appcontext
def revoke_sessions(email):
    """Revoke every refresh token of an account."""
    service = _service()
    account = service.credentials.find_by_email(email)
    if account is None:
        raise click.ClickException(f"No account for {email}")
    revoked = service.sign_out_everywhere(account.id)
    click.echo(f"Revoked {revoked} refresh token(s) for {account.email}")


@click.command("prune-refresh-tokens")
@with_appcontext
def prune_refresh_tokens():
    """Delete ledger rows past the retention window."""
    settings = current_app.extensions["auth_settings"]
    removed = _service().ledger.prune(settings.refresh_retention)
    click.echo(f"Pruned {removed} refresh token record(s)")


def register_commands(app):
    app.cli.add_command(create_admin)
    app.cli.add_command(revoke_sessions)
    app.cli.add_command(prune_refresh_tokens)
