"""The login commands: `login`, `logout`, `token`, and `whoami`

:Module: wifctl.cli.auth
:Copyright: (c) 2026 by the wifctl authors, see AUTHORS for more info
:License: See the LICENSE file for details
"""
from typing import Optional

import click

from wifctl.cli.components import get_control_plane_client, handle_errors
from wifctl.control_plane.connection import connect, login as login_to_control_plane
from wifctl.control_plane.settings import remove_settings, settings_path

CURRENT_ACCOUNT_PATH = "/api/accounts_mgmt/v1/current_account"


@click.command()
@click.option("--token", type=str, default=None, help="Offline or refresh token (or an access token)")
@click.option("--client-id", type=str, default=None, help="OpenID client identifier")
@click.option("--client-secret", type=str, default=None, help="OpenID client secret")
@click.option("--url", type=str, default=None, help="URL of the control plane API gateway")
@click.option("--token-url", type=str, default=None, help="OpenID token URL")
@handle_errors()
def login(token: Optional[str], client_id: Optional[str], client_secret: Optional[str], url: Optional[str], token_url: Optional[str]) -> None:
    """Log in to the control plane and save the credentials."""
    connection = login_to_control_plane(token=token, client_id=client_id, client_secret=client_secret, url=url, token_url=token_url)
    click.echo(f"[✅] Logged in to {connection.url}. The credentials are saved in {settings_path()}")


@click.command()
def logout() -> None:
    """Log out by removing the saved credentials."""
    if remove_settings():
        click.echo("[👋] Logged out.")
    else:
        click.echo("[🤷] Not logged in. Nothing to do.")


@click.command()
@click.option("--refresh", is_flag=True, default=False, help="Print the refresh token instead of the access token")
@handle_errors()
def token(refresh: bool) -> None:
    """Print the current access token, refreshing it if it has expired."""
    connection = connect()
    if refresh:
        click.echo(connection.settings.get("refresh_token") or "")
        return

    click.echo(connection.access_token())


@click.command()
@handle_errors()
def whoami() -> None:
    """Print the account that is logged in."""
    account = get_control_plane_client().get(CURRENT_ACCOUNT_PATH)
    click.echo(f"{account.get('username', '')} ({account.get('email', '')})")
