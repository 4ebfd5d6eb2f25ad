"""Components for the CLI to make it function properly.

These are pulled out here to make it easy to test and avoid circular dependencies. The client factories in here are what the commands use to
get their clients, so the tests patch these to swap in fakes.

:Module: wifctl.cli.components
:Copyright: (c) 2026 by the wifctl authors, see AUTHORS for more info
:License: See the LICENSE file for details
"""
import os
from functools import wraps
from typing import Any, Callable, Optional

import click
from click import Context
from marshmallow import ValidationError

from wifctl.control_plane.client import ControlPlaneClient
from wifctl.control_plane.connection import connect
from wifctl.control_plane.errors import ControlPlaneError, NotLoggedInError
from wifctl.gcp.client import CloudIdentityClient, GcpClient
from wifctl.gcp.errors import CloudIdentityError
from wifctl.utils.configuration import WIFCTL_CONFIGURATION
from wifctl.utils.logging import LOGGER
from wifctl.utils.retry import RetryTimeoutError
from wifctl.wif_config.reconciler import ReconciliationError

MODE_AUTO = "auto"
MODE_MANUAL = "manual"

MODE_HELP = (
    "How to perform the operation. `auto` (default): resource changes are applied with the current GCP credentials. "
    "`manual`: the commands needed to change the GCP resources are written to a script to be run manually."
)
OUTPUT_DIR_HELP = "Directory to place generated files (defaults to the current directory)"


class WifctlClickGroup(click.Group):
    """The wifctl Click Group. This loads the configuration (which also sets up the logger) before any command runs."""

    def invoke(self, ctx: Context) -> Any:
        WIFCTL_CONFIGURATION.config  # pylint: disable=pointless-statement
        return super().invoke(ctx)


def get_control_plane_client() -> ControlPlaneClient:
    """Makes the control plane client from the stored login settings."""
    return ControlPlaneClient(connect())


def get_cloud_client() -> CloudIdentityClient:
    """Makes the GCP client with the Application Default Credentials."""
    return GcpClient()


def resolve_output_dir(ctx: Context, param: click.Option, value: Optional[str]) -> str:  # pylint: disable=W0613  # noqa
    """Click callback for `--output-dir`: defaults to the current directory, and the directory needs to exist."""
    if not value:
        return os.getcwd()

    path = os.path.abspath(value)
    if not os.path.exists(path):
        raise click.BadParameter(f"directory {path} does not exist")

    if not os.path.isdir(path):
        raise click.BadParameter(f"file {path} exists and is not a directory")

    return path


def mode_option(func: Callable) -> Callable:
    """Adds the `--mode` option."""
    return click.option("--mode", "-m", type=click.Choice([MODE_AUTO, MODE_MANUAL]), default=MODE_AUTO, show_default=True, help=MODE_HELP)(func)


def output_dir_option(func: Callable) -> Callable:
    """Adds the `--output-dir` option."""
    return click.option("--output-dir", type=str, default="", callback=resolve_output_dir, help=OUTPUT_DIR_HELP)(func)


def handle_errors(hint: Optional[str] = None) -> Callable:
    """
    Decorator for commands that turns the errors that we expect into a ClickException with a readable message (and non-zero exit code).
    If a hint is given, it is added to the message. The hint can refer to the command's arguments with `{name}` placeholders.
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapped_function(*args, **kwargs) -> Any:
            try:
                return func(*args, **kwargs)

            except NotLoggedInError as exc:
                raise click.ClickException(f"[🔒] {exc}") from exc

            except ValidationError as exc:
                raise click.ClickException(f"[🙅] Invalid input: {exc.messages}") from exc

            # OSError is for the files that commands write, such as the generated scripts:
            except (ControlPlaneError, CloudIdentityError, ReconciliationError, RetryTimeoutError, OSError) as exc:
                LOGGER.debug("[💥] Command failed.", exc_info=True)
                message = f"[💥] {exc}"
                if hint:
                    message += "\n" + hint.format(**kwargs)
                raise click.ClickException(message) from exc

        return wrapped_function

    return decorator
