"""The main CLI entrypoint for wifctl.

This outlines the main CLI entrypoint objects that are to be used throughout.

:Module: wifctl.cli.entrypoint
:Copyright: (c) 2026 by the wifctl authors, see AUTHORS for more info
:License: See the LICENSE file for details
"""
import click

from wifctl.cli.api import get, list_, post
from wifctl.cli.auth import login, logout, token, whoami
from wifctl.cli.components import WifctlClickGroup
from wifctl.cli.gcp import gcp


@click.group(cls=WifctlClickGroup)
def cli() -> None:
    """wifctl is a command line client for the cluster management control plane and its workload identity federation configurations."""


for command in (login, logout, token, whoami, get, post, list_, gcp):
    cli.add_command(command)
