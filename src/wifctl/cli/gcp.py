"""The `wifctl gcp` commands

These manage the WIF configurations (wif-configs): the control plane resource that describes how clusters federate into a GCP project, and
the GCP resources that it represents. The `--mode manual` flag writes a script to apply the changes by hand instead of making them with the
current GCP credentials.

:Module: wifctl.cli.gcp
:Copyright: (c) 2026 by the wifctl authors, see AUTHORS for more info
:License: See the LICENSE file for details
"""
import json
import re
from typing import Any, Dict, Optional, Tuple

import click

from wifctl.cli.components import (
    MODE_MANUAL,
    get_cloud_client,
    get_control_plane_client,
    handle_errors,
    mode_option,
    output_dir_option,
)
from wifctl.control_plane.client import ControlPlaneClient, validate_identifier
from wifctl.control_plane.errors import ControlPlaneError, WifConfigNotConfiguredError
from wifctl.gcp.client import CloudIdentityClient
from wifctl.utils.configuration import WIFCTL_CONFIGURATION
from wifctl.utils.logging import LOGGER
from wifctl.utils.retry import RetryTimeoutError, retry_with_timeout
from wifctl.wif_config.reconciler import ReconciliationError, WifReconciler
from wifctl.wif_config.schemas import load_federation_config
from wifctl.wif_config.scripting import write_apply_script, write_delete_script

UPDATE_HINT = "Running 'wifctl gcp update wif-config {key}' will fix errors related to cloud resource misconfiguration."
CLEANUP_HINT = "To clean up, run the following command: wifctl gcp delete wif-config {wif_config_id}"


def version_to_template_id(version: str) -> str:
    """OpenShift versions of the form X.Y become template IDs of the form vX.Y. Anything else is used as-is."""
    if re.fullmatch(r"\d+\.\d+", version):
        return "v" + version

    return version


def project_number(wif_config: Dict[str, Any], cloud_client: Optional[CloudIdentityClient] = None) -> str:
    """The control plane normally records the project number. If it didn't, then it's looked up in GCP."""
    if wif_config["project_number"] and wif_config["project_number"] != "0":
        return wif_config["project_number"]

    return (cloud_client or get_cloud_client()).project_number_from_id(wif_config["project_id"])


def verify_wif_config(client: ControlPlaneClient, wif_config_id: str) -> None:
    """Asks the control plane to verify the WIF configuration's cloud resources. Raises WifConfigNotConfiguredError if it failed."""
    status = client.get_wif_config_status(wif_config_id)
    if not status["configured"]:
        raise WifConfigNotConfiguredError(f"verification failed with error: {status['description']}")


def verify_with_retries(client: ControlPlaneClient, wif_config_id: str) -> None:
    """
    The IAM API is eventually consistent, so the control plane may not see resources that were just made. This keeps verifying until it passes or
    the retry budget runs out.
    """
    settings = WIFCTL_CONFIGURATION.settings

    def attempt() -> Tuple[bool, Optional[Exception]]:
        LOGGER.info(f"[🔍] Verifying wif-config '{wif_config_id}'...")
        try:
            verify_wif_config(client, wif_config_id)
        except ControlPlaneError as exc:
            return True, exc

        return False, None

    try:
        retry_with_timeout(attempt, settings["iam_api_retry_seconds"], settings["retry_delay_seconds"], description="wif-config verification")
    except RetryTimeoutError as exc:
        raise RetryTimeoutError(
            f"Timed out verifying wif-config resources. Please try 'wifctl gcp update wif-config {wif_config_id}' again in a few minutes."
        ) from exc


@click.group()
def gcp() -> None:
    """Manage GCP resources."""


@gcp.group()
def create() -> None:
    """Create resources related to GCP."""


@gcp.group()
def update() -> None:
    """Update resources related to GCP."""


@gcp.group()
def delete() -> None:
    """Delete resources related to GCP."""


@gcp.group()
def get() -> None:
    """Get resources related to GCP."""


@gcp.group()
def describe() -> None:
    """Describe resources related to GCP."""


@gcp.group(name="list")
def list_() -> None:
    """List resources related to GCP."""


@gcp.group()
def verify() -> None:
    """Verify resources related to GCP."""


@gcp.group()
def generate() -> None:
    """Generate scripts for GCP resources."""


@create.command(name="wif-config")
@click.option("--name", required=True, type=str, help="Name of the wif-config")
@click.option("--project", required=True, type=str, help="ID of the Google cloud project")
@mode_option
@output_dir_option
@handle_errors()
def create_wif_config(name: str, project: str, mode: str, output_dir: str) -> None:
    """Create a workload identity federation configuration (wif-config)."""
    validate_identifier(name)
    validate_identifier(project)

    client = get_control_plane_client()
    click.echo(f"[✨] Creating wif-config '{name}'...")
    wif_config = load_federation_config(client.create_wif_config(name, project))
    click.echo(f"[✅] wif-config '{wif_config['display_name']}' created with ID {wif_config['id']}")

    if mode == MODE_MANUAL:
        click.echo(f"[📝] Writing script files to {output_dir}")
        write_apply_script(output_dir, wif_config, project_number(wif_config))
        return

    reconciler = WifReconciler(wif_config, get_cloud_client())
    steps = [
        ("workload identity pool", reconciler.ensure_workload_identity_pool),
        ("workload identity provider", reconciler.ensure_workload_identity_provider),
        ("IAM service accounts", reconciler.ensure_service_accounts),
    ]
    for name_of_step, step in steps:
        click.echo(f"[🔧] Creating {name_of_step}...")
        try:
            step()
        except ReconciliationError as exc:
            raise click.ClickException(f"[💥] {exc}\n" + CLEANUP_HINT.format(wif_config_id=wif_config["id"])) from exc

    verify_with_retries(client, wif_config["id"])
    click.echo(f"[✅] wif-config '{wif_config['id']}' created successfully.")


@update.command(name="wif-config")
@click.argument("key", type=str)
@click.option("--version", type=str, default="", help="Version of OpenShift to configure the WIF resources for")
@mode_option
@output_dir_option
@handle_errors(hint=UPDATE_HINT)
def update_wif_config(key: str, version: str, mode: str, output_dir: str) -> None:
    """Update the wif-config (by ID or name) and the GCP resources that it represents."""
    client = get_control_plane_client()
    raw = client.find_wif_config(key)

    if version:
        templates = list(raw.get("wif_templates", []))
        template = version_to_template_id(version)
        if template not in templates:
            raw = client.update_wif_config(raw["id"], {"wif_templates": templates + [template]})

    wif_config = load_federation_config(raw)

    if mode == MODE_MANUAL:
        click.echo(f"[📝] Writing script files to {output_dir}")
        write_apply_script(output_dir, wif_config, project_number(wif_config))
        return

    reconciler = WifReconciler(wif_config, get_cloud_client())
    click.echo("[🔧] Updating support access...")
    reconciler.grant_support_access()
    click.echo("[🔧] Updating workload identity pool...")
    reconciler.ensure_workload_identity_pool()
    click.echo("[🔧] Updating oidc provider...")
    reconciler.ensure_workload_identity_provider()
    click.echo("[🔧] Updating service accounts...")
    reconciler.ensure_service_accounts()

    verify_with_retries(client, wif_config["id"])
    click.echo(f"[✅] wif-config '{wif_config['id']}' updated successfully.")


@delete.command(name="wif-config")
@click.argument("key", type=str)
@mode_option
@output_dir_option
@handle_errors()
def delete_wif_config(key: str, mode: str, output_dir: str) -> None:
    """Delete the wif-config (by ID or name) and the GCP resources that it represents."""
    client = get_control_plane_client()
    wif_config = load_federation_config(client.find_wif_config(key))

    if mode == MODE_MANUAL:
        click.echo(f"[📝] Writing script files to {output_dir}")
        write_delete_script(output_dir, wif_config)
        return

    reconciler = WifReconciler(wif_config, get_cloud_client())
    click.echo("[🗑️] Deleting service accounts...")
    reconciler.delete_service_accounts()
    click.echo("[🗑️] Deleting workload identity pool...")
    reconciler.delete_workload_identity_pool()

    client.delete_wif_config(wif_config["id"])
    click.echo(f"[✅] wif-config '{wif_config['id']}' deleted.")


@get.command(name="wif-config")
@click.argument("key", type=str)
@handle_errors()
def get_wif_config(key: str) -> None:
    """Print the wif-config (by ID or name) as JSON."""
    raw = get_control_plane_client().find_wif_config(key)
    click.echo(json.dumps(raw, indent=2, sort_keys=True))


@describe.command(name="wif-config")
@click.argument("key", type=str)
@handle_errors()
def describe_wif_config(key: str) -> None:
    """Show the details of a wif-config (by ID or name)."""
    client = get_control_plane_client()
    wif_config = load_federation_config(client.find_wif_config(key))
    status = client.get_wif_config_status(wif_config["id"])

    rows = [
        ("ID", wif_config["id"]),
        ("Display Name", wif_config["display_name"]),
        ("Project", wif_config["project_id"]),
        ("Project Number", wif_config["project_number"]),
        ("Workload Identity Pool", wif_config["pool"]["pool_id"]),
        ("Identity Provider", wif_config["provider"]["provider_id"]),
        ("Issuer URL", wif_config["provider"]["issuer_url"]),
        ("Service Accounts", ", ".join(sa["account_id"] for sa in wif_config["service_accounts"])),
        ("Configured", "Yes" if status["configured"] else "No"),
    ]
    if status["description"]:
        rows.append(("Status", status["description"]))

    width = max(len(label) for label, _ in rows) + 1
    for label, value in rows:
        click.echo(f"{label + ':':<{width}} {value}")


@list_.command(name="wif-config")
@handle_errors()
def list_wif_configs() -> None:
    """List the wif-configs."""
    wif_configs = get_control_plane_client().list_wif_configs()

    rows = [("ID", "DISPLAY NAME", "PROJECT")]
    for wif_config in wif_configs:
        rows.append((wif_config.get("id", ""), wif_config.get("display_name", ""), wif_config.get("gcp", {}).get("project_id", "")))

    widths = [max(len(row[column]) for row in rows) for column in range(3)]
    for row in rows:
        click.echo("  ".join(value.ljust(widths[column]) for column, value in enumerate(row)).rstrip())


@verify.command(name="wif-config")
@click.argument("key", type=str)
@handle_errors(hint=UPDATE_HINT)
def verify_wif_config_command(key: str) -> None:
    """Verify that the GCP resources of the wif-config (by ID or name) are set up properly."""
    client = get_control_plane_client()
    wif_config = client.find_wif_config(key)
    verify_wif_config(client, wif_config["id"])
    click.echo(f"[✅] wif-config '{key}' is valid")


@generate.command(name="wif-config")
@click.argument("key", type=str)
@output_dir_option
@handle_errors()
def generate_wif_config(key: str, output_dir: str) -> None:
    """Generate the scripts to create and to delete the GCP resources of the wif-config (by ID or name)."""
    wif_config = load_federation_config(get_control_plane_client().find_wif_config(key))

    click.echo(f"[📝] Writing script files to {output_dir}")
    write_apply_script(output_dir, wif_config, project_number(wif_config))
    write_delete_script(output_dir, wif_config)
