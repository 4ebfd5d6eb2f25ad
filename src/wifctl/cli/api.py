"""The raw API commands: `get`, `post`, and the `list` commands for clusters, users, machine pools, cloud providers, versions, and quota

:Module: wifctl.cli.api
:Copyright: (c) 2026 by the wifctl authors, see AUTHORS for more info
:License: See the LICENSE file for details
"""
import json
import re
from io import TextIOWrapper
from typing import Any, Dict, List, Optional, Tuple

import click

from wifctl.cli.auth import CURRENT_ACCOUNT_PATH
from wifctl.cli.components import get_control_plane_client, handle_errors
from wifctl.control_plane.client import validate_identifier

CLUSTERS_PATH = "/api/clusters_mgmt/v1/clusters"
CLOUD_PROVIDERS_PATH = "/api/clusters_mgmt/v1/cloud_providers"
VERSIONS_PATH = "/api/clusters_mgmt/v1/versions"
ORGANIZATIONS_PATH = "/api/accounts_mgmt/v1/organizations"
USER_GROUPS = ["dedicated-admins", "cluster-admins"]


def _check_path(path: str) -> str:
    if not path.startswith("/api/"):
        raise click.BadParameter(f"'{path}' is not an API path. It must start with /api/")

    return path


def _parse_parameters(parameters: Tuple[str, ...]) -> Dict[str, str]:
    parsed = {}
    for parameter in parameters:
        name, separator, value = parameter.partition("=")
        if not separator or not name:
            raise click.BadParameter(f"'{parameter}' is not in the form name=value", param_hint="--parameter")
        parsed[name] = value

    return parsed


def _echo_table(headers: List[str], rows: List[List[str]]) -> None:
    table = [headers] + rows
    widths = [max(len(row[column]) for row in table) for column in range(len(headers))]
    for row in table:
        click.echo("  ".join(value.ljust(widths[column]) for column, value in enumerate(row)).rstrip())


@click.command()
@click.argument("path", type=str)
@click.option("--parameter", "parameters", multiple=True, help="Query parameter in the form name=value. Can be repeated.")
@handle_errors()
def get(path: str, parameters: Tuple[str, ...]) -> None:
    """Send a GET request to the control plane and print the JSON response."""
    result = get_control_plane_client().get(_check_path(path), params=_parse_parameters(parameters))
    click.echo(json.dumps(result, indent=2))


@click.command()
@click.argument("path", type=str)
@click.option("--body", type=click.File("r"), default="-", help="File with the JSON body of the request (defaults to stdin)")
@handle_errors()
def post(path: str, body: TextIOWrapper) -> None:
    """Send a POST request to the control plane and print the JSON response."""
    try:
        loaded = json.loads(body.read() or "{}")
    except ValueError as exc:
        raise click.ClickException(f"[💥] The body is not valid JSON: {exc}") from exc

    result = get_control_plane_client().post(_check_path(path), body=loaded)
    click.echo(json.dumps(result, indent=2))


@click.group(name="list")
def list_() -> None:
    """List control plane resources."""


@list_.command()
@click.option("--search", type=str, default=None, help="Search criteria, for example: \"state = 'ready'\"")
@handle_errors()
def clusters(search: Optional[str]) -> None:
    """List the clusters."""
    items = get_control_plane_client().list_collection(CLUSTERS_PATH, search=search)
    rows = [
        [item.get("id", ""), item.get("name", ""), item.get("api", {}).get("url", ""), item.get("openshift_version", ""), item.get("state", "")]
        for item in items
    ]
    _echo_table(["ID", "NAME", "API URL", "OPENSHIFT_VERSION", "STATE"], rows)


@list_.command()
@click.option("--cluster", required=True, type=str, help="ID of the cluster")
@handle_errors()
def users(cluster: str) -> None:
    """List the users of a cluster's admin groups."""
    client = get_control_plane_client()
    rows = []
    for group in USER_GROUPS:
        for item in client.list_collection(f"{CLUSTERS_PATH}/{validate_identifier(cluster)}/groups/{group}/users"):
            rows.append([item.get("id", ""), group])

    _echo_table(["ID", "GROUP"], rows)


@list_.command()
@click.option("--cluster", required=True, type=str, help="ID of the cluster")
@handle_errors()
def machinepools(cluster: str) -> None:
    """List the machine pools of a cluster."""
    items = get_control_plane_client().list_collection(f"{CLUSTERS_PATH}/{validate_identifier(cluster)}/machine_pools")
    rows = [[item.get("id", ""), str(item.get("replicas", "")), item.get("instance_type", "")] for item in items]
    _echo_table(["ID", "REPLICAS", "INSTANCE TYPE"], rows)


@list_.command()
@handle_errors()
def providers() -> None:
    """List the cloud providers that clusters can be made on."""
    items = get_control_plane_client().list_collection(CLOUD_PROVIDERS_PATH)
    _echo_table(["NAME", "DISPLAY NAME"], [[item.get("name", ""), item.get("display_name", "")] for item in items])


def _version_sort_key(version: str) -> List[Tuple[int, Any]]:
    # Numeric parts sort as numbers, so 4.9 comes before 4.10:
    return [(0, int(part)) if part.isdigit() else (1, part) for part in re.split(r"[.\-+]", version)]


@list_.command()
@click.option("--default", "-d", "default_only", is_flag=True, help="Show only the default version")
@click.option("--channel-group", type=str, default="stable", show_default=True, help="List only the versions from this channel group")
@click.option("--marketplace-gcp", type=str, default=None, help="List only the versions that support the 'marketplace-gcp' subscription type")
@handle_errors()
def versions(default_only: bool, channel_group: str, marketplace_gcp: Optional[str]) -> None:
    """List the versions that clusters can be made with."""
    search = "enabled = 'true'"
    if marketplace_gcp:
        search += f" and gcp_marketplace_enabled = '{validate_identifier(marketplace_gcp)}'"
    if channel_group:
        search += f" and channel_group = '{validate_identifier(channel_group)}'"

    found = []
    default_version = ""
    for item in get_control_plane_client().list_collection(VERSIONS_PATH, search=search):
        short = item.get("id", "").removeprefix("openshift-v")
        if item.get("enabled"):
            found.append(short)
        if item.get("default"):
            default_version = short

    if default_only:
        click.echo(default_version)
        return

    for version in sorted(found, key=_version_sort_key):
        click.echo(version)


@list_.command()
@click.option("--org", "organization_id", type=str, default=None, help="ID of the organization (defaults to the current account's)")
@click.option("--json", "as_json", is_flag=True, help="Print the organization's resource quota as JSON")
@handle_errors()
def quota(organization_id: Optional[str], as_json: bool) -> None:
    """List the quota of an organization."""
    client = get_control_plane_client()
    if not organization_id:
        organization_id = client.get(CURRENT_ACCOUNT_PATH).get("organization", {}).get("id", "")
        if not organization_id:
            raise click.ClickException("[💥] The current account doesn't belong to an organization. Pass one with --org.")

    organization_path = f"{ORGANIZATIONS_PATH}/{validate_identifier(organization_id)}"
    if as_json:
        click.echo(json.dumps(client.get(f"{organization_path}/resource_quota"), indent=2))
        return

    items = client.list_collection(f"{organization_path}/quota_cost", params={"fetchRelatedResources": "true"})
    rows = [[str(item.get("consumed", 0)), str(item.get("allowed", 0)), item.get("quota_id", "")] for item in items]
    _echo_table(["CONSUMED", "ALLOWED", "QUOTA ID"], rows)
