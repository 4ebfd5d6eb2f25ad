"""Tests for the wifctl CLI

The control plane client and the cloud client factories are patched out: the control plane with a MagicMock, and the cloud with the in-memory
fake.

:Module: tests.test_cli
:Copyright: (c) 2026 by the wifctl authors, see AUTHORS for more info
:License: See the LICENSE file for details
"""
# pylint: disable=redefined-outer-name,unused-argument
import json
import os
from typing import Any, Callable, Dict, Generator
from unittest import mock
from unittest.mock import MagicMock

import pytest
from click.testing import CliRunner

from tests.fake_cloud_identity import FakeCloudIdentityClient
from wifctl.cli.entrypoint import cli
from wifctl.control_plane.errors import ControlPlaneError, NotLoggedInError, WifConfigNotFoundError
from wifctl.gcp.errors import AlreadyExistsError
from wifctl.wif_config.reconciler import WifReconciler
from wifctl.wif_config.schemas import load_federation_config

UPDATE_HINT = "Running 'wifctl gcp update wif-config my-wif-config' will fix errors related to cloud resource misconfiguration."


@pytest.fixture
def control_plane(wif_config_raw: Dict[str, Any]) -> Generator[MagicMock, None, None]:
    """Patches out the control plane client for all the commands."""
    client = MagicMock()
    client.create_wif_config.return_value = wif_config_raw
    client.find_wif_config.return_value = wif_config_raw
    client.get_wif_config_status.return_value = {"configured": True, "description": ""}

    with mock.patch("wifctl.cli.gcp.get_control_plane_client", return_value=client), mock.patch(
        "wifctl.cli.api.get_control_plane_client", return_value=client
    ), mock.patch("wifctl.cli.auth.get_control_plane_client", return_value=client):
        yield client


@pytest.fixture
def cloud(fake_cloud: FakeCloudIdentityClient) -> Generator[FakeCloudIdentityClient, None, None]:
    """Patches out the cloud client with the fake."""
    with mock.patch("wifctl.cli.gcp.get_cloud_client", return_value=fake_cloud):
        yield fake_cloud


@pytest.fixture
def run(test_configuration: Dict[str, Any]) -> Callable[..., Any]:
    """Returns a function that runs the CLI with the given arguments."""
    runner = CliRunner()

    def _run(*args: str, **kwargs: Any) -> Any:
        return runner.invoke(cli, list(args), **kwargs)

    return _run


def test_main_cli(test_configuration: Dict[str, Any]) -> None:
    """This tests that the main CLI can load successfully."""
    runner = CliRunner()
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "wifctl is a command line client for the cluster management control plane" in result.output
    for command in ("login", "logout", "token", "whoami", "get", "post", "list", "gcp"):
        assert command in result.output

    result = runner.invoke(cli, ["gcp", "--help"])
    assert result.exit_code == 0
    for command in ("create", "update", "delete", "describe", "list", "verify", "generate"):
        assert command in result.output


def test_create_wif_config(run: Callable[..., Any], control_plane: MagicMock, cloud: FakeCloudIdentityClient) -> None:
    """This tests creating a wif-config and its cloud resources."""
    result = run("gcp", "create", "wif-config", "--name", "my-wif-config", "--project", "my-project")
    assert result.exit_code == 0, result.output
    assert "[✅] wif-config '2abc123def' created successfully." in result.output

    control_plane.create_wif_config.assert_called_once_with("my-wif-config", "my-project")
    control_plane.get_wif_config_status.assert_called_with("2abc123def")
    assert "projects/my-project/locations/global/workloadIdentityPools/my-pool" in cloud.pools
    assert len(cloud.service_accounts) == 3

    # Support access is only set up by the update:
    assert "projects/my-project/roles/support_custom" not in cloud.roles


def test_create_wif_config_manual(run: Callable[..., Any], control_plane: MagicMock, cloud: FakeCloudIdentityClient, tmp_path: Any) -> None:
    """This tests that the manual mode writes the script instead of changing the cloud resources."""
    result = run("gcp", "create", "wif-config", "--name", "my-wif-config", "--project", "my-project", "--mode", "manual", "--output-dir", str(tmp_path))
    assert result.exit_code == 0, result.output

    assert sorted(os.listdir(tmp_path)) == ["jwk.json", "script.sh"]
    assert not cloud.calls
    assert not control_plane.get_wif_config_status.called


def test_create_wif_config_failure(run: Callable[..., Any], control_plane: MagicMock, cloud: FakeCloudIdentityClient) -> None:
    """This tests that a failure while making the cloud resources tells the user how to clean up."""
    cloud.fail_next("create_workload_identity_provider", AlreadyExistsError("the provider already exists"))

    result = run("gcp", "create", "wif-config", "--name", "my-wif-config", "--project", "my-project")
    assert result.exit_code == 1
    assert "failed to update workload identity provider: the provider already exists" in result.output
    assert "To clean up, run the following command: wifctl gcp delete wif-config 2abc123def" in result.output
    assert not cloud.service_accounts


def test_create_wif_config_bad_input(run: Callable[..., Any], control_plane: MagicMock) -> None:
    """This tests that unsafe names are rejected before anything is made."""
    result = run("gcp", "create", "wif-config", "--name", "bad name", "--project", "my-project")
    assert result.exit_code == 1
    assert "[🙅] Invalid input" in result.output
    assert not control_plane.create_wif_config.called


def test_update_wif_config(
    run: Callable[..., Any], control_plane: MagicMock, cloud: FakeCloudIdentityClient, wif_config_raw: Dict[str, Any]
) -> None:
    """This tests updating a wif-config to a new version."""
    control_plane.update_wif_config.return_value = dict(wif_config_raw, wif_templates=["v4.16", "v4.17"])

    result = run("gcp", "update", "wif-config", "my-wif-config", "--version", "4.17")
    assert result.exit_code == 0, result.output
    assert "[✅] wif-config '2abc123def' updated successfully." in result.output

    control_plane.find_wif_config.assert_called_once_with("my-wif-config")
    control_plane.update_wif_config.assert_called_once_with("2abc123def", {"wif_templates": ["v4.16", "v4.17"]})
    assert "projects/my-project/roles/support_custom" in cloud.roles
    assert len(cloud.service_accounts) == 3

    # Already on the version:
    control_plane.update_wif_config.reset_mock()
    result = run("gcp", "update", "wif-config", "my-wif-config", "--version", "4.16")
    assert result.exit_code == 0, result.output
    assert not control_plane.update_wif_config.called


def test_update_wif_config_verification_timeout(run: Callable[..., Any], control_plane: MagicMock, cloud: FakeCloudIdentityClient) -> None:
    """This tests that verification failures are retried and then reported with a hint."""
    control_plane.get_wif_config_status.return_value = {"configured": False, "description": "missing role"}
    settings = MagicMock(settings={"iam_api_retry_seconds": 0, "retry_delay_seconds": 0})

    with mock.patch("wifctl.cli.gcp.WIFCTL_CONFIGURATION", settings):
        result = run("gcp", "update", "wif-config", "my-wif-config")

    assert result.exit_code == 1
    assert "Timed out verifying wif-config resources" in result.output
    assert UPDATE_HINT in result.output


def test_delete_wif_config(
    run: Callable[..., Any], control_plane: MagicMock, cloud: FakeCloudIdentityClient, wif_config_raw: Dict[str, Any]
) -> None:
    """This tests deleting the wif-config and its cloud resources."""
    reconciler = WifReconciler(load_federation_config(wif_config_raw), cloud, timeout_seconds=0, delay_seconds=0)
    reconciler.ensure_workload_identity_pool()
    reconciler.ensure_service_accounts()

    result = run("gcp", "delete", "wif-config", "my-wif-config")
    assert result.exit_code == 0, result.output
    assert "[✅] wif-config '2abc123def' deleted." in result.output

    assert not cloud.service_accounts
    assert cloud.pools["projects/my-project/locations/global/workloadIdentityPools/my-pool"]["state"] == "DELETED"
    control_plane.delete_wif_config.assert_called_once_with("2abc123def")


def test_delete_wif_config_manual(run: Callable[..., Any], control_plane: MagicMock, cloud: FakeCloudIdentityClient, tmp_path: Any) -> None:
    """This tests that the manual mode only writes the delete script."""
    result = run("gcp", "delete", "wif-config", "my-wif-config", "--mode", "manual", "--output-dir", str(tmp_path))
    assert result.exit_code == 0, result.output

    assert os.listdir(tmp_path) == ["delete-script.sh"]
    assert not cloud.calls
    assert not control_plane.delete_wif_config.called


def test_get_describe_list(run: Callable[..., Any], control_plane: MagicMock, wif_config_raw: Dict[str, Any]) -> None:
    """This tests the read-only wif-config commands."""
    result = run("gcp", "get", "wif-config", "my-wif-config")
    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == wif_config_raw

    control_plane.get_wif_config_status.return_value = {"configured": False, "description": "missing role"}
    result = run("gcp", "describe", "wif-config", "my-wif-config")
    assert result.exit_code == 0, result.output
    lines = result.output.splitlines()
    assert lines[0].split() == ["ID:", "2abc123def"]
    assert "Workload Identity Pool: my-pool" in result.output
    assert "Service Accounts:" in result.output and "sa-operator, sa-installer, sa-vm" in result.output
    assert lines[-2].split() == ["Configured:", "No"]
    assert lines[-1].split() == ["Status:", "missing", "role"]

    control_plane.list_wif_configs.return_value = [wif_config_raw]
    result = run("gcp", "list", "wif-config")
    assert result.exit_code == 0, result.output
    lines = result.output.splitlines()
    assert lines[0].split() == ["ID", "DISPLAY", "NAME", "PROJECT"]
    assert lines[1].split() == ["2abc123def", "my-wif-config", "my-project"]


def test_verify_wif_config(run: Callable[..., Any], control_plane: MagicMock) -> None:
    """This tests verifying the wif-config."""
    result = run("gcp", "verify", "wif-config", "my-wif-config")
    assert result.exit_code == 0, result.output
    assert "[✅] wif-config 'my-wif-config' is valid" in result.output

    control_plane.get_wif_config_status.return_value = {"configured": False, "description": "missing role"}
    result = run("gcp", "verify", "wif-config", "my-wif-config")
    assert result.exit_code == 1
    assert "verification failed with error: missing role" in result.output
    assert UPDATE_HINT in result.output


def test_generate_wif_config(run: Callable[..., Any], control_plane: MagicMock, cloud: FakeCloudIdentityClient, tmp_path: Any) -> None:
    """This tests generating both of the scripts."""
    result = run("gcp", "generate", "wif-config", "my-wif-config", "--output-dir", str(tmp_path))
    assert result.exit_code == 0, result.output
    assert sorted(os.listdir(tmp_path)) == ["delete-script.sh", "jwk.json", "script.sh"]


def test_project_number_lookup(
    run: Callable[..., Any], control_plane: MagicMock, cloud: FakeCloudIdentityClient, wif_config_raw: Dict[str, Any], tmp_path: Any
) -> None:
    """This tests that the project number is looked up if the control plane doesn't have it."""
    wif_config_raw["gcp"]["project_number"] = "0"

    result = run("gcp", "generate", "wif-config", "my-wif-config", "--output-dir", str(tmp_path))
    assert result.exit_code == 0, result.output
    assert cloud.calls == [("project_number_from_id", "my-project")]
    assert "/projects/123456789/locations/global/" in (tmp_path / "script.sh").read_text()


def test_gcp_errors(run: Callable[..., Any], control_plane: MagicMock, tmp_path: Any) -> None:
    """This tests the errors for missing wif-configs, bad output directories, and not being logged in."""
    control_plane.find_wif_config.side_effect = WifConfigNotFoundError("WIF configuration with identifier or name 'nope' not found")
    result = run("gcp", "get", "wif-config", "nope")
    assert result.exit_code == 1
    assert "[💥] WIF configuration with identifier or name 'nope' not found" in result.output

    result = run("gcp", "generate", "wif-config", "nope", "--output-dir", str(tmp_path / "missing"))
    assert result.exit_code == 2
    assert "does not exist" in result.output

    (tmp_path / "a-file").write_text("")
    result = run("gcp", "generate", "wif-config", "nope", "--output-dir", str(tmp_path / "a-file"))
    assert result.exit_code == 2
    assert "is not a directory" in result.output

    with mock.patch("wifctl.cli.gcp.get_control_plane_client", side_effect=NotLoggedInError("Not logged in. Run `wifctl login` first.")):
        result = run("gcp", "list", "wif-config")
    assert result.exit_code == 1
    assert "[🔒] Not logged in." in result.output


def test_unreachable_services_and_unwritable_files(
    run: Callable[..., Any], control_plane: MagicMock, cloud: FakeCloudIdentityClient, tmp_path: Any
) -> None:
    """This tests that network failures and files that can't be written end the command with a message instead of a traceback."""
    control_plane.find_wif_config.side_effect = ControlPlaneError("GET /api/clusters_mgmt/v1/gcp/wif_configs failed: connection refused")
    result = run("gcp", "get", "wif-config", "my-wif-config")
    assert result.exit_code == 1
    assert "[💥] GET /api/clusters_mgmt/v1/gcp/wif_configs failed: connection refused" in result.output
    assert not isinstance(result.exception, ControlPlaneError)

    control_plane.find_wif_config.side_effect = None
    with mock.patch("wifctl.cli.gcp.write_apply_script", side_effect=PermissionError(13, "Permission denied", str(tmp_path / "script.sh"))):
        result = run("gcp", "generate", "wif-config", "my-wif-config", "--output-dir", str(tmp_path))
    assert result.exit_code == 1
    assert "[💥]" in result.output
    assert "Permission denied" in result.output


def test_login_logout(run: Callable[..., Any], settings_file: str, login_settings_saved: None) -> None:
    """This tests logging in and out."""
    with mock.patch("wifctl.cli.auth.login_to_control_plane", return_value=MagicMock(url="https://api.example.com")) as mocked_login:
        result = run("login", "--token", "some-token", "--url", "https://api.example.com")
    assert result.exit_code == 0, result.output
    assert f"[✅] Logged in to https://api.example.com. The credentials are saved in {settings_file}" in result.output
    mocked_login.assert_called_once_with(token="some-token", client_id=None, client_secret=None, url="https://api.example.com", token_url=None)

    result = run("logout")
    assert result.exit_code == 0
    assert "[👋] Logged out." in result.output
    assert not os.path.exists(settings_file)

    result = run("logout")
    assert "[🤷] Not logged in. Nothing to do." in result.output


@pytest.fixture
def login_settings_saved(settings_file: str, make_token: Callable[..., str]) -> None:
    """Saves login settings with a live access token."""
    from wifctl.control_plane.settings import save_settings

    save_settings(
        {
            "url": "https://api.example.com",
            "token_url": "https://sso.example.com/token",
            "client_id": "test-client",
            "client_secret": None,
            "access_token": make_token(typ="Bearer", sub="access"),
            "refresh_token": make_token(expires_in=None, typ="Offline"),
        }
    )


def test_token(run: Callable[..., Any], login_settings_saved: None) -> None:
    """This tests printing the tokens."""
    from wifctl.control_plane.settings import load_settings

    settings = load_settings()
    result = run("token")
    assert result.exit_code == 0, result.output
    assert result.output.strip() == settings["access_token"]

    result = run("token", "--refresh")
    assert result.output.strip() == settings["refresh_token"]


def test_token_not_logged_in(run: Callable[..., Any], settings_file: str) -> None:
    """This tests the token command without being logged in."""
    result = run("token")
    assert result.exit_code == 1
    assert "[🔒]" in result.output


def test_whoami(run: Callable[..., Any], control_plane: MagicMock) -> None:
    """This tests printing the current account."""
    control_plane.get.return_value = {"username": "someone", "email": "someone@example.com"}
    result = run("whoami")
    assert result.exit_code == 0, result.output
    assert result.output.strip() == "someone (someone@example.com)"
    control_plane.get.assert_called_once_with("/api/accounts_mgmt/v1/current_account")


def test_get_and_post(run: Callable[..., Any], control_plane: MagicMock) -> None:
    """This tests the raw GET and POST commands."""
    control_plane.get.return_value = {"kind": "ClusterList", "items": []}
    result = run("get", "/api/clusters_mgmt/v1/clusters", "--parameter", "search=name = 'x'", "--parameter", "size=1")
    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == {"kind": "ClusterList", "items": []}
    control_plane.get.assert_called_once_with("/api/clusters_mgmt/v1/clusters", params={"search": "name = 'x'", "size": "1"})

    result = run("get", "/not/an/api")
    assert result.exit_code == 2

    result = run("get", "/api/clusters_mgmt/v1/clusters", "--parameter", "novalue")
    assert result.exit_code == 2

    control_plane.post.return_value = {"id": "new"}
    result = run("post", "/api/some/collection", input='{"name": "thing"}')
    assert result.exit_code == 0, result.output
    control_plane.post.assert_called_once_with("/api/some/collection", body={"name": "thing"})

    result = run("post", "/api/some/collection", input="not json")
    assert result.exit_code == 1
    assert "not valid JSON" in result.output


def test_list_commands(run: Callable[..., Any], control_plane: MagicMock) -> None:
    """This tests listing the clusters, their users, and their machine pools."""
    control_plane.list_collection.return_value = [
        {"id": "c1", "name": "cluster-1", "api": {"url": "https://api.c1:6443"}, "openshift_version": "4.16.2", "state": "ready"}
    ]
    result = run("list", "clusters", "--search", "state = 'ready'")
    assert result.exit_code == 0, result.output
    assert result.output.splitlines()[1].split() == ["c1", "cluster-1", "https://api.c1:6443", "4.16.2", "ready"]
    control_plane.list_collection.assert_called_with("/api/clusters_mgmt/v1/clusters", search="state = 'ready'")

    control_plane.list_collection.side_effect = [[{"id": "alice"}], [{"id": "bob"}]]
    result = run("list", "users", "--cluster", "c1")
    assert result.exit_code == 0, result.output
    assert [line.split() for line in result.output.splitlines()] == [["ID", "GROUP"], ["alice", "dedicated-admins"], ["bob", "cluster-admins"]]

    control_plane.list_collection.side_effect = None
    control_plane.list_collection.return_value = [{"id": "worker", "replicas": 3, "instance_type": "n2-standard-4"}]
    result = run("list", "machinepools", "--cluster", "c1")
    assert result.exit_code == 0, result.output
    assert result.output.splitlines()[1].split() == ["worker", "3", "n2-standard-4"]
    control_plane.list_collection.assert_called_with("/api/clusters_mgmt/v1/clusters/c1/machine_pools")

    result = run("list", "machinepools", "--cluster", "bad cluster")
    assert result.exit_code == 1
    assert "[🙅] Invalid input" in result.output


def test_list_providers_and_versions(run: Callable[..., Any], control_plane: MagicMock) -> None:
    """This tests listing the cloud providers and the versions."""
    control_plane.list_collection.return_value = [{"name": "gcp", "display_name": "Google Cloud Platform"}, {"name": "aws", "display_name": "AWS"}]
    result = run("list", "providers")
    assert result.exit_code == 0, result.output
    assert result.output.splitlines() == ["NAME  DISPLAY NAME", "gcp   Google Cloud Platform", "aws   AWS"]
    control_plane.list_collection.assert_called_with("/api/clusters_mgmt/v1/cloud_providers")

    control_plane.list_collection.return_value = [
        {"id": "openshift-v4.10.3", "enabled": True, "default": False},
        {"id": "openshift-v4.16.2", "enabled": True, "default": True},
        {"id": "openshift-v4.9.1", "enabled": True, "default": False},
    ]
    result = run("list", "versions")
    assert result.exit_code == 0, result.output
    assert result.output.splitlines() == ["4.9.1", "4.10.3", "4.16.2"]
    control_plane.list_collection.assert_called_with(
        "/api/clusters_mgmt/v1/versions", search="enabled = 'true' and channel_group = 'stable'"
    )

    result = run("list", "versions", "--default", "--channel-group", "fast", "--marketplace-gcp", "true")
    assert result.exit_code == 0, result.output
    assert result.output.strip() == "4.16.2"
    control_plane.list_collection.assert_called_with(
        "/api/clusters_mgmt/v1/versions", search="enabled = 'true' and gcp_marketplace_enabled = 'true' and channel_group = 'fast'"
    )

    result = run("list", "versions", "--channel-group", "x' or '1'='1")
    assert result.exit_code == 1
    assert "[🙅] Invalid input" in result.output


def test_list_quota(run: Callable[..., Any], control_plane: MagicMock) -> None:
    """This tests listing an organization's quota, by default for the current account's organization."""
    control_plane.get.return_value = {"username": "someone", "organization": {"id": "org-1"}}
    control_plane.list_collection.return_value = [{"consumed": 2, "allowed": 10, "quota_id": "cluster|byoc|gcp"}]
    result = run("list", "quota")
    assert result.exit_code == 0, result.output
    assert [line.split() for line in result.output.splitlines()] == [["CONSUMED", "ALLOWED", "QUOTA", "ID"], ["2", "10", "cluster|byoc|gcp"]]
    control_plane.get.assert_called_once_with("/api/accounts_mgmt/v1/current_account")
    control_plane.list_collection.assert_called_with(
        "/api/accounts_mgmt/v1/organizations/org-1/quota_cost", params={"fetchRelatedResources": "true"}
    )

    control_plane.get.reset_mock()
    control_plane.get.return_value = {"items": [{"sku": "MW00530"}]}
    result = run("list", "quota", "--org", "org-2", "--json")
    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == {"items": [{"sku": "MW00530"}]}
    control_plane.get.assert_called_once_with("/api/accounts_mgmt/v1/organizations/org-2/resource_quota")

    control_plane.get.return_value = {"username": "someone"}
    result = run("list", "quota")
    assert result.exit_code == 1
    assert "doesn't belong to an organization" in result.output
