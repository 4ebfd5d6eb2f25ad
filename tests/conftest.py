"""PyTest fixtures for the wifctl package.

This defines the PyTest fixtures that can be used by all wifctl tests.

:Module: tests.conftest
:Copyright: (c) 2026 by the wifctl authors, see AUTHORS for more info
:License: See the LICENSE file for details
"""
# pylint: disable=redefined-outer-name,unused-argument
import json
import time
from typing import Any, Callable, Dict, Generator

import jwt
import pytest

import tests
from tests.fake_cloud_identity import FakeCloudIdentityClient
from wifctl.wif_config.reconciler import WifReconciler
from wifctl.wif_config.schemas import load_federation_config

TEST_JWKS = json.dumps(
    {
        "keys": [
            {"kty": "RSA", "kid": "key-1", "use": "sig", "alg": "RS256", "n": "sXchDaQebHnPiGvyDOAT4saGEUetSyo9MKLOoWFsueri23bOdgWp4Dy1W", "e": "AQAB"},
        ]
    }
)

# Long enough for HS256 so that PyJWT doesn't complain about the key length:
TOKEN_SIGNING_KEY = "wifctl-unit-test-signing-key-that-is-long-enough"


@pytest.fixture
def test_configuration() -> Generator[Dict[str, Any], None, None]:
    """Fixture with a test configuration loader for use in unit tests."""
    from wifctl.utils.configuration import WIFCTL_CONFIGURATION

    old_value = WIFCTL_CONFIGURATION._configuration_path
    WIFCTL_CONFIGURATION._configuration_path = f"{tests.__path__[0]}/test_configuration_files"  # noqa
    WIFCTL_CONFIGURATION._app_config = None

    yield WIFCTL_CONFIGURATION.config

    WIFCTL_CONFIGURATION._app_config = None
    WIFCTL_CONFIGURATION._configuration_path = old_value


@pytest.fixture
def wif_config_raw() -> Dict[str, Any]:
    """A WIF configuration the way that the control plane returns it."""
    return {
        "kind": "WifConfig",
        "id": "2abc123def",
        "href": "/api/clusters_mgmt/v1/gcp/wif_configs/2abc123def",
        "display_name": "my-wif-config",
        "wif_templates": ["v4.16"],
        "gcp": {
            "project_id": "my-project",
            "project_number": "123456789",
            "impersonator_email": "impersonator@control-plane.iam.gserviceaccount.com",
            "workload_identity_pool": {
                "pool_id": "my-pool",
                "identity_provider": {
                    "identity_provider_id": "my-provider",
                    "issuer_url": "https://issuer.example.com/2abc123def",
                    "jwks": TEST_JWKS,
                    "allowed_audiences": ["openshift"],
                },
            },
            "service_accounts": [
                {
                    "service_account_id": "sa-operator",
                    "access_method": "wif",
                    "credential_request": {
                        "secret_ref": {"namespace": "operator-ns", "name": "operator-creds"},
                        "service_account_names": ["operator-a", "operator-b"],
                    },
                    "roles": [
                        {"role_id": "compute.viewer", "predefined": True},
                        {"role_id": "operator_custom", "predefined": False, "permissions": ["compute.instances.get", "compute.instances.list"]},
                    ],
                },
                {
                    "service_account_id": "sa-installer",
                    "access_method": "impersonate",
                    "roles": [
                        {"role_id": "operator_custom", "predefined": False, "permissions": ["compute.instances.get", "compute.instances.list"]},
                        {
                            "role_id": "iam.serviceAccountUser",
                            "predefined": True,
                            "resource_bindings": [{"type": "iam.serviceAccounts", "name": "sa-vm"}],
                        },
                    ],
                },
                {
                    "service_account_id": "sa-vm",
                    "access_method": "vm",
                    "roles": [{"role_id": "logging.logWriter", "predefined": True}],
                },
            ],
            "support": {
                "principal": "support-group@example.com",
                "roles": [
                    {"role_id": "compute.viewer", "predefined": True},
                    {"role_id": "support_custom", "predefined": False, "permissions": ["resourcemanager.projects.get"]},
                ],
            },
        },
    }


@pytest.fixture
def wif_config(wif_config_raw: Dict[str, Any]) -> Dict[str, Any]:
    """The loaded (flattened) WIF configuration."""
    return load_federation_config(wif_config_raw)


@pytest.fixture
def fake_cloud() -> FakeCloudIdentityClient:
    """An empty in-memory cloud."""
    return FakeCloudIdentityClient()


@pytest.fixture
def reconciler(wif_config: Dict[str, Any], fake_cloud: FakeCloudIdentityClient) -> WifReconciler:
    """A reconciler against the fake cloud that doesn't retry anything."""
    return WifReconciler(wif_config, fake_cloud, timeout_seconds=0, delay_seconds=0)


@pytest.fixture
def settings_file(tmp_path: Any, monkeypatch: pytest.MonkeyPatch) -> str:
    """Points the login settings file at a temporary location."""
    path = str(tmp_path / "wifctl" / "wifctl.json")
    monkeypatch.setenv("WIFCTL_CONFIG", path)
    return path


@pytest.fixture
def make_token() -> Callable[..., str]:
    """Returns a function that makes a signed JWT with the given claims. By default the token expires in an hour."""

    def _make_token(expires_in: int = 3600, **claims: Any) -> str:
        if expires_in is not None:
            claims["exp"] = int(time.time()) + expires_in
        return jwt.encode(claims, TOKEN_SIGNING_KEY, algorithm="HS256")

    return _make_token
