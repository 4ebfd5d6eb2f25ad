"""WIF configuration schema definitions

The WIF configuration is owned by the control plane and fetched as JSON. The schemas in here load that JSON into the plain dictionary that
the reconciler and the script generator operate on. The wire format is nested under a `gcp` section; the loaded format is flattened so that
the rest of the code doesn't need to dig for things:

    {
        "id": "2a3b...",
        "display_name": "my-wif-config",
        "project_id": "my-project",
        "project_number": "123456789",
        "impersonator_email": "impersonator@some-project.iam.gserviceaccount.com",
        "pool": {"pool_id": "my-pool"},
        "provider": {"provider_id": "my-provider", "issuer_url": "https://...", "jwks": "{\"keys\": [...]}", "allowed_audiences": [...]},
        "service_accounts": [
            {
                "account_id": "sa-1",
                "access_method": "wif",
                "credential_request": {"namespace": "ns1", "service_account_names": ["ksa1"]},
                "impersonator_principal": "impersonator@some-project.iam.gserviceaccount.com",
                "roles": [{"role_id": "some_custom_role", "predefined": False, "permissions": ["..."], "resource_bindings": []}]
            }
        ],
        "support": {"principal": "support-group@example.com", "roles": [...]}
    }

:Module: wifctl.wif_config.schemas
:Copyright: (c) 2026 by the wifctl authors, see AUTHORS for more info
:License: See the LICENSE file for details
"""
from enum import Enum
from typing import Any, Dict

from marshmallow import fields, Schema, EXCLUDE, post_load, validate, validates, ValidationError

from wifctl.utils.jwks import is_valid_jwks

IDENTIFIER_REGEX = r"^[a-zA-Z0-9_.:-]+$"


# pylint: disable=invalid-name
class AccessMethod(Enum):
    """How a workload gets to act as a WIF service account."""

    impersonate = "impersonate"  # The configured impersonator gets the token creator role on the service account
    wif = "wif"  # Kubernetes service accounts federate in through the workload identity pool
    vm = "vm"  # Attached to the VMs directly, so nothing to grant


class WifBaseSchema(Schema):
    """The control plane adds fields over time (`kind`, `href`, and so on), which we don't care about."""

    class Meta:
        """Meta properties on the Schema used by Marshmallow"""

        unknown = EXCLUDE


class ResourceBindingSchema(WifBaseSchema):
    """A resource that a role is scoped to instead of the project. Only service accounts are supported at the moment."""

    type = fields.String(required=True, validate=validate.OneOf(["iam.serviceAccounts"]))
    name = fields.String(required=True, validate=validate.Length(min=1))


class RoleSchema(WifBaseSchema):
    """A role that is to be granted. Custom roles (predefined is False) are made in the project with the listed permissions."""

    role_id = fields.String(required=True, validate=validate.Length(min=1))
    predefined = fields.Boolean(required=False, load_default=False)
    permissions = fields.List(fields.String(), required=False, load_default=list)
    resource_bindings = fields.List(fields.Nested(ResourceBindingSchema()), required=False, load_default=list)


class SecretRefSchema(WifBaseSchema):
    """Where the credentials secret lives in the cluster."""

    namespace = fields.String(required=True)
    name = fields.String(required=False, load_default="")


class CredentialRequestSchema(WifBaseSchema):
    """The Kubernetes service accounts that need to federate in as a WIF service account."""

    secret_ref = fields.Nested(SecretRefSchema(), required=True)
    service_account_names = fields.List(fields.String(), required=False, load_default=list)

    @post_load
    def flatten(self, data: Dict[str, Any], **kwargs) -> Dict[str, Any]:  # pylint: disable=unused-argument # noqa
        """Only the namespace of the secret is needed to build the federated principals."""
        return {"namespace": data["secret_ref"]["namespace"], "service_account_names": data["service_account_names"]}


class ServiceAccountSchema(WifBaseSchema):
    """A GCP service account that the WIF configuration needs."""

    account_id = fields.String(required=True, validate=validate.Length(min=1), data_key="service_account_id")
    access_method = fields.String(required=True)
    credential_request = fields.Nested(CredentialRequestSchema(), required=False, load_default=None)
    impersonator_principal = fields.String(required=False, load_default=None, data_key="impersonator_email")
    roles = fields.List(fields.Nested(RoleSchema()), required=False, load_default=list)


class SupportSchema(WifBaseSchema):
    """The group that is granted support access to the project."""

    principal = fields.String(required=True, validate=validate.Length(min=1))
    roles = fields.List(fields.Nested(RoleSchema()), required=False, load_default=list)


class IdentityProviderSchema(WifBaseSchema):
    """The OIDC identity provider in the workload identity pool."""

    provider_id = fields.String(required=True, validate=validate.Length(min=1), data_key="identity_provider_id")
    issuer_url = fields.String(required=True, validate=validate.Length(min=1))
    jwks = fields.String(required=True)
    allowed_audiences = fields.List(fields.String(), required=False, load_default=list)

    @validates("jwks")
    def validate_jwks(self, value: str, **kwargs) -> None:  # pylint: disable=unused-argument # noqa
        """The JWKS needs to be a JSON Web Key Set document."""
        if not is_valid_jwks(value):
            raise ValidationError("The JWKS must be a JSON document in the JWK set format: {\"keys\": [...]}.")


class WorkloadIdentityPoolSchema(WifBaseSchema):
    """The workload identity pool and the provider within it."""

    pool_id = fields.String(required=True, validate=validate.Length(min=1))
    identity_provider = fields.Nested(IdentityProviderSchema(), required=True)


class GcpSchema(WifBaseSchema):
    """The `gcp` section of the WIF configuration."""

    project_id = fields.String(required=True, validate=validate.Length(min=1))
    project_number = fields.String(required=False, load_default="")
    impersonator_email = fields.String(required=False, load_default="")
    workload_identity_pool = fields.Nested(WorkloadIdentityPoolSchema(), required=True)
    service_accounts = fields.List(fields.Nested(ServiceAccountSchema()), required=False, load_default=list)
    support = fields.Nested(SupportSchema(), required=False, load_default=None)


class FederationConfigSchema(WifBaseSchema):
    """The schema for the WIF configuration resource as it is returned by the control plane."""

    id = fields.String(required=True, validate=validate.Regexp(IDENTIFIER_REGEX))
    display_name = fields.String(required=True, validate=validate.Regexp(IDENTIFIER_REGEX))
    gcp = fields.Nested(GcpSchema(), required=True)

    @post_load
    def flatten(self, data: Dict[str, Any], **kwargs) -> Dict[str, Any]:  # pylint: disable=unused-argument # noqa
        """Flattens the `gcp` section and fills in the impersonator for the service accounts that didn't set their own."""
        gcp = data["gcp"]
        pool = gcp["workload_identity_pool"]

        for service_account in gcp["service_accounts"]:
            if not service_account["impersonator_principal"]:
                service_account["impersonator_principal"] = gcp["impersonator_email"]

        return {
            "id": data["id"],
            "display_name": data["display_name"],
            "project_id": gcp["project_id"],
            "project_number": gcp["project_number"],
            "impersonator_email": gcp["impersonator_email"],
            "pool": {"pool_id": pool["pool_id"]},
            "provider": pool["identity_provider"],
            "service_accounts": gcp["service_accounts"],
            "support": gcp["support"],
        }


def load_federation_config(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Loads the control plane's JSON for a WIF configuration. This raises a marshmallow ValidationError if it is malformed."""
    return FederationConfigSchema().load(raw)


def role_resource_id(role: Dict[str, Any], project_id: str) -> str:
    """Predefined roles are global, and custom roles live in the project."""
    if role["predefined"]:
        return f"roles/{role['role_id']}"

    return f"projects/{project_id}/roles/{role['role_id']}"


def is_resource_scoped(role: Dict[str, Any]) -> bool:
    """Roles with resource bindings are granted on the bound resources rather than on the project."""
    return bool(role.get("resource_bindings"))
