"""WIF reconciliation engine

This converges the GCP project to what a WIF configuration describes: the workload identity pool, the OIDC provider within it, the
service accounts along with their custom roles, role bindings, and access grants, and the support group's access.

Every `ensure_*` method is idempotent: it checks the current state of a resource before changing it, so running it a second time with nothing
having changed in between makes no further changes. Resources that were soft-deleted or disabled out-of-band are restored.

The IAM API is eventually consistent, so each step that talks to the cloud is retried with a fixed delay until the configured time budget
runs out. All cloud errors are retried except for an identity provider that "already exists" on creation, which is a genuine conflict.

:Module: wifctl.wif_config.reconciler
:Copyright: (c) 2026 by the wifctl authors, see AUTHORS for more info
:License: See the LICENSE file for details
"""
from typing import Any, Callable, Dict, List, Optional, Tuple

from wifctl.gcp.client import CloudIdentityClient, fmt_service_account_email, fmt_service_account_resource
from wifctl.gcp.errors import AlreadyExistsError, CloudIdentityError, NotFoundError
from wifctl.gcp.policy import add_policy_bindings
from wifctl.utils.configuration import WIFCTL_CONFIGURATION
from wifctl.utils.jwks import jwks_equal
from wifctl.utils.logging import LOGGER
from wifctl.utils.retry import RetryTimeoutError, retry_with_timeout
from wifctl.wif_config.schemas import AccessMethod, is_resource_scoped, role_resource_id

WIF_DESCRIPTION = "Created by the wifctl CLI for WIF config {display_name}"
WIF_ROLE_DESCRIPTION = "Created by the wifctl CLI"

IMPERSONATOR_ROLE = "roles/iam.serviceAccountTokenCreator"
WORKLOAD_IDENTITY_USER_ROLE = "roles/iam.workloadIdentityUser"
ATTRIBUTE_MAPPING = {"google.subject": "assertion.sub"}

FEDERATED_PRINCIPAL = (
    "principal://iam.googleapis.com/projects/{project_number}/locations/global/workloadIdentityPools/{pool_id}"
    "/subject/system:serviceaccount:{namespace}:{name}"
)


class ReconciliationError(Exception):
    """Raised when a reconciliation step fails. The message says which step it was, and the cloud error is chained."""


def fmt_federated_principal(project_number: str, pool_id: str, namespace: str, name: str) -> str:
    """Makes the principal for a Kubernetes service account that federates in through the workload identity pool."""
    return FEDERATED_PRINCIPAL.format(project_number=project_number, pool_id=pool_id, namespace=namespace, name=name)


class WifReconciler:
    """Drives the cloud identity client to make the project match the WIF configuration."""

    def __init__(
        self, wif_config: Dict[str, Any], client: CloudIdentityClient, timeout_seconds: Optional[float] = None, delay_seconds: Optional[float] = None
    ) -> None:
        self.wif_config = wif_config
        self.client = client

        if timeout_seconds is None or delay_seconds is None:
            settings = WIFCTL_CONFIGURATION.settings
            timeout_seconds = settings["iam_api_retry_seconds"] if timeout_seconds is None else timeout_seconds
            delay_seconds = settings["retry_delay_seconds"] if delay_seconds is None else delay_seconds

        self.timeout_seconds = timeout_seconds
        self.delay_seconds = delay_seconds

    @property
    def project_id(self) -> str:
        return self.wif_config["project_id"]

    @property
    def pool_id(self) -> str:
        return self.wif_config["pool"]["pool_id"]

    @property
    def description(self) -> str:
        return WIF_DESCRIPTION.format(display_name=self.wif_config["display_name"])

    @property
    def pool_parent(self) -> str:
        return f"projects/{self.project_id}/locations/global"

    @property
    def pool_resource(self) -> str:
        return f"{self.pool_parent}/workloadIdentityPools/{self.pool_id}"

    def _run_step(self, func: Callable[[], None], description: str, fatal_errors: Tuple = ()) -> None:
        """
        Runs the step with retries. Cloud errors are retried until the time budget runs out, except for those listed in `fatal_errors`.
        A failure is raised as a ReconciliationError with the step's description on it.
        """

        def attempt() -> Tuple[bool, Optional[Exception]]:
            try:
                func()
            except fatal_errors as exc:  # pylint: disable=catching-non-exception
                return False, exc
            except CloudIdentityError as exc:
                return True, exc

            return False, None

        try:
            retry_with_timeout(attempt, self.timeout_seconds, self.delay_seconds, description=description)
        except (CloudIdentityError, RetryTimeoutError) as exc:
            LOGGER.error(f"[💥] Failed to {description}: {exc}")
            raise ReconciliationError(f"failed to {description}: {exc}") from exc

    # Workload identity pool:
    def ensure_workload_identity_pool(self) -> None:
        """Makes the pool if it doesn't exist, undeletes it if it was deleted, and enables it if it was disabled."""
        self._run_step(self._ensure_workload_identity_pool, "update workload identity pool")

    def _ensure_workload_identity_pool(self) -> None:
        try:
            pool = self.client.get_workload_identity_pool(self.pool_resource)
        except NotFoundError:
            desired = {"displayName": self.pool_id, "description": self.description, "state": "ACTIVE", "disabled": False}
            self.client.create_workload_identity_pool(self.pool_parent, self.pool_id, desired)
            LOGGER.info(f"[✨] Workload identity pool created with name '{self.pool_id}'")
            return

        if pool.get("state") == "DELETED":
            self.client.undelete_workload_identity_pool(self.pool_resource)
            LOGGER.info(f"[♻️] Undeleted workload identity pool '{self.pool_id}'")

        if pool.get("disabled"):
            self.client.enable_workload_identity_pool(self.pool_resource)
            LOGGER.info(f"[✅] Workload identity pool '{self.pool_id}' has been re-enabled")

    # OIDC identity provider:
    def ensure_workload_identity_provider(self) -> None:
        """Makes the OIDC provider if it doesn't exist, or updates it in a single call if anything about it differs from the WIF config."""
        self._run_step(self._ensure_workload_identity_provider, "update workload identity provider", fatal_errors=(AlreadyExistsError,))

    def _desired_provider(self) -> Dict[str, Any]:
        provider = self.wif_config["provider"]
        return {
            "displayName": provider["provider_id"],
            "description": self.description,
            "state": "ACTIVE",
            "disabled": False,
            "attributeMapping": dict(ATTRIBUTE_MAPPING),
            "oidc": {"issuerUri": provider["issuer_url"], "jwksJson": provider["jwks"], "allowedAudiences": list(provider["allowed_audiences"])},
        }

    def _ensure_workload_identity_provider(self) -> None:
        provider_id = self.wif_config["provider"]["provider_id"]
        provider_resource = f"{self.pool_resource}/providers/{provider_id}"
        desired = self._desired_provider()

        try:
            existing = self.client.get_workload_identity_provider(provider_resource)
        except NotFoundError:
            self.client.create_workload_identity_provider(self.pool_resource, provider_id, desired)
            LOGGER.info(f"[✨] Workload identity provider created with name '{provider_id}' for pool '{self.pool_id}'")
            return

        if provider_needs_update(existing, desired):
            self.client.update_workload_identity_provider(provider_resource, desired)
            LOGGER.info(f"[🔧] Workload identity pool '{self.pool_id}' identity provider '{provider_id}' was updated")

    # Service accounts:
    def ensure_service_accounts(self) -> None:
        """
        Sets up every service account in the WIF config. The first failure stops the processing.

        All the service accounts are made before any roles are bound, since a resource scoped role is bound on another service account's
        own policy, and that account may come later in the list.
        """
        for service_account in self.wif_config["service_accounts"]:
            account_id = service_account["account_id"]
            self._run_step(lambda sa=service_account: self._ensure_service_account(sa), f"create IAM service account '{account_id}'")

        for service_account in self.wif_config["service_accounts"]:
            account_id = service_account["account_id"]
            self._run_step(lambda sa=service_account: self._ensure_roles(sa["roles"]), f"reconcile the roles of service account '{account_id}'")

            # A new service account takes a little while to be visible to the policy APIs, which the retries take care of:
            member = f"serviceAccount:{fmt_service_account_email(account_id, self.project_id)}"
            self._run_step(
                lambda sa=service_account, m=member: self._bind_roles(m, sa["roles"]), f"bind roles to service account '{account_id}'"
            )
            self._run_step(lambda sa=service_account: self._grant_access(sa), f"grant access to service account '{account_id}'")

    def _ensure_service_account(self, service_account: Dict[str, Any]) -> None:
        account_id = service_account["account_id"]
        display_name = f"{self.wif_config['display_name']}-{account_id}"

        try:
            account = self.client.create_service_account(self.project_id, account_id, display_name, self.description)
            LOGGER.info(f"[✨] IAM service account '{account_id}' has been created")
        except AlreadyExistsError:
            account = self.client.get_service_account(self.project_id, account_id)

        if account.get("disabled"):
            self.client.enable_service_account(self.project_id, account_id)
            LOGGER.info(f"[✅] IAM service account '{account_id}' has been enabled")

    def _grant_access(self, service_account: Dict[str, Any]) -> None:
        """Grants the access that the service account's access method calls for."""
        access_method = service_account["access_method"]

        if access_method == AccessMethod.impersonate.value:
            self._attach_impersonator(service_account)

        elif access_method == AccessMethod.wif.value:
            self._attach_workload_identity_pool(service_account)

        elif access_method == AccessMethod.vm.value:
            # These are attached to the VMs, so there is nothing for us to grant.
            LOGGER.debug(f"[⏭️] Service account '{service_account['account_id']}' uses the vm access method. Nothing to grant.")

        else:
            LOGGER.warning(f"[⚠️] {access_method} is not a supported access type. Skipping service account '{service_account['account_id']}'.")

    def _attach_impersonator(self, service_account: Dict[str, Any]) -> None:
        account_id = service_account["account_id"]
        if not service_account.get("impersonator_principal"):
            raise ReconciliationError(f"service account '{account_id}' uses impersonation, but there is no impersonator in the WIF config")

        member = f"serviceAccount:{service_account['impersonator_principal']}"
        if self._ensure_service_account_bindings(account_id, [(IMPERSONATOR_ROLE, member)]):
            LOGGER.info(f"[🔑] Impersonation access granted to service account '{account_id}'")

    def _attach_workload_identity_pool(self, service_account: Dict[str, Any]) -> None:
        account_id = service_account["account_id"]
        credential_request = service_account.get("credential_request") or {}
        if not credential_request.get("service_account_names"):
            LOGGER.warning(f"[⚠️] Service account '{account_id}' uses WIF, but there are no Kubernetes service accounts to federate in.")
            return

        role_members = [
            (
                WORKLOAD_IDENTITY_USER_ROLE,
                fmt_federated_principal(self.wif_config["project_number"], self.pool_id, credential_request["namespace"], name),
            )
            for name in credential_request["service_account_names"]
        ]
        if self._ensure_service_account_bindings(account_id, role_members):
            LOGGER.info(f"[🔑] Federated access granted to service account '{account_id}'")

    # Support access:
    def grant_support_access(self) -> None:
        """Reconciles the support group's custom roles and binds the roles to the group."""
        support = self.wif_config.get("support")
        if not support:
            LOGGER.debug("[⏭️] No support access in the WIF config.")
            return

        self._run_step(lambda: self._ensure_roles(support["roles"]), "reconcile the support roles")
        self._run_step(lambda: self._bind_roles(f"group:{support['principal']}", support["roles"]), "grant support access")

    # Roles and bindings, which are shared by the service accounts and support:
    def _ensure_roles(self, roles: List[Dict[str, Any]]) -> None:
        """
        Makes sure the custom roles exist, are not deleted, are enabled, and have at least the desired permissions. Permissions are only ever
        added to an existing role, never removed from it.
        """
        for role in roles:
            if role["predefined"]:
                continue

            role_id = role["role_id"]
            role_name = role_resource_id(role, self.project_id)
            try:
                existing = self.client.get_role(role_name)
            except NotFoundError:
                desired = {"title": role_id, "description": WIF_ROLE_DESCRIPTION, "includedPermissions": list(role["permissions"]), "stage": "GA"}
                self.client.create_role(self.project_id, role_id, desired)
                LOGGER.info(f"[✨] Role '{role_id}' has been created")
                continue

            if existing.get("deleted"):
                existing = self.client.undelete_role(role_name)
                existing["deleted"] = False
                LOGGER.info(f"[♻️] Role '{role_id}' has been undeleted")

            if existing.get("stage") == "DISABLED":
                existing["stage"] = "GA"
                existing = self.client.update_role(role_name, existing)
                LOGGER.info(f"[✅] Role '{role_id}' has been enabled")

            current = set(existing.get("includedPermissions", []))
            missing = set(role["permissions"]) - current
            if missing:
                existing["includedPermissions"] = sorted(current | missing)
                self.client.update_role(role_name, existing)
                LOGGER.info(f"[🔧] Role '{role_id}' has been updated with the permissions: {', '.join(sorted(missing))}")

    def _bind_roles(self, member: str, roles: List[Dict[str, Any]]) -> None:
        """
        Binds the roles to the member. Project roles are bound on the project's policy. Roles that are scoped to service accounts are bound on
        each of those service account's own policy. Every policy is written at most once, and only if something was added to it.
        """
        project_roles = []
        service_account_roles: Dict[str, List[Tuple[str, str]]] = {}
        for role in roles:
            role_name = role_resource_id(role, self.project_id)
            if is_resource_scoped(role):
                for binding in role["resource_bindings"]:
                    service_account_roles.setdefault(binding["name"], []).append((role_name, member))
            else:
                project_roles.append((role_name, member))

        if project_roles and self._ensure_project_bindings(project_roles):
            LOGGER.info(f"[🔗] Bound roles to principal '{member}'")

        for account_id, role_members in service_account_roles.items():
            if self._ensure_service_account_bindings(account_id, role_members):
                LOGGER.info(f"[🔗] Bound roles to principal '{member}' on service account '{account_id}'")

    def _ensure_project_bindings(self, role_members: List[Tuple[str, str]]) -> bool:
        policy = self.client.get_project_iam_policy(self.project_id)
        if not add_policy_bindings(policy, role_members):
            return False

        self.client.set_project_iam_policy(self.project_id, policy)
        return True

    def _ensure_service_account_bindings(self, account_id: str, role_members: List[Tuple[str, str]]) -> bool:
        resource = fmt_service_account_resource(account_id, self.project_id)
        policy = self.client.get_service_account_iam_policy(resource)
        if not add_policy_bindings(policy, role_members):
            return False

        self.client.set_service_account_iam_policy(resource, policy)
        return True

    # Deletion:
    def delete_service_accounts(self) -> None:
        """Deletes the WIF config's service accounts. The ones that are already gone are skipped."""
        for service_account in self.wif_config["service_accounts"]:
            account_id = service_account["account_id"]
            self._run_step(lambda a=account_id: self._delete_service_account(a), f"delete IAM service account '{account_id}'")

    def _delete_service_account(self, account_id: str) -> None:
        try:
            self.client.delete_service_account(self.project_id, account_id)
            LOGGER.info(f"[🗑️] IAM service account '{account_id}' has been deleted")
        except NotFoundError:
            LOGGER.debug(f"[⏭️] IAM service account '{account_id}' does not exist. Nothing to delete.")

    def delete_workload_identity_pool(self) -> None:
        """Deletes the workload identity pool, which takes the provider with it. Nothing is done if it is already gone."""
        self._run_step(self._delete_workload_identity_pool, "delete workload identity pool")

    def _delete_workload_identity_pool(self) -> None:
        try:
            pool = self.client.get_workload_identity_pool(self.pool_resource)
        except NotFoundError:
            LOGGER.debug(f"[⏭️] Workload identity pool '{self.pool_id}' does not exist. Nothing to delete.")
            return

        if pool.get("state") == "DELETED":
            LOGGER.debug(f"[⏭️] Workload identity pool '{self.pool_id}' is already deleted.")
            return

        try:
            self.client.delete_workload_identity_pool(self.pool_resource)
        except NotFoundError:
            return

        LOGGER.info(f"[🗑️] Workload identity pool '{self.pool_id}' has been deleted")


def provider_needs_update(existing: Dict[str, Any], desired: Dict[str, Any]) -> bool:
    """Field-by-field comparison of the provider with what it should be. The JWKS is compared structurally rather than as a string."""
    existing_oidc = existing.get("oidc", {})
    desired_oidc = desired["oidc"]

    return (
        existing.get("description", "") != desired["description"]
        or existing.get("disabled", False)
        or existing.get("displayName", "") != desired["displayName"]
        or existing.get("state", "") != desired["state"]
        or existing_oidc.get("issuerUri", "") != desired_oidc["issuerUri"]
        or not jwks_equal(existing_oidc.get("jwksJson", ""), desired_oidc["jwksJson"])
        or existing.get("attributeMapping", {}) != desired["attributeMapping"]
        or existing_oidc.get("allowedAudiences", []) != desired_oidc["allowedAudiences"]
    )
