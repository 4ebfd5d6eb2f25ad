"""wifctl's cloud identity client

This defines the narrow set of cloud identity operations that the WIF reconciler needs (pools, OIDC providers, service accounts,
custom roles, and IAM policies) along with the implementation that talks to GCP through the Google API discovery client.

All resources are passed around as the plain dictionaries that the GCP REST APIs use. Failed calls are raised as the exceptions in
`wifctl.gcp.errors` so that "not found" and "already exists" can be told apart from everything else.

:Module: wifctl.gcp.client
:Copyright: (c) 2026 by the wifctl authors, see AUTHORS for more info
:License: See the LICENSE file for details
"""
import json
from abc import ABC, abstractmethod
from time import sleep
from typing import Any, Dict, MutableMapping

from google.auth.exceptions import GoogleAuthError
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from httplib2 import HttpLib2Error

from wifctl.gcp.errors import CloudIdentityError, translate_http_error
from wifctl.utils.logging import LOGGER

# Failures below HTTP: credentials that can't be loaded or refreshed, and connections that drop or time out:
TRANSPORT_ERRORS = (GoogleAuthError, HttpLib2Error, OSError)

# The fields on a WIF OIDC provider that the reconciler manages:
PROVIDER_UPDATE_MASK = "displayName,description,disabled,attributeMapping,oidc.issuerUri,oidc.jwksJson,oidc.allowedAudiences"


def fmt_service_account_email(account_id: str, project_id: str) -> str:
    """Makes the email address of a service account in the given project."""
    return f"{account_id}@{project_id}.iam.gserviceaccount.com"


def fmt_service_account_resource(account_id: str, project_id: str) -> str:
    """Makes the resource name of a service account, which is also what its own IAM policy is attached to."""
    return f"projects/{project_id}/serviceAccounts/{fmt_service_account_email(account_id, project_id)}"


class CloudIdentityClient(ABC):
    """The cloud identity operations that the reconciler relies on."""

    # Workload identity pools:
    @abstractmethod
    def get_workload_identity_pool(self, resource: str) -> Dict[str, Any]:
        raise NotImplementedError()

    @abstractmethod
    def create_workload_identity_pool(self, parent: str, pool_id: str, pool: Dict[str, Any]) -> None:
        raise NotImplementedError()

    @abstractmethod
    def undelete_workload_identity_pool(self, resource: str) -> None:
        raise NotImplementedError()

    @abstractmethod
    def enable_workload_identity_pool(self, resource: str) -> None:
        raise NotImplementedError()

    @abstractmethod
    def delete_workload_identity_pool(self, resource: str) -> None:
        raise NotImplementedError()

    # OIDC providers:
    @abstractmethod
    def get_workload_identity_provider(self, resource: str) -> Dict[str, Any]:
        raise NotImplementedError()

    @abstractmethod
    def create_workload_identity_provider(self, parent: str, provider_id: str, provider: Dict[str, Any]) -> None:
        raise NotImplementedError()

    @abstractmethod
    def update_workload_identity_provider(self, resource: str, provider: Dict[str, Any]) -> None:
        raise NotImplementedError()

    # Service accounts:
    @abstractmethod
    def create_service_account(self, project_id: str, account_id: str, display_name: str, description: str) -> Dict[str, Any]:
        raise NotImplementedError()

    @abstractmethod
    def get_service_account(self, project_id: str, account_id: str) -> Dict[str, Any]:
        raise NotImplementedError()

    @abstractmethod
    def enable_service_account(self, project_id: str, account_id: str) -> None:
        raise NotImplementedError()

    @abstractmethod
    def delete_service_account(self, project_id: str, account_id: str) -> None:
        raise NotImplementedError()

    # Custom roles:
    @abstractmethod
    def get_role(self, name: str) -> Dict[str, Any]:
        raise NotImplementedError()

    @abstractmethod
    def create_role(self, project_id: str, role_id: str, role: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError()

    @abstractmethod
    def update_role(self, name: str, role: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError()

    @abstractmethod
    def undelete_role(self, name: str) -> Dict[str, Any]:
        raise NotImplementedError()

    # IAM policies:
    @abstractmethod
    def get_project_iam_policy(self, project_id: str) -> Dict[str, Any]:
        raise NotImplementedError()

    @abstractmethod
    def set_project_iam_policy(self, project_id: str, policy: Dict[str, Any]) -> None:
        raise NotImplementedError()

    @abstractmethod
    def get_service_account_iam_policy(self, resource: str) -> Dict[str, Any]:
        raise NotImplementedError()

    @abstractmethod
    def set_service_account_iam_policy(self, resource: str, policy: Dict[str, Any]) -> None:
        raise NotImplementedError()

    # Project metadata:
    @abstractmethod
    def project_number_from_id(self, project_id: str) -> str:
        raise NotImplementedError()


class GcpClient(CloudIdentityClient):
    """The Google Cloud implementation. This uses the Application Default Credentials unless credentials are passed in."""

    def __init__(self, credentials: Any = None, operation_poll_seconds: float = 2.0) -> None:
        self._credentials = credentials
        self._operation_poll_seconds = operation_poll_seconds
        self._services: MutableMapping[str, Any] = {}

    def _get_service(self, service_name: str, version: str) -> Any:
        service_key = service_name + "_" + version
        if service_key not in self._services:
            try:
                self._services[service_key] = build(serviceName=service_name, version=version, credentials=self._credentials, cache_discovery=False)
            except TRANSPORT_ERRORS as err:
                raise CloudIdentityError(f"unable to set up the {service_name} {version} API client: {err}") from err

        return self._services[service_key]

    @property
    def _iam(self) -> Any:
        return self._get_service("iam", "v1")

    @property
    def _resource_manager(self) -> Any:
        return self._get_service("cloudresourcemanager", "v1")

    def _execute(self, request: Any, resource: str) -> Dict[str, Any]:
        """Executes the API request and translates the HTTP and transport errors."""
        try:
            return request.execute()
        except HttpError as err:
            raise translate_http_error(err, resource) from err
        except TRANSPORT_ERRORS as err:
            raise CloudIdentityError(f"request for {resource} failed: {err}") from err

    def _wait_for_iam_operation(self, result: Dict[str, Any], resource: str) -> Dict[str, Any]:
        """Waits for a long-running IAM operation (pools and providers) to complete."""
        operations = self._iam.projects().locations().workloadIdentityPools().operations()
        while not result.get("done"):
            sleep(self._operation_poll_seconds)
            LOGGER.debug(f"[⏳] Waiting on operation {result['name']} for {resource}...")
            result = self._execute(operations.get(name=result["name"]), resource)

        if "error" in result:
            raise CloudIdentityError(f"operation on {resource} failed: {json.dumps(result['error'])}")

        return result.get("response", {})

    def get_workload_identity_pool(self, resource: str) -> Dict[str, Any]:
        pools = self._iam.projects().locations().workloadIdentityPools()
        return self._execute(pools.get(name=resource), resource)

    def create_workload_identity_pool(self, parent: str, pool_id: str, pool: Dict[str, Any]) -> None:
        pools = self._iam.projects().locations().workloadIdentityPools()
        result = self._execute(pools.create(parent=parent, workloadIdentityPoolId=pool_id, body=pool), f"workload identity pool {pool_id}")
        self._wait_for_iam_operation(result, f"workload identity pool {pool_id}")

    def undelete_workload_identity_pool(self, resource: str) -> None:
        pools = self._iam.projects().locations().workloadIdentityPools()
        self._wait_for_iam_operation(self._execute(pools.undelete(name=resource, body={}), resource), resource)

    def enable_workload_identity_pool(self, resource: str) -> None:
        pools = self._iam.projects().locations().workloadIdentityPools()
        result = self._execute(pools.patch(name=resource, updateMask="disabled", body={"disabled": False}), resource)
        self._wait_for_iam_operation(result, resource)

    def delete_workload_identity_pool(self, resource: str) -> None:
        pools = self._iam.projects().locations().workloadIdentityPools()
        self._wait_for_iam_operation(self._execute(pools.delete(name=resource), resource), resource)

    def get_workload_identity_provider(self, resource: str) -> Dict[str, Any]:
        providers = self._iam.projects().locations().workloadIdentityPools().providers()
        return self._execute(providers.get(name=resource), resource)

    def create_workload_identity_provider(self, parent: str, provider_id: str, provider: Dict[str, Any]) -> None:
        providers = self._iam.projects().locations().workloadIdentityPools().providers()
        resource = f"{parent}/providers/{provider_id}"
        result = self._execute(providers.create(parent=parent, workloadIdentityPoolProviderId=provider_id, body=provider), resource)
        self._wait_for_iam_operation(result, resource)

    def update_workload_identity_provider(self, resource: str, provider: Dict[str, Any]) -> None:
        providers = self._iam.projects().locations().workloadIdentityPools().providers()
        result = self._execute(providers.patch(name=resource, updateMask=PROVIDER_UPDATE_MASK, body=provider), resource)
        self._wait_for_iam_operation(result, resource)

    def create_service_account(self, project_id: str, account_id: str, display_name: str, description: str) -> Dict[str, Any]:
        body = {"accountId": account_id, "serviceAccount": {"displayName": display_name, "description": description}}
        request = self._iam.projects().serviceAccounts().create(name=f"projects/{project_id}", body=body)
        return self._execute(request, f"service account {account_id}")

    def get_service_account(self, project_id: str, account_id: str) -> Dict[str, Any]:
        resource = fmt_service_account_resource(account_id, project_id)
        return self._execute(self._iam.projects().serviceAccounts().get(name=resource), resource)

    def enable_service_account(self, project_id: str, account_id: str) -> None:
        resource = fmt_service_account_resource(account_id, project_id)
        self._execute(self._iam.projects().serviceAccounts().enable(name=resource, body={}), resource)

    def delete_service_account(self, project_id: str, account_id: str) -> None:
        resource = fmt_service_account_resource(account_id, project_id)
        self._execute(self._iam.projects().serviceAccounts().delete(name=resource), resource)

    def get_role(self, name: str) -> Dict[str, Any]:
        return self._execute(self._iam.projects().roles().get(name=name), name)

    def create_role(self, project_id: str, role_id: str, role: Dict[str, Any]) -> Dict[str, Any]:
        request = self._iam.projects().roles().create(parent=f"projects/{project_id}", body={"roleId": role_id, "role": role})
        return self._execute(request, f"role {role_id}")

    def update_role(self, name: str, role: Dict[str, Any]) -> Dict[str, Any]:
        request = self._iam.projects().roles().patch(name=name, updateMask="includedPermissions,stage", body=role)
        return self._execute(request, name)

    def undelete_role(self, name: str) -> Dict[str, Any]:
        return self._execute(self._iam.projects().roles().undelete(name=name, body={}), name)

    def get_project_iam_policy(self, project_id: str) -> Dict[str, Any]:
        request = self._resource_manager.projects().getIamPolicy(resource=project_id, body={})
        return self._execute(request, f"IAM policy of project {project_id}")

    def set_project_iam_policy(self, project_id: str, policy: Dict[str, Any]) -> None:
        request = self._resource_manager.projects().setIamPolicy(resource=project_id, body={"policy": policy})
        self._execute(request, f"IAM policy of project {project_id}")

    def get_service_account_iam_policy(self, resource: str) -> Dict[str, Any]:
        return self._execute(self._iam.projects().serviceAccounts().getIamPolicy(resource=resource), f"IAM policy of {resource}")

    def set_service_account_iam_policy(self, resource: str, policy: Dict[str, Any]) -> None:
        request = self._iam.projects().serviceAccounts().setIamPolicy(resource=resource, body={"policy": policy})
        self._execute(request, f"IAM policy of {resource}")

    def project_number_from_id(self, project_id: str) -> str:
        project = self._execute(self._resource_manager.projects().get(projectId=project_id), f"project {project_id}")
        return str(project["projectNumber"])
