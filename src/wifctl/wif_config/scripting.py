"""WIF script generator

For the "manual" mode: instead of calling the cloud APIs, this renders the same changes that the reconciler would make as a series of
gcloud commands for the user to review and run themselves.

The output is a pure function of the WIF configuration and the project number. Service accounts and roles are rendered in the order of the
WIF configuration, and each custom role is only rendered the first time it is used, so the same input always produces the same script.

The JWKS is written to a separate `jwk.json` file next to the script, which the provider command references, since the document is large and
not friendly to shell quoting.

:Module: wifctl.wif_config.scripting
:Copyright: (c) 2026 by the wifctl authors, see AUTHORS for more info
:License: See the LICENSE file for details
"""
import os
from shlex import quote
from typing import Any, Dict, List, Set

from wifctl.gcp.client import fmt_service_account_email
from wifctl.utils.logging import LOGGER
from wifctl.wif_config.reconciler import (
    ATTRIBUTE_MAPPING,
    IMPERSONATOR_ROLE,
    WIF_DESCRIPTION,
    WIF_ROLE_DESCRIPTION,
    WORKLOAD_IDENTITY_USER_ROLE,
    fmt_federated_principal,
)
from wifctl.wif_config.schemas import AccessMethod, is_resource_scoped, role_resource_id

APPLY_SCRIPT_NAME = "script.sh"
DELETE_SCRIPT_NAME = "delete-script.sh"
JWKS_FILE_NAME = "jwk.json"
FILE_MODE = 0o600

SCRIPT_HEADER = "#!/bin/bash\n"


def _pool_commands(wif_config: Dict[str, Any]) -> List[str]:
    pool_id = wif_config["pool"]["pool_id"]
    description = WIF_DESCRIPTION.format(display_name=wif_config["display_name"])
    return [
        "# Create a workload identity pool:",
        f"gcloud iam workload-identity-pools create {quote(pool_id)} \\\n"
        f"    --project={quote(wif_config['project_id'])} \\\n"
        "    --location=global \\\n"
        f"    --description={quote(description)} \\\n"
        f"    --display-name={quote(pool_id)}",
    ]


def _provider_commands(wif_config: Dict[str, Any]) -> List[str]:
    provider = wif_config["provider"]
    description = WIF_DESCRIPTION.format(display_name=wif_config["display_name"])
    attribute_mapping = ",".join(f"{key}={value}" for key, value in ATTRIBUTE_MAPPING.items())

    lines = [
        f"gcloud iam workload-identity-pools providers create-oidc {quote(provider['provider_id'])} \\",
        f"    --project={quote(wif_config['project_id'])} \\",
        "    --location=global \\",
        f"    --workload-identity-pool={quote(wif_config['pool']['pool_id'])} \\",
        f"    --display-name={quote(provider['provider_id'])} \\",
        f"    --description={quote(description)} \\",
        f"    --issuer-uri={quote(provider['issuer_url'])} \\",
        f'    --jwk-json-path="{JWKS_FILE_NAME}" \\',
    ]
    if provider["allowed_audiences"]:
        lines.append(f"    --allowed-audiences={quote(','.join(provider['allowed_audiences']))} \\")
    lines.append(f"    --attribute-mapping={quote(attribute_mapping)}")

    return ["# Create a workload identity provider:", "\n".join(lines)]


def _service_account_commands(wif_config: Dict[str, Any]) -> List[str]:
    commands = ["# Create service accounts:"]
    description = WIF_DESCRIPTION.format(display_name=wif_config["display_name"])
    for service_account in wif_config["service_accounts"]:
        account_id = service_account["account_id"]
        display_name = f"{wif_config['display_name']}-{account_id}"
        commands.append(
            f"gcloud iam service-accounts create {quote(account_id)} --display-name={quote(display_name)} "
            f"--description={quote(description)} --project={quote(wif_config['project_id'])}"
        )

    return commands


def _role_commands(roles: List[Dict[str, Any]], project_id: str, seen: Set[str]) -> List[str]:
    """Makes the custom roles, or adds the permissions to them if they already exist. Roles already in `seen` are skipped."""
    commands = []
    for role in roles:
        if role["predefined"] or role["role_id"] in seen:
            continue

        seen.add(role["role_id"])
        role_id = quote(role["role_id"])
        permissions = quote(",".join(role["permissions"]))
        commands.append(
            f"gcloud iam roles create {role_id} --project={quote(project_id)} --title={role_id} "
            f"--description={quote(WIF_ROLE_DESCRIPTION)} --stage=GA --permissions={permissions} || "
            f"gcloud iam roles update {role_id} --project={quote(project_id)} --add-permissions={permissions}"
        )

    return commands


def _binding_commands(member: str, roles: List[Dict[str, Any]], project_id: str) -> List[str]:
    """Project roles are bound on the project. Roles scoped to service accounts are bound on each of those service accounts."""
    commands = []
    for role in roles:
        role_name = quote(role_resource_id(role, project_id))
        if is_resource_scoped(role):
            for binding in role["resource_bindings"]:
                commands.append(
                    f"gcloud iam service-accounts add-iam-policy-binding {quote(fmt_service_account_email(binding['name'], project_id))} "
                    f"--project={quote(project_id)} --member={quote(member)} --role={role_name}"
                )
        else:
            commands.append(
                f"gcloud projects add-iam-policy-binding {quote(project_id)} --member={quote(member)} --role={role_name} --condition=None"
            )

    return commands


def _access_commands(wif_config: Dict[str, Any], project_number: str) -> List[str]:
    project_id = wif_config["project_id"]
    commands = ["# Grant access to the service accounts:"]
    for service_account in wif_config["service_accounts"]:
        email = quote(fmt_service_account_email(service_account["account_id"], project_id))
        access_method = service_account["access_method"]

        members = []
        if access_method == AccessMethod.impersonate.value:
            if service_account.get("impersonator_principal"):
                members.append((IMPERSONATOR_ROLE, f"serviceAccount:{service_account['impersonator_principal']}"))
            else:
                LOGGER.warning(
                    f"[⚠️] Service account '{service_account['account_id']}' uses impersonation, but the WIF config has no impersonator. Skipping its grant."
                )
                commands.append(f"# No impersonator to grant access to service account {email}")

        elif access_method == AccessMethod.wif.value:
            credential_request = service_account.get("credential_request") or {}
            for name in credential_request.get("service_account_names", []):
                principal = fmt_federated_principal(project_number, wif_config["pool"]["pool_id"], credential_request["namespace"], name)
                members.append((WORKLOAD_IDENTITY_USER_ROLE, principal))

        elif access_method != AccessMethod.vm.value:
            LOGGER.warning(f"[⚠️] {access_method} is not a supported access type. Skipping service account '{service_account['account_id']}'.")

        for role, member in members:
            commands.append(
                f"gcloud iam service-accounts add-iam-policy-binding {email} --project={quote(project_id)} --member={quote(member)} --role={role}"
            )

    return commands


def generate_apply_script(wif_config: Dict[str, Any], project_number: str) -> str:
    """Renders the gcloud commands that set up everything the WIF configuration needs."""
    project_id = wif_config["project_id"]
    seen_roles: Set[str] = set()

    sections = [
        _pool_commands(wif_config),
        _provider_commands(wif_config),
        _service_account_commands(wif_config),
    ]

    role_commands = ["# Create or update the custom roles:"]
    binding_commands = ["# Bind the roles to the service accounts:"]
    for service_account in wif_config["service_accounts"]:
        role_commands.extend(_role_commands(service_account["roles"], project_id, seen_roles))
        member = f"serviceAccount:{fmt_service_account_email(service_account['account_id'], project_id)}"
        binding_commands.extend(_binding_commands(member, service_account["roles"], project_id))

    sections += [role_commands, binding_commands, _access_commands(wif_config, project_number)]

    support = wif_config.get("support")
    if support:
        support_commands = ["# Grant support access:"]
        support_commands.extend(_role_commands(support["roles"], project_id, seen_roles))
        support_commands.extend(_binding_commands(f"group:{support['principal']}", support["roles"], project_id))
        sections.append(support_commands)

    return SCRIPT_HEADER + "\n" + "\n\n".join("\n".join(section) for section in sections) + "\n"


def generate_delete_script(wif_config: Dict[str, Any]) -> str:
    """Renders the gcloud commands that delete the service accounts and then the pool. The provider goes away with the pool."""
    project_id = quote(wif_config["project_id"])
    service_accounts = ["# Delete the service accounts:"]
    for service_account in wif_config["service_accounts"]:
        email = quote(fmt_service_account_email(service_account["account_id"], wif_config["project_id"]))
        service_accounts.append(f"gcloud iam service-accounts delete {email} --project={project_id} --quiet")

    pool = [
        "# Delete the workload identity pool:",
        f"gcloud iam workload-identity-pools delete {quote(wif_config['pool']['pool_id'])} --project={project_id} --location=global --quiet",
    ]

    return SCRIPT_HEADER + "\n" + "\n".join(service_accounts) + "\n\n" + "\n".join(pool) + "\n"


def _write_private_file(path: str, content: str) -> None:
    """Writes the file so that only the owner can read or write it, including when it already existed."""
    descriptor = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, FILE_MODE)
    with os.fdopen(descriptor, "w", encoding="utf-8") as stream:
        stream.write(content)

    os.chmod(path, FILE_MODE)
    LOGGER.debug(f"[📝] Wrote {path}")


def write_apply_script(target_dir: str, wif_config: Dict[str, Any], project_number: str) -> List[str]:
    """Writes the apply script and the JWKS file that it references into the target directory. Returns the paths written."""
    script_path = os.path.join(target_dir, APPLY_SCRIPT_NAME)
    jwks_path = os.path.join(target_dir, JWKS_FILE_NAME)

    _write_private_file(script_path, generate_apply_script(wif_config, project_number))
    _write_private_file(jwks_path, wif_config["provider"]["jwks"])

    return [script_path, jwks_path]


def write_delete_script(target_dir: str, wif_config: Dict[str, Any]) -> str:
    """Writes the delete script into the target directory. Returns the path written."""
    script_path = os.path.join(target_dir, DELETE_SCRIPT_NAME)
    _write_private_file(script_path, generate_delete_script(wif_config))

    return script_path
