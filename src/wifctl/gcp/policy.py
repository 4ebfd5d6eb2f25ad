"""IAM policy helpers

IAM policies are handled as the plain dictionaries that the GCP REST APIs return:

    {
        "version": 1,
        "etag": "BwX...",
        "bindings": [
            {"role": "roles/some.role", "members": ["serviceAccount:...", "group:..."]},
            ...
        ]
    }

The members of a binding are a set: adding a member that is already present is a no-op.

:Module: wifctl.gcp.policy
:Copyright: (c) 2026 by the wifctl authors, see AUTHORS for more info
:License: See the LICENSE file for details
"""
from typing import Any, Dict, Iterable, Tuple


def add_policy_binding(policy: Dict[str, Any], role: str, member: str) -> bool:
    """
    Adds the member to the role's binding in the policy (the policy is mutated in place). If there is no binding for the role then one is made.

    Returns True if the policy was modified.
    """
    bindings = policy.setdefault("bindings", [])
    for binding in bindings:
        if binding["role"] == role:
            members = binding.setdefault("members", [])
            if member in members:
                return False

            members.append(member)
            return True

    bindings.append({"role": role, "members": [member]})
    return True


def add_policy_bindings(policy: Dict[str, Any], role_members: Iterable[Tuple[str, str]]) -> bool:
    """Applies all the (role, member) pairs to the policy. Returns True if at least one of them modified it."""
    modified = False
    for role, member in role_members:
        if add_policy_binding(policy, role, member):
            modified = True

    return modified
