"""JSON Web Key Set helpers

:Module: wifctl.utils.jwks
:Copyright: (c) 2026 by the wifctl authors, see AUTHORS for more info
:License: See the LICENSE file for details
"""
import json
from typing import Any, Dict, List, Optional


def _load_jwks(jwks: str) -> Optional[List[Dict[str, Any]]]:
    """Parses a JWK set document and returns its keys, or None if it doesn't look like a JWK set."""
    try:
        loaded = json.loads(jwks)
    except (TypeError, ValueError):
        return None

    if not isinstance(loaded, dict) or not isinstance(loaded.get("keys"), list):
        return None

    if not all(isinstance(key, dict) for key in loaded["keys"]):
        return None

    return loaded["keys"]


def is_valid_jwks(jwks: str) -> bool:
    """Returns True if the string is a JSON document with the JWK set shape: {"keys": [{...}, ...]}."""
    return _load_jwks(jwks) is not None


def jwks_equal(jwks_a: str, jwks_b: str) -> bool:
    """
    Checks if two strings represent equal JSON Web Key Sets.

    The comparison is structural, so differences in whitespace, the ordering of fields within a key, and the ordering of the keys in the set
    are all ignored. False is returned if either document can't be parsed as a JWK set.
    """
    keys_a = _load_jwks(jwks_a)
    keys_b = _load_jwks(jwks_b)
    if keys_a is None or keys_b is None:
        return False

    def canonical(keys: List[Dict[str, Any]]) -> List[str]:
        return sorted(json.dumps(key, sort_keys=True) for key in keys)

    return canonical(keys_a) == canonical(keys_b)
