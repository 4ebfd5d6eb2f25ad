"""The user's stored login settings

`wifctl login` saves the control plane URL and the tokens into a JSON file so that later commands can make authenticated requests. The file
lives at `$WIFCTL_CONFIG` if set, or else `~/.config/wifctl/wifctl.json`. It holds credentials, so only the owner may read it.

:Module: wifctl.control_plane.settings
:Copyright: (c) 2026 by the wifctl authors, see AUTHORS for more info
:License: See the LICENSE file for details
"""
import json
import os
import time
from typing import Any, Dict, Optional

import jwt
from marshmallow import fields, Schema, EXCLUDE

from wifctl.utils.logging import LOGGER

SETTINGS_FILE_MODE = 0o600

# Tokens that expire within this many seconds are treated as already expired:
EXPIRY_LEEWAY_SECONDS = 60


class SettingsSchema(Schema):
    """The stored login settings."""

    url = fields.String(required=True)
    token_url = fields.String(required=True)
    client_id = fields.String(required=True)
    client_secret = fields.String(required=False, load_default=None, allow_none=True)
    access_token = fields.String(required=False, load_default=None, allow_none=True)
    refresh_token = fields.String(required=False, load_default=None, allow_none=True)

    class Meta:
        """Meta properties on the Schema used by Marshmallow"""

        unknown = EXCLUDE


def settings_path() -> str:
    """Where the settings file lives."""
    if os.environ.get("WIFCTL_CONFIG"):
        return os.environ["WIFCTL_CONFIG"]

    return os.path.join(os.path.expanduser("~"), ".config", "wifctl", "wifctl.json")


def load_settings() -> Optional[Dict[str, Any]]:
    """Loads the settings file. Returns None if the user hasn't logged in. A malformed file raises a marshmallow ValidationError."""
    path = settings_path()
    if not os.path.exists(path):
        LOGGER.debug(f"[📄] No settings file at {path}")
        return None

    with open(path, "r", encoding="utf-8") as stream:
        return SettingsSchema().load(json.load(stream))


def save_settings(settings: Dict[str, Any]) -> str:
    """Saves the settings file with owner-only permissions. Returns the path that it was saved to."""
    path = settings_path()
    os.makedirs(os.path.dirname(path) or ".", mode=0o700, exist_ok=True)

    descriptor = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, SETTINGS_FILE_MODE)
    with os.fdopen(descriptor, "w", encoding="utf-8") as stream:
        json.dump(SettingsSchema().dump(settings), stream, indent=2)

    os.chmod(path, SETTINGS_FILE_MODE)
    LOGGER.debug(f"[💾] Saved the settings to {path}")
    return path


def remove_settings() -> bool:
    """Deletes the settings file. Returns False if there was nothing to delete."""
    path = settings_path()
    if not os.path.exists(path):
        return False

    os.remove(path)
    return True


def token_expired(token: Optional[str], leeway: int = EXPIRY_LEEWAY_SECONDS) -> bool:
    """
    Checks if the token is missing or expired. Only the `exp` claim is looked at: the signature is not verified since the control plane does
    that. A token that isn't a JWT at all is treated as expired.
    """
    if not token:
        return True

    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.DecodeError:
        LOGGER.debug("[🔑] The token is not a JWT.")
        return True

    # Offline refresh tokens have no expiration (or an expiration of 0):
    expiration = claims.get("exp")
    if not expiration:
        return False

    return int(expiration) - leeway <= int(time.time())


def is_refresh_token(token: str) -> bool:
    """The `typ` claim tells refresh and offline tokens apart from access tokens (which are `Bearer` tokens)."""
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.DecodeError:
        return False

    return claims.get("typ", "").lower() in ("refresh", "offline")


def armed(settings: Optional[Dict[str, Any]]) -> bool:
    """Checks if the settings have what is needed to get a usable access token: a live access token, a live refresh token, or client credentials."""
    if not settings:
        return False

    if not token_expired(settings.get("access_token")):
        return True

    if not token_expired(settings.get("refresh_token")):
        return True

    return bool(settings.get("client_id") and settings.get("client_secret"))
