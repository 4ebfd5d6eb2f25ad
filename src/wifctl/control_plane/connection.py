"""The authenticated connection to the control plane

This keeps the access token fresh. Access tokens are short-lived, so when the stored one is expired a new one is fetched from the OpenID token
endpoint with either the refresh token (the `refresh_token` grant) or the client credentials (the `client_credentials` grant). The new tokens
are saved back to the settings file so that the next command can reuse them.

:Module: wifctl.control_plane.connection
:Copyright: (c) 2026 by the wifctl authors, see AUTHORS for more info
:License: See the LICENSE file for details
"""
from typing import Any, Dict, Optional

import requests
from requests.exceptions import RequestException

from wifctl.control_plane.errors import NotLoggedInError, TokenRefreshError
from wifctl.control_plane.settings import armed, is_refresh_token, load_settings, save_settings, token_expired
from wifctl.utils.configuration import WIFCTL_CONFIGURATION
from wifctl.utils.logging import LOGGER


class Connection:
    """Holds the login settings and hands out valid access tokens."""

    def __init__(self, settings: Dict[str, Any]):
        self.settings = settings

    @property
    def url(self) -> str:
        return self.settings["url"].rstrip("/")

    def _refresh(self) -> None:
        """Gets a new access token from the token endpoint and saves it."""
        if not token_expired(self.settings.get("refresh_token")):
            data = {"grant_type": "refresh_token", "client_id": self.settings["client_id"], "refresh_token": self.settings["refresh_token"]}
        elif self.settings.get("client_secret"):
            data = {"grant_type": "client_credentials", "client_id": self.settings["client_id"], "client_secret": self.settings["client_secret"]}
        else:
            raise NotLoggedInError("The stored credentials have expired. Run `wifctl login` to log in again.")

        LOGGER.debug(f"[🔑] Refreshing the access token with the {data['grant_type']} grant...")
        timeout = WIFCTL_CONFIGURATION.settings["request_timeout_seconds"]
        try:
            result = requests.post(self.settings["token_url"], data=data, timeout=timeout)
        except RequestException as exc:
            LOGGER.error(f"[💥] Unable to reach the token endpoint while refreshing the access token: {exc}")
            raise TokenRefreshError(f"Failed to get an access token from {self.settings['token_url']}: {exc}") from exc

        if result.status_code != 200:
            LOGGER.error(f"[💥] Invalid response back from the token endpoint while refreshing the access token: {result.status_code}")
            raise TokenRefreshError(f"Failed to get an access token from {self.settings['token_url']}: status {result.status_code}")

        result_json = result.json()
        self.settings["access_token"] = result_json["access_token"]
        if result_json.get("refresh_token"):
            self.settings["refresh_token"] = result_json["refresh_token"]

        save_settings(self.settings)

    def access_token(self) -> str:
        """Returns a valid access token, refreshing it if the stored one has expired."""
        if token_expired(self.settings.get("access_token")):
            self._refresh()
        else:
            LOGGER.debug("[💵] Using the stored access token.")

        return self.settings["access_token"]

    def headers(self) -> Dict[str, str]:
        """The headers for an authenticated request."""
        return {"Authorization": f"Bearer {self.access_token()}", "Accept": "application/json"}


def connect() -> Connection:
    """Makes a connection from the stored login settings."""
    settings = load_settings()
    if not settings:
        raise NotLoggedInError("Not logged in. Run `wifctl login` first.")

    if not armed(settings):
        raise NotLoggedInError("The stored credentials have expired. Run `wifctl login` to log in again.")

    return Connection(settings)


def login(
    token: Optional[str] = None,
    client_id: Optional[str] = None,
    client_secret: Optional[str] = None,
    url: Optional[str] = None,
    token_url: Optional[str] = None,
) -> Connection:
    """
    Logs in with either an offline/refresh token, an access token, or client credentials. Missing URLs and the client ID fall back to the
    defaults in the application configuration. The credentials are checked by getting an access token before they are saved.
    """
    defaults = WIFCTL_CONFIGURATION.settings
    settings = {
        "url": url or defaults["default_api_url"],
        "token_url": token_url or defaults["token_url"],
        "client_id": client_id or defaults["client_id"],
        "client_secret": client_secret,
        "access_token": None,
        "refresh_token": None,
    }

    if token:
        if token_expired(token):
            raise NotLoggedInError("The token that was provided is expired or is not a valid JWT.")

        if is_refresh_token(token):
            settings["refresh_token"] = token
        else:
            settings["access_token"] = token

    elif not client_secret:
        raise NotLoggedInError("Either a token or the client credentials are required to log in.")

    connection = Connection(settings)
    connection.access_token()
    save_settings(connection.settings)
    LOGGER.info(f"[✅] Logged in to {connection.url}")

    return connection
