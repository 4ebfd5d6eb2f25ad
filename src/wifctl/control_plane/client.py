"""The control plane client

A thin `requests` client for the control plane's REST API. Most of it is for the WIF configuration resource in the clusters management
service, plus the generic collection listing and the raw GET/POST passthrough that the CLI exposes.

Collections are paged: every page is fetched (100 items at a time) until the control plane has returned all of them.

:Module: wifctl.control_plane.client
:Copyright: (c) 2026 by the wifctl authors, see AUTHORS for more info
:License: See the LICENSE file for details
"""
import re
from typing import Any, Dict, List, Optional

import requests
from marshmallow import ValidationError
from requests.exceptions import RequestException

from wifctl.control_plane.connection import Connection
from wifctl.control_plane.errors import AmbiguousWifConfigError, ControlPlaneError, WifConfigNotFoundError
from wifctl.utils.configuration import WIFCTL_CONFIGURATION
from wifctl.utils.logging import LOGGER
from wifctl.wif_config.schemas import IDENTIFIER_REGEX

WIF_CONFIGS_PATH = "/api/clusters_mgmt/v1/gcp/wif_configs"
PAGE_SIZE = 100

__all__ = [
    "AmbiguousWifConfigError",
    "ControlPlaneClient",
    "ControlPlaneError",
    "WifConfigNotFoundError",
    "validate_identifier",
]


def validate_identifier(value: str) -> str:
    """Checks that the ID or name is safe to put into a search query. Raises a marshmallow ValidationError if not."""
    if not value or not re.fullmatch(IDENTIFIER_REGEX, value):
        raise ValidationError(f"'{value}' is not a valid identifier. Only letters, digits, and the characters _.:- are allowed.")

    return value


class ControlPlaneClient:
    """Makes authenticated requests to the control plane."""

    def __init__(self, connection: Connection):
        self.connection = connection

    def _request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None, body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if not path.startswith("/"):
            path = "/" + path

        LOGGER.debug(f"[🌐] {method} {path} params={params}")
        try:
            result = requests.request(
                method,
                f"{self.connection.url}{path}",
                headers=self.connection.headers(),
                params=params,
                json=body,
                timeout=WIFCTL_CONFIGURATION.settings["request_timeout_seconds"],
            )
        except RequestException as exc:
            LOGGER.debug(f"[💥] {method} {path} failed: {exc}")
            raise ControlPlaneError(f"{method} {path} failed: {exc}") from exc

        if result.status_code >= 400:
            try:
                reason = result.json().get("reason", result.text)
            except ValueError:
                reason = result.text

            LOGGER.debug(f"[💥] {method} {path} failed with status {result.status_code}: {reason}")
            raise ControlPlaneError(f"{method} {path} failed with status {result.status_code}: {reason}", status_code=result.status_code)

        if result.status_code == 204 or not result.content:
            return {}

        return result.json()

    # Raw passthrough:
    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self._request("GET", path, params=params)

    def post(self, path: str, body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self._request("POST", path, body=body)

    def list_collection(self, path: str, search: Optional[str] = None, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Fetches every page of the collection and returns all the items. Extra query parameters are sent with every page."""
        items = []
        page = 1
        while True:
            page_params = dict(params or {}, page=page, size=PAGE_SIZE)
            if search:
                page_params["search"] = search

            result = self._request("GET", path, params=page_params)
            page_items = result.get("items", [])
            items.extend(page_items)

            if len(page_items) < PAGE_SIZE or len(items) >= result.get("total", len(items)):
                break

            page += 1

        return items

    # WIF configurations:
    def list_wif_configs(self, search: Optional[str] = None) -> List[Dict[str, Any]]:
        return self.list_collection(WIF_CONFIGS_PATH, search=search)

    def get_wif_config(self, wif_config_id: str) -> Dict[str, Any]:
        validate_identifier(wif_config_id)
        try:
            return self._request("GET", f"{WIF_CONFIGS_PATH}/{wif_config_id}")
        except ControlPlaneError as err:
            if err.status_code == 404:
                raise WifConfigNotFoundError(f"WIF configuration with ID '{wif_config_id}' not found", status_code=404) from err
            raise

    def find_wif_config(self, key: str) -> Dict[str, Any]:
        """Finds the WIF configuration by its ID or its display name. Exactly one needs to match."""
        validate_identifier(key)
        matches = self.list_wif_configs(search=f"id = '{key}' or display_name = '{key}'")

        if not matches:
            raise WifConfigNotFoundError(f"WIF configuration with identifier or name '{key}' not found")

        if len(matches) > 1:
            raise AmbiguousWifConfigError(
                f"there are {len(matches)} WIF configurations found with identifier or name '{key}'. Use the ID to pick the right one."
            )

        return matches[0]

    def create_wif_config(self, display_name: str, project_id: str) -> Dict[str, Any]:
        validate_identifier(display_name)
        validate_identifier(project_id)
        body = {"display_name": display_name, "gcp": {"project_id": project_id}}
        return self._request("POST", WIF_CONFIGS_PATH, body=body)

    def update_wif_config(self, wif_config_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        validate_identifier(wif_config_id)
        return self._request("PATCH", f"{WIF_CONFIGS_PATH}/{wif_config_id}", body=body)

    def delete_wif_config(self, wif_config_id: str) -> None:
        validate_identifier(wif_config_id)
        self._request("DELETE", f"{WIF_CONFIGS_PATH}/{wif_config_id}")

    def get_wif_config_status(self, wif_config_id: str) -> Dict[str, Any]:
        """The control plane's own verification of the WIF configuration: {"configured": bool, "description": str}."""
        validate_identifier(wif_config_id)
        result = self._request("GET", f"{WIF_CONFIGS_PATH}/{wif_config_id}/status")
        return {"configured": bool(result.get("configured", False)), "description": result.get("description", "")}
