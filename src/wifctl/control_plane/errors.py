"""Errors raised by the control plane client

:Module: wifctl.control_plane.errors
:Copyright: (c) 2026 by the wifctl authors, see AUTHORS for more info
:License: See the LICENSE file for details
"""


class ControlPlaneError(Exception):
    """Raised if the control plane returns an error response."""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class WifConfigNotFoundError(ControlPlaneError):
    """Raised if no WIF configuration matches the ID or name that was asked for."""


class AmbiguousWifConfigError(ControlPlaneError):
    """Raised if more than one WIF configuration matches the name that was asked for."""


class NotLoggedInError(Exception):
    """Raised if there are no stored credentials, or if they can no longer be used to get an access token."""


class TokenRefreshError(NotLoggedInError):
    """Raised if the OpenID token endpoint rejected the refresh."""


class WifConfigNotConfiguredError(ControlPlaneError):
    """Raised if the control plane's verification of the WIF configuration's cloud resources failed."""
