"""Errors raised by the cloud identity clients

:Module: wifctl.gcp.errors
:Copyright: (c) 2026 by the wifctl authors, see AUTHORS for more info
:License: See the LICENSE file for details
"""
from googleapiclient.errors import HttpError


class CloudIdentityError(Exception):
    """Base error for failed calls against the cloud identity APIs."""


class NotFoundError(CloudIdentityError):
    """Raised if the requested cloud resource does not exist."""


class AlreadyExistsError(CloudIdentityError):
    """Raised if the cloud resource that was being created already exists."""


def translate_http_error(err: HttpError, resource: str) -> CloudIdentityError:
    """Maps an HttpError from the Google API client onto the wifctl error types so that callers don't need to inspect status codes."""
    status = int(err.resp.status)
    if status == 404:
        return NotFoundError(f"{resource} was not found")

    if status == 409:
        return AlreadyExistsError(f"{resource} already exists")

    return CloudIdentityError(f"request for {resource} failed with status {status}: {err}")
