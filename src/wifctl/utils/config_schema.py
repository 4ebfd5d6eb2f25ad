"""wifctl's configuration schema

This defines a basic Marshmallow schema for the wifctl configuration. This will ensure that the base configuration file
has the correct components on it.

:Module: wifctl.utils.config_schema
:Copyright: (c) 2026 by the wifctl authors, see AUTHORS for more info
:License: See the LICENSE file for details
"""
from typing import Any, Dict

from marshmallow import Schema, fields, INCLUDE, validate, validates_schema, ValidationError


class WifctlSchema(Schema):
    """This is the main schema for wifctl itself."""

    # The control plane API gateway and the OpenID token endpoint used when the user didn't log in with explicit URLs:
    default_api_url = fields.Url(required=True, schemes={"https", "http"}, require_tld=False, data_key="DefaultApiUrl")
    token_url = fields.Url(required=True, schemes={"https", "http"}, require_tld=False, data_key="TokenUrl")
    client_id = fields.String(required=False, load_default="wifctl", data_key="ClientId")

    # HTTP timeout for every control plane request:
    request_timeout_seconds = fields.Integer(required=False, load_default=30, validate=validate.Range(min=1), data_key="RequestTimeoutSeconds")

    # The IAM API is eventually consistent. This is the total time budget for retrying a reconciliation step, and the delay between attempts:
    iam_api_retry_seconds = fields.Integer(required=False, load_default=180, validate=validate.Range(min=0), data_key="IamApiRetrySeconds")
    retry_delay_seconds = fields.Float(required=False, load_default=2.0, validate=validate.Range(min=0), data_key="RetryDelaySeconds")

    # Log Level:
    log_level = fields.String(
        required=False, load_default="INFO", validate=validate.OneOf({"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "NOTSET"}), data_key="LogLevel"
    )
    # Dictionary to override log levels for 3rd party loggers. This is the name of the log and the level.
    third_party_logger_levels = fields.Dict(required=False, data_key="ThirdPartyLoggerLevels")

    @validates_schema()
    def verify_schema(self, data: Dict[str, Any], **kwargs) -> None:  # pylint: disable=unused-argument  # noqa
        """
        This validates that the schema is correct. At present, this is going to validate:
        1. That the retry delay is not longer than the entire retry budget.
        """
        if data.get("retry_delay_seconds", 0) > data.get("iam_api_retry_seconds", 0) > 0:
            raise ValidationError({"RetryDelaySeconds": ["The retry delay can't be longer than IamApiRetrySeconds."]})


class BaseConfigurationSchema(Schema):
    """The base configuration Schema for wifctl"""

    # Required fields:
    wifctl = fields.Nested(WifctlSchema, required=True, data_key="WIFCTL")

    class Meta:
        """Meta properties on the Schema used by Marshmallow"""

        unknown = INCLUDE  # It's totally OK and normal if we get values that are not in this schema -- we only care that we got the required values
