"""
PayPal Error Types

Failures raised while talking to PayPal or while processing its webhook
notifications. The webhook endpoint catches every one of them at its
boundary; see api/webhooks.py for the response each one maps to.
"""


class PayPalError(Exception):
    """Base class for PayPal related failures."""


class PayPalApiError(PayPalError):
    """A call to the PayPal REST API failed or returned an unusable response."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class MalformedPayload(PayPalError):
    """The webhook body could not be parsed into a notification."""


class VerificationError(PayPalError):
    """The webhook signature could not be verified."""


class OrderNotFound(PayPalError):
    """The notification does not correlate to a stored order."""

    def __init__(self, correlation_id: str | None):
        super().__init__(f"No order for correlation id {correlation_id!r}")
        self.correlation_id = correlation_id


class UnsupportedResourceType(PayPalError):
    """The notification carries a resource type this service never handles."""

    def __init__(self, resource_type: str | None):
        super().__init__(f"Cannot process resource type {resource_type!r}")
        self.resource_type = resource_type
