"""
Push delivery error taxonomy.

Only ConfigurationError, ValidationError and UserRateLimited ever leave the
dispatch boundary. The rest describe per-message or per-batch outcomes that
are folded into SendResult.errors.
"""


class PushError(Exception):
    pass


class ConfigurationError(PushError):
    """Gateway credential missing. Nothing is sent."""


class ValidationError(PushError, ValueError):
    """Oversized title/body or malformed token, rejected before any network call."""


class UserRateLimited(PushError):
    """The local per-user sliding window is full."""

    def __init__(self, user_id: str):
        super().__init__("Too many notifications. Please try again later.")
        self.user_id = user_id


class TransientGatewayError(PushError):
    """HTTP 429/5xx or a network failure that outlived every attempt."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class PermanentDeviceError(PushError):
    """Gateway says the device is gone (DeviceNotRegistered)."""

    code = "DeviceNotRegistered"


class GatewayRateLimited(PushError):
    """Gateway throttled one message (MessageRateExceeded)."""

    code = "MessageRateExceeded"
