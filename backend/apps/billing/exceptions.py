"""Billing-specific exceptions."""


class BillingError(Exception):
    """Base exception for billing errors."""

    pass


class RemoteProviderError(BillingError):
    """A payment provider API call failed (network, validation, rate limit)."""

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.code = code


class InvalidUsageLimitError(BillingError):
    """A usage limit update was rejected; the message is safe to show users."""

    pass
