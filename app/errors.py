"""
Integration error taxonomy

Every failure raised by the calendar and billing services derives from
IntegrationError. The HTTP layer renders them as {"error": message} with the
attached status code; messages are client-safe and never carry provider or
database error text.
"""


class IntegrationError(Exception):
    """Base class for failures surfaced to API callers"""

    status_code = 500
    message = "Internal server error"

    def __init__(self, message=None):
        super().__init__(message or self.message)
        if message:
            self.message = message


class Unauthorized(IntegrationError):
    status_code = 401
    message = "Unauthorized"


class InvalidRequest(IntegrationError):
    status_code = 400
    message = "Invalid request"


class InvalidSignature(IntegrationError):
    status_code = 400
    message = "Invalid signature"


class ProfileNotFound(IntegrationError):
    status_code = 404
    message = "Profile not found"


class NoSubscription(IntegrationError):
    status_code = 400
    message = "No subscription found"


class OAuthExchangeFailed(IntegrationError):
    message = "Failed to connect calendar"


class PersistenceFailed(IntegrationError):
    message = "Failed to save changes"


class StoreUnavailable(IntegrationError):
    message = "Storage temporarily unavailable"


class ProviderUnavailable(IntegrationError):
    message = "Billing provider request failed"


class ConfigurationError(IntegrationError):
    message = "Server misconfigured"
