"""Error taxonomy shared by the services and the HTTP layer.

Services raise these; ``main.py`` turns them into ``{"detail": message}``
responses with the class's status code.
"""


class CopilotError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(CopilotError):
    status_code = 400


class AuthError(CopilotError):
    status_code = 401


class FeatureNotAvailable(CopilotError):
    status_code = 402


class NotFound(CopilotError):
    status_code = 404


class NoSubscription(NotFound):
    def __init__(self, message: str = "No subscription found"):
        super().__init__(message)


class AlreadyExists(CopilotError):
    status_code = 400


class AlreadySubscribed(AlreadyExists):
    def __init__(self, message: str = "User already has an active subscription"):
        super().__init__(message)


class GatewayError(CopilotError):
    """The payment processor rejected or failed a call; message is the processor's."""
    status_code = 500


class GatewayUnavailable(GatewayError):
    """The payment processor could not be reached (network error or timeout)."""


class InvalidSignature(CopilotError):
    status_code = 400
