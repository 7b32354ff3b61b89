"""Domain exceptions shared by services and the API layer.

Services raise these; ``curabot.api.app`` maps each class to an HTTP status
and renders ``{"error": message}``.
"""


class CurabotError(Exception):
    """Base class for all CuraBot domain errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(CurabotError):
    """A required field is missing or a value is not allowed."""

    status_code = 400


class AuthenticationFailed(CurabotError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class NotFoundError(CurabotError):
    """The row does not exist or belongs to another owner."""

    status_code = 404


class DataIntegrityError(CurabotError):
    """A stored row is missing a field that must always be present."""

    status_code = 500


class UpstreamError(CurabotError):
    """An external service (automation, voice agent, payments) failed."""

    status_code = 502

    def __init__(self, message: str, detail: str = ""):
        super().__init__(message)
        self.detail = detail
