"""Pulse error hierarchy.

Each error carries a stable `code` and the HTTP status the routes map it to.
"""


class PulseError(Exception):
    code = "internal"
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def to_detail(self) -> dict:
        return {"code": self.code, "error": self.message}


class InvalidArgumentError(PulseError):
    code = "invalid-argument"
    status_code = 400


class NotFoundError(PulseError):
    code = "not-found"
    status_code = 404


class UnauthenticatedError(PulseError):
    code = "unauthenticated"
    status_code = 401


class InternalError(PulseError):
    code = "internal"
    status_code = 500


class MalformedBriefError(InternalError):
    """A brief document does not match the expected shape."""

    def __init__(self, date_key: str, reason: str):
        super().__init__(f"Malformed brief {date_key}: {reason}")
        self.date_key = date_key
        self.reason = reason
