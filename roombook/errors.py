class BookingError(Exception):
    """Domain error carrying a stable code and the HTTP status it maps to."""

    code = "system_error"
    http_status = 500

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class InvalidInputError(BookingError):
    code = "invalid_input"
    http_status = 400


class AuthFailedError(BookingError):
    code = "auth_failed"
    http_status = 401

    def __init__(self, message: str = "authentication failed"):
        super().__init__(message)


class ConflictError(BookingError):
    code = "conflict"
    http_status = 409


class NotFoundError(BookingError):
    code = "not_found"
    http_status = 404


class HoldExpiredError(BookingError):
    code = "hold_expired"
    http_status = 410


class PolicyViolationError(BookingError):
    code = "policy_violation"
    http_status = 422


class SystemFailureError(BookingError):
    code = "system_error"
    http_status = 500
