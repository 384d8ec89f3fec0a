"""
Domain failures raised by the connection and message stores.

Every class carries the HTTP status and machine code the API renders, so
routers can let them propagate to the app-level exception handler.
"""


class ConnectError(Exception):
    status_code = 400
    code = "error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message()
        super().__init__(self.message)

    @classmethod
    def default_message(cls) -> str:
        return cls.__name__

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


class InvalidRequest(ConnectError):
    status_code = 400
    code = "invalid_request"


class DuplicateActive(ConnectError):
    status_code = 409
    code = "duplicate_active"


class NotFound(ConnectError):
    status_code = 404
    code = "not_found"


class NotAuthorized(ConnectError):
    status_code = 403
    code = "not_authorized"


class InvalidTransition(ConnectError):
    status_code = 400
    code = "invalid_transition"


class NotConnected(ConnectError):
    status_code = 403
    code = "not_connected"


class NotAParty(ConnectError):
    status_code = 403
    code = "not_a_party"


class EmptyContent(ConnectError):
    status_code = 400
    code = "empty_content"
