"""
File: common/errors.py
Domain errors raised by the resource service and the coordinator.

Every error carries the HTTP status code and the client-facing message it
is rendered with. Handlers at the transport edge convert them into a JSON
body of the form {"message": <text>}.
"""


class ErrorMessages:
    """Client-facing texts for every error kind."""
    INTERNAL_ERROR = "Internal server error"
    INVALID_ENDPOINT = "Incorrect endpoint"
    INVALID_METHOD = "Invalid method"
    INVALID_ID = "Invalid user id"
    INVALID_BODY = "Invalid user data"
    ID_NOT_FOUND = "User not found"


class ServiceError(Exception):
    """
    Base class for errors that are recovered at the request boundary.

    Attributes:
        status_code: HTTP status the error is rendered with
        message: Text placed in the response body
    """
    status_code = 500
    message = ErrorMessages.INTERNAL_ERROR

    def __init__(self, detail: str = None):
        self.detail = detail
        super().__init__(detail or self.message)

    def to_dict(self) -> dict:
        return {"message": self.message}


class InvalidEndpoint(ServiceError):
    """Path is not served by this process."""
    status_code = 404
    message = ErrorMessages.INVALID_ENDPOINT


class InvalidMethod(ServiceError):
    """
    Verb is not supported on a recognized path.

    Rendered as 500 rather than 405 to stay compatible with existing
    clients of the service.
    """
    status_code = 500
    message = ErrorMessages.INVALID_METHOD


class InvalidIdentifier(ServiceError):
    """Identifier is not a well-formed UUID."""
    status_code = 400
    message = ErrorMessages.INVALID_ID


class NotFound(ServiceError):
    """Identifier is well-formed but no record matches it."""
    status_code = 404
    message = ErrorMessages.ID_NOT_FOUND


class InvalidBody(ServiceError):
    """Draft is missing a field or has a field of the wrong type."""
    status_code = 400
    message = ErrorMessages.INVALID_BODY


class DispatchError(ServiceError):
    """
    The coordinator could not reach the worker selected for a request.

    Attributes:
        worker_index: Index of the worker that was selected
    """
    status_code = 500
    message = ErrorMessages.INTERNAL_ERROR

    def __init__(self, worker_index: int, detail: str = None):
        self.worker_index = worker_index
        super().__init__(f"Worker {worker_index} unreachable: {detail}" if detail else f"Worker {worker_index} unreachable")
