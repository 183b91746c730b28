"""Domain errors raised by the service layer.

Each error carries the HTTP status it maps to; ``app.py`` registers a single
handler that renders them into the ``{"success": false, "error": ...}``
envelope.
"""


class PublicCareError(Exception):
    status_code = 500
    message = "Server Error"

    def __init__(self, message: str = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class NotFound(PublicCareError):
    status_code = 404
    message = "Resource not found"


class InvalidQuery(PublicCareError):
    status_code = 400
    message = "Invalid query parameters"


class NoDepartmentForCategory(PublicCareError):
    status_code = 400
    message = "No department found for this category"


class InvalidAssignee(PublicCareError):
    status_code = 400
    message = "Can only assign to service providers"


class ComplaintNotResolved(PublicCareError):
    status_code = 400
    message = "Can only rate resolved complaints"


class DuplicateRecord(PublicCareError):
    status_code = 400
    message = "Duplicate field value entered"


class NotAuthenticated(PublicCareError):
    status_code = 401
    message = "Not authorized to access this route"


class Forbidden(PublicCareError):
    status_code = 403
    message = "Not authorized to access this resource"
