"""Domain exceptions.

Every failure the engine reports carries a stable ``code`` and the HTTP
status it maps to at the API boundary. None of them are fatal to the
process.
"""


class SprintdeskError(Exception):
    """Base exception for engine errors."""

    http_status = 500

    def __init__(self, message: str, code: str = "SPRINTDESK_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class UnauthenticatedError(SprintdeskError):
    """No valid principal on the request."""

    http_status = 401

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message, code="UNAUTHENTICATED")


class ForbiddenError(SprintdeskError):
    """Authenticated, but not owner/admin for the action."""

    http_status = 403

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message, code="FORBIDDEN")


class NotFoundError(SprintdeskError):
    """Referenced entity does not exist."""

    http_status = 404

    def __init__(self, resource: str, resource_id: object | None = None):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} not found", code="NOT_FOUND")


class ValidationError(SprintdeskError):
    """Malformed input, or a precondition the operation cannot satisfy."""

    http_status = 400

    def __init__(self, message: str, code: str = "VALIDATION_ERROR"):
        super().__init__(message, code=code)


class NoHeirAdminError(ValidationError):
    """Deleting the user would leave their content without a living admin owner."""

    def __init__(self):
        super().__init__(
            "Cannot delete user: no heir admin available to take ownership",
            code="NO_HEIR_ADMIN",
        )


class ConflictError(SprintdeskError):
    """Uniqueness or state conflict (duplicate key, pending invite, ...)."""

    http_status = 409

    def __init__(self, message: str):
        super().__init__(message, code="CONFLICT")


class InternalError(SprintdeskError):
    """Storage or unexpected failure."""

    http_status = 500

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message, code="INTERNAL_ERROR")
