"""
Application error taxonomy.

The ``code`` of each error reaches GraphQL clients as ``extensions.code``
so they can branch on it (e.g. redirect to login on UNAUTHENTICATED).
Anything that is not a ``ServiceError`` is reported as INTERNAL with a
generic message.
"""


class ServiceError(Exception):
    code = "INTERNAL"
    default_message = "Internal server error"

    def __init__(self, message: str = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        # graphql-core copies a dict ``extensions`` attribute from the original error
        self.extensions = {"code": self.code}


class Unauthenticated(ServiceError):
    code = "UNAUTHENTICATED"
    default_message = "You must be logged in to perform this action"


class Forbidden(ServiceError):
    code = "FORBIDDEN"
    default_message = "You do not have permission to perform this action"


class NotFound(ServiceError):
    code = "NOT_FOUND"
    default_message = "Not found"


class BadUserInput(ServiceError):
    code = "BAD_USER_INPUT"
    default_message = "Invalid input"
