"""
Error types raised by the Convo core and translated to JSON by the views.

Every error carries the HTTP status the API layer answers with, so a
handler can simply let it propagate out of the view.
"""


class ConvoError(Exception):
    status = 500
    default_message = "An unexpected error occurred"

    def __init__(self, message=None, status=None):
        self.message = message or self.default_message
        if status is not None:
            self.status = status
        super().__init__(self.message)


class BadRequest(ConvoError):
    status = 400
    default_message = "Bad request"


class Unauthorized(ConvoError):
    status = 401
    default_message = "Unauthorized"


class NotFound(ConvoError):
    status = 404
    default_message = "The requested resource was not found"


class InvalidState(ConvoError):
    status = 409
    default_message = "The operation is not allowed in the current state"


class NothingToDigest(ConvoError):
    """A container has no unread messages for the user. Never surfaced."""

    status = 204
    default_message = "Nothing to digest"


class DeliveryFailure(ConvoError):
    status = 502
    default_message = "Could not deliver the email"


class TransactionFailure(ConvoError):
    status = 500
    default_message = "The transaction could not be completed"
