"""
Errors raised by blog_platform domain methods.

Each error carries the HTTP status and a short machine-readable code so
API views can render it as ``{"error": ..., "code": ...}`` without
inspecting the type.
"""


class BlogPlatformError(Exception):
    """Base class for errors surfaced directly to API callers."""

    status_code = 400
    code = "error"
    default_message = "Request failed"

    def __init__(self, message=None, code=None, status_code=None):
        self.message = message or self.default_message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def as_dict(self):
        return {"error": self.message, "code": self.code}


class InvalidRequest(BlogPlatformError):
    status_code = 400
    code = "invalid"
    default_message = "Invalid request"


class NotAuthenticated(BlogPlatformError):
    status_code = 401
    code = "unauthorized"
    default_message = "Unauthorized"


class Forbidden(BlogPlatformError):
    status_code = 403
    code = "forbidden"
    default_message = "Forbidden"


class NotFound(BlogPlatformError):
    status_code = 404
    code = "not_found"
    default_message = "Not found"


class Conflict(BlogPlatformError):
    """State conflict, e.g. re-sending a newsletter or a duplicate like."""

    status_code = 400
    code = "conflict"
    default_message = "Conflict"


# Comment rules

class MaxDepthExceeded(InvalidRequest):
    code = "max_depth"
    default_message = "Cannot reply to a reply. Maximum nesting depth is 2."


class EditWindowExpired(Forbidden):
    code = "edit_window_expired"
    default_message = "Comments can only be edited within 15 minutes of posting"


class NotCommentAuthor(Forbidden):
    code = "not_author"
    default_message = "You can only edit your own comments"


# Newsletter rules

class NewsletterAlreadySent(Conflict):
    code = "already_sent"
    default_message = "Newsletter has already been sent"


class NoRecipients(InvalidRequest):
    code = "no_recipients"
    default_message = "No verified subscribers to send to"


class ValidationFailed(InvalidRequest):
    """Form validation errors, reported per field."""

    code = "validation_failed"
    default_message = "Invalid data"

    def __init__(self, details, message=None):
        self.details = details
        super().__init__(message)

    def as_dict(self):
        data = super().as_dict()
        data["details"] = self.details
        return data
