from __future__ import annotations

from django.core.exceptions import PermissionDenied

# Identical for missing forms and forms the requester cannot see, so the
# response never reveals whether a form exists.
FORM_UNAVAILABLE_MESSAGE = "This form does not exist or is not accessible."
FORM_EXPIRED_MESSAGE = "This form has expired and is no longer taking answers."


class FormUnavailable(PermissionDenied):
    def __init__(self):
        super().__init__(FORM_UNAVAILABLE_MESSAGE)


class FormExpired(PermissionDenied):
    def __init__(self):
        super().__init__(FORM_EXPIRED_MESSAGE)


class FormConflict(Exception):
    """A write lost against an existing row (duplicate submission, share, hash)."""


class AnswerValidationError(Exception):
    def __init__(self, message: str, question_id: int | None = None):
        super().__init__(message)
        self.message = message
        self.question_id = question_id
