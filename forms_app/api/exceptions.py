from django.core.exceptions import ObjectDoesNotExist
from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from forms_app.forms.exceptions import (
    FORM_UNAVAILABLE_MESSAGE,
    AnswerValidationError,
    FormConflict,
    FormExpired,
    FormUnavailable,
)
from forms_app.forms.models import Form


class Conflict(exceptions.APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "The request conflicts with existing data."
    default_code = "conflict"


def forms_exception_handler(exc, context):
    """Map forms domain errors onto DRF responses.

    Missing forms are reported exactly like forbidden ones.
    """
    if isinstance(exc, (FormUnavailable, Form.DoesNotExist)):
        exc = exceptions.PermissionDenied(FORM_UNAVAILABLE_MESSAGE)
    elif isinstance(exc, FormExpired):
        exc = exceptions.PermissionDenied(str(exc))
    elif isinstance(exc, FormConflict):
        exc = Conflict(str(exc))
    elif isinstance(exc, AnswerValidationError):
        return Response(
            {"message": exc.message, "questionId": exc.question_id},
            status=status.HTTP_400_BAD_REQUEST,
        )
    elif isinstance(exc, ObjectDoesNotExist):
        exc = exceptions.NotFound(str(exc) or None)
    return exception_handler(exc, context)
