"""
Submission pipeline: validate a set of answers against a form's questions and
store them as one Submission.

Validation runs in a fixed order: submit permission and expiry, required
questions, per-type value checks, then the submit-once rule. The pre-check
for submit-once is advisory; the conditional unique constraint on
Submission is what actually stops a concurrent duplicate.
"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Iterable, Mapping, Sequence

from django.db import IntegrityError, transaction

from .activity import publish_new_submission
from .directory import Directory, get_directory
from .exceptions import (
    AnswerValidationError,
    FormConflict,
    FormExpired,
    FormUnavailable,
)
from .models import Answer, Form, Question, Submission, current_timestamp
from .permissions import (
    PERMISSION_SUBMIT,
    applies_submit_once,
    get_permissions,
    has_expired,
)

logger = logging.getLogger(__name__)

# Accepted answer formats per temporal question type, stored as parsed
TEMPORAL_FORMATS = {
    Question.Types.DATE: ("%Y-%m-%d",),
    Question.Types.DATETIME: ("%Y-%m-%d %H:%M", "%Y-%m-%d %H:%M:%S"),
}
TEMPORAL_HINTS = {
    "%Y-%m-%d": "YYYY-MM-DD",
    "%Y-%m-%d %H:%M": "YYYY-MM-DD HH:MM",
    "%Y-%m-%d %H:%M:%S": "YYYY-MM-DD HH:MM:SS",
}


def _parse_question_id(key) -> int:
    try:
        return int(key)
    except (TypeError, ValueError):
        raise AnswerValidationError(f"'{key}' is not a valid question id.")


def _non_empty(values: Iterable) -> list[str]:
    cleaned = []
    for value in values:
        if value is None:
            continue
        value = str(value)
        if value.strip():
            cleaned.append(value)
    return cleaned


def _option_texts(question: Question, values: Sequence[str]) -> list[str]:
    options = {option.id: option for option in question.options.all()}
    if question.type in Question.SINGLE_CHOICE_TYPES and len(values) > 1:
        raise AnswerValidationError(
            "Only one option can be selected for this question.", question.id
        )
    selected = []
    for value in values:
        try:
            option = options.get(int(value))
        except ValueError:
            option = None
        if option is None:
            raise AnswerValidationError(
                f"'{value}' is not an option of this question.", question.id
            )
        if option in selected:
            raise AnswerValidationError(
                "An option can only be selected once.", question.id
            )
        selected.append(option)
    return [option.text for option in selected]


def _temporal_value(question: Question, value: str) -> str:
    """Parse a date or datetime answer and return it in its canonical form."""
    value = value.strip()
    formats = TEMPORAL_FORMATS[question.type]
    for fmt in formats:
        try:
            return datetime.strptime(value, fmt).strftime(fmt)
        except ValueError:
            continue
    expected = " or ".join(TEMPORAL_HINTS[fmt] for fmt in formats)
    raise AnswerValidationError(
        f"'{value}' is not a valid {question.type}, expected {expected}.",
        question.id,
    )


def answer_texts(question: Question, values: Sequence[str]) -> list[str]:
    """Check the values given for one question and return the texts to store."""
    if question.is_choice:
        return _option_texts(question, values)
    if len(values) > 1:
        raise AnswerValidationError(
            "Only one answer is accepted for this question.", question.id
        )
    if question.type in (Question.Types.DATE, Question.Types.DATETIME):
        return [_temporal_value(question, values[0])]
    return list(values)


def validate_answers(
    questions: Iterable[Question], answers: Mapping[str, Sequence]
) -> dict[int, list[str]]:
    """Validate raw answers keyed by question id against the form's questions.

    Returns question id -> answer texts for every answered question.
    """
    by_id = {question.id: question for question in questions}
    given: dict[int, list[str]] = {}
    for key, values in answers.items():
        question_id = _parse_question_id(key)
        if question_id not in by_id:
            raise AnswerValidationError(
                "This question does not belong to the form.", question_id
            )
        if isinstance(values, (str, int)):
            values = [values]
        given[question_id] = _non_empty(values)

    # Required questions first, in display order, so the first offending
    # question is the one reported.
    for question in by_id.values():
        if question.is_required and not given.get(question.id):
            raise AnswerValidationError("This question is required.", question.id)

    texts = {}
    for question in by_id.values():
        values = given.get(question.id)
        if values:
            texts[question.id] = answer_texts(question, values)
    return texts


def submit_answers(
    user,
    form: Form,
    answers: Mapping[str, Sequence],
    link_hash: str | None = None,
    directory: Directory | None = None,
) -> Submission:
    directory = directory or get_directory()
    permissions = get_permissions(
        user, form, list(form.shares.all()), directory, link_hash=link_hash
    )
    if PERMISSION_SUBMIT not in permissions:
        raise FormUnavailable()
    if has_expired(form):
        raise FormExpired()

    questions = list(form.questions.prefetch_related("options"))
    texts = validate_answers(questions, answers)

    once = applies_submit_once(user, form)
    if once and Submission.objects.filter(form=form, user=user).exists():
        raise FormConflict("You have already submitted this form.")

    # Anonymous forms never store who answered
    submitter = user if user.is_authenticated and not form.is_anonymous else None
    try:
        with transaction.atomic():
            submission = Submission.objects.create(
                form=form,
                user=submitter,
                submitted=current_timestamp(),
                enforce_once=once,
            )
            Answer.objects.bulk_create(
                [
                    Answer(submission=submission, question_id=question_id, text=text)
                    for question_id, values in texts.items()
                    for text in values
                ]
            )
            publish_new_submission(form, submission)
    except IntegrityError:
        logger.warning(
            "Duplicate submission for form %s by %s rejected",
            form.hash,
            user.get_username(),
        )
        raise FormConflict("You have already submitted this form.")

    logger.info("Submission %s stored for form %s", submission.id, form.hash)
    return submission
