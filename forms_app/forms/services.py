"""
Form management operations used by the API.

Every lookup of a form by id or hash goes through get_accessible_form() or
find_form_by_public_hash() so missing and forbidden forms raise the same
FormUnavailable error. Multi-row writes run inside transaction.atomic().
"""

from __future__ import annotations

import logging
from typing import Any

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Max, Q

from .activity import publish_new_share
from .directory import Directory, get_directory
from .exceptions import FormConflict, FormUnavailable
from .models import (
    Form,
    Option,
    Question,
    Share,
    Submission,
    generate_hash,
)
from .permissions import (
    PERMISSION_EDIT,
    PERMISSION_RESULTS,
    FormAccess,
    applies_submit_once,
    is_shared_form_shown,
    require_permission,
    resolve_access,
)

logger = logging.getLogger(__name__)

HASH_ATTEMPTS = 10


def has_submitted(user, form: Form) -> bool:
    if not user.is_authenticated:
        return False
    return Submission.objects.filter(form=form, user=user).exists()


def get_form_access(
    user,
    form: Form,
    link_hash: str | None = None,
    directory: Directory | None = None,
) -> FormAccess:
    directory = directory or get_directory()
    shares = list(form.shares.all())
    submitted = applies_submit_once(user, form) and has_submitted(user, form)
    return resolve_access(
        user, form, shares, directory, link_hash=link_hash, has_submitted=submitted
    )


def get_accessible_form(
    user,
    form_id: int,
    permission: str,
    link_hash: str | None = None,
    directory: Directory | None = None,
) -> tuple[Form, FormAccess]:
    try:
        form = Form.objects.select_related("owner").get(pk=form_id)
    except Form.DoesNotExist:
        raise FormUnavailable()
    access = get_form_access(user, form, link_hash=link_hash, directory=directory)
    require_permission(access, permission)
    return form, access


def find_form_by_public_hash(public_hash: str) -> tuple[Form, str | None]:
    """Look a form up by its own hash or by one of its link share hashes.

    Returns the form and the link hash to present to the resolver (None when
    the form hash itself was used).
    """
    form = Form.objects.select_related("owner").filter(hash=public_hash).first()
    if form is not None:
        return form, None
    share = (
        Share.objects.select_related("form__owner")
        .filter(share_type=Share.Type.LINK, share_with=public_hash)
        .first()
    )
    if share is None:
        raise FormUnavailable()
    return share.form, public_hash


def list_owned_forms(user, directory: Directory | None = None):
    directory = directory or get_directory()
    forms = Form.objects.filter(owner=user).prefetch_related("shares")
    return [(form, get_form_access(user, form, directory=directory)) for form in forms]


def list_shared_forms(user, directory: Directory | None = None):
    directory = directory or get_directory()
    candidates = (
        Form.objects.exclude(owner=user)
        .filter(
            Q(show_to_all_users=True)
            | Q(shares__share_type__in=[Share.Type.USER, Share.Type.GROUP])
        )
        .distinct()
        .prefetch_related("shares")
    )
    shared = []
    for form in candidates:
        shares = list(form.shares.all())
        if is_shared_form_shown(user, form, shares, directory):
            shared.append((form, get_form_access(user, form, directory=directory)))
    return shared


def _unique_form_hash() -> str:
    for _ in range(HASH_ATTEMPTS):
        candidate = generate_hash(getattr(settings, "FORMS_HASH_LENGTH", 16))
        if not Form.objects.filter(hash=candidate).exists():
            return candidate
    raise FormConflict("Could not generate a unique form hash.")


def create_form(owner) -> Form:
    try:
        form = Form.objects.create(hash=_unique_form_hash(), owner=owner)
    except IntegrityError:
        raise FormConflict("Could not generate a unique form hash.")
    logger.info("Form %s created by %s", form.hash, owner.get_username())
    return form


def clone_form(form: Form, owner) -> Form:
    """Copy a form with its questions and options. Shares and submissions stay behind."""
    with transaction.atomic():
        clone = Form.objects.create(
            hash=_unique_form_hash(),
            title=f"{form.title} - Copy",
            description=form.description,
            owner=owner,
            permit_all_users=form.permit_all_users,
            show_to_all_users=form.show_to_all_users,
            is_anonymous=form.is_anonymous,
            submit_once=form.submit_once,
        )
        for question in form.questions.prefetch_related("options"):
            new_question = Question.objects.create(
                form=clone,
                order=question.order,
                type=question.type,
                text=question.text,
                is_required=question.is_required,
            )
            Option.objects.bulk_create(
                [
                    Option(question=new_question, text=option.text)
                    for option in question.options.all()
                ]
            )
    logger.info("Form %s cloned to %s", form.hash, clone.hash)
    return clone


# API keys accepted by update_form and the model fields they map to
FORM_UPDATE_FIELDS = {
    "title": "title",
    "description": "description",
    "expires": "expires",
    "isAnonymous": "is_anonymous",
    "submitOnce": "submit_once",
}


def update_form(form: Form, changes: dict[str, Any]) -> Form:
    update_fields = []
    for key, field_name in FORM_UPDATE_FIELDS.items():
        if key in changes:
            setattr(form, field_name, changes[key])
            update_fields.append(field_name)
    access = changes.get("access")
    if access is not None:
        if "permitAllUsers" in access:
            form.permit_all_users = access["permitAllUsers"]
            update_fields.append("permit_all_users")
        if "showToAllUsers" in access:
            form.show_to_all_users = access["showToAllUsers"]
            update_fields.append("show_to_all_users")
    if update_fields:
        form.save(update_fields=update_fields)
    return form


def delete_form(form: Form) -> None:
    """Delete a form and every question, option, share and submission under it."""
    form_hash = form.hash
    with transaction.atomic():
        form.delete()
    logger.info("Form %s deleted", form_hash)


# Questions


def get_editable_question(user, question_id: int) -> Question:
    question = Question.objects.select_related("form").get(pk=question_id)
    require_permission(get_form_access(user, question.form), PERMISSION_EDIT)
    return question


def create_question(form: Form, question_type: str, text: str = "") -> Question:
    try:
        with transaction.atomic():
            last = form.questions.aggregate(last=Max("order"))["last"] or 0
            return Question.objects.create(
                form=form, order=last + 1, type=question_type, text=text
            )
    except IntegrityError:
        raise FormConflict("The question order changed concurrently, retry.")


QUESTION_UPDATE_FIELDS = {
    "text": "text",
    "type": "type",
    "isRequired": "is_required",
}


def update_question(question: Question, changes: dict[str, Any]) -> Question:
    update_fields = []
    for key, field_name in QUESTION_UPDATE_FIELDS.items():
        if key in changes:
            setattr(question, field_name, changes[key])
            update_fields.append(field_name)
    if update_fields:
        question.save(update_fields=update_fields)
    return question


def reorder_questions(form: Form, new_order: list[int]) -> dict[int, int]:
    """Apply a complete new question order. Returns question id -> order."""
    questions = {question.id: question for question in form.questions.all()}
    if len(new_order) != len(set(new_order)) or set(new_order) != set(questions):
        raise ValueError("The new order must list every question of the form once.")
    with transaction.atomic():
        # Park every row on a free negative slot first so no intermediate
        # state violates the unique (form, order) constraint.
        for index, question_id in enumerate(new_order):
            Question.objects.filter(pk=question_id).update(order=-(index + 1))
        for index, question_id in enumerate(new_order):
            Question.objects.filter(pk=question_id).update(order=index + 1)
    return {question_id: index + 1 for index, question_id in enumerate(new_order)}


def delete_question(question: Question) -> None:
    with transaction.atomic():
        form = question.form
        removed_order = question.order
        question.delete()
        # Close the gap; ascending so each row moves into a freed slot
        for following in form.questions.filter(order__gt=removed_order).order_by(
            "order"
        ):
            following.order -= 1
            following.save(update_fields=["order"])


# Options


def get_editable_option(user, option_id: int) -> Option:
    option = Option.objects.select_related("question__form").get(pk=option_id)
    require_permission(get_form_access(user, option.question.form), PERMISSION_EDIT)
    return option


def create_option(question: Question, text: str) -> Option:
    return Option.objects.create(question=question, text=text)


def update_option(option: Option, text: str) -> Option:
    option.text = text
    option.save(update_fields=["text"])
    return option


def delete_option(option: Option) -> None:
    option.delete()


# Shares


def _unique_link_hash() -> str:
    length = getattr(settings, "FORMS_LINK_HASH_LENGTH", 24)
    for _ in range(HASH_ATTEMPTS):
        candidate = generate_hash(length)
        if not Share.objects.filter(
            share_type=Share.Type.LINK, share_with=candidate
        ).exists():
            return candidate
    raise FormConflict("Could not generate a unique link hash.")


def create_share(
    form: Form,
    share_type: int,
    share_with: str,
    actor,
    directory: Directory | None = None,
) -> Share:
    directory = directory or get_directory()
    if share_type == Share.Type.LINK:
        share_with = _unique_link_hash()
    elif not directory.display_name(share_type, share_with):
        raise ValueError(f"Cannot share with unknown user or group '{share_with}'.")
    with transaction.atomic():
        try:
            with transaction.atomic():
                share = Share.objects.create(
                    form=form, share_type=share_type, share_with=share_with
                )
        except IntegrityError:
            raise FormConflict("This form is already shared with this recipient.")
        publish_new_share(form, share, actor)
    return share


def get_editable_share(user, share_id: int) -> Share:
    share = Share.objects.select_related("form").get(pk=share_id)
    require_permission(get_form_access(user, share.form), PERMISSION_EDIT)
    return share


def delete_share(share: Share) -> None:
    share.delete()
    logger.info("Share %s removed from form %s", share.share_with, share.form.hash)


# Submissions


def get_results_submission(user, submission_id: int) -> Submission:
    submission = Submission.objects.select_related("form").get(pk=submission_id)
    require_permission(get_form_access(user, submission.form), PERMISSION_RESULTS)
    return submission


def delete_submission(submission: Submission) -> None:
    submission.delete()


def delete_all_submissions(form: Form) -> int:
    with transaction.atomic():
        _, deleted = Submission.objects.filter(form=form).delete()
    count = deleted.get(Submission._meta.label, 0)
    logger.info("Removed %s submissions of form %s", count, form.hash)
    return count


def submissions_with_answers(form: Form):
    return (
        Submission.objects.filter(form=form)
        .select_related("user")
        .prefetch_related("answers")
    )
