from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from django.conf import settings

from .directory import Directory
from .exceptions import FormUnavailable
from .models import Form, Share, current_timestamp

PERMISSION_EDIT = "edit"
PERMISSION_RESULTS = "results"
PERMISSION_SUBMIT = "submit"
PERMISSION_ALL = [PERMISSION_EDIT, PERMISSION_RESULTS, PERMISSION_SUBMIT]


@dataclass(frozen=True)
class FormAccess:
    permissions: list[str] = field(default_factory=list)
    can_submit: bool = False

    def has(self, permission: str) -> bool:
        return permission in self.permissions


def is_owner(user, form: Form) -> bool:
    if not user.is_authenticated:
        return False
    return form.owner_id == getattr(user, "id", None)


def has_expired(form: Form, now: int | None = None) -> bool:
    if not form.expires:
        return False
    if now is None:
        now = current_timestamp()
    return form.expires <= now


def permit_all_allowed() -> bool:
    return getattr(settings, "FORMS_ALLOW_PERMIT_ALL", True)


def is_shared_to_user(user, shares: Iterable[Share], directory: Directory) -> bool:
    """True when a user share names the user or a group share contains them."""
    if not user.is_authenticated:
        return False
    username = user.get_username()
    for share in shares:
        if share.share_type == Share.Type.USER and share.share_with == username:
            return True
        if share.share_type == Share.Type.GROUP and directory.is_member(
            username, share.share_with
        ):
            return True
    return False


def has_link_access(shares: Iterable[Share], link_hash: str | None) -> bool:
    if not link_hash:
        return False
    return any(
        share.share_type == Share.Type.LINK and share.share_with == link_hash
        for share in shares
    )


def get_permissions(
    user,
    form: Form,
    shares: Iterable[Share],
    directory: Directory,
    link_hash: str | None = None,
) -> list[str]:
    shares = list(shares)
    # Owner is allowed to do everything
    if is_owner(user, form):
        return list(PERMISSION_ALL)
    if user.is_authenticated:
        if permit_all_allowed() and (form.permit_all_users or form.show_to_all_users):
            return [PERMISSION_SUBMIT]
        if is_shared_to_user(user, shares, directory):
            return [PERMISSION_SUBMIT]
    # Link holders only ever get to submit, authenticated or not
    if has_link_access(shares, link_hash):
        return [PERMISSION_SUBMIT]
    return []


def applies_submit_once(user, form: Form) -> bool:
    """Whether a submission by this user counts against the submit-once limit.

    Owners are never limited, and anonymous forms do not record who answered.
    """
    if not form.submit_once or form.is_anonymous:
        return False
    if not user.is_authenticated:
        return False
    return not is_owner(user, form)


def can_submit(
    user,
    form: Form,
    permissions: list[str],
    has_submitted: bool = False,
    now: int | None = None,
) -> bool:
    if PERMISSION_SUBMIT not in permissions:
        return False
    if has_expired(form, now):
        return False
    if applies_submit_once(user, form) and has_submitted:
        return False
    return True


def resolve_access(
    user,
    form: Form,
    shares: Iterable[Share],
    directory: Directory,
    link_hash: str | None = None,
    has_submitted: bool = False,
    now: int | None = None,
) -> FormAccess:
    permissions = get_permissions(user, form, shares, directory, link_hash=link_hash)
    return FormAccess(
        permissions=permissions,
        can_submit=can_submit(user, form, permissions, has_submitted, now),
    )


def is_shared_form_shown(
    user,
    form: Form,
    shares: Iterable[Share],
    directory: Directory,
    now: int | None = None,
) -> bool:
    """Decide whether a form belongs in the user's 'shared with you' list."""
    if not user.is_authenticated:
        return False
    # Owned forms are listed separately
    if is_owner(user, form):
        return False
    if has_expired(form, now):
        return False
    if permit_all_allowed() and form.show_to_all_users:
        return True
    return is_shared_to_user(user, shares, directory)


def require_permission(access: FormAccess, permission: str) -> None:
    if not access.has(permission):
        raise FormUnavailable()
