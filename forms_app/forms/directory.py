"""
User and group directory used by the access resolver.

Group shares need a membership lookup and shares carry a display name that
is resolved on read. Both come from a directory backend so the resolver can
be exercised without a real user store; the backend is chosen by the
FORMS_DIRECTORY_BACKEND setting.
"""

from __future__ import annotations

from typing import Protocol

from django.conf import settings
from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.utils.module_loading import import_string

from .models import Share

User = get_user_model()


class Directory(Protocol):
    def is_member(self, user_id: str, group_id: str) -> bool: ...

    def display_name(self, share_type: int, share_with: str) -> str: ...


class DjangoDirectory:
    """Directory backed by django.contrib.auth users and groups."""

    def is_member(self, user_id: str, group_id: str) -> bool:
        return Group.objects.filter(name=group_id, user__username=user_id).exists()

    def display_name(self, share_type: int, share_with: str) -> str:
        if share_type == Share.Type.USER:
            user = User.objects.filter(username=share_with).first()
            if user is None:
                return ""
            return user.get_full_name() or user.get_username()
        if share_type == Share.Type.GROUP:
            if Group.objects.filter(name=share_with).exists():
                return share_with
            return ""
        return ""


def get_directory() -> Directory:
    backend = getattr(
        settings,
        "FORMS_DIRECTORY_BACKEND",
        "forms_app.forms.directory.DjangoDirectory",
    )
    return import_string(backend)()
