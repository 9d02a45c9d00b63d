from __future__ import annotations

import secrets
import string

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import models
from django.db.models import Q
from django.utils import timezone

User = get_user_model()

HASH_ALPHABET = string.ascii_letters + string.digits


def current_timestamp() -> int:
    """Unix seconds, the unit every form timestamp is stored in."""
    return int(timezone.now().timestamp())


def generate_hash(length: int | None = None) -> str:
    length = length or getattr(settings, "FORMS_HASH_LENGTH", 16)
    return "".join(secrets.choice(HASH_ALPHABET) for _ in range(length))


class Form(models.Model):
    hash = models.CharField(max_length=64, unique=True)
    title = models.CharField(max_length=256, blank=True, default="")
    description = models.TextField(blank=True, default="")
    owner = models.ForeignKey(User, on_delete=models.CASCADE, related_name="forms")
    created = models.PositiveBigIntegerField(default=current_timestamp)
    expires = models.PositiveBigIntegerField(
        default=0, help_text="Unix timestamp after which submissions stop, 0 = never"
    )
    permit_all_users = models.BooleanField(
        default=False, help_text="Every logged-in user may submit"
    )
    show_to_all_users = models.BooleanField(
        default=False, help_text="Listed under 'Shared with you' for every user"
    )
    is_anonymous = models.BooleanField(default=False)
    submit_once = models.BooleanField(default=True)

    class Meta:
        ordering = ["-created", "-id"]

    def __str__(self) -> str:  # pragma: no cover
        return self.title or self.hash

    @property
    def access(self) -> dict[str, bool]:
        return {
            "permitAllUsers": self.permit_all_users,
            "showToAllUsers": self.show_to_all_users,
        }


class Question(models.Model):
    class Types(models.TextChoices):
        SHORT = "short", "Short answer"
        LONG = "long", "Long text"
        MULTIPLE_CHOICE = "multiple_choice", "Multiple choice"
        MULTIPLE_UNIQUE = "multiple_unique", "Checkboxes"
        DROPDOWN = "dropdown", "Dropdown"
        DATE = "date", "Date"
        DATETIME = "datetime", "Datetime"

    # Types answered by picking options
    CHOICE_TYPES = frozenset(
        {Types.MULTIPLE_CHOICE, Types.MULTIPLE_UNIQUE, Types.DROPDOWN}
    )
    SINGLE_CHOICE_TYPES = frozenset({Types.MULTIPLE_CHOICE, Types.DROPDOWN})

    form = models.ForeignKey(Form, on_delete=models.CASCADE, related_name="questions")
    order = models.IntegerField()
    type = models.CharField(max_length=32, choices=Types.choices)
    text = models.TextField(blank=True, default="")
    is_required = models.BooleanField(default=False)

    class Meta:
        ordering = ["order", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["form", "order"], name="unique_question_order_per_form"
            )
        ]

    def __str__(self) -> str:  # pragma: no cover
        return self.text

    @property
    def is_choice(self) -> bool:
        return self.type in self.CHOICE_TYPES


class Option(models.Model):
    question = models.ForeignKey(
        Question, on_delete=models.CASCADE, related_name="options"
    )
    text = models.CharField(max_length=1024, blank=True, default="")

    class Meta:
        ordering = ["id"]

    def __str__(self) -> str:  # pragma: no cover
        return self.text


class Share(models.Model):
    class Type(models.IntegerChoices):
        USER = 0, "User"
        GROUP = 1, "Group"
        LINK = 3, "Link"

    form = models.ForeignKey(Form, on_delete=models.CASCADE, related_name="shares")
    share_type = models.PositiveSmallIntegerField(choices=Type.choices)
    share_with = models.CharField(
        max_length=256, help_text="User id, group id or public link hash"
    )

    class Meta:
        ordering = ["id"]
        constraints = [
            models.UniqueConstraint(
                fields=["form", "share_type", "share_with"],
                name="unique_share_per_form",
            ),
            models.UniqueConstraint(
                fields=["share_with"],
                condition=Q(share_type=3),
                name="unique_link_share_hash",
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.get_share_type_display()}: {self.share_with}"


class Submission(models.Model):
    form = models.ForeignKey(
        Form, on_delete=models.CASCADE, related_name="submissions"
    )
    # Empty for anonymous requesters and for anonymous forms
    user = models.ForeignKey(
        User,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="form_submissions",
    )
    submitted = models.PositiveBigIntegerField(default=current_timestamp)
    # Set when the submit-once rule applied to this submission
    enforce_once = models.BooleanField(default=False)

    class Meta:
        ordering = ["-submitted", "-id"]
        constraints = [
            models.UniqueConstraint(
                fields=["form", "user"],
                condition=Q(enforce_once=True),
                name="one_submission_per_user_per_form",
            )
        ]


class Answer(models.Model):
    submission = models.ForeignKey(
        Submission, on_delete=models.CASCADE, related_name="answers"
    )
    question = models.ForeignKey(
        Question, on_delete=models.CASCADE, related_name="answers"
    )
    text = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["id"]


class Activity(models.Model):
    class Subject(models.TextChoices):
        NEW_SHARE = "newshare", "Form shared with user"
        NEW_GROUP_SHARE = "newgroupshare", "Form shared with group"
        NEW_SUBMISSION = "newsubmission", "Form answered"

    form = models.ForeignKey(
        Form, on_delete=models.CASCADE, related_name="activities"
    )
    actor = models.ForeignKey(
        User,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="form_activities",
    )
    subject = models.CharField(max_length=32, choices=Subject.choices)
    # User or group id the event is addressed to
    affected = models.CharField(max_length=256)
    created = models.PositiveBigIntegerField(default=current_timestamp)

    class Meta:
        ordering = ["-created", "-id"]
        indexes = [models.Index(fields=["affected", "created"])]
