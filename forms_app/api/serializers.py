from typing import Any

from django.utils.translation import gettext as _
from rest_framework import serializers

from forms_app.forms.directory import get_directory
from forms_app.forms.models import Form, Option, Question, Share, Submission
from forms_app.forms.permissions import PERMISSION_EDIT
from forms_app.forms.services import FORM_UPDATE_FIELDS, QUESTION_UPDATE_FIELDS


class OptionSerializer(serializers.ModelSerializer):
    questionId = serializers.IntegerField(source="question_id", read_only=True)

    class Meta:
        model = Option
        fields = ["id", "questionId", "text"]


class QuestionSerializer(serializers.ModelSerializer):
    formId = serializers.IntegerField(source="form_id", read_only=True)
    isRequired = serializers.BooleanField(source="is_required", read_only=True)
    options = OptionSerializer(many=True, read_only=True)

    class Meta:
        model = Question
        fields = ["id", "formId", "order", "type", "isRequired", "text", "options"]

    def to_representation(self, instance: Question) -> dict[str, Any]:
        data = super().to_representation(instance)
        # Only choice questions carry options
        if not instance.is_choice:
            data.pop("options", None)
        return data


class ShareSerializer(serializers.ModelSerializer):
    formId = serializers.IntegerField(source="form_id", read_only=True)
    shareType = serializers.IntegerField(source="share_type", read_only=True)
    shareWith = serializers.CharField(source="share_with", read_only=True)
    displayName = serializers.SerializerMethodField()

    class Meta:
        model = Share
        fields = ["id", "formId", "shareType", "shareWith", "displayName"]

    def get_displayName(self, obj: Share) -> str:
        directory = self.context.get("directory") or get_directory()
        # Stale users and groups resolve to an empty name
        return directory.display_name(obj.share_type, obj.share_with)


class PartialFormSerializer(serializers.ModelSerializer):
    """List view of a form. The caller passes the resolved FormAccess in context."""

    permissions = serializers.SerializerMethodField()
    partial = serializers.SerializerMethodField()

    class Meta:
        model = Form
        fields = ["id", "hash", "title", "expires", "permissions", "partial"]

    def _access(self, obj: Form):
        accesses = self.context.get("accesses")
        if accesses is not None:
            return accesses[obj.id]
        return self.context["access"]

    def get_permissions(self, obj: Form) -> list[str]:
        return list(self._access(obj).permissions)

    def get_partial(self, obj: Form) -> bool:
        return True


class FormSerializer(serializers.ModelSerializer):
    """Detail view of a form.

    Shares are only listed for requesters holding the edit permission.
    """

    ownerId = serializers.CharField(source="owner.username", read_only=True)
    access = serializers.DictField(read_only=True)
    isAnonymous = serializers.BooleanField(source="is_anonymous", read_only=True)
    submitOnce = serializers.BooleanField(source="submit_once", read_only=True)
    canSubmit = serializers.SerializerMethodField()
    permissions = serializers.SerializerMethodField()
    questions = QuestionSerializer(many=True, read_only=True)
    shares = ShareSerializer(many=True, read_only=True)

    class Meta:
        model = Form
        fields = [
            "id",
            "hash",
            "title",
            "description",
            "ownerId",
            "created",
            "access",
            "expires",
            "isAnonymous",
            "submitOnce",
            "canSubmit",
            "permissions",
            "questions",
            "shares",
        ]

    def get_canSubmit(self, obj: Form) -> bool:
        return self.context["access"].can_submit

    def get_permissions(self, obj: Form) -> list[str]:
        return list(self.context["access"].permissions)

    def to_representation(self, instance: Form) -> dict[str, Any]:
        data = super().to_representation(instance)
        if not self.context["access"].has(PERMISSION_EDIT):
            data.pop("shares", None)
        return data


class AnswerSerializer(serializers.Serializer):
    id = serializers.IntegerField(read_only=True)
    submissionId = serializers.IntegerField(source="submission_id", read_only=True)
    questionId = serializers.IntegerField(source="question_id", read_only=True)
    text = serializers.CharField(read_only=True)


class SubmissionSerializer(serializers.ModelSerializer):
    formId = serializers.IntegerField(source="form_id", read_only=True)
    userId = serializers.SerializerMethodField()
    userDisplayName = serializers.SerializerMethodField()
    timestamp = serializers.IntegerField(source="submitted", read_only=True)
    answers = AnswerSerializer(many=True, read_only=True)

    class Meta:
        model = Submission
        fields = ["id", "formId", "userId", "userDisplayName", "timestamp", "answers"]

    def get_userId(self, obj: Submission) -> str | None:
        return obj.user.get_username() if obj.user else None

    def get_userDisplayName(self, obj: Submission) -> str:
        if obj.user is None:
            return _("Anonymous user")
        return obj.user.get_full_name() or obj.user.get_username()


# Request payloads


class KeyValuePairsSerializer(serializers.Serializer):
    """Base for the `{id, keyValuePairs}` update requests."""

    allowed_keys: frozenset = frozenset()

    id = serializers.IntegerField()
    keyValuePairs = serializers.DictField()

    def validate_keyValuePairs(self, value: dict) -> dict:
        if not value:
            raise serializers.ValidationError("Nothing to update.")
        unknown = sorted(set(value) - self.allowed_keys)
        if unknown:
            raise serializers.ValidationError(
                f"These keys cannot be updated: {', '.join(unknown)}"
            )
        return value


class AccessSerializer(serializers.Serializer):
    permitAllUsers = serializers.BooleanField(required=False)
    showToAllUsers = serializers.BooleanField(required=False)


class FormChangesSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=256, allow_blank=True, required=False)
    description = serializers.CharField(allow_blank=True, required=False)
    expires = serializers.IntegerField(min_value=0, required=False)
    isAnonymous = serializers.BooleanField(required=False)
    submitOnce = serializers.BooleanField(required=False)
    access = AccessSerializer(required=False)


class FormUpdateSerializer(KeyValuePairsSerializer):
    allowed_keys = frozenset(FORM_UPDATE_FIELDS) | {"access"}

    def validate_keyValuePairs(self, value: dict) -> dict:
        value = super().validate_keyValuePairs(value)
        changes = FormChangesSerializer(data=value)
        changes.is_valid(raise_exception=True)
        return changes.validated_data


class QuestionChangesSerializer(serializers.Serializer):
    text = serializers.CharField(allow_blank=True, required=False)
    type = serializers.ChoiceField(choices=Question.Types.choices, required=False)
    isRequired = serializers.BooleanField(required=False)


class QuestionUpdateSerializer(KeyValuePairsSerializer):
    allowed_keys = frozenset(QUESTION_UPDATE_FIELDS)

    def validate_keyValuePairs(self, value: dict) -> dict:
        value = super().validate_keyValuePairs(value)
        changes = QuestionChangesSerializer(data=value)
        changes.is_valid(raise_exception=True)
        return changes.validated_data


class OptionUpdateSerializer(KeyValuePairsSerializer):
    allowed_keys = frozenset({"text"})

    def validate_keyValuePairs(self, value: dict) -> dict:
        value = super().validate_keyValuePairs(value)
        text = serializers.CharField(max_length=1024, allow_blank=True)
        return {"text": text.run_validation(value["text"])}


class NewQuestionSerializer(serializers.Serializer):
    formId = serializers.IntegerField()
    type = serializers.ChoiceField(choices=Question.Types.choices)
    text = serializers.CharField(allow_blank=True, required=False, default="")


class ReorderQuestionsSerializer(serializers.Serializer):
    formId = serializers.IntegerField()
    newOrder = serializers.ListField(child=serializers.IntegerField(), allow_empty=False)


class NewOptionSerializer(serializers.Serializer):
    questionId = serializers.IntegerField()
    text = serializers.CharField(max_length=1024, allow_blank=True)


class NewShareSerializer(serializers.Serializer):
    formId = serializers.IntegerField()
    shareType = serializers.ChoiceField(choices=Share.Type.choices)
    shareWith = serializers.CharField(allow_blank=True, required=False, default="")

    def validate(self, attrs):
        if attrs["shareType"] != Share.Type.LINK and not attrs["shareWith"]:
            raise serializers.ValidationError(
                {"shareWith": "A user or group id is required."}
            )
        return attrs


class InsertSubmissionSerializer(serializers.Serializer):
    formId = serializers.IntegerField()
    answers = serializers.DictField(
        child=serializers.ListField(child=serializers.CharField(allow_blank=True))
    )
    shareHash = serializers.CharField(allow_blank=True, required=False, default="")
