"""
Forms API (v2).

Function views in the style of rest_framework's @api_view. Every form lookup
goes through forms_app.forms.services so that a missing form and a form the
requester may not see produce the same response.
"""

from django_ratelimit.decorators import ratelimit
from rest_framework import permissions, serializers
from rest_framework.decorators import (
    api_view,
    permission_classes,
    renderer_classes,
)
from rest_framework.response import Response

from forms_app.forms import services
from forms_app.forms.directory import get_directory
from forms_app.forms.exceptions import FormUnavailable
from forms_app.forms.models import Form
from forms_app.forms.permissions import (
    PERMISSION_EDIT,
    PERMISSION_RESULTS,
    PERMISSION_SUBMIT,
    require_permission,
)
from forms_app.forms.submissions import submit_answers

from .renderers import OCSJSONRenderer
from .serializers import (
    FormSerializer,
    FormUpdateSerializer,
    InsertSubmissionSerializer,
    NewOptionSerializer,
    NewQuestionSerializer,
    NewShareSerializer,
    OptionSerializer,
    OptionUpdateSerializer,
    PartialFormSerializer,
    QuestionSerializer,
    QuestionUpdateSerializer,
    ReorderQuestionsSerializer,
    ShareSerializer,
    SubmissionSerializer,
)


def _validated(serializer_class, request):
    serializer = serializer_class(data=request.data)
    serializer.is_valid(raise_exception=True)
    return serializer.validated_data


def _full_form(form, access, directory=None, include_shares=True):
    data = FormSerializer(
        form, context={"access": access, "directory": directory or get_directory()}
    ).data
    if not include_shares:
        data.pop("shares", None)
    return data


def _partial_forms(entries):
    forms = [form for form, _ in entries]
    accesses = {form.id: access for form, access in entries}
    return PartialFormSerializer(forms, many=True, context={"accesses": accesses}).data


# Forms


@api_view(["GET"])
@renderer_classes([OCSJSONRenderer])
def forms_list(request):
    """Forms owned by the requester."""
    return Response(_partial_forms(services.list_owned_forms(request.user)))


@api_view(["GET"])
@renderer_classes([OCSJSONRenderer])
def shared_forms_list(request):
    """Forms shared with the requester, directly, via a group or with everyone."""
    return Response(_partial_forms(services.list_shared_forms(request.user)))


@api_view(["GET"])
@renderer_classes([OCSJSONRenderer])
def partial_form(request, form_hash):
    form, link_hash = services.find_form_by_public_hash(form_hash)
    access = services.get_form_access(request.user, form, link_hash=link_hash)
    if not access.permissions:
        raise FormUnavailable()
    return Response(PartialFormSerializer(form, context={"access": access}).data)


@api_view(["GET"])
@permission_classes([permissions.AllowAny])
@renderer_classes([OCSJSONRenderer])
def public_form(request, form_hash):
    """Form to be filled in, addressed by its own hash or a link share hash."""
    form, link_hash = services.find_form_by_public_hash(form_hash)
    access = services.get_form_access(request.user, form, link_hash=link_hash)
    if not access.has(PERMISSION_SUBMIT):
        raise FormUnavailable()
    return Response(_full_form(form, access, include_shares=False))


@api_view(["POST"])
@renderer_classes([OCSJSONRenderer])
def form_create(request):
    form = services.create_form(request.user)
    access = services.get_form_access(request.user, form)
    return Response(_full_form(form, access))


@api_view(["GET", "DELETE"])
@renderer_classes([OCSJSONRenderer])
def form_detail(request, form_id):
    form, access = services.get_accessible_form(request.user, form_id, PERMISSION_EDIT)
    if request.method == "DELETE":
        services.delete_form(form)
        return Response(form_id)
    return Response(_full_form(form, access))


@api_view(["POST"])
@renderer_classes([OCSJSONRenderer])
def form_clone(request, form_id):
    form, _ = services.get_accessible_form(request.user, form_id, PERMISSION_EDIT)
    clone = services.clone_form(form, request.user)
    return Response(_full_form(clone, services.get_form_access(request.user, clone)))


@api_view(["POST"])
@renderer_classes([OCSJSONRenderer])
def form_update(request):
    data = _validated(FormUpdateSerializer, request)
    form, _ = services.get_accessible_form(request.user, data["id"], PERMISSION_EDIT)
    services.update_form(form, data["keyValuePairs"])
    return Response(form.id)


# Questions


@api_view(["POST"])
@renderer_classes([OCSJSONRenderer])
def question_create(request):
    data = _validated(NewQuestionSerializer, request)
    form, _ = services.get_accessible_form(
        request.user, data["formId"], PERMISSION_EDIT
    )
    question = services.create_question(form, data["type"], data["text"])
    return Response(QuestionSerializer(question).data)


@api_view(["POST"])
@renderer_classes([OCSJSONRenderer])
def question_update(request):
    data = _validated(QuestionUpdateSerializer, request)
    question = services.get_editable_question(request.user, data["id"])
    services.update_question(question, data["keyValuePairs"])
    return Response(question.id)


@api_view(["POST"])
@renderer_classes([OCSJSONRenderer])
def question_reorder(request):
    data = _validated(ReorderQuestionsSerializer, request)
    form, _ = services.get_accessible_form(
        request.user, data["formId"], PERMISSION_EDIT
    )
    try:
        orders = services.reorder_questions(form, data["newOrder"])
    except ValueError as exc:
        raise serializers.ValidationError({"newOrder": [str(exc)]})
    return Response(
        {str(question_id): {"order": order} for question_id, order in orders.items()}
    )


@api_view(["DELETE"])
@renderer_classes([OCSJSONRenderer])
def question_delete(request, question_id):
    question = services.get_editable_question(request.user, question_id)
    services.delete_question(question)
    return Response(question_id)


# Options


@api_view(["POST"])
@renderer_classes([OCSJSONRenderer])
def option_create(request):
    data = _validated(NewOptionSerializer, request)
    question = services.get_editable_question(request.user, data["questionId"])
    if not question.is_choice:
        raise serializers.ValidationError(
            {"questionId": ["Options can only be added to choice questions."]}
        )
    option = services.create_option(question, data["text"])
    return Response(OptionSerializer(option).data)


@api_view(["POST"])
@renderer_classes([OCSJSONRenderer])
def option_update(request):
    data = _validated(OptionUpdateSerializer, request)
    option = services.get_editable_option(request.user, data["id"])
    services.update_option(option, data["keyValuePairs"]["text"])
    return Response(option.id)


@api_view(["DELETE"])
@renderer_classes([OCSJSONRenderer])
def option_delete(request, option_id):
    option = services.get_editable_option(request.user, option_id)
    services.delete_option(option)
    return Response(option_id)


# Shares


@api_view(["POST"])
@renderer_classes([OCSJSONRenderer])
def share_create(request):
    data = _validated(NewShareSerializer, request)
    form, _ = services.get_accessible_form(
        request.user, data["formId"], PERMISSION_EDIT
    )
    directory = get_directory()
    try:
        share = services.create_share(
            form, data["shareType"], data["shareWith"], request.user, directory
        )
    except ValueError as exc:
        raise serializers.ValidationError({"shareWith": [str(exc)]})
    return Response(ShareSerializer(share, context={"directory": directory}).data)


@api_view(["DELETE"])
@renderer_classes([OCSJSONRenderer])
def share_delete(request, share_id):
    share = services.get_editable_share(request.user, share_id)
    services.delete_share(share)
    return Response(share_id)


# Submissions


@api_view(["GET"])
@renderer_classes([OCSJSONRenderer])
def submissions_list(request, form_hash):
    form, _ = services.find_form_by_public_hash(form_hash)
    access = services.get_form_access(request.user, form)
    require_permission(access, PERMISSION_RESULTS)
    questions = form.questions.prefetch_related("options")
    return Response(
        {
            "questions": QuestionSerializer(questions, many=True).data,
            "submissions": SubmissionSerializer(
                services.submissions_with_answers(form), many=True
            ).data,
        }
    )


@api_view(["DELETE"])
@renderer_classes([OCSJSONRenderer])
def submissions_delete_all(request, form_id):
    form, _ = services.get_accessible_form(request.user, form_id, PERMISSION_RESULTS)
    services.delete_all_submissions(form)
    return Response(form_id)


@api_view(["DELETE"])
@renderer_classes([OCSJSONRenderer])
def submission_delete(request, submission_id):
    submission = services.get_results_submission(request.user, submission_id)
    services.delete_submission(submission)
    return Response(submission_id)


@api_view(["POST"])
@permission_classes([permissions.AllowAny])
@renderer_classes([OCSJSONRenderer])
@ratelimit(key="ip", rate="10/m", block=True)
def submission_insert(request):
    """Store a set of answers. Open to anonymous requesters holding a link hash."""
    data = _validated(InsertSubmissionSerializer, request)
    try:
        form = Form.objects.select_related("owner").get(pk=data["formId"])
    except Form.DoesNotExist:
        raise FormUnavailable()
    submission = submit_answers(
        request.user, form, data["answers"], link_hash=data["shareHash"] or None
    )
    return Response(submission.id)


@api_view(["GET"])
@permission_classes([permissions.AllowAny])
@renderer_classes([OCSJSONRenderer])
def healthcheck(request):
    return Response({"status": "ok"})
