import os

from django.urls import path
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from . import views


# Custom token views without throttling for tests
class TestTokenObtainPairView(TokenObtainPairView):
    throttle_classes = []


class TestTokenRefreshView(TokenRefreshView):
    throttle_classes = []


# Use non-throttled views during tests
if os.environ.get("PYTEST_CURRENT_TEST"):
    TokenObtainView = TestTokenObtainPairView
    TokenRefView = TestTokenRefreshView
else:
    TokenObtainView = TokenObtainPairView
    TokenRefView = TokenRefreshView

urlpatterns = [
    path("health", views.healthcheck, name="healthcheck"),
    path("token", TokenObtainView.as_view(), name="token_obtain_pair"),
    path("token/refresh", TokenRefView.as_view(), name="token_refresh"),
    # Forms
    path("forms", views.forms_list, name="forms"),
    path("shared_forms", views.shared_forms_list, name="shared-forms"),
    path("partial_form/<str:form_hash>", views.partial_form, name="partial-form"),
    path("public_form/<str:form_hash>", views.public_form, name="public-form"),
    path("form", views.form_create, name="form-create"),
    path("form/update", views.form_update, name="form-update"),
    path("form/clone/<int:form_id>", views.form_clone, name="form-clone"),
    path("form/<int:form_id>", views.form_detail, name="form-detail"),
    path(
        "form/<int:form_id>/submissions",
        views.submissions_delete_all,
        name="form-submissions-delete",
    ),
    # Questions
    path("question", views.question_create, name="question-create"),
    path("question/update", views.question_update, name="question-update"),
    path("question/reorder", views.question_reorder, name="question-reorder"),
    path("question/<int:question_id>", views.question_delete, name="question-delete"),
    # Options
    path("option", views.option_create, name="option-create"),
    path("option/update", views.option_update, name="option-update"),
    path("option/<int:option_id>", views.option_delete, name="option-delete"),
    # Shares
    path("share", views.share_create, name="share-create"),
    path("share/<int:share_id>", views.share_delete, name="share-delete"),
    # Submissions
    path("submissions/<str:form_hash>", views.submissions_list, name="submissions"),
    path("submission/insert", views.submission_insert, name="submission-insert"),
    path(
        "submission/<int:submission_id>",
        views.submission_delete,
        name="submission-delete",
    ),
]
