from django.urls import include, path

urlpatterns = [
    path("api/v2/", include("forms_app.api.urls")),
]
