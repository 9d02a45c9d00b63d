from django.apps import AppConfig


class ApiConfig(AppConfig):
    name = "forms_app.api"
    label = "forms_api"
