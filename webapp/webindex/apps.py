from django.apps import AppConfig


class WebindexConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "webindex"
    verbose_name = "Web index"
