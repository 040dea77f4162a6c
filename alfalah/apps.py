from django.apps import AppConfig


class AlfalahAppConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "alfalah"
    verbose_name = "Bank Alfalah payments"

    def ready(self):
        from .conf import check_configuration

        check_configuration()
