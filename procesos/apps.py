from django.apps import AppConfig


class ProcesosConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "procesos"
    verbose_name = "Procesos"
