from django.apps import AppConfig


class MedicationConfig(AppConfig):
    name = 'medication'
    default_auto_field = 'django.db.models.BigAutoField'
