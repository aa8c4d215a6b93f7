from django.apps import AppConfig


class ConvoConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'convo'
