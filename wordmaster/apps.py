from django.apps import AppConfig


class WordmasterConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'wordmaster'
    verbose_name = 'Wordmaster'
