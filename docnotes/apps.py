from django.apps import AppConfig


class DocnotesConfig(AppConfig):
    """Configuration for the docnotes Django app."""

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'docnotes'
