from django.apps import AppConfig


class InternalLinksConfig(AppConfig):
    """Configuration for the internal links Django app."""

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'internal_links'
    verbose_name = 'Internal links'
