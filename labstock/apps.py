"""Django app configuration for Labstock."""

from django.apps import AppConfig
from django.utils.translation import gettext_lazy as _


class LabstockConfig(AppConfig):
    """Configuration for Labstock app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "labstock"
    verbose_name = _("Lab inventory")
