from django.apps import AppConfig


class AllocationsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'backend.allocations'
    label = 'allocations'
    verbose_name = 'Sample Allocations'

    def ready(self):
        import backend.allocations.signals  # noqa: F401
