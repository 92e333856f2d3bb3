from django.apps import AppConfig


class NotificationsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.notifications"
    verbose_name = "Notifications"

    def ready(self):
        from shared.application.message_bus import message_bus

        from .handlers import register_handlers

        register_handlers(message_bus)
