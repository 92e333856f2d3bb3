from django.apps import AppConfig


class PricingConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.pricing"

    def ready(self) -> None:
        from django.test.signals import setting_changed

        from .config import get_pricing_config, reset_pricing_config

        # Fail fast on a malformed LUXURY_PRICING table
        get_pricing_config()
        setting_changed.connect(reset_pricing_config)
