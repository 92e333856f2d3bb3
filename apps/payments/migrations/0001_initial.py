from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("bookings", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="PaymentIntent",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "provider",
                    models.CharField(choices=[("stripe", "Stripe"), ("paypal", "PayPal")], default="stripe", max_length=16),
                ),
                ("external_id", models.CharField(max_length=128, unique=True)),
                ("amount_minor", models.PositiveBigIntegerField(help_text="Amount in the currency's smallest unit.")),
                ("currency", models.CharField(max_length=3)),
                ("idempotency_key", models.CharField(max_length=128)),
                ("client_secret", models.CharField(blank=True, max_length=255)),
                ("status", models.CharField(blank=True, max_length=64)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "booking",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="payment_intents",
                        to="bookings.booking",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="PaymentEvent",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("event_id", models.CharField(max_length=255, unique=True)),
                ("provider", models.CharField(choices=[("stripe", "Stripe"), ("paypal", "PayPal")], max_length=16)),
                ("type", models.CharField(max_length=64)),
                ("booking_reference", models.CharField(blank=True, db_index=True, max_length=64)),
                ("payload", models.JSONField(default=dict)),
                (
                    "outcome",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("applied", "Applied"),
                            ("ignored", "Ignored (not valid for current state)"),
                            ("flagged", "Flagged for follow-up"),
                            ("unmatched", "No matching booking"),
                            ("unsupported", "Unsupported event type"),
                        ],
                        max_length=16,
                    ),
                ),
                ("received_at", models.DateTimeField(auto_now_add=True)),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "ordering": ["-received_at"],
            },
        ),
    ]
