from decimal import Decimal

from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("availability", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Booking",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("reference", models.CharField(editable=False, max_length=64, unique=True)),
                ("start_date", models.DateField()),
                ("end_date", models.DateField(help_text="Exclusive.")),
                ("customer_name", models.CharField(max_length=255)),
                ("customer_email", models.EmailField(max_length=254)),
                ("customer_phone", models.CharField(blank=True, max_length=32)),
                ("location", models.CharField(max_length=64)),
                (
                    "service_tier",
                    models.CharField(
                        choices=[("standard", "Standard"), ("premium", "Premium"), ("vvip", "VVIP")],
                        default="standard",
                        max_length=16,
                    ),
                ),
                ("add_ons", models.JSONField(blank=True, default=list)),
                (
                    "pricing",
                    models.JSONField(default=dict, help_text="Price breakdown quoted at reservation time; immutable."),
                ),
                ("total_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("currency", models.CharField(default="USD", max_length=3)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending-payment", "Pending payment"),
                            ("payment-processing", "Payment processing"),
                            ("confirmed", "Confirmed"),
                            ("completed", "Completed"),
                            ("cancelled", "Cancelled"),
                            ("refunded", "Refunded"),
                        ],
                        default="pending-payment",
                        max_length=32,
                    ),
                ),
                ("is_disputed", models.BooleanField(default=False)),
                ("requires_follow_up", models.BooleanField(default=False)),
                ("payment_intent_ref", models.CharField(blank=True, max_length=128)),
                (
                    "client_token",
                    models.CharField(
                        blank=True,
                        help_text="Idempotency-Key supplied by the client, if any.",
                        max_length=128,
                        null=True,
                        unique=True,
                    ),
                ),
                ("client_identity", models.CharField(blank=True, max_length=64)),
                ("hold_expires_at", models.DateTimeField(blank=True, null=True)),
                ("cancellation_reason", models.CharField(blank=True, max_length=255)),
                ("confirmed_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("refunded_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "item",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bookings",
                        to="availability.inventoryitem",
                    ),
                ),
            ],
            options={
                "verbose_name": "Booking",
                "verbose_name_plural": "Bookings",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["item", "start_date", "end_date"], name="booking_item_dates_idx"),
                    models.Index(fields=["status", "hold_expires_at"], name="booking_status_hold_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(check=models.Q(end_date__gt=models.F("start_date")), name="booking_valid_dates"),
                ],
            },
        ),
        migrations.CreateModel(
            name="BookingStatusChange",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("from_status", models.CharField(max_length=32)),
                ("to_status", models.CharField(max_length=32)),
                (
                    "source",
                    models.CharField(help_text="What caused the change, e.g. stripe:evt_123.", max_length=128),
                ),
                ("reason", models.CharField(blank=True, max_length=255)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "booking",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="history",
                        to="bookings.booking",
                    ),
                ),
            ],
            options={
                "ordering": ["created_at", "id"],
            },
        ),
    ]
