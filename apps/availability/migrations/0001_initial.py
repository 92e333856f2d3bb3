from decimal import Decimal

from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="InventoryItem",
            fields=[
                ("id", models.SlugField(max_length=64, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255)),
                (
                    "category",
                    models.CharField(
                        choices=[("car", "Car"), ("yacht", "Yacht"), ("jet", "Jet"), ("property", "Property")],
                        max_length=16,
                    ),
                ),
                (
                    "base_price",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("0.00"),
                        help_text="Daily rate in the currency of the rental location.",
                        max_digits=12,
                    ),
                ),
                ("supported_locations", models.JSONField(blank=True, default=list)),
                ("minimum_rental_days", models.PositiveSmallIntegerField(default=1)),
                ("is_active", models.BooleanField(default=True)),
                ("calendar_version", models.PositiveIntegerField(default=0, editable=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Inventory item",
                "verbose_name_plural": "Inventory items",
                "ordering": ["id"],
            },
        ),
        migrations.CreateModel(
            name="BlackoutPeriod",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("start_date", models.DateField()),
                ("end_date", models.DateField(help_text="Exclusive.")),
                ("reason", models.CharField(blank=True, max_length=255)),
                (
                    "item",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="blackouts",
                        to="availability.inventoryitem",
                    ),
                ),
            ],
            options={
                "ordering": ["start_date"],
                "indexes": [models.Index(fields=["item", "start_date", "end_date"], name="blackout_item_dates_idx")],
                "constraints": [
                    models.CheckConstraint(check=models.Q(end_date__gt=models.F("start_date")), name="blackout_valid_dates"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Hold",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("booking_reference", models.CharField(max_length=64, unique=True)),
                ("start_date", models.DateField()),
                ("end_date", models.DateField(help_text="Exclusive.")),
                ("expires_at", models.DateTimeField(db_index=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "item",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="holds",
                        to="availability.inventoryitem",
                    ),
                ),
            ],
            options={
                "ordering": ["start_date"],
                "indexes": [models.Index(fields=["item", "start_date", "end_date"], name="hold_item_dates_idx")],
                "constraints": [
                    models.CheckConstraint(check=models.Q(end_date__gt=models.F("start_date")), name="hold_valid_dates"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Allocation",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("booking_reference", models.CharField(max_length=64, unique=True)),
                ("start_date", models.DateField()),
                ("end_date", models.DateField(help_text="Exclusive.")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "item",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="allocations",
                        to="availability.inventoryitem",
                    ),
                ),
            ],
            options={
                "ordering": ["start_date"],
                "indexes": [models.Index(fields=["item", "start_date", "end_date"], name="allocation_item_dates_idx")],
                "constraints": [
                    models.CheckConstraint(check=models.Q(end_date__gt=models.F("start_date")), name="allocation_valid_dates"),
                ],
            },
        ),
    ]
