from decimal import Decimal

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Subscription",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "stripe_subscription_id",
                    models.CharField(
                        db_index=True,
                        help_text="Stripe subscription ID, e.g. 'sub_xxx'",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "plan",
                    models.CharField(
                        choices=[
                            ("free", "Free"),
                            ("pro", "Pro"),
                            ("team", "Team"),
                            ("enterprise", "Enterprise"),
                        ],
                        default="free",
                        max_length=20,
                    ),
                ),
                (
                    "reference_type",
                    models.CharField(
                        choices=[("user", "User"), ("organization", "Organization")],
                        default="user",
                        max_length=20,
                    ),
                ),
                (
                    "reference_id",
                    models.BigIntegerField(
                        db_index=True,
                        help_text="User ID or Organization ID, depending on reference_type",
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("active", "Active"),
                            ("past_due", "Past Due"),
                            ("canceled", "Canceled"),
                            ("incomplete", "Incomplete"),
                            ("incomplete_expired", "Incomplete Expired"),
                            ("trialing", "Trialing"),
                            ("unpaid", "Unpaid"),
                            ("paused", "Paused"),
                        ],
                        db_index=True,
                        default="incomplete",
                        help_text="Subscription status from Stripe",
                        max_length=50,
                    ),
                ),
                ("seats", models.PositiveIntegerField(default=1, help_text="Licensed seats Stripe is charging for")),
                ("period_start", models.DateTimeField(blank=True, null=True)),
                ("period_end", models.DateTimeField(blank=True, null=True)),
                ("cancel_at_period_end", models.BooleanField(default=False)),
                (
                    "metadata",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Enterprise plans may set a custom 'perSeatPrice'",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["reference_type", "reference_id", "status"],
                        name="billing_sub_ref_status_idx",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="UserStats",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("current_period_cost", models.DecimalField(decimal_places=6, default=Decimal("0"), max_digits=18)),
                ("last_period_cost", models.DecimalField(decimal_places=6, default=Decimal("0"), max_digits=18)),
                (
                    "current_usage_limit",
                    models.DecimalField(
                        blank=True,
                        decimal_places=6,
                        help_text="Personal usage cap in dollars; null means the plan minimum",
                        max_digits=18,
                        null=True,
                    ),
                ),
                ("usage_limit_updated_at", models.DateTimeField(blank=True, null=True)),
                (
                    "billing_blocked",
                    models.BooleanField(
                        default=False,
                        help_text="Set when overage payments keep failing; denies further usage",
                    ),
                ),
                (
                    "last_reset_period",
                    models.CharField(
                        blank=True,
                        help_text="Billing period (YYYY-MM) of the last counter reset",
                        max_length=7,
                    ),
                ),
                (
                    "user",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="stats",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "user stats",
            },
        ),
    ]
