import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("billing", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="UsageReset",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "stripe_subscription_id",
                    models.CharField(
                        blank=True,
                        help_text="Subscription whose renewal triggered the reset; blank for manual resets",
                        max_length=255,
                    ),
                ),
                ("period", models.CharField(help_text="Billing period (YYYY-MM)", max_length=7)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="usage_resets",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(
                        fields=("user", "stripe_subscription_id", "period"),
                        name="billing_usage_reset_once",
                    )
                ],
            },
        ),
    ]
