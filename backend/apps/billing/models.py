"""
Billing models - Stripe subscriptions and per-user usage counters.
"""

from decimal import Decimal

from django.conf import settings
from django.db import models

from apps.billing.types import EnterpriseMetadata, Plan, ReferenceType, SubscriptionRecord
from apps.core.models import TimestampedModel


class Subscription(TimestampedModel):
    """
    Stripe subscription for a user (pro) or an organization (team/enterprise).

    Source of truth is Stripe - synced via webhooks. The reference subject is
    stored as a (reference_type, reference_id) pair.
    """

    class Status(models.TextChoices):
        ACTIVE = "active", "Active"
        PAST_DUE = "past_due", "Past Due"
        CANCELED = "canceled", "Canceled"
        INCOMPLETE = "incomplete", "Incomplete"
        INCOMPLETE_EXPIRED = "incomplete_expired", "Incomplete Expired"
        TRIALING = "trialing", "Trialing"
        UNPAID = "unpaid", "Unpaid"
        PAUSED = "paused", "Paused"

    stripe_subscription_id = models.CharField(
        max_length=255,
        unique=True,
        db_index=True,
        help_text="Stripe subscription ID, e.g. 'sub_xxx'",
    )
    plan = models.CharField(
        max_length=20,
        choices=[(plan.value, plan.value.title()) for plan in Plan],
        default=Plan.FREE.value,
    )
    reference_type = models.CharField(
        max_length=20,
        choices=[(ref.value, ref.value.title()) for ref in ReferenceType],
        default=ReferenceType.USER.value,
    )
    reference_id = models.BigIntegerField(
        db_index=True,
        help_text="User ID or Organization ID, depending on reference_type",
    )
    status = models.CharField(
        max_length=50,
        choices=Status.choices,
        default=Status.INCOMPLETE,
        db_index=True,
        help_text="Subscription status from Stripe",
    )
    seats = models.PositiveIntegerField(
        default=1,
        help_text="Licensed seats Stripe is charging for",
    )
    period_start = models.DateTimeField(null=True, blank=True)
    period_end = models.DateTimeField(null=True, blank=True)
    cancel_at_period_end = models.BooleanField(default=False)
    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Enterprise plans may set a custom 'perSeatPrice'",
    )

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["reference_type", "reference_id", "status"],
                name="billing_sub_ref_status_idx",
            )
        ]

    def __str__(self) -> str:
        return f"{self.plan} {self.reference_type}:{self.reference_id} - {self.status}"

    @property
    def is_active(self) -> bool:
        """Only active subscriptions govern billing."""
        return self.status == self.Status.ACTIVE

    def to_record(self) -> SubscriptionRecord:
        return SubscriptionRecord(
            id=self.pk,
            stripe_subscription_id=self.stripe_subscription_id,
            plan=Plan.parse(self.plan),
            reference_type=ReferenceType(self.reference_type),
            reference_id=self.reference_id,
            status=self.status,
            seats=self.seats or 1,
            period_start=self.period_start,
            period_end=self.period_end,
            metadata=EnterpriseMetadata.from_raw(self.metadata),
        )


class UserStats(TimestampedModel):
    """
    Running usage counter for one user in the current billing period.

    current_period_cost only grows within a period; it is zeroed on a
    period rollover, keeping the old total in last_period_cost.
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="stats",
    )
    current_period_cost = models.DecimalField(
        max_digits=18,
        decimal_places=6,
        default=Decimal("0"),
    )
    last_period_cost = models.DecimalField(
        max_digits=18,
        decimal_places=6,
        default=Decimal("0"),
    )
    current_usage_limit = models.DecimalField(
        max_digits=18,
        decimal_places=6,
        null=True,
        blank=True,
        help_text="Personal usage cap in dollars; null means the plan minimum",
    )
    usage_limit_updated_at = models.DateTimeField(null=True, blank=True)
    billing_blocked = models.BooleanField(
        default=False,
        help_text="Set when overage payments keep failing; denies further usage",
    )
    last_reset_period = models.CharField(
        max_length=7,
        blank=True,
        help_text="Billing period (YYYY-MM) of the last counter reset",
    )

    class Meta:
        verbose_name_plural = "user stats"

    def __str__(self) -> str:
        return f"stats for user {self.user_id}"


class UsageReset(models.Model):
    """
    One counter rollover for a user, keyed by subscription and billing period.

    A user covered by several subscriptions is reset once per renewal of
    each of them, even when their periods end in the same month.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="usage_resets",
    )
    stripe_subscription_id = models.CharField(
        max_length=255,
        blank=True,
        help_text="Subscription whose renewal triggered the reset; blank for manual resets",
    )
    period = models.CharField(max_length=7, help_text="Billing period (YYYY-MM)")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["user", "stripe_subscription_id", "period"],
                name="billing_usage_reset_once",
            )
        ]

    def __str__(self) -> str:
        return f"reset {self.period} for user {self.user_id} ({self.stripe_subscription_id or 'manual'})"
