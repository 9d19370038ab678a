"""
Billing persistence boundary.

The engine talks to storage only through BillingStore, so it can be driven
by the Django ORM in production and by in-memory doubles in tests.
"""

from datetime import datetime
from decimal import Decimal
from typing import Protocol

from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from apps.accounts.models import Member, User
from apps.billing.models import Subscription, UsageReset, UserStats
from apps.billing.types import (
    ZERO,
    MemberRef,
    OrganizationRecord,
    ReferenceType,
    SubscriptionRecord,
    UsageData,
    UserRecord,
)
from apps.core.logging import get_logger
from apps.organizations.models import Organization

logger = get_logger(__name__)


class BillingStore(Protocol):
    """Persistent store for subscriptions, memberships and usage counters."""

    def get_user(self, user_id: int) -> UserRecord | None: ...

    def get_organization(self, organization_id: int) -> OrganizationRecord | None: ...

    def list_members(self, organization_id: int) -> list[MemberRef]: ...

    def get_highest_priority_subscription(self, user_id: int) -> SubscriptionRecord | None: ...

    def get_organization_subscription(self, organization_id: int) -> SubscriptionRecord | None: ...

    def get_subscription_by_stripe_id(self, stripe_subscription_id: str) -> SubscriptionRecord | None: ...

    def save_subscription(
        self, record: SubscriptionRecord, cancel_at_period_end: bool = False
    ) -> SubscriptionRecord: ...

    def update_subscription_period(
        self,
        stripe_subscription_id: str,
        *,
        status: str,
        period_start: datetime | None,
        period_end: datetime | None,
        cancel_at_period_end: bool | None = None,
    ) -> bool: ...

    def get_usage_data(self, user_id: int) -> UsageData: ...

    def reset_usage(self, user_id: int, period: str, stripe_subscription_id: str = "") -> bool: ...

    def set_billing_blocked(self, user_id: int, blocked: bool) -> bool: ...

    def set_user_usage_limit(self, user_id: int, limit: Decimal) -> None: ...

    def set_organization_usage_limit(self, organization_id: int, limit: Decimal) -> None: ...


class DjangoBillingStore:
    """BillingStore backed by the Django ORM."""

    def get_user(self, user_id: int) -> UserRecord | None:
        user = User.objects.filter(id=user_id).first()
        if user is None:
            return None
        return UserRecord(
            id=user.id,
            email=user.email,
            name=user.name,
            stripe_customer_id=user.stripe_customer_id,
        )

    def get_organization(self, organization_id: int) -> OrganizationRecord | None:
        org = Organization.objects.filter(id=organization_id).first()
        if org is None:
            return None
        return OrganizationRecord(
            id=org.id,
            name=org.name,
            stripe_customer_id=org.stripe_customer_id,
            usage_limit=org.usage_limit,
        )

    def list_members(self, organization_id: int) -> list[MemberRef]:
        members = Member.objects.filter(organization_id=organization_id).select_related("user")
        return [
            MemberRef(
                user_id=member.user_id,
                role=member.role,
                name=member.user.name,
                email=member.user.email,
            )
            for member in members
        ]

    def get_highest_priority_subscription(self, user_id: int) -> SubscriptionRecord | None:
        """
        Active subscription with the highest plan priority for a user.

        Considers the user's own subscriptions and those of every
        organization they belong to.
        """
        org_ids = list(
            Member.objects.filter(user_id=user_id).values_list("organization_id", flat=True)
        )
        subscriptions = Subscription.objects.filter(status=Subscription.Status.ACTIVE).filter(
            Q(reference_type=ReferenceType.USER, reference_id=user_id)
            | Q(reference_type=ReferenceType.ORGANIZATION, reference_id__in=org_ids)
        )
        records = [subscription.to_record() for subscription in subscriptions]
        return max(records, key=lambda record: record.plan.priority, default=None)

    def get_organization_subscription(self, organization_id: int) -> SubscriptionRecord | None:
        subscription = Subscription.objects.filter(
            reference_type=ReferenceType.ORGANIZATION,
            reference_id=organization_id,
            status=Subscription.Status.ACTIVE,
        ).first()
        return subscription.to_record() if subscription else None

    def get_subscription_by_stripe_id(self, stripe_subscription_id: str) -> SubscriptionRecord | None:
        subscription = Subscription.objects.filter(
            stripe_subscription_id=stripe_subscription_id
        ).first()
        return subscription.to_record() if subscription else None

    def save_subscription(
        self, record: SubscriptionRecord, cancel_at_period_end: bool = False
    ) -> SubscriptionRecord:
        metadata = {}
        if record.metadata is not None and record.metadata.per_seat_price is not None:
            metadata["perSeatPrice"] = str(record.metadata.per_seat_price)

        subscription, _ = Subscription.objects.update_or_create(
            stripe_subscription_id=record.stripe_subscription_id,
            defaults={
                "plan": record.plan.value,
                "reference_type": record.reference_type.value,
                "reference_id": record.reference_id,
                "status": record.status,
                "seats": record.seats,
                "period_start": record.period_start,
                "period_end": record.period_end,
                "cancel_at_period_end": cancel_at_period_end,
                "metadata": metadata,
            },
        )
        return subscription.to_record()

    def update_subscription_period(
        self,
        stripe_subscription_id: str,
        *,
        status: str,
        period_start: datetime | None,
        period_end: datetime | None,
        cancel_at_period_end: bool | None = None,
    ) -> bool:
        fields: dict = {"status": status, "updated_at": timezone.now()}
        if period_start is not None:
            fields["period_start"] = period_start
        if period_end is not None:
            fields["period_end"] = period_end
        if cancel_at_period_end is not None:
            fields["cancel_at_period_end"] = cancel_at_period_end

        updated = Subscription.objects.filter(
            stripe_subscription_id=stripe_subscription_id
        ).update(**fields)
        return updated > 0

    def get_usage_data(self, user_id: int) -> UsageData:
        """
        Current-period usage for a user.

        Users without a stats row have not used anything yet. Period bounds
        come from the subscription that governs the user's billing.
        """
        stats = UserStats.objects.filter(user_id=user_id).first()
        subscription = self.get_highest_priority_subscription(user_id)
        period_start = subscription.period_start if subscription else None
        period_end = subscription.period_end if subscription else None

        if stats is None:
            return UsageData(
                current_usage=ZERO,
                billing_period_start=period_start,
                billing_period_end=period_end,
            )

        return UsageData(
            current_usage=stats.current_period_cost,
            limit=stats.current_usage_limit,
            billing_period_start=period_start,
            billing_period_end=period_end,
            last_period_cost=stats.last_period_cost,
            billing_blocked=stats.billing_blocked,
        )

    def reset_usage(self, user_id: int, period: str, stripe_subscription_id: str = "") -> bool:
        """
        Roll the user's counter over for a billing period.

        Idempotent per (subscription, period): a repeated reset leaves
        last_period_cost as captured by the first one, while the renewal
        of another subscription in the same month still rolls over.
        """
        with transaction.atomic():
            stats = UserStats.objects.select_for_update().filter(user_id=user_id).first()
            if stats is None:
                return False
            _, created = UsageReset.objects.get_or_create(
                user_id=user_id,
                stripe_subscription_id=stripe_subscription_id,
                period=period,
            )
            if not created:
                return False

            stats.last_period_cost = stats.current_period_cost
            stats.current_period_cost = ZERO
            stats.last_reset_period = period
            stats.save(
                update_fields=[
                    "last_period_cost",
                    "current_period_cost",
                    "last_reset_period",
                    "updated_at",
                ]
            )

        logger.debug(
            "usage_counter_reset",
            user_id=user_id,
            stripe_subscription_id=stripe_subscription_id,
            billing_period=period,
        )
        return True

    def set_billing_blocked(self, user_id: int, blocked: bool) -> bool:
        """Flip the billing-blocked flag. Returns True only if it changed."""
        if blocked:
            _, created = UserStats.objects.get_or_create(
                user_id=user_id, defaults={"billing_blocked": True}
            )
            if created:
                return True
        updated = UserStats.objects.filter(user_id=user_id, billing_blocked=not blocked).update(
            billing_blocked=blocked, updated_at=timezone.now()
        )
        return updated > 0

    def set_user_usage_limit(self, user_id: int, limit: Decimal) -> None:
        UserStats.objects.update_or_create(
            user_id=user_id,
            defaults={"current_usage_limit": limit, "usage_limit_updated_at": timezone.now()},
        )

    def set_organization_usage_limit(self, organization_id: int, limit: Decimal) -> None:
        Organization.objects.filter(id=organization_id).update(
            usage_limit=limit, updated_at=timezone.now()
        )
