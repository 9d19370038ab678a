"""
Overage calculation - how much usage exceeds what the base charge covered.

Everything here is read-only: the calculator never writes counters or talks
to the payment provider.
"""

import math
from datetime import UTC, datetime
from decimal import Decimal

from apps.billing.plans import (
    get_free_tier_limit,
    get_per_user_minimum_limit,
    get_plan_pricing,
)
from apps.billing.store import BillingStore
from apps.billing.types import (
    ZERO,
    BillingSummary,
    MemberUsage,
    OrganizationOverage,
    OrganizationSummary,
    Plan,
    SubscriptionRecord,
    UsageData,
    UserOverage,
)
from apps.core.logging import get_logger

logger = get_logger(__name__)

WARNING_THRESHOLD_PERCENT = 80


class OverageCalculator:
    """Computes billable overage for users and pooled organizations."""

    def __init__(self, store: BillingStore):
        self.store = store

    def calculate_user_overage(self, user_id: int) -> UserOverage | None:
        """
        Overage for an individual subscriber.

        Returns None when the user does not exist. Subscription read errors
        are logged and treated as "no subscription" (free plan).
        """
        if self.store.get_user(user_id) is None:
            logger.warning("overage_user_not_found", user_id=user_id)
            return None

        subscription = self._highest_priority_subscription(user_id)
        plan = subscription.plan if subscription else Plan.FREE
        base_price = get_plan_pricing(plan, subscription).base_price
        actual_usage = self.store.get_usage_data(user_id).current_usage

        return UserOverage(
            base_price=base_price,
            actual_usage=actual_usage,
            overage_amount=_overage(plan, actual_usage, base_price),
            plan=plan,
        )

    def calculate_organization_overage(self, organization_id: int) -> OrganizationOverage:
        """
        Pooled overage for a team/enterprise organization.

        The base amount uses the licensed seats on the subscription (what
        Stripe is charging for), never the live member count.
        """
        subscription = self.store.get_organization_subscription(organization_id)
        if subscription is None or not subscription.plan.is_pooled:
            logger.warning("overage_no_pooled_subscription", organization_id=organization_id)
            return OrganizationOverage(
                success=False,
                organization_id=organization_id,
                error="No valid subscription found",
            )

        base_price_per_seat = get_plan_pricing(subscription.plan, subscription).base_price
        licensed_seats = subscription.seats
        base_subscription_amount = base_price_per_seat * licensed_seats

        members = self.store.list_members(organization_id)
        member_usage = [
            MemberUsage(
                user_id=member.user_id,
                usage=self.store.get_usage_data(member.user_id).current_usage,
                name=member.name,
                email=member.email,
            )
            for member in members
        ]
        total_usage = sum((entry.usage for entry in member_usage), ZERO)
        total_overage = max(ZERO, total_usage - base_subscription_amount)

        logger.info(
            "organization_overage_calculated",
            organization_id=organization_id,
            plan=subscription.plan.value,
            licensed_seats=licensed_seats,
            member_count=len(members),
            base_subscription_amount=base_subscription_amount,
            total_usage=total_usage,
            total_overage=total_overage,
        )

        return OrganizationOverage(
            success=True,
            organization_id=organization_id,
            plan=subscription.plan,
            licensed_seats=licensed_seats,
            base_price_per_seat=base_price_per_seat,
            base_subscription_amount=base_subscription_amount,
            total_usage=total_usage,
            total_overage=total_overage,
            member_usage=member_usage,
        )

    def get_pooled_usage(self, organization_id: int) -> Decimal:
        """Sum of current-period usage across all organization members."""
        return sum(
            (
                self.store.get_usage_data(member.user_id).current_usage
                for member in self.store.list_members(organization_id)
            ),
            ZERO,
        )

    def get_billing_summary(
        self, user_id: int, organization_id: int | None = None
    ) -> BillingSummary:
        """
        Plan, usage and projected charges for a user or their organization.

        Falls back to a default free summary if anything cannot be read.
        """
        summary_type = "organization" if organization_id else "individual"
        try:
            usage = self.store.get_usage_data(user_id)
            if organization_id:
                subscription = self.store.get_organization_subscription(organization_id)
                if subscription is None:
                    return default_billing_summary(summary_type)
                return self._organization_summary(organization_id, subscription, usage)
            subscription = self.store.get_highest_priority_subscription(user_id)
            return self._individual_summary(subscription, usage)
        except Exception:
            logger.exception(
                "billing_summary_failed", user_id=user_id, organization_id=organization_id
            )
            return default_billing_summary(summary_type)

    def _highest_priority_subscription(self, user_id: int) -> SubscriptionRecord | None:
        try:
            return self.store.get_highest_priority_subscription(user_id)
        except Exception:
            logger.exception("overage_subscription_lookup_failed", user_id=user_id)
            return None

    def _organization_summary(
        self, organization_id: int, subscription: SubscriptionRecord, usage: UsageData
    ) -> BillingSummary:
        members = self.store.list_members(organization_id)
        base_price_per_seat = get_plan_pricing(subscription.plan, subscription).base_price
        total_base_price = base_price_per_seat * subscription.seats
        total_usage = self.get_pooled_usage(organization_id)
        total_overage = max(ZERO, total_usage - total_base_price)

        organization = self.store.get_organization(organization_id)
        usage_limit = (
            organization.usage_limit
            if organization is not None and organization.usage_limit is not None
            else get_per_user_minimum_limit(subscription)
        )

        return _build_summary(
            summary_type="organization",
            subscription=subscription,
            usage=usage,
            base_price=total_base_price,
            current_usage=total_usage,
            usage_limit=usage_limit,
            organization=OrganizationSummary(
                seat_count=subscription.seats,
                member_count=len(members),
                total_base_price=total_base_price,
                total_current_usage=total_usage,
                total_overage=total_overage,
            ),
        )

    def _individual_summary(
        self, subscription: SubscriptionRecord | None, usage: UsageData
    ) -> BillingSummary:
        plan = subscription.plan if subscription else Plan.FREE
        base_price = get_plan_pricing(plan, subscription).base_price

        # Pooled plans report the whole team's usage against all licensed seats
        current_usage = usage.current_usage
        if subscription is not None and subscription.plan.is_pooled:
            current_usage = self.get_pooled_usage(subscription.reference_id)
            base_price = base_price * subscription.seats

        usage_limit = usage.limit if usage.limit is not None else get_per_user_minimum_limit(subscription)

        return _build_summary(
            summary_type="individual",
            subscription=subscription,
            usage=usage,
            base_price=base_price,
            current_usage=current_usage,
            usage_limit=usage_limit,
        )


def days_remaining(period_end: datetime | None, now: datetime | None = None) -> int:
    """Whole days left in the billing period, rounded up, never negative."""
    if period_end is None:
        return 0
    now = now or datetime.now(tz=UTC)
    seconds = (period_end - now).total_seconds()
    return max(0, math.ceil(seconds / 86400))


def _overage(plan: Plan, usage: Decimal, base_price: Decimal) -> Decimal:
    # Free usage is capped by limits, never billed
    if plan is Plan.FREE:
        return ZERO
    return max(ZERO, usage - base_price)


def percent_used(current: Decimal, limit: Decimal) -> int:
    if limit <= 0:
        return 0
    return round(current / limit * 100)


def _build_summary(
    *,
    summary_type: str,
    subscription: SubscriptionRecord | None,
    usage: UsageData,
    base_price: Decimal,
    current_usage: Decimal,
    usage_limit: Decimal,
    organization: OrganizationSummary | None = None,
) -> BillingSummary:
    plan = subscription.plan if subscription else Plan.FREE
    overage_amount = _overage(plan, current_usage, base_price)
    used = percent_used(current_usage, usage_limit)

    return BillingSummary(
        type=summary_type,
        plan=plan,
        base_price=base_price,
        current_usage=current_usage,
        overage_amount=overage_amount,
        total_projected=base_price + overage_amount,
        usage_limit=usage_limit,
        percent_used=used,
        is_warning=WARNING_THRESHOLD_PERCENT <= used < 100,
        is_exceeded=current_usage >= usage_limit,
        is_blocked=usage.billing_blocked,
        days_remaining=days_remaining(usage.billing_period_end),
        status=subscription.status if subscription else None,
        seats=subscription.seats if subscription else None,
        stripe_subscription_id=subscription.stripe_subscription_id if subscription else None,
        period_end=subscription.period_end if subscription else None,
        last_period_cost=usage.last_period_cost,
        organization=organization,
    )


def default_billing_summary(summary_type: str) -> BillingSummary:
    free_limit = get_free_tier_limit()
    return BillingSummary(
        type=summary_type,
        plan=Plan.FREE,
        base_price=ZERO,
        current_usage=ZERO,
        overage_amount=ZERO,
        total_projected=ZERO,
        usage_limit=free_limit,
        percent_used=0,
        is_warning=False,
        is_exceeded=False,
        is_blocked=False,
        days_remaining=0,
    )
