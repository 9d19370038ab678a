"""
Plan pricing - maps a subscription to what its base charge already covers.

BILLING MODEL:
1. A user buys the $20 pro plan and is charged $20 up front by Stripe.
2. They use $15 during the month: no extra charge (covered by the $20).
3. They use $35 during the month: $15 overage is billed at renewal.
4. Usage resets and the next period starts at $20 again.

Team and enterprise plans work the same way per licensed seat, with usage
pooled across every member of the organization.

All functions here are pure; allowances come from settings.
"""

from decimal import Decimal

from apps.billing.types import ZERO, Plan, PlanPricing, SubscriptionRecord
from config.settings.base import settings


def _dollars(value: float) -> Decimal:
    return Decimal(str(value))


def get_free_tier_limit() -> Decimal:
    return _dollars(settings.FREE_TIER_COST_LIMIT)


def get_pro_tier_limit() -> Decimal:
    return _dollars(settings.PRO_TIER_COST_LIMIT)


def get_team_tier_limit_per_seat() -> Decimal:
    return _dollars(settings.TEAM_TIER_COST_LIMIT)


def get_enterprise_tier_limit_per_seat() -> Decimal:
    return _dollars(settings.ENTERPRISE_TIER_COST_LIMIT)


def get_plan_limits(plan_name: str) -> Decimal:
    """
    Cost allowance from the plan catalogue.

    Unknown plan names get the free allowance.
    """
    catalogue = {
        Plan.FREE: get_free_tier_limit(),
        Plan.PRO: get_pro_tier_limit(),
        Plan.TEAM: get_team_tier_limit_per_seat(),
    }
    return catalogue.get(Plan.parse(plan_name), get_free_tier_limit())


def get_plan_pricing(plan: Plan | str, subscription: SubscriptionRecord | None = None) -> PlanPricing:
    """
    Get the base price covered by the subscription charge.

    Flat for pro, per seat for team and enterprise. Enterprise subscriptions
    may override the per-seat price with a positive metadata.perSeatPrice.
    """
    match Plan.parse(plan):
        case Plan.FREE:
            return PlanPricing(base_price=ZERO)
        case Plan.PRO:
            return PlanPricing(base_price=get_pro_tier_limit())
        case Plan.TEAM:
            return PlanPricing(base_price=get_team_tier_limit_per_seat())
        case Plan.ENTERPRISE:
            metadata = subscription.metadata if subscription else None
            if metadata is not None and metadata.per_seat_price is not None:
                return PlanPricing(base_price=metadata.per_seat_price)
            return PlanPricing(base_price=get_enterprise_tier_limit_per_seat())


def get_subscription_allowance(subscription: SubscriptionRecord | None) -> Decimal:
    """
    Total dollar allowance covered by the subscription's base charge.

    Inactive or missing subscriptions get the free allowance.
    """
    if subscription is None or not subscription.is_active:
        return get_free_tier_limit()

    if subscription.plan is Plan.PRO:
        return get_pro_tier_limit()
    if subscription.plan.is_pooled:
        base_price = get_plan_pricing(subscription.plan, subscription).base_price
        return base_price * subscription.seats

    return get_free_tier_limit()


def get_per_user_minimum_limit(subscription: SubscriptionRecord | None) -> Decimal:
    """
    Lowest usage limit a subject may set.

    Team and enterprise plans have no true per-user floor, so the pooled
    allowance (seats x per-seat price) is used as the minimum.
    """
    return get_subscription_allowance(subscription)


def get_minimum_usage_limit(subscription: SubscriptionRecord | None) -> Decimal:
    return get_per_user_minimum_limit(subscription)


def can_edit_usage_limit(subscription: SubscriptionRecord | None) -> bool:
    """Free plan users cannot edit limits, active paid plans can."""
    if subscription is None or not subscription.is_active:
        return False
    return subscription.plan in (Plan.PRO, Plan.TEAM, Plan.ENTERPRISE)
