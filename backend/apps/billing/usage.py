"""
Usage limits - user and organization spending caps.

Caps can only be raised above what the plan already covers, and an
organization cap can never be set below what members have already used.
"""

from decimal import Decimal
from typing import Any

from apps.billing.exceptions import InvalidUsageLimitError
from apps.billing.overage import OverageCalculator
from apps.billing.plans import can_edit_usage_limit, get_minimum_usage_limit
from apps.billing.store import BillingStore
from apps.billing.types import parse_decimal
from apps.core.logging import get_logger

logger = get_logger(__name__)


def _parse_limit(value: Any) -> Decimal:
    limit = parse_decimal(value)
    if limit is None:
        raise InvalidUsageLimitError("Usage limit must be a number")
    if limit <= 0:
        raise InvalidUsageLimitError("Usage limit must be greater than zero")
    return limit


def update_user_usage_limit(store: BillingStore, user_id: int, new_limit: Any) -> Decimal:
    """
    Set a user's personal usage cap.

    Raises InvalidUsageLimitError for free-tier users and for values that are
    not numbers, not positive or below the plan minimum.
    """
    limit = _parse_limit(new_limit)
    subscription = store.get_highest_priority_subscription(user_id)

    if not can_edit_usage_limit(subscription):
        raise InvalidUsageLimitError("Free plan users cannot edit usage limits")

    minimum = get_minimum_usage_limit(subscription)
    if limit < minimum:
        raise InvalidUsageLimitError(f"Usage limit cannot be below plan minimum of ${minimum:.2f}")

    store.set_user_usage_limit(user_id, limit)
    logger.info(
        "user_usage_limit_updated",
        user_id=user_id,
        plan=subscription.plan.value,
        new_limit=limit,
        minimum_limit=minimum,
    )
    return limit


def update_organization_usage_limit(
    store: BillingStore, organization_id: int, new_limit: Any
) -> Decimal:
    """
    Set an organization's pooled usage cap.

    Only active team and enterprise organizations have a pooled cap. The
    stored cap is left unchanged when the update is rejected.
    """
    limit = _parse_limit(new_limit)
    subscription = store.get_organization_subscription(organization_id)
    if subscription is None or not subscription.plan.is_pooled:
        raise InvalidUsageLimitError("No active team or enterprise subscription for this organization")

    minimum = get_minimum_usage_limit(subscription)
    if limit < minimum:
        raise InvalidUsageLimitError(
            f"Usage limit cannot be below the plan minimum of ${minimum:.2f} "
            f"({subscription.seats} seats)"
        )

    current_usage = OverageCalculator(store).get_pooled_usage(organization_id)
    if limit < current_usage:
        raise InvalidUsageLimitError(
            f"Usage limit cannot be below current team usage of ${current_usage:.2f}"
        )

    store.set_organization_usage_limit(organization_id, limit)
    logger.info(
        "organization_usage_limit_updated",
        organization_id=organization_id,
        plan=subscription.plan.value,
        new_limit=limit,
        minimum_limit=minimum,
        current_usage=current_usage,
    )
    return limit


def is_usage_blocked(store: BillingStore, user_id: int) -> bool:
    """
    Whether a user must be denied further usage.

    Members of a pooled plan are also stopped once the team as a whole
    reaches the organization cap.
    """
    usage = store.get_usage_data(user_id)
    if usage.billing_blocked:
        return True

    subscription = store.get_highest_priority_subscription(user_id)
    limit = usage.limit
    if limit is None:
        limit = get_minimum_usage_limit(subscription)
    if usage.current_usage >= limit:
        return True

    if subscription is None or not subscription.plan.is_pooled:
        return False
    organization = store.get_organization(subscription.reference_id)
    if organization is None or organization.usage_limit is None:
        return False
    pooled_usage = OverageCalculator(store).get_pooled_usage(organization.id)
    if pooled_usage >= organization.usage_limit:
        logger.info(
            "organization_usage_limit_reached",
            user_id=user_id,
            organization_id=organization.id,
            pooled_usage=pooled_usage,
            usage_limit=organization.usage_limit,
        )
        return True
    return False
