"""
Factories for billing app models.

Used in tests to create test data.
"""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import factory
from factory.django import DjangoModelFactory

from apps.billing.models import Subscription, UserStats
from apps.billing.types import Plan, ReferenceType
from tests.accounts.factories import UserFactory


class SubscriptionFactory(DjangoModelFactory):
    """Factory for an individual pro Subscription; override plan/reference for teams."""

    class Meta:
        model = Subscription

    stripe_subscription_id = factory.Sequence(lambda n: f"sub_test_{n}")
    plan = Plan.PRO.value
    reference_type = ReferenceType.USER.value
    reference_id = factory.LazyFunction(lambda: UserFactory.create().id)
    status = Subscription.Status.ACTIVE
    seats = 1
    period_start = factory.LazyFunction(lambda: datetime.now(tz=UTC))
    period_end = factory.LazyFunction(lambda: datetime.now(tz=UTC) + timedelta(days=30))
    cancel_at_period_end = False
    metadata = factory.LazyFunction(dict)


class UserStatsFactory(DjangoModelFactory):
    """Factory for UserStats model."""

    class Meta:
        model = UserStats

    user = factory.SubFactory(UserFactory)
    current_period_cost = Decimal("0")
    last_period_cost = Decimal("0")
    billing_blocked = False
