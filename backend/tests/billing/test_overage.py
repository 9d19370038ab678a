"""
Tests for overage calculation and billing summaries.

Runs against the in-memory store, no database needed.
"""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from apps.billing.overage import OverageCalculator, days_remaining, percent_used
from apps.billing.types import EnterpriseMetadata, Plan, ReferenceType, SubscriptionRecord

from .fakes import InMemoryBillingStore


@pytest.fixture
def store() -> InMemoryBillingStore:
    return InMemoryBillingStore()


def pro_subscription(user_id: int, status: str = "active") -> SubscriptionRecord:
    return SubscriptionRecord(
        stripe_subscription_id=f"sub_pro_{user_id}",
        plan=Plan.PRO,
        reference_type=ReferenceType.USER,
        reference_id=user_id,
        status=status,
    )


def org_subscription(
    organization_id: int, plan: Plan = Plan.TEAM, seats: int = 3, metadata=None
) -> SubscriptionRecord:
    return SubscriptionRecord(
        stripe_subscription_id=f"sub_org_{organization_id}",
        plan=plan,
        reference_type=ReferenceType.ORGANIZATION,
        reference_id=organization_id,
        seats=seats,
        metadata=EnterpriseMetadata.from_raw(metadata),
    )


class TestCalculateUserOverage:
    """Tests for individual overage."""

    def test_pro_usage_above_base(self, store: InMemoryBillingStore) -> None:
        """Pro user with $35 usage on a $20 plan owes $15."""
        store.add_user(1, usage="35")
        store.add_subscription(pro_subscription(1))

        overage = OverageCalculator(store).calculate_user_overage(1)

        assert overage.plan is Plan.PRO
        assert overage.base_price == Decimal("20")
        assert overage.actual_usage == Decimal("35")
        assert overage.overage_amount == Decimal("15")

    def test_usage_below_base_is_never_negative(self, store: InMemoryBillingStore) -> None:
        """Usage under the base price means zero overage."""
        store.add_user(1, usage="5")
        store.add_subscription(pro_subscription(1))

        overage = OverageCalculator(store).calculate_user_overage(1)

        assert overage.overage_amount == Decimal("0")

    def test_free_plan_never_has_overage(self, store: InMemoryBillingStore) -> None:
        """Users without a subscription are on the free plan with zero base price."""
        store.add_user(1, usage="500")

        overage = OverageCalculator(store).calculate_user_overage(1)

        assert overage.plan is Plan.FREE
        assert overage.base_price == Decimal("0")
        assert overage.overage_amount == Decimal("0")

    def test_inactive_subscription_is_ignored(self, store: InMemoryBillingStore) -> None:
        """Only active subscriptions govern billing."""
        store.add_user(1, usage="35")
        store.add_subscription(pro_subscription(1, status="canceled"))

        overage = OverageCalculator(store).calculate_user_overage(1)

        assert overage.plan is Plan.FREE

    def test_missing_user_returns_none(self, store: InMemoryBillingStore) -> None:
        """Unknown users yield no result."""
        assert OverageCalculator(store).calculate_user_overage(999) is None

    def test_subscription_lookup_error_treated_as_free(self, store: InMemoryBillingStore) -> None:
        """Store read errors fall back to the free plan rather than failing."""
        store.add_user(1, usage="35")
        store.fail_subscription_lookups = True

        overage = OverageCalculator(store).calculate_user_overage(1)

        assert overage.plan is Plan.FREE

    def test_highest_priority_plan_wins(self, store: InMemoryBillingStore) -> None:
        """A pro user who is also on a team is billed by the team plan."""
        store.add_organization(7, usages=["10"], first_user_id=1)
        store.add_subscription(pro_subscription(1))
        store.add_subscription(org_subscription(7, seats=1))

        overage = OverageCalculator(store).calculate_user_overage(1)

        assert overage.plan is Plan.TEAM
        assert overage.base_price == Decimal("40")


class TestCalculateOrganizationOverage:
    """Tests for pooled organization overage."""

    def test_team_pooled_overage(self, store: InMemoryBillingStore) -> None:
        """3 seats at $40 with usages 50/40/45 owe $15."""
        store.add_organization(7, usages=["50", "40", "45"])
        store.add_subscription(org_subscription(7, seats=3))

        result = OverageCalculator(store).calculate_organization_overage(7)

        assert result.success is True
        assert result.base_subscription_amount == Decimal("120")
        assert result.total_usage == Decimal("135")
        assert result.total_overage == Decimal("15")
        assert result.member_count == 3
        assert [entry.usage for entry in result.member_usage] == [
            Decimal("50"),
            Decimal("40"),
            Decimal("45"),
        ]

    def test_enterprise_custom_price(self, store: InMemoryBillingStore) -> None:
        """Enterprise at $75/seat for 2 seats with $200 usage owes $50."""
        store.add_organization(8, usages=["120", "80"])
        store.add_subscription(
            org_subscription(8, plan=Plan.ENTERPRISE, seats=2, metadata={"perSeatPrice": "75"})
        )

        result = OverageCalculator(store).calculate_organization_overage(8)

        assert result.base_price_per_seat == Decimal("75")
        assert result.base_subscription_amount == Decimal("150")
        assert result.total_overage == Decimal("50")

    def test_base_uses_licensed_seats_not_member_count(self, store: InMemoryBillingStore) -> None:
        """Adding members without buying seats does not change the base amount."""
        store.add_organization(7, usages=["50", "40", "45", "0", "0"])
        store.add_subscription(org_subscription(7, seats=3))

        result = OverageCalculator(store).calculate_organization_overage(7)

        assert result.licensed_seats == 3
        assert result.member_count == 5
        assert result.base_subscription_amount == Decimal("120")

    def test_no_members_means_no_overage(self, store: InMemoryBillingStore) -> None:
        """An organization without members has nothing to bill."""
        store.add_organization(7, usages=[])
        store.add_subscription(org_subscription(7))

        result = OverageCalculator(store).calculate_organization_overage(7)

        assert result.success is True
        assert result.total_overage == Decimal("0")

    def test_requires_pooled_subscription(self, store: InMemoryBillingStore) -> None:
        """Organizations without an active team/enterprise subscription fail."""
        store.add_organization(7, usages=["50"])

        result = OverageCalculator(store).calculate_organization_overage(7)

        assert result.success is False
        assert result.error == "No valid subscription found"


class TestBillingSummary:
    """Tests for the dashboard summary."""

    def test_individual_pro_summary(self, store: InMemoryBillingStore) -> None:
        """Pro summary reports overage, projection and the warning band."""
        store.add_user(1, usage="17", current_usage_limit=Decimal("20"))
        store.add_subscription(pro_subscription(1))

        summary = OverageCalculator(store).get_billing_summary(1)

        assert summary.type == "individual"
        assert summary.plan is Plan.PRO
        assert summary.is_paid is True
        assert summary.overage_amount == Decimal("0")
        assert summary.total_projected == Decimal("20")
        assert summary.percent_used == 85
        assert summary.is_warning is True
        assert summary.is_exceeded is False

    def test_exceeded_is_not_warning(self, store: InMemoryBillingStore) -> None:
        """At or above the limit the summary is exceeded, not warning."""
        store.add_user(1, usage="35", current_usage_limit=Decimal("30"))
        store.add_subscription(pro_subscription(1))

        summary = OverageCalculator(store).get_billing_summary(1)

        assert summary.is_exceeded is True
        assert summary.is_warning is False
        assert summary.overage_amount == Decimal("15")
        assert summary.total_projected == Decimal("35")

    def test_free_user_summary_uses_free_limit(self, store: InMemoryBillingStore) -> None:
        """Free users are measured against the free allowance."""
        store.add_user(1, usage="2")

        summary = OverageCalculator(store).get_billing_summary(1)

        assert summary.plan is Plan.FREE
        assert summary.usage_limit == Decimal("10")
        assert summary.percent_used == 20

    def test_organization_summary(self, store: InMemoryBillingStore) -> None:
        """Organization summary reports pooled usage against licensed seats."""
        store.add_organization(7, usages=["50", "40", "45"], usage_limit=Decimal("300"))
        store.add_subscription(org_subscription(7, seats=3))

        summary = OverageCalculator(store).get_billing_summary(100, organization_id=7)

        assert summary.type == "organization"
        assert summary.base_price == Decimal("120")
        assert summary.current_usage == Decimal("135")
        assert summary.overage_amount == Decimal("15")
        assert summary.usage_limit == Decimal("300")
        assert summary.organization.seat_count == 3
        assert summary.organization.member_count == 3
        assert summary.organization.total_overage == Decimal("15")

    def test_organization_without_subscription_gets_default(self, store: InMemoryBillingStore) -> None:
        """Organizations without a subscription get the default free summary."""
        store.add_organization(7, usages=["50"])

        summary = OverageCalculator(store).get_billing_summary(100, organization_id=7)

        assert summary.type == "organization"
        assert summary.plan is Plan.FREE
        assert summary.current_usage == Decimal("0")

    def test_read_failure_gets_default(self, store: InMemoryBillingStore) -> None:
        """Store failures yield the default summary instead of an error."""
        store.add_user(1, usage="2")
        store.fail_subscription_lookups = True

        summary = OverageCalculator(store).get_billing_summary(1)

        assert summary.plan is Plan.FREE
        assert summary.base_price == Decimal("0")


class TestSummaryHelpers:
    """Tests for summary arithmetic."""

    def test_days_remaining_rounds_up(self) -> None:
        """Partial days count as a full day."""
        now = datetime(2026, 9, 1, tzinfo=UTC)

        assert days_remaining(now + timedelta(days=2, hours=1), now=now) == 3

    def test_days_remaining_never_negative(self) -> None:
        """Past period ends report zero days."""
        now = datetime(2026, 9, 1, tzinfo=UTC)

        assert days_remaining(now - timedelta(days=1), now=now) == 0
        assert days_remaining(None) == 0

    def test_percent_used_with_zero_limit(self) -> None:
        """A zero limit reports zero percent instead of dividing by zero."""
        assert percent_used(Decimal("5"), Decimal("0")) == 0
