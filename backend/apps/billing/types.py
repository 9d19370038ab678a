"""
Billing value types shared by the pricing resolver, calculator and orchestrator.

These are plain dataclasses so the engine can run against any BillingStore
(the Django ORM in production, in-memory doubles in tests).
"""

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import StrEnum
from typing import Any

ZERO = Decimal("0")

# Stripe invoice metadata marking invoices/items created for overage billing
OVERAGE_INVOICE_TYPE = "overage_billing"


class Plan(StrEnum):
    FREE = "free"
    PRO = "pro"
    TEAM = "team"
    ENTERPRISE = "enterprise"

    @classmethod
    def parse(cls, value: "str | Plan | None") -> "Plan":
        """Parse a plan name, treating unknown or empty values as free."""
        try:
            return cls(value) if value else cls.FREE
        except ValueError:
            return cls.FREE

    @property
    def priority(self) -> int:
        return PLAN_PRIORITY[self]

    @property
    def is_pooled(self) -> bool:
        """Team and enterprise usage is pooled across organization members."""
        return self in (Plan.TEAM, Plan.ENTERPRISE)


PLAN_PRIORITY = {
    Plan.FREE: 0,
    Plan.PRO: 1,
    Plan.TEAM: 2,
    Plan.ENTERPRISE: 3,
}


class ReferenceType(StrEnum):
    """Kind of billing subject a subscription is bound to."""

    USER = "user"
    ORGANIZATION = "organization"


def parse_decimal(value: Any) -> Decimal | None:
    """Parse a money value from metadata. Returns None for anything non-numeric."""
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not parsed.is_finite():
        return None
    return parsed


@dataclass(frozen=True)
class EnterpriseMetadata:
    """Typed view of subscription metadata; only enterprise plans use it."""

    per_seat_price: Decimal | None = None

    @classmethod
    def from_raw(cls, raw: "Mapping[str, Any] | str | None") -> "EnterpriseMetadata | None":
        """
        Build from stored metadata (a mapping or a JSON string).

        Malformed JSON, missing keys and non-positive prices all mean
        "no custom price" so callers fall back to the configured default.
        """
        if raw is None:
            return None
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except ValueError:
                return None
        if not isinstance(raw, Mapping):
            return None

        price = parse_decimal(raw.get("perSeatPrice"))
        if price is not None and price <= 0:
            price = None
        return cls(per_seat_price=price)


@dataclass
class SubscriptionRecord:
    """A payment-provider subscription bound to a user or an organization."""

    stripe_subscription_id: str
    plan: Plan
    reference_type: ReferenceType
    reference_id: int
    status: str = "active"
    seats: int = 1
    period_start: datetime | None = None
    period_end: datetime | None = None
    metadata: EnterpriseMetadata | None = None
    id: int | None = None

    def __post_init__(self) -> None:
        self.plan = Plan.parse(self.plan)
        self.reference_type = ReferenceType(self.reference_type)
        if not self.seats or self.seats < 1:
            self.seats = 1

    @property
    def is_active(self) -> bool:
        return self.status == "active"


@dataclass(frozen=True)
class UserRecord:
    id: int
    email: str
    name: str = ""
    stripe_customer_id: str = ""


@dataclass(frozen=True)
class OrganizationRecord:
    id: int
    name: str
    stripe_customer_id: str = ""
    usage_limit: Decimal | None = None


@dataclass(frozen=True)
class MemberRef:
    user_id: int
    role: str = "member"
    name: str = ""
    email: str = ""


@dataclass(frozen=True)
class UsageData:
    """Snapshot of a user's usage counter for the current billing period."""

    current_usage: Decimal
    # None means no personal cap was set; callers fall back to the plan minimum
    limit: Decimal | None = None
    billing_period_start: datetime | None = None
    billing_period_end: datetime | None = None
    last_period_cost: Decimal = ZERO
    billing_blocked: bool = False


@dataclass(frozen=True)
class PlanPricing:
    # Covered by the base subscription charge: flat for pro, per seat for team/enterprise
    base_price: Decimal


@dataclass(frozen=True)
class UserOverage:
    base_price: Decimal
    actual_usage: Decimal
    overage_amount: Decimal
    plan: Plan


@dataclass(frozen=True)
class MemberUsage:
    user_id: int
    usage: Decimal
    name: str = ""
    email: str = ""


@dataclass(frozen=True)
class OrganizationOverage:
    """Pooled overage for a team/enterprise organization."""

    success: bool
    organization_id: int
    plan: Plan | None = None
    licensed_seats: int = 0
    base_price_per_seat: Decimal = ZERO
    base_subscription_amount: Decimal = ZERO
    total_usage: Decimal = ZERO
    total_overage: Decimal = ZERO
    member_usage: list[MemberUsage] = field(default_factory=list)
    error: str | None = None

    @property
    def member_count(self) -> int:
        return len(self.member_usage)


@dataclass(frozen=True)
class BillingResult:
    """Outcome of an attempt to create or attach an overage billing artifact."""

    success: bool
    charged_amount: Decimal = ZERO
    invoice_id: str | None = None
    error: str | None = None
    duplicate: bool = False

    @classmethod
    def failed(cls, error: str) -> "BillingResult":
        return cls(success=False, error=error)

    @classmethod
    def nothing_to_bill(cls) -> "BillingResult":
        return cls(success=True)


class OutcomeStatus(StrEnum):
    HANDLED = "handled"
    IGNORED = "ignored"
    RETRYABLE_FAILURE = "retryable_failure"


@dataclass(frozen=True)
class HandlerOutcome:
    """
    Result of handling one webhook event.

    The webhook route translates RETRYABLE_FAILURE into a non-2xx response
    so the provider redelivers the event.
    """

    status: OutcomeStatus
    detail: str = ""
    billing: BillingResult | None = None

    @classmethod
    def handled(cls, detail: str = "", billing: BillingResult | None = None) -> "HandlerOutcome":
        return cls(OutcomeStatus.HANDLED, detail, billing)

    @classmethod
    def ignored(cls, detail: str = "") -> "HandlerOutcome":
        return cls(OutcomeStatus.IGNORED, detail)

    @classmethod
    def retry(cls, detail: str) -> "HandlerOutcome":
        return cls(OutcomeStatus.RETRYABLE_FAILURE, detail)

    @property
    def should_retry(self) -> bool:
        return self.status is OutcomeStatus.RETRYABLE_FAILURE


@dataclass(frozen=True)
class OrganizationSummary:
    seat_count: int
    member_count: int
    total_base_price: Decimal
    total_current_usage: Decimal
    total_overage: Decimal


@dataclass(frozen=True)
class BillingSummary:
    """Dashboard view of a subject's plan, usage and projected charges."""

    type: str
    plan: Plan
    base_price: Decimal
    current_usage: Decimal
    overage_amount: Decimal
    total_projected: Decimal
    usage_limit: Decimal
    percent_used: int
    is_warning: bool
    is_exceeded: bool
    is_blocked: bool
    days_remaining: int
    status: str | None = None
    seats: int | None = None
    stripe_subscription_id: str | None = None
    period_end: datetime | None = None
    last_period_cost: Decimal = ZERO
    organization: OrganizationSummary | None = None

    @property
    def is_paid(self) -> bool:
        return self.plan is not Plan.FREE
