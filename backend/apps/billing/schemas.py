"""
Billing API schemas - request/response types for billing endpoints.
"""

from decimal import Decimal

from ninja import Schema


class OrganizationSummarySchema(Schema):
    """Pooled usage figures for a team or enterprise organization."""

    seat_count: int
    member_count: int
    total_base_price: Decimal
    total_current_usage: Decimal
    total_overage: Decimal


class BillingSummaryResponse(Schema):
    """Plan, usage and projected charges for the current billing period."""

    type: str  # 'individual' or 'organization'
    plan: str  # 'free', 'pro', 'team', 'enterprise'
    is_paid: bool
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
    period_end: str | None = None  # ISO timestamp
    last_period_cost: Decimal
    organization: OrganizationSummarySchema | None = None


class UsageLimitRequest(Schema):
    """Request to change a usage cap, in dollars."""

    limit: Decimal | str


class UsageLimitResponse(Schema):
    """Usage cap after a successful update."""

    limit: Decimal
