"""
Billing API endpoints.

Usage summary for the dashboard and usage cap management.
"""

from django.http import HttpRequest
from ninja import Router
from ninja.errors import HttpError

from apps.billing.exceptions import InvalidUsageLimitError
from apps.billing.overage import OverageCalculator
from apps.billing.schemas import (
    BillingSummaryResponse,
    OrganizationSummarySchema,
    UsageLimitRequest,
    UsageLimitResponse,
)
from apps.billing.store import BillingStore, DjangoBillingStore
from apps.billing.types import BillingSummary
from apps.billing.usage import update_organization_usage_limit, update_user_usage_limit
from apps.core.logging import get_logger
from apps.core.schemas import ErrorResponse
from apps.core.security import BearerAuth

logger = get_logger(__name__)

router = Router(tags=["billing"])
bearer_auth = BearerAuth()


def get_billing_store() -> BillingStore:
    return DjangoBillingStore()


def _summary_response(summary: BillingSummary) -> BillingSummaryResponse:
    organization = None
    if summary.organization is not None:
        organization = OrganizationSummarySchema(
            seat_count=summary.organization.seat_count,
            member_count=summary.organization.member_count,
            total_base_price=summary.organization.total_base_price,
            total_current_usage=summary.organization.total_current_usage,
            total_overage=summary.organization.total_overage,
        )

    return BillingSummaryResponse(
        type=summary.type,
        plan=summary.plan.value,
        is_paid=summary.is_paid,
        base_price=summary.base_price,
        current_usage=summary.current_usage,
        overage_amount=summary.overage_amount,
        total_projected=summary.total_projected,
        usage_limit=summary.usage_limit,
        percent_used=summary.percent_used,
        is_warning=summary.is_warning,
        is_exceeded=summary.is_exceeded,
        is_blocked=summary.is_blocked,
        days_remaining=summary.days_remaining,
        status=summary.status,
        seats=summary.seats,
        stripe_subscription_id=summary.stripe_subscription_id,
        period_end=summary.period_end.isoformat() if summary.period_end else None,
        last_period_cost=summary.last_period_cost,
        organization=organization,
    )


@router.get(
    "/summary",
    response={200: BillingSummaryResponse, 401: ErrorResponse},
    auth=bearer_auth,
    operation_id="getBillingSummary",
    summary="Get usage and projected charges",
)
def get_summary(request: HttpRequest, scope: str = "individual") -> BillingSummaryResponse:
    """
    Get plan, usage and projected charges for the current billing period.

    scope=organization reports pooled usage for the organization the
    user is acting within.
    """
    user = request.auth.require_user()
    organization_id = None
    if scope == "organization":
        if request.auth.organization is None:
            raise HttpError(401, "Not authenticated")
        organization_id = request.auth.organization.id

    summary = OverageCalculator(get_billing_store()).get_billing_summary(
        user.id, organization_id=organization_id
    )
    return _summary_response(summary)


@router.put(
    "/usage-limit",
    response={200: UsageLimitResponse, 400: ErrorResponse, 401: ErrorResponse},
    auth=bearer_auth,
    operation_id="updateUsageLimit",
    summary="Update personal usage cap",
)
def update_usage_limit(request: HttpRequest, payload: UsageLimitRequest) -> UsageLimitResponse:
    """
    Update the current user's usage cap.

    Paid plans only. The cap cannot go below the plan minimum.
    """
    user = request.auth.require_user()
    try:
        limit = update_user_usage_limit(get_billing_store(), user.id, payload.limit)
    except InvalidUsageLimitError as e:
        raise HttpError(400, str(e))
    return UsageLimitResponse(limit=limit)


@router.put(
    "/organization/usage-limit",
    response={200: UsageLimitResponse, 400: ErrorResponse, 401: ErrorResponse, 403: ErrorResponse},
    auth=bearer_auth,
    operation_id="updateOrganizationUsageLimit",
    summary="Update organization usage cap",
)
def update_org_usage_limit(
    request: HttpRequest, payload: UsageLimitRequest
) -> UsageLimitResponse:
    """
    Update the pooled usage cap of the current organization.

    Admin only. The cap cannot go below the plan minimum or below what
    members have already used this period.
    """
    user, _, org = request.auth.require_admin()
    try:
        limit = update_organization_usage_limit(get_billing_store(), org.id, payload.limit)
    except InvalidUsageLimitError as e:
        logger.info(
            "organization_usage_limit_rejected",
            organization_id=org.id,
            user_id=user.id,
            reason=str(e),
        )
        raise HttpError(400, str(e))
    return UsageLimitResponse(limit=limit)
