"""
Settlement orchestrator - reacts to Stripe lifecycle events.

Each handler takes a Stripe event mapping and returns a HandlerOutcome.
Overage computed at renewal is attached to the renewal invoice (or billed
as a separate invoice as a fallback), counters are rolled over per billing
period, and repeated payment failures on overage invoices block usage.

External calls must NOT be inside database transactions.
"""

import functools
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from apps.billing.exceptions import RemoteProviderError
from apps.billing.invoicing import (
    attach_overage_to_invoice,
    billing_period_for_invoice,
    create_overage_billing_invoice,
    find_overage_line,
    from_cents,
    is_overage_artifact,
    previous_billing_period,
)
from apps.billing.overage import OverageCalculator
from apps.billing.plans import can_edit_usage_limit, get_minimum_usage_limit
from apps.billing.store import BillingStore
from apps.billing.stripe_client import PaymentProvider
from apps.billing.types import (
    BillingResult,
    EnterpriseMetadata,
    HandlerOutcome,
    Plan,
    ReferenceType,
    SubscriptionRecord,
)
from apps.core.logging import get_logger
from config.settings.base import settings

logger = get_logger(__name__)

SUBSCRIPTION_CYCLE = "subscription_cycle"

Event = Mapping[str, Any]


def _retry_on_error(handler: Callable[..., HandlerOutcome]) -> Callable[..., HandlerOutcome]:
    """Turn unexpected errors into a retryable outcome so Stripe redelivers the event."""

    @functools.wraps(handler)
    def wrapper(self: "SettlementOrchestrator", event: Event) -> HandlerOutcome:
        try:
            return handler(self, event)
        except Exception as e:
            logger.exception(
                "settlement_handler_failed",
                handler=handler.__name__,
                event_id=event.get("id"),
                event_type=event.get("type"),
            )
            return HandlerOutcome.retry(str(e))

    return wrapper


def _event_object(event: Event) -> dict:
    return event["data"]["object"]


def _timestamp(value: int | None) -> datetime | None:
    return datetime.fromtimestamp(value, tz=UTC) if value else None


def invoice_subscription_id(invoice: Mapping[str, Any]) -> str | None:
    """
    Stripe subscription id for an invoice.

    Newer API versions move it under parent.subscription_details.
    """
    subscription = invoice.get("subscription")
    if not subscription:
        parent = invoice.get("parent") or {}
        subscription = (parent.get("subscription_details") or {}).get("subscription")
    if isinstance(subscription, Mapping):
        subscription = subscription.get("id")
    return str(subscription) if subscription else None


def subscription_period(stripe_subscription: Mapping[str, Any]) -> tuple[datetime | None, datetime | None]:
    """
    Current period bounds of a Stripe subscription.

    Stripe 2025 API moved these onto the subscription items; try the
    item first and fall back to the legacy top-level fields.
    """
    items = (stripe_subscription.get("items") or {}).get("data") or []
    item = items[0] if items else {}
    start = item.get("current_period_start") or stripe_subscription.get("current_period_start")
    end = item.get("current_period_end") or stripe_subscription.get("current_period_end")
    return _timestamp(start), _timestamp(end)


def subscription_seats(stripe_subscription: Mapping[str, Any]) -> int:
    items = (stripe_subscription.get("items") or {}).get("data") or []
    return (items[0].get("quantity") if items else None) or 1


class SettlementOrchestrator:
    """Dispatches Stripe events to idempotent settlement handlers."""

    def __init__(
        self,
        store: BillingStore,
        provider: PaymentProvider,
        calculator: OverageCalculator | None = None,
        block_attempt_threshold: int | None = None,
    ):
        self.store = store
        self.provider = provider
        self.calculator = calculator or OverageCalculator(store)
        self.block_attempt_threshold = (
            block_attempt_threshold or settings.OVERAGE_BLOCK_ATTEMPT_THRESHOLD
        )

    def dispatch(self, event: Event) -> HandlerOutcome:
        """Route an event to its handler. Unknown event types are ignored."""
        handlers: dict[str, Callable[[Event], HandlerOutcome]] = {
            "customer.subscription.created": self.handle_subscription_created,
            "customer.subscription.updated": self.handle_subscription_updated,
            "customer.subscription.deleted": self.handle_subscription_deleted,
            "invoice.created": self.handle_invoice_created,
            "invoice.finalized": self.handle_invoice_finalized,
            "invoice.payment_succeeded": self.handle_invoice_payment_succeeded,
            "invoice.payment_failed": self.handle_invoice_payment_failed,
        }
        handler = handlers.get(event.get("type", ""))
        if handler is None:
            logger.debug("stripe_webhook_unhandled_event", event_type=event.get("type"))
            return HandlerOutcome.ignored("unhandled event type")
        return handler(event)

    # Subscription lifecycle

    @_retry_on_error
    def handle_subscription_created(self, event: Event) -> HandlerOutcome:
        """Create or refresh the local subscription from Stripe metadata."""
        stripe_subscription = _event_object(event)
        metadata = stripe_subscription.get("metadata") or {}
        raw_reference_id = metadata.get("referenceId")
        if not raw_reference_id:
            logger.warning(
                "subscription_missing_reference",
                stripe_subscription_id=stripe_subscription.get("id"),
            )
            return HandlerOutcome.ignored("subscription has no referenceId metadata")

        plan = Plan.parse(metadata.get("plan"))
        try:
            reference_id = int(raw_reference_id)
            reference_type = ReferenceType(
                metadata.get("referenceType")
                or (ReferenceType.ORGANIZATION if plan.is_pooled else ReferenceType.USER)
            )
        except (TypeError, ValueError):
            # Redelivery cannot fix bad metadata
            logger.warning(
                "subscription_invalid_reference",
                stripe_subscription_id=stripe_subscription.get("id"),
                reference_id=raw_reference_id,
                reference_type=metadata.get("referenceType"),
            )
            return HandlerOutcome.ignored("subscription has invalid reference metadata")

        period_start, period_end = subscription_period(stripe_subscription)

        record = self.store.save_subscription(
            SubscriptionRecord(
                stripe_subscription_id=stripe_subscription["id"],
                plan=plan,
                reference_type=reference_type,
                reference_id=reference_id,
                status=stripe_subscription.get("status", "active"),
                seats=subscription_seats(stripe_subscription),
                period_start=period_start,
                period_end=period_end,
                metadata=EnterpriseMetadata.from_raw(metadata),
            ),
            cancel_at_period_end=bool(stripe_subscription.get("cancel_at_period_end")),
        )

        logger.info(
            "subscription_synced",
            stripe_subscription_id=record.stripe_subscription_id,
            plan=record.plan.value,
            reference_type=record.reference_type.value,
            reference_id=record.reference_id,
            seats=record.seats,
        )
        self.sync_usage_limits_for_subscription(record)
        return HandlerOutcome.handled()

    @_retry_on_error
    def handle_subscription_updated(self, event: Event) -> HandlerOutcome:
        """Refresh status and period bounds of an existing local subscription."""
        stripe_subscription = _event_object(event)
        stripe_subscription_id = stripe_subscription["id"]

        existing = self.store.get_subscription_by_stripe_id(stripe_subscription_id)
        if existing is None:
            logger.warning(
                "subscription_update_not_found", stripe_subscription_id=stripe_subscription_id
            )
            return HandlerOutcome.ignored("no local subscription")

        period_start, period_end = subscription_period(stripe_subscription)
        status = stripe_subscription.get("status", existing.status)
        self.store.update_subscription_period(
            stripe_subscription_id,
            status=status,
            period_start=period_start,
            period_end=period_end,
            cancel_at_period_end=stripe_subscription.get("cancel_at_period_end"),
        )

        logger.info(
            "subscription_updated",
            stripe_subscription_id=stripe_subscription_id,
            status=status,
            is_period_renewal=bool(period_start and existing.period_start and period_start > existing.period_start),
        )
        self.sync_usage_limits_for_subscription(existing)
        return HandlerOutcome.handled()

    @_retry_on_error
    def handle_subscription_deleted(self, event: Event) -> HandlerOutcome:
        stripe_subscription = _event_object(event)
        updated = self.store.update_subscription_period(
            stripe_subscription["id"],
            status="canceled",
            period_start=None,
            period_end=None,
        )
        if not updated:
            return HandlerOutcome.ignored("no local subscription")

        logger.info("subscription_canceled", stripe_subscription_id=stripe_subscription["id"])
        subscription = self.store.get_subscription_by_stripe_id(stripe_subscription["id"])
        if subscription is not None:
            self.sync_usage_limits_for_subscription(subscription)
        return HandlerOutcome.handled()

    # Invoice lifecycle

    @_retry_on_error
    def handle_invoice_created(self, event: Event) -> HandlerOutcome:
        """
        Attach overage for the ending period to a renewal invoice.

        Counters are rolled over for the period afterwards whatever the
        billing outcome, so a failed attach never blocks the renewal.
        """
        invoice = _event_object(event)
        if is_overage_artifact(invoice):
            return HandlerOutcome.ignored("overage invoice")

        subscription = self._cycle_subscription(invoice)
        if subscription is None:
            return HandlerOutcome.ignored("not a subscription renewal")

        period = billing_period_for_invoice(invoice)
        try:
            billing = self._attach_overage(subscription, invoice, period)
        except Exception as e:
            logger.exception(
                "overage_attach_error",
                invoice_id=invoice.get("id"),
                stripe_subscription_id=subscription.stripe_subscription_id,
            )
            billing = BillingResult.failed(str(e))

        reset_count = self.reset_usage_for_subscription(subscription, period)
        logger.info(
            "renewal_invoice_processed",
            invoice_id=invoice.get("id"),
            stripe_subscription_id=subscription.stripe_subscription_id,
            billing_period=period,
            overage_success=billing.success,
            charged_amount=billing.charged_amount,
            reset_count=reset_count,
        )
        return HandlerOutcome.handled(billing=billing)

    @_retry_on_error
    def handle_invoice_finalized(self, event: Event) -> HandlerOutcome:
        """
        Fallback: bill overage for the ending period as a separate invoice.

        Skipped when the renewal invoice already carries the overage line.
        """
        invoice = _event_object(event)
        if is_overage_artifact(invoice):
            logger.info(
                "overage_invoice_finalized",
                invoice_id=invoice.get("id"),
                customer_id=invoice.get("customer"),
                invoice_amount=from_cents(invoice.get("amount_due")),
                billing_period=(invoice.get("metadata") or {}).get("billingPeriod", "unknown"),
            )
            return HandlerOutcome.handled()

        subscription = self._cycle_subscription(invoice)
        if subscription is None:
            return HandlerOutcome.ignored("not a subscription renewal")

        period = billing_period_for_invoice(invoice)
        if find_overage_line(invoice, period) is not None:
            logger.info("overage_already_on_renewal_invoice", invoice_id=invoice.get("id"))
            return HandlerOutcome.handled()

        logger.info(
            "overage_billing_for_cycle",
            invoice_id=invoice.get("id"),
            stripe_subscription_id=subscription.stripe_subscription_id,
            reference_id=subscription.reference_id,
            plan=subscription.plan.value,
        )
        try:
            billing = self.process_subscription_overage_billing(subscription, period)
        except Exception as e:
            logger.exception("overage_billing_error", invoice_id=invoice.get("id"))
            billing = BillingResult.failed(str(e))

        if not billing.success:
            logger.error(
                "overage_billing_failed",
                invoice_id=invoice.get("id"),
                reference_id=subscription.reference_id,
                error=billing.error,
            )
        return HandlerOutcome.handled(billing=billing)

    @_retry_on_error
    def handle_invoice_payment_succeeded(self, event: Event) -> HandlerOutcome:
        """
        Settle a paid invoice.

        Any successful payment unblocks the affected users. A paid renewal
        also rolls counters over for users who had been blocked; everyone
        else was already reset when the renewal invoice was created.
        """
        invoice = _event_object(event)

        if is_overage_artifact(invoice):
            metadata = invoice.get("metadata") or {}
            logger.info(
                "overage_invoice_payment_succeeded",
                invoice_id=invoice.get("id"),
                customer_id=invoice.get("customer"),
                charged_amount=from_cents(invoice.get("amount_paid")),
                billing_period=metadata.get("billingPeriod", "unknown"),
            )
            user_ids = self._affected_users_for_invoice(invoice)
            unblocked = [uid for uid in user_ids if self.store.set_billing_blocked(uid, False)]
            if unblocked:
                logger.info("billing_unblocked", invoice_id=invoice.get("id"), user_ids=unblocked)
            return HandlerOutcome.handled()

        if not invoice_subscription_id(invoice):
            logger.info("ignoring_non_subscription_invoice_payment", invoice_id=invoice.get("id"))
            return HandlerOutcome.ignored("not a subscription invoice")

        if invoice.get("billing_reason") != SUBSCRIPTION_CYCLE:
            logger.info(
                "ignoring_non_cycle_invoice_payment",
                invoice_id=invoice.get("id"),
                billing_reason=invoice.get("billing_reason"),
            )
            return HandlerOutcome.ignored("not a cycle renewal")

        subscription = self._cycle_subscription(invoice)
        if subscription is None:
            return HandlerOutcome.ignored("no local subscription")

        period = billing_period_for_invoice(invoice)
        reset_count = 0
        for user_id in self._affected_users(subscription):
            if self.store.set_billing_blocked(user_id, False):
                if self.store.reset_usage(user_id, period, subscription.stripe_subscription_id):
                    reset_count += 1

        logger.info(
            "renewal_payment_settled",
            invoice_id=invoice.get("id"),
            stripe_subscription_id=subscription.stripe_subscription_id,
            billing_period=period,
            reset_count=reset_count,
        )
        return HandlerOutcome.handled()

    @_retry_on_error
    def handle_invoice_payment_failed(self, event: Event) -> HandlerOutcome:
        """Block affected users once an overage invoice keeps failing."""
        invoice = _event_object(event)
        if not is_overage_artifact(invoice):
            logger.info("ignoring_non_overage_payment_failure", invoice_id=invoice.get("id"))
            return HandlerOutcome.ignored("not an overage invoice")

        attempt_count = invoice.get("attempt_count") or 1
        logger.warning(
            "overage_invoice_payment_failed",
            invoice_id=invoice.get("id"),
            customer_id=invoice.get("customer"),
            failed_amount=from_cents(invoice.get("amount_due")),
            billing_period=(invoice.get("metadata") or {}).get("billingPeriod", "unknown"),
            attempt_count=attempt_count,
        )

        if attempt_count < self.block_attempt_threshold:
            return HandlerOutcome.handled()

        user_ids = self._affected_users_for_invoice(invoice)
        blocked = [uid for uid in user_ids if self.store.set_billing_blocked(uid, True)]
        logger.error(
            "overage_payment_failures_blocking",
            invoice_id=invoice.get("id"),
            attempt_count=attempt_count,
            newly_blocked=blocked,
        )
        return HandlerOutcome.handled(detail=f"blocked {len(blocked)} users")

    # Direct operations

    def process_subscription_overage_billing(
        self, subscription: SubscriptionRecord, period: str | None = None
    ) -> BillingResult:
        if subscription.plan.is_pooled:
            return self.process_organization_overage_billing(
                subscription.reference_id, period, subscription.stripe_subscription_id
            )
        return self.process_user_overage_billing(
            subscription.reference_id, period, subscription.stripe_subscription_id
        )

    def process_user_overage_billing(
        self, user_id: int, period: str | None = None, stripe_subscription_id: str | None = None
    ) -> BillingResult:
        """Bill an individual subscriber's overage as a standalone invoice."""
        overage = self.calculator.calculate_user_overage(user_id)
        if overage is None:
            return BillingResult.failed("Failed to calculate overage")

        if overage.plan is Plan.FREE or overage.overage_amount <= 0:
            logger.info(
                "user_no_overage",
                user_id=user_id,
                plan=overage.plan.value,
                actual_usage=overage.actual_usage,
            )
            return BillingResult.nothing_to_bill()

        user = self.store.get_user(user_id)
        if user is None or not user.stripe_customer_id:
            logger.error("user_missing_stripe_customer", user_id=user_id)
            return BillingResult.failed("No Stripe customer ID found")

        self._sync_customer_email(user.stripe_customer_id, user.email)

        period = period or previous_billing_period()
        description = (
            f"Usage overage for {overage.plan.value.capitalize()} plan - "
            f"${overage.overage_amount:.2f} usage above ${overage.base_price:.2f} base"
        )
        metadata = {
            "userId": user_id,
            "subscriptionId": stripe_subscription_id,
            "plan": overage.plan.value,
            "basePrice": f"{overage.base_price:.2f}",
            "actualUsage": f"{overage.actual_usage:.2f}",
            "overageAmount": f"{overage.overage_amount:.2f}",
            "billingPeriod": period,
        }
        return create_overage_billing_invoice(
            self.provider, user.stripe_customer_id, overage.overage_amount, description, metadata
        )

    def process_organization_overage_billing(
        self,
        organization_id: int,
        period: str | None = None,
        stripe_subscription_id: str | None = None,
    ) -> BillingResult:
        """Bill an organization's pooled overage as a standalone invoice."""
        overage = self.calculator.calculate_organization_overage(organization_id)
        if not overage.success:
            return BillingResult.failed(overage.error or "Failed to calculate organization overage")

        if overage.total_overage <= 0:
            logger.info(
                "organization_no_overage",
                organization_id=organization_id,
                total_usage=overage.total_usage,
                base_subscription_amount=overage.base_subscription_amount,
            )
            return BillingResult.nothing_to_bill()

        customer_id, email = self._organization_customer(organization_id)
        if not customer_id:
            logger.error("organization_missing_stripe_customer", organization_id=organization_id)
            return BillingResult.failed("No Stripe customer ID found")
        if email:
            self._sync_customer_email(customer_id, email)

        period = period or previous_billing_period()
        description = self._organization_description(
            overage.plan,
            overage.total_overage,
            overage.licensed_seats,
            overage.base_subscription_amount,
        )
        metadata = {
            "organizationId": organization_id,
            "subscriptionId": stripe_subscription_id,
            "plan": overage.plan.value if overage.plan else "",
            "licensedSeats": overage.licensed_seats,
            "memberCount": overage.member_count,
            "basePricePerSeat": f"{overage.base_price_per_seat:.2f}",
            "baseSubscriptionAmount": f"{overage.base_subscription_amount:.2f}",
            "totalUsage": f"{overage.total_usage:.2f}",
            "overageAmount": f"{overage.total_overage:.2f}",
            "billingPeriod": period,
        }
        return create_overage_billing_invoice(
            self.provider, customer_id, overage.total_overage, description, metadata
        )

    def reset_usage_for_subscription(self, subscription: SubscriptionRecord, period: str) -> int:
        """Roll counters over for every user billed by the subscription. Returns how many reset."""
        user_ids = self._affected_users(subscription)
        reset_count = sum(
            1
            for user_id in user_ids
            if self.store.reset_usage(user_id, period, subscription.stripe_subscription_id)
        )
        logger.info(
            "subscription_usage_reset",
            stripe_subscription_id=subscription.stripe_subscription_id,
            billing_period=period,
            user_count=len(user_ids),
            reset_count=reset_count,
        )
        return reset_count

    def sync_usage_limits_for_subscription(self, subscription: SubscriptionRecord) -> list[int]:
        """
        Bring personal caps in line with each user's governing plan.

        Caps below the new plan minimum are raised to it. Users who end up
        on the free plan are held to the free allowance. Returns the users
        whose cap changed; a failure for one user does not stop the rest.
        """
        changed = []
        for user_id in self._affected_users(subscription):
            try:
                limit = self.store.get_usage_data(user_id).limit
                if limit is None:
                    continue
                governing = self.store.get_highest_priority_subscription(user_id)
                minimum = get_minimum_usage_limit(governing)
                if limit < minimum or (not can_edit_usage_limit(governing) and limit != minimum):
                    self.store.set_user_usage_limit(user_id, minimum)
                    changed.append(user_id)
            except Exception:
                logger.exception(
                    "usage_limit_sync_failed",
                    user_id=user_id,
                    stripe_subscription_id=subscription.stripe_subscription_id,
                )

        logger.info(
            "subscription_usage_limits_synced",
            stripe_subscription_id=subscription.stripe_subscription_id,
            plan=subscription.plan.value,
            changed_user_ids=changed,
        )
        return changed

    def set_billing_blocked_for_subscription(
        self, subscription: SubscriptionRecord, blocked: bool
    ) -> list[int]:
        """Flip the blocked flag for every user billed by the subscription. Returns who changed."""
        return [
            user_id
            for user_id in self._affected_users(subscription)
            if self.store.set_billing_blocked(user_id, blocked)
        ]

    # Helpers

    def _cycle_subscription(self, invoice: Mapping[str, Any]) -> SubscriptionRecord | None:
        stripe_subscription_id = invoice_subscription_id(invoice)
        if not stripe_subscription_id or invoice.get("billing_reason") != SUBSCRIPTION_CYCLE:
            return None

        subscription = self.store.get_subscription_by_stripe_id(stripe_subscription_id)
        if subscription is None:
            logger.warning(
                "no_local_subscription_for_invoice",
                invoice_id=invoice.get("id"),
                stripe_subscription_id=stripe_subscription_id,
            )
        return subscription

    def _attach_overage(
        self, subscription: SubscriptionRecord, invoice: Mapping[str, Any], period: str
    ) -> BillingResult:
        if subscription.plan.is_pooled:
            overage = self.calculator.calculate_organization_overage(subscription.reference_id)
            if not overage.success:
                return BillingResult.failed(overage.error or "Failed to calculate organization overage")
            amount = overage.total_overage
            description = self._organization_description(
                overage.plan, amount, overage.licensed_seats, overage.base_subscription_amount
            )
            metadata: dict[str, Any] = {
                "organizationId": subscription.reference_id,
                "totalUsage": f"{overage.total_usage:.2f}",
                "baseSubscriptionAmount": f"{overage.base_subscription_amount:.2f}",
            }
        else:
            user_overage = self.calculator.calculate_user_overage(subscription.reference_id)
            if user_overage is None:
                return BillingResult.failed("Failed to calculate overage")
            if user_overage.plan is Plan.FREE:
                return BillingResult.nothing_to_bill()
            amount = user_overage.overage_amount
            description = (
                f"Usage overage for {user_overage.plan.value.capitalize()} plan - "
                f"${amount:.2f} usage above ${user_overage.base_price:.2f} base"
            )
            metadata = {
                "userId": subscription.reference_id,
                "basePrice": f"{user_overage.base_price:.2f}",
                "actualUsage": f"{user_overage.actual_usage:.2f}",
            }

        metadata.update(
            subscriptionId=subscription.stripe_subscription_id,
            plan=subscription.plan.value,
            overageAmount=f"{amount:.2f}",
            billingPeriod=period,
        )
        return attach_overage_to_invoice(self.provider, invoice, amount, description, metadata)

    def _affected_users(self, subscription: SubscriptionRecord) -> list[int]:
        if subscription.reference_type == ReferenceType.ORGANIZATION:
            return [member.user_id for member in self.store.list_members(subscription.reference_id)]
        return [subscription.reference_id]

    def _affected_users_for_invoice(self, invoice: Mapping[str, Any]) -> list[int]:
        metadata = invoice.get("metadata") or {}
        if metadata.get("organizationId"):
            organization_id = int(metadata["organizationId"])
            return [member.user_id for member in self.store.list_members(organization_id)]
        if metadata.get("userId"):
            return [int(metadata["userId"])]

        stripe_subscription_id = metadata.get("subscriptionId") or invoice_subscription_id(invoice)
        if stripe_subscription_id:
            subscription = self.store.get_subscription_by_stripe_id(stripe_subscription_id)
            if subscription is not None:
                return self._affected_users(subscription)

        logger.warning("overage_invoice_subjects_unresolved", invoice_id=invoice.get("id"))
        return []

    def _organization_customer(self, organization_id: int) -> tuple[str, str]:
        """
        Stripe customer and billing email for an organization.

        Organizations without their own customer are billed through the
        owner's customer.
        """
        organization = self.store.get_organization(organization_id)
        members = self.store.list_members(organization_id)
        owner = next((m for m in members if m.role == "owner"), None)
        email = owner.email if owner else ""

        if organization is not None and organization.stripe_customer_id:
            return organization.stripe_customer_id, email
        if owner is not None:
            user = self.store.get_user(owner.user_id)
            if user is not None and user.stripe_customer_id:
                return user.stripe_customer_id, user.email
        return "", email

    def _sync_customer_email(self, customer_id: str, email: str) -> None:
        if not email:
            return
        try:
            customer = self.provider.retrieve_customer(customer_id)
            if customer.get("email") != email:
                self.provider.update_customer_email(customer_id, email)
                logger.info("stripe_customer_email_synced", customer_id=customer_id)
        except RemoteProviderError:
            # Billing proceeds with whatever email Stripe already has
            logger.warning("stripe_customer_email_sync_failed", customer_id=customer_id, exc_info=True)

    @staticmethod
    def _organization_description(
        plan: Plan | None, amount: Decimal, seats: int, base_amount: Decimal
    ) -> str:
        plan_name = plan.value.capitalize() if plan else "Team"
        return (
            f"Team usage overage for {plan_name} plan - "
            f"${amount:.2f} usage above ${base_amount:.2f} base ({seats} seats)"
        )
