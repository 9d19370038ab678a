"""
Overage invoicing - creates remote billing artifacts at most once per period.

Every artifact is tagged with metadata type=overage_billing and the billing
period (YYYY-MM). Before creating anything we look for an existing, non-void
artifact with the same tag, and every create call carries a deterministic
idempotency key derived from (customer, subscription, period).
"""

from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from apps.billing.exceptions import RemoteProviderError
from apps.billing.stripe_client import PaymentProvider
from apps.billing.types import OVERAGE_INVOICE_TYPE, BillingResult
from apps.core.logging import get_logger

logger = get_logger(__name__)


def to_cents(amount: Decimal) -> int:
    """Dollars to integer cents, rounding half up (never truncating)."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_cents(cents: int | None) -> Decimal:
    return Decimal(cents or 0) / 100


def billing_period_for(moment: datetime | None = None) -> str:
    moment = moment or datetime.now(tz=UTC)
    return moment.astimezone(UTC).strftime("%Y-%m")


def previous_billing_period(moment: datetime | None = None) -> str:
    """
    Tag of the most recently ended calendar month.

    Renewals tag the period that is ending, so billing runs outside the
    webhook flow default to the month before the current one.
    """
    moment = (moment or datetime.now(tz=UTC)).astimezone(UTC)
    return billing_period_for(moment.replace(day=1) - timedelta(days=1))


def billing_period_for_invoice(invoice: Mapping[str, Any]) -> str:
    """
    Billing period tag for an invoice event.

    Renewal invoices carry the ending period in period_start, so every
    delivery of the same invoice maps to the same tag.
    """
    timestamp = invoice.get("period_start") or invoice.get("created")
    if not timestamp:
        return billing_period_for()
    return billing_period_for(datetime.fromtimestamp(timestamp, tz=UTC))


def overage_idempotency_key(customer_id: str, subscription_id: str | None, period: str) -> str:
    return f"overage-{customer_id}-{subscription_id or 'none'}-{period}"


def is_overage_artifact(obj: Mapping[str, Any]) -> bool:
    return (obj.get("metadata") or {}).get("type") == OVERAGE_INVOICE_TYPE


def _stringify(metadata: Mapping[str, Any]) -> dict[str, str]:
    # Stripe metadata values must be strings
    return {key: str(value) for key, value in metadata.items() if value is not None}


def find_existing_overage_invoice(
    provider: PaymentProvider,
    customer_id: str,
    period: str,
    subscription_id: str | None = None,
) -> dict | None:
    """Return a non-void overage invoice already created for this period, if any."""
    period_start = datetime.strptime(period, "%Y-%m").replace(tzinfo=UTC)
    invoices = provider.list_invoices(customer_id, created_gte=int(period_start.timestamp()))

    for invoice in invoices:
        metadata = invoice.get("metadata") or {}
        if not is_overage_artifact(invoice) or invoice.get("status") == "void":
            continue
        if metadata.get("billingPeriod") != period:
            continue
        tagged_subscription = metadata.get("subscriptionId")
        if subscription_id and tagged_subscription and tagged_subscription != subscription_id:
            continue
        return invoice
    return None


def find_overage_line(invoice: Mapping[str, Any], period: str) -> dict | None:
    """Return the overage line already attached to an invoice for this period, if any."""
    lines = (invoice.get("lines") or {}).get("data") or []
    for line in lines:
        metadata = line.get("metadata") or {}
        if metadata.get("type") == OVERAGE_INVOICE_TYPE and metadata.get("billingPeriod") == period:
            return line
    return None


def create_overage_billing_invoice(
    provider: PaymentProvider,
    customer_id: str,
    overage_amount: Decimal,
    description: str,
    metadata: Mapping[str, Any],
) -> BillingResult:
    """
    Create, finalize and attempt to pay a standalone overage invoice.

    A second call for the same (customer, subscription, period) finds the
    first invoice and returns success with nothing charged. Provider errors
    are returned as a failed result rather than raised.
    """
    if overage_amount <= 0:
        logger.info("overage_nothing_to_bill", customer_id=customer_id, overage_amount=overage_amount)
        return BillingResult.nothing_to_bill()

    period = str(metadata.get("billingPeriod") or billing_period_for())
    subscription_id = metadata.get("subscriptionId")
    tagged = _stringify({**metadata, "billingPeriod": period, "type": OVERAGE_INVOICE_TYPE})
    idempotency_key = overage_idempotency_key(customer_id, subscription_id, period)

    try:
        existing = find_existing_overage_invoice(provider, customer_id, period, subscription_id)
        if existing is not None:
            logger.warning(
                "overage_invoice_already_exists",
                customer_id=customer_id,
                billing_period=period,
                existing_invoice_id=existing.get("id"),
                existing_invoice_status=existing.get("status"),
                existing_amount=from_cents(existing.get("amount_due")),
            )
            return BillingResult(success=True, invoice_id=existing.get("id"), duplicate=True)

        customer = provider.retrieve_customer(customer_id)
        if not customer.get("email"):
            logger.warning("overage_customer_missing_email", customer_id=customer_id)

        invoice_item = provider.create_invoice_item(
            customer_id=customer_id,
            amount_cents=to_cents(overage_amount),
            description=description,
            metadata=tagged,
            idempotency_key=f"{idempotency_key}-item",
        )
        logger.info(
            "overage_invoice_item_created",
            customer_id=customer_id,
            amount=overage_amount,
            invoice_item_id=invoice_item.get("id"),
        )

        invoice = provider.create_invoice(
            customer_id=customer_id,
            description=description,
            metadata=tagged,
            idempotency_key=f"{idempotency_key}-invoice",
        )
        logger.info(
            "overage_invoice_created",
            customer_id=customer_id,
            invoice_id=invoice.get("id"),
            amount=overage_amount,
            status=invoice.get("status"),
        )

        if invoice.get("status") == "draft":
            logger.warning("overage_invoice_manual_finalize", invoice_id=invoice.get("id"))
            invoice = provider.finalize_invoice(invoice["id"])

        if invoice.get("status") == "open":
            try:
                invoice = provider.pay_invoice(invoice["id"])
            except RemoteProviderError as e:
                # Stripe retries and sends failure notifications on its own
                logger.error("overage_invoice_payment_attempt_failed", invoice_id=invoice.get("id"), error=str(e))

        logger.info(
            "overage_invoice_processed",
            customer_id=customer_id,
            invoice_id=invoice.get("id"),
            charged_amount=overage_amount,
            status=invoice.get("status"),
        )
        return BillingResult(success=True, charged_amount=overage_amount, invoice_id=invoice.get("id"))

    except RemoteProviderError as e:
        logger.error(
            "overage_invoice_failed",
            customer_id=customer_id,
            overage_amount=overage_amount,
            error=str(e),
        )
        return BillingResult.failed(str(e))


def attach_overage_to_invoice(
    provider: PaymentProvider,
    invoice: Mapping[str, Any],
    overage_amount: Decimal,
    description: str,
    metadata: Mapping[str, Any],
) -> BillingResult:
    """
    Add the overage as a line item on a draft renewal invoice.

    Skips invoices that already carry an overage line for the period.
    Provider errors are returned as a failed result rather than raised.
    """
    invoice_id = invoice.get("id")
    if overage_amount <= 0:
        logger.info("overage_nothing_to_attach", invoice_id=invoice_id)
        return BillingResult.nothing_to_bill()

    period = str(metadata.get("billingPeriod") or billing_period_for_invoice(invoice))
    existing_line = find_overage_line(invoice, period)
    if existing_line is not None:
        logger.info("overage_line_already_attached", invoice_id=invoice_id, billing_period=period)
        return BillingResult(success=True, invoice_id=invoice_id, duplicate=True)

    if invoice.get("status") not in (None, "draft"):
        logger.warning("overage_attach_invoice_not_draft", invoice_id=invoice_id, status=invoice.get("status"))
        return BillingResult.failed("Invoice is no longer a draft")

    customer_id = invoice.get("customer")
    subscription_id = metadata.get("subscriptionId")
    tagged = _stringify({**metadata, "billingPeriod": period, "type": OVERAGE_INVOICE_TYPE})

    try:
        line = provider.create_invoice_item(
            customer_id=customer_id,
            amount_cents=to_cents(overage_amount),
            description=description,
            metadata=tagged,
            invoice_id=invoice_id,
            idempotency_key=f"{overage_idempotency_key(customer_id, subscription_id, period)}-line",
        )
    except RemoteProviderError as e:
        logger.error("overage_attach_failed", invoice_id=invoice_id, error=str(e))
        return BillingResult.failed(str(e))

    logger.info(
        "overage_attached_to_invoice",
        invoice_id=invoice_id,
        invoice_item_id=line.get("id"),
        amount=overage_amount,
        billing_period=period,
    )
    return BillingResult(success=True, charged_amount=overage_amount, invoice_id=invoice_id)
