"""
Stripe client configuration and the payment provider boundary.

The settlement engine talks to Stripe only through PaymentProvider, so tests
can substitute an in-memory provider. StripePaymentProvider converts SDK
errors into RemoteProviderError.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from types import ModuleType
from typing import Any, Protocol

import stripe

from apps.billing.exceptions import RemoteProviderError
from config.settings.base import settings

# API version required for invoice parent/subscription_details payloads
STRIPE_API_VERSION = "2025-06-30.basil"

# Network configuration
# Stripe SDK has 80s default timeout which is reasonable for payment APIs.
# Retries are safe because overage calls pass explicit idempotency keys.
STRIPE_MAX_NETWORK_RETRIES = 2


def configure_stripe() -> None:
    """Configure Stripe API with settings."""
    stripe.api_key = settings.STRIPE_SECRET_KEY
    stripe.api_version = STRIPE_API_VERSION
    stripe.max_network_retries = STRIPE_MAX_NETWORK_RETRIES


def get_stripe() -> ModuleType:
    """
    Get configured Stripe module.

    Ensures Stripe is configured before use.
    """
    configure_stripe()
    return stripe


class PaymentProvider(Protocol):
    """Remote payment operations used by overage settlement."""

    def retrieve_customer(self, customer_id: str) -> dict: ...

    def update_customer_email(self, customer_id: str, email: str) -> dict: ...

    def list_invoices(self, customer_id: str, created_gte: int) -> list[dict]: ...

    def create_invoice_item(
        self,
        *,
        customer_id: str,
        amount_cents: int,
        description: str,
        metadata: dict[str, str],
        invoice_id: str | None = None,
        idempotency_key: str | None = None,
    ) -> dict: ...

    def create_invoice(
        self,
        *,
        customer_id: str,
        description: str,
        metadata: dict[str, str],
        idempotency_key: str | None = None,
    ) -> dict: ...

    def finalize_invoice(self, invoice_id: str) -> dict: ...

    def pay_invoice(self, invoice_id: str) -> dict: ...


def _as_dict(obj: Any) -> dict:
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return dict(obj)


@contextmanager
def _stripe_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except stripe.StripeError as e:
        raise RemoteProviderError(f"Stripe {operation} failed: {e}", code=e.code) from e


class StripePaymentProvider:
    """PaymentProvider backed by the Stripe SDK."""

    def __init__(self, currency: str | None = None):
        self.currency = currency or settings.BILLING_CURRENCY

    def retrieve_customer(self, customer_id: str) -> dict:
        client = get_stripe()
        with _stripe_errors("customer retrieve"):
            return _as_dict(client.Customer.retrieve(customer_id))

    def update_customer_email(self, customer_id: str, email: str) -> dict:
        client = get_stripe()
        with _stripe_errors("customer update"):
            return _as_dict(client.Customer.modify(customer_id, email=email))

    def list_invoices(self, customer_id: str, created_gte: int) -> list[dict]:
        client = get_stripe()
        with _stripe_errors("invoice list"):
            invoices = client.Invoice.list(
                customer=customer_id,
                created={"gte": created_gte},
                limit=100,  # Stripe max is 100
            )
            return [_as_dict(invoice) for invoice in invoices["data"]]

    def create_invoice_item(
        self,
        *,
        customer_id: str,
        amount_cents: int,
        description: str,
        metadata: dict[str, str],
        invoice_id: str | None = None,
        idempotency_key: str | None = None,
    ) -> dict:
        client = get_stripe()
        params: dict[str, Any] = {
            "customer": customer_id,
            "amount": amount_cents,
            "currency": self.currency,
            "description": description,
            "metadata": metadata,
        }
        if invoice_id:
            params["invoice"] = invoice_id
        if idempotency_key:
            params["idempotency_key"] = idempotency_key

        with _stripe_errors("invoice item create"):
            return _as_dict(client.InvoiceItem.create(**params))

    def create_invoice(
        self,
        *,
        customer_id: str,
        description: str,
        metadata: dict[str, str],
        idempotency_key: str | None = None,
    ) -> dict:
        client = get_stripe()
        params: dict[str, Any] = {
            "customer": customer_id,
            "auto_advance": True,
            "collection_method": "charge_automatically",
            "description": description,
            "metadata": metadata,
            "pending_invoice_items_behavior": "include",
            "payment_settings": {"payment_method_types": ["card"]},
        }
        if idempotency_key:
            params["idempotency_key"] = idempotency_key

        with _stripe_errors("invoice create"):
            return _as_dict(client.Invoice.create(**params))

    def finalize_invoice(self, invoice_id: str) -> dict:
        client = get_stripe()
        with _stripe_errors("invoice finalize"):
            return _as_dict(client.Invoice.finalize_invoice(invoice_id))

    def pay_invoice(self, invoice_id: str) -> dict:
        client = get_stripe()
        with _stripe_errors("invoice pay"):
            return _as_dict(client.Invoice.pay(invoice_id))
