"""
Tests for Stripe webhook handler.

Tests signature verification, event dispatching, and error handling.
"""

import json
from decimal import Decimal
from typing import TYPE_CHECKING
from unittest.mock import MagicMock, patch

import pytest
import stripe

from apps.billing.models import UserStats
from apps.billing.types import HandlerOutcome
from tests.accounts.factories import UserFactory

from .factories import SubscriptionFactory, UserStatsFactory
from .fakes import FakePaymentProvider

if TYPE_CHECKING:
    from django.test import Client


@pytest.fixture
def webhook_url() -> str:
    """Webhook endpoint URL (module-specific)."""
    return "/webhooks/stripe/"


def build_webhook_payload(
    event_type: str, data_object: dict, event_id: str = "evt_test_123"
) -> dict:
    """Build a Stripe webhook event payload."""
    return {
        "id": event_id,
        "type": event_type,
        "data": {"object": data_object},
    }


class TestStripeWebhookSignatureVerification:
    """Tests for webhook signature verification."""

    def test_missing_signature_header_returns_400(self, client: "Client", webhook_url: str) -> None:
        """Should return 400 when Stripe-Signature header is missing."""
        response = client.post(
            webhook_url,
            data=json.dumps({"type": "test"}),
            content_type="application/json",
        )

        assert response.status_code == 400

    @patch("apps.billing.webhooks.settings")
    def test_missing_webhook_secret_returns_500(
        self, mock_settings: MagicMock, client: "Client", webhook_url: str
    ) -> None:
        """Should return 500 when STRIPE_WEBHOOK_SECRET is not configured."""
        mock_settings.STRIPE_WEBHOOK_SECRET = ""

        response = client.post(
            webhook_url,
            data=json.dumps({"type": "test"}),
            content_type="application/json",
            HTTP_STRIPE_SIGNATURE="test_signature",
        )

        assert response.status_code == 500

    @patch("apps.billing.webhooks.stripe.Webhook.construct_event")
    @patch("apps.billing.webhooks.settings")
    @patch("apps.billing.webhooks.get_stripe")
    def test_invalid_payload_returns_400(
        self,
        mock_get_stripe: MagicMock,
        mock_settings: MagicMock,
        mock_construct: MagicMock,
        client: "Client",
        webhook_url: str,
    ) -> None:
        """Should return 400 when payload is invalid."""
        mock_settings.STRIPE_WEBHOOK_SECRET = "whsec_test"
        mock_construct.side_effect = ValueError("Invalid payload")

        response = client.post(
            webhook_url,
            data="invalid json",
            content_type="application/json",
            HTTP_STRIPE_SIGNATURE="test_signature",
        )

        assert response.status_code == 400

    @patch("apps.billing.webhooks.stripe.Webhook.construct_event")
    @patch("apps.billing.webhooks.settings")
    @patch("apps.billing.webhooks.get_stripe")
    def test_invalid_signature_returns_400(
        self,
        mock_get_stripe: MagicMock,
        mock_settings: MagicMock,
        mock_construct: MagicMock,
        client: "Client",
        webhook_url: str,
    ) -> None:
        """Should return 400 when signature verification fails."""
        mock_settings.STRIPE_WEBHOOK_SECRET = "whsec_test"
        mock_construct.side_effect = stripe.SignatureVerificationError(
            "Invalid signature", "sig_header"
        )

        response = client.post(
            webhook_url,
            data=json.dumps({"type": "test"}),
            content_type="application/json",
            HTTP_STRIPE_SIGNATURE="invalid_signature",
        )

        assert response.status_code == 400


class TestStripeWebhookOutcomes:
    """Tests for mapping handler outcomes to responses."""

    @patch("apps.billing.webhooks.get_orchestrator")
    @patch("apps.billing.webhooks.stripe.Webhook.construct_event")
    @patch("apps.billing.webhooks.settings")
    @patch("apps.billing.webhooks.get_stripe")
    def test_dispatches_verified_event(
        self,
        mock_get_stripe: MagicMock,
        mock_settings: MagicMock,
        mock_construct: MagicMock,
        mock_get_orchestrator: MagicMock,
        client: "Client",
        webhook_url: str,
    ) -> None:
        """Should pass the event to the orchestrator as a plain dict."""
        mock_settings.STRIPE_WEBHOOK_SECRET = "whsec_test"
        mock_get_orchestrator.return_value.dispatch.return_value = HandlerOutcome.handled()
        payload = build_webhook_payload("invoice.created", {"id": "in_123"})

        response = client.post(
            webhook_url,
            data=json.dumps(payload),
            content_type="application/json",
            HTTP_STRIPE_SIGNATURE="valid_signature",
        )

        assert response.status_code == 200
        mock_get_orchestrator.return_value.dispatch.assert_called_once_with(payload)

    @patch("apps.billing.webhooks.get_orchestrator")
    @patch("apps.billing.webhooks.stripe.Webhook.construct_event")
    @patch("apps.billing.webhooks.settings")
    @patch("apps.billing.webhooks.get_stripe")
    def test_ignored_event_returns_200(
        self,
        mock_get_stripe: MagicMock,
        mock_settings: MagicMock,
        mock_construct: MagicMock,
        mock_get_orchestrator: MagicMock,
        client: "Client",
        webhook_url: str,
    ) -> None:
        """Ignored events are acknowledged so Stripe stops sending them."""
        mock_settings.STRIPE_WEBHOOK_SECRET = "whsec_test"
        mock_get_orchestrator.return_value.dispatch.return_value = HandlerOutcome.ignored()

        response = client.post(
            webhook_url,
            data=json.dumps(build_webhook_payload("customer.created", {"id": "cus_123"})),
            content_type="application/json",
            HTTP_STRIPE_SIGNATURE="valid_signature",
        )

        assert response.status_code == 200

    @patch("apps.billing.webhooks.get_orchestrator")
    @patch("apps.billing.webhooks.stripe.Webhook.construct_event")
    @patch("apps.billing.webhooks.settings")
    @patch("apps.billing.webhooks.get_stripe")
    def test_retryable_failure_returns_500(
        self,
        mock_get_stripe: MagicMock,
        mock_settings: MagicMock,
        mock_construct: MagicMock,
        mock_get_orchestrator: MagicMock,
        client: "Client",
        webhook_url: str,
    ) -> None:
        """Should return 500 so Stripe retries with exponential backoff."""
        mock_settings.STRIPE_WEBHOOK_SECRET = "whsec_test"
        mock_get_orchestrator.return_value.dispatch.return_value = HandlerOutcome.retry(
            "database unavailable"
        )

        response = client.post(
            webhook_url,
            data=json.dumps(build_webhook_payload("invoice.payment_succeeded", {"id": "in_123"})),
            content_type="application/json",
            HTTP_STRIPE_SIGNATURE="valid_signature",
        )

        assert response.status_code == 500


@pytest.mark.django_db
class TestStripeWebhookSettlement:
    """End-to-end settlement through the view and the Django store."""

    @patch("apps.billing.webhooks.StripePaymentProvider")
    @patch("apps.billing.webhooks.stripe.Webhook.construct_event")
    @patch("apps.billing.webhooks.settings")
    @patch("apps.billing.webhooks.get_stripe")
    def test_renewal_attaches_overage_and_resets_counter(
        self,
        mock_get_stripe: MagicMock,
        mock_settings: MagicMock,
        mock_construct: MagicMock,
        mock_provider_class: MagicMock,
        client: "Client",
        webhook_url: str,
    ) -> None:
        """A renewal invoice gets the overage line and the user's counter rolls over."""
        mock_settings.STRIPE_WEBHOOK_SECRET = "whsec_test"
        provider = FakePaymentProvider()
        mock_provider_class.return_value = provider

        user = UserFactory.create(stripe_customer_id="cus_123")
        UserStatsFactory.create(user=user, current_period_cost=Decimal("35"))
        SubscriptionFactory.create(stripe_subscription_id="sub_123", reference_id=user.id)

        invoice = {
            "id": "in_renewal",
            "customer": "cus_123",
            "status": "draft",
            "billing_reason": "subscription_cycle",
            "parent": {"subscription_details": {"subscription": "sub_123"}},
            "period_start": 1788220800,  # 2026-09-01
            "lines": {"data": []},
            "metadata": {},
        }

        response = client.post(
            webhook_url,
            data=json.dumps(build_webhook_payload("invoice.created", invoice)),
            content_type="application/json",
            HTTP_STRIPE_SIGNATURE="valid_signature",
        )

        assert response.status_code == 200
        assert provider.invoice_items[0]["amount"] == 1500
        assert provider.invoice_items[0]["invoice"] == "in_renewal"

        stats = UserStats.objects.get(user=user)
        assert stats.current_period_cost == Decimal("0")
        assert stats.last_period_cost == Decimal("35")
        assert stats.last_reset_period == "2026-09"

    @patch("apps.billing.webhooks.StripePaymentProvider")
    @patch("apps.billing.webhooks.stripe.Webhook.construct_event")
    @patch("apps.billing.webhooks.settings")
    @patch("apps.billing.webhooks.get_stripe")
    def test_repeated_payment_failure_blocks_user(
        self,
        mock_get_stripe: MagicMock,
        mock_settings: MagicMock,
        mock_construct: MagicMock,
        mock_provider_class: MagicMock,
        client: "Client",
        webhook_url: str,
    ) -> None:
        """The third failed overage charge blocks the user."""
        mock_settings.STRIPE_WEBHOOK_SECRET = "whsec_test"
        mock_provider_class.return_value = FakePaymentProvider()
        user = UserFactory.create()

        invoice = {
            "id": "in_overage",
            "customer": "cus_123",
            "attempt_count": 3,
            "amount_due": 1500,
            "metadata": {
                "type": "overage_billing",
                "billingPeriod": "2026-09",
                "userId": str(user.id),
            },
        }

        response = client.post(
            webhook_url,
            data=json.dumps(build_webhook_payload("invoice.payment_failed", invoice)),
            content_type="application/json",
            HTTP_STRIPE_SIGNATURE="valid_signature",
        )

        assert response.status_code == 200
        assert UserStats.objects.get(user=user).billing_blocked is True
