"""
Stripe webhook handler.

Handles incoming webhooks from Stripe for subscription and invoice events.
This is a separate view (not Django Ninja) for raw request handling
needed to verify Stripe signatures.
"""

import json

import stripe
from django.http import HttpRequest, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from apps.billing.settlement import SettlementOrchestrator
from apps.billing.store import DjangoBillingStore
from apps.billing.stripe_client import StripePaymentProvider, get_stripe
from apps.core.logging import bind_contextvars, clear_contextvars, get_logger
from config.settings.base import settings

logger = get_logger(__name__)


def get_orchestrator() -> SettlementOrchestrator:
    return SettlementOrchestrator(DjangoBillingStore(), StripePaymentProvider())


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> HttpResponse:
    """
    Handle Stripe webhook events.

    Verifies signature and dispatches to the settlement orchestrator.
    Retryable failures return 500 so Stripe redelivers the event.
    """
    payload = request.body
    sig_header = request.headers.get("Stripe-Signature")

    if not sig_header:
        logger.warning("stripe_webhook_missing_signature")
        return HttpResponse(status=400)

    if not settings.STRIPE_WEBHOOK_SECRET:
        logger.error("stripe_webhook_secret_not_configured")
        return HttpResponse(status=500)

    # Verify signature
    get_stripe()  # Ensure Stripe is configured
    try:
        stripe.Webhook.construct_event(
            payload,
            sig_header,
            settings.STRIPE_WEBHOOK_SECRET,
        )
    except ValueError as e:
        logger.warning("stripe_webhook_invalid_payload", error=str(e))
        return HttpResponse(status=400)
    except stripe.SignatureVerificationError as e:
        logger.warning("stripe_webhook_invalid_signature", error=str(e))
        return HttpResponse(status=400)

    # Handlers work on plain dicts rather than StripeObjects
    event = json.loads(payload)

    bind_contextvars(**{"stripe.event_id": event.get("id"), "stripe.event_type": event.get("type")})
    try:
        logger.info("stripe_webhook_received", event_type=event.get("type"))
        outcome = get_orchestrator().dispatch(event)
    finally:
        clear_contextvars()

    if outcome.should_retry:
        # Return 500 so Stripe will retry with exponential backoff
        return HttpResponse(status=500)

    return HttpResponse(status=200)
