"""
Management command to bill overage outside the webhook flow.

Useful to recover a billing period whose renewal webhooks were missed.
Re-running for the same period is safe; the existing overage invoice is found
and nothing is charged twice.
Usage: python manage.py bill_overage --organization 42 --period 2026-09
"""

from django.core.management.base import BaseCommand, CommandError

from apps.billing.settlement import SettlementOrchestrator
from apps.billing.store import DjangoBillingStore
from apps.billing.stripe_client import StripePaymentProvider
from config.settings.base import settings


class Command(BaseCommand):
    help = "Create the overage invoice for a user or an organization"

    def add_arguments(self, parser):
        target = parser.add_mutually_exclusive_group(required=True)
        target.add_argument("--user", type=int, help="User ID on an individual plan")
        target.add_argument(
            "--organization", type=int, help="Organization ID on a team or enterprise plan"
        )
        parser.add_argument(
            "--period",
            type=str,
            default=None,
            help="Billing period as YYYY-MM (default: the previous month)",
        )

    def handle(self, *args, **options):
        if not settings.STRIPE_SECRET_KEY:
            raise CommandError("STRIPE_SECRET_KEY not set. Add it to your .env file first.")

        orchestrator = SettlementOrchestrator(DjangoBillingStore(), StripePaymentProvider())
        period = options["period"]

        if options["user"] is not None:
            result = orchestrator.process_user_overage_billing(options["user"], period)
        else:
            result = orchestrator.process_organization_overage_billing(options["organization"], period)

        if not result.success:
            raise CommandError(f"Overage billing failed: {result.error}")

        if result.duplicate:
            self.stdout.write(
                self.style.WARNING(f"Overage already billed on invoice {result.invoice_id}")
            )
        elif result.invoice_id:
            self.stdout.write(
                self.style.SUCCESS(
                    f"Billed ${result.charged_amount:.2f} on invoice {result.invoice_id}"
                )
            )
        else:
            self.stdout.write("No overage to bill")
