"""
Fulfillment Service - entry point for Stripe payment events.

Flow for a completed checkout session:
1. VIP upgrade checkouts are completed and return early
2. Validate the payer email (fatal if missing)
3. Cancel pending cart abandonment emails
4. Resolve the Stripe customer
5. Fetch and classify line items
6. Vouchers first (no idempotency record), then tickets (guarded)

Any exception raised here makes the webhook answer 500 so Stripe redelivers.
"""

import time
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.config import settings
from fulfillment.domain.tickets import classify_line_items, split_name
from fulfillment.errors import FulfillmentError, PaymentError
from fulfillment.logging_config import ScopedLogger, get_scoped_logger
from fulfillment.schemas.checkout import CheckoutSession
from fulfillment.services.abandonment_service import AbandonmentService
from fulfillment.services.analytics_service import AnalyticsService
from fulfillment.services.confirmation_service import ConfirmationService
from fulfillment.services.customer_service import CustomerService
from fulfillment.services.email_service import EmailService
from fulfillment.services.partnership_service import PartnershipService
from fulfillment.services.pdf_service import PdfService
from fulfillment.services.stripe_service import StripeService
from fulfillment.services.ticket_service import TicketService
from fulfillment.services.upgrade_service import UpgradeService
from fulfillment.services.voucher_service import VoucherService

DEFAULT_CUSTOMER_NAME = "Valued Customer"


class FulfillmentService:
    """Turns Stripe payment events into tickets, vouchers and upgrades."""

    def __init__(
        self,
        db: AsyncSession,
        stripe_service: Optional[StripeService] = None,
        email_service: Optional[EmailService] = None,
        analytics: Optional[AnalyticsService] = None,
        pdf_service: Optional[PdfService] = None,
        voucher_product_id: Optional[str] = None,
    ):
        self.db = db
        self.stripe = stripe_service or StripeService()
        self.email = email_service or EmailService()
        self.analytics = analytics or AnalyticsService()
        self.pdf = pdf_service or PdfService()
        self.voucher_product_id = voucher_product_id or settings.workshop_voucher_product_id

        self.customers = CustomerService(self.stripe)
        self.abandonment = AbandonmentService(db, self.email)
        self.upgrades = UpgradeService(db, self.email, self.analytics)
        self.vouchers = VoucherService(self.email)
        self.tickets = TicketService(
            db,
            PartnershipService(db),
            ConfirmationService(self.email, self.pdf),
            self.email,
            self.analytics,
        )

    async def handle_event(self, event: Dict[str, Any]) -> None:
        """Route a verified Stripe event by type."""
        event_type = event.get("type")
        data = (event.get("data") or {}).get("object") or {}

        if event_type == "checkout.session.completed":
            await self.handle_checkout_session_completed(CheckoutSession.model_validate(data))
        elif event_type == "checkout.session.async_payment_succeeded":
            await self.handle_async_payment_succeeded(CheckoutSession.model_validate(data))
        elif event_type == "checkout.session.async_payment_failed":
            await self.handle_async_payment_failed(CheckoutSession.model_validate(data))
        elif event_type == "payment_intent.succeeded":
            self.handle_payment_intent_succeeded(data)
        else:
            get_scoped_logger("WebhookHandler").info("Unhandled event type", event_type=event_type)

    async def handle_checkout_session_completed(
        self,
        session: CheckoutSession,
        event_type: str = "checkout.session.completed",
    ) -> None:
        start = time.monotonic()
        log = get_scoped_logger("WebhookHandler", session_id=session.id)
        log.info("Processing checkout session", event_type=event_type)

        await self.analytics.track("webhook_received", session.id, {
            "webhook_source": "stripe",
            "webhook_event_type": event_type,
            "webhook_id": session.id,
        })

        try:
            await self._fulfill(session, log)
        except Exception as e:
            await self.analytics.track("webhook_received", session.id, {
                "webhook_source": "stripe",
                "webhook_event_type": event_type,
                "webhook_id": session.id,
                "webhook_success": False,
                "error_message": str(e),
                "processing_time_ms": int((time.monotonic() - start) * 1000),
            })
            raise

        processing_time_ms = int((time.monotonic() - start) * 1000)
        await self.analytics.track("webhook_received", session.id, {
            "webhook_source": "stripe",
            "webhook_event_type": event_type,
            "webhook_id": session.id,
            "webhook_success": True,
            "processing_time_ms": processing_time_ms,
        })
        log.info("Checkout session processed", processing_time_ms=processing_time_ms)

    async def _fulfill(self, session: CheckoutSession, log: ScopedLogger) -> None:
        if await self.upgrades.handle_vip_upgrade_payment(session, log):
            return

        customer_email = session.customer_email
        customer_name = session.customer_name or DEFAULT_CUSTOMER_NAME
        if not customer_email:
            error = PaymentError("No customer email found in session", code="MISSING_EMAIL")
            log.error(error.message, **error.as_fields())
            await self.analytics.error(session.id, error.message, **error.as_fields())
            raise error

        first_name, last_name = split_name(customer_name)
        log = log.bind(customer_email=customer_email)
        log.debug("Customer details extracted", customer_name=customer_name)

        await self.abandonment.cancel_abandonment_emails(customer_email, log)

        stripe_customer_id = await self.customers.get_or_create_customer(
            session, customer_email, customer_name, log,
        )

        line_items = await self.stripe.list_line_items(session.id)
        if not line_items:
            error = FulfillmentError("No line items found in session", code="NO_LINE_ITEMS")
            log.error(error.message, **error.as_fields())
            await self.analytics.error(
                customer_email, error.message, stripe_session_id=session.id, **error.as_fields(),
            )
            raise error

        classified = classify_line_items(line_items, self.voucher_product_id)
        log.info(
            "Line items classified",
            ticket_count=len(classified.tickets),
            voucher_count=len(classified.vouchers),
            unrecognized_count=len(classified.unrecognized),
        )
        for item in classified.unrecognized:
            log.warning(
                "Skipping unrecognized line item",
                description=item.description,
                lookup_key=item.price.lookup_key if item.price else None,
                price_id=item.price.id if item.price else None,
            )

        await self.vouchers.process_vouchers(
            classified.vouchers, session, customer_email, first_name, log,
        )
        await self.tickets.process_tickets(
            classified.tickets,
            session,
            stripe_customer_id,
            customer_email,
            first_name,
            last_name,
            log,
        )

    async def handle_async_payment_succeeded(self, session: CheckoutSession) -> None:
        """Delayed payment methods settle later; fulfill exactly like a completed checkout."""
        await self.handle_checkout_session_completed(
            session, event_type="checkout.session.async_payment_succeeded",
        )

    async def handle_async_payment_failed(self, session: CheckoutSession) -> None:
        log = get_scoped_logger("WebhookHandler", session_id=session.id)
        error = PaymentError("Async payment failed", code="ASYNC_PAYMENT_FAILED")
        log.error(error.message, customer_email=session.customer_email, **error.as_fields())
        await self.analytics.error(
            session.customer_email or session.id,
            error.message,
            stripe_session_id=session.id,
            **error.as_fields(),
        )

    def handle_payment_intent_succeeded(self, payment_intent: Dict[str, Any]) -> None:
        log = get_scoped_logger("WebhookHandler", payment_intent_id=payment_intent.get("id"))
        log.info("Payment intent succeeded", amount=payment_intent.get("amount"))
