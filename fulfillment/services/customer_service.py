"""
Customer Service - resolve the Stripe customer for a checkout session.
"""

from fulfillment.logging_config import ScopedLogger
from fulfillment.schemas.checkout import CheckoutSession
from fulfillment.services.stripe_service import StripeService


class CustomerService:
    """Get or create the Stripe customer a payer's tickets are linked to."""

    def __init__(self, stripe_service: StripeService):
        self.stripe = stripe_service

    async def get_or_create_customer(
        self,
        session: CheckoutSession,
        customer_email: str,
        customer_name: str,
        log: ScopedLogger,
    ) -> str:
        """
        Reuse the customer referenced by the session (id or expanded object);
        otherwise create one keyed by the payer email.

        Not guarded against duplicates across retries: a redelivery of a
        session without a customer creates another customer.
        """
        if isinstance(session.customer, str):
            log.debug("Using existing customer ID from session", stripe_customer_id=session.customer)
            return session.customer

        if session.customer_id:
            log.debug("Using customer ID from object", stripe_customer_id=session.customer_id)
            return session.customer_id

        log.info("No customer found, creating new customer")
        customer_id = await self.stripe.create_customer(
            email=customer_email,
            name=customer_name,
            session_id=session.id,
        )
        log.info("Created new customer", stripe_customer_id=customer_id)
        return customer_id
