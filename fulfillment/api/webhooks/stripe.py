"""
Stripe Webhook Handler.
Verifies signatures and routes payment events to the fulfillment pipeline.

Answering 500 makes Stripe redeliver the event, so only errors that a retry
can fix should escape the pipeline.
"""

import logging

import stripe
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from fulfillment.api.deps import get_fulfillment_service, get_stripe_service
from fulfillment.config import settings
from fulfillment.services.fulfillment_service import FulfillmentService
from fulfillment.services.stripe_service import StripeService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_service: StripeService = Depends(get_stripe_service),
    fulfillment: FulfillmentService = Depends(get_fulfillment_service),
):
    """
    Handle Stripe webhook events.

    Key events:
    - checkout.session.completed: tickets, vouchers or VIP upgrade
    - checkout.session.async_payment_succeeded: same, for delayed payments
    - checkout.session.async_payment_failed: logged and reported
    """
    if not settings.stripe_webhook_secret:
        logger.error("STRIPE_WEBHOOK_SECRET is not configured")
        return JSONResponse(status_code=500, content={"error": "Webhook secret not configured"})

    signature = request.headers.get("stripe-signature")
    if not signature:
        logger.error("Missing stripe-signature header")
        return JSONResponse(status_code=400, content={"error": "Missing signature"})

    body = await request.body()

    try:
        event = stripe_service.construct_event(body, signature, settings.stripe_webhook_secret)
    except (stripe.SignatureVerificationError, ValueError) as e:
        logger.error(f"Webhook signature verification failed: {e}")
        return JSONResponse(status_code=400, content={"error": "Invalid signature"})

    logger.info(f"Stripe webhook received: {event.get('type')} ({event.get('id')})")

    try:
        await fulfillment.handle_event(event)
    except Exception as e:
        logger.error(f"Error processing Stripe event {event.get('id')}: {e}", exc_info=True)
        await fulfillment.db.rollback()
        return JSONResponse(status_code=500, content={"error": "Webhook handler failed"})

    return {"received": True}
