"""
Stripe Service - webhook verification, line items and customers.

The stripe SDK is synchronous, so API calls run in a worker thread.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

import stripe

from fulfillment.config import settings
from fulfillment.schemas.checkout import LineItem

logger = logging.getLogger(__name__)


def _to_plain(obj: Any) -> Dict[str, Any]:
    """StripeObject -> plain dict (StripeObject.__str__ is its JSON)."""
    if isinstance(obj, dict) and not isinstance(obj, stripe.StripeObject):
        return obj
    return json.loads(str(obj))


class StripeService:
    """Service wrapping the Stripe API."""

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key or settings.stripe_secret_key

    def construct_event(self, payload: bytes, signature: str, secret: str) -> Dict[str, Any]:
        """
        Verify the Stripe-Signature header and return the event as a dict.
        Raises stripe.SignatureVerificationError or ValueError on bad input.
        """
        stripe.Webhook.construct_event(payload=payload, sig_header=signature, secret=secret)
        return json.loads(payload)

    async def list_line_items(self, session_id: str) -> List[LineItem]:
        """Line items of a checkout session with price.product expanded."""

        def _fetch() -> List[Dict[str, Any]]:
            items = stripe.checkout.Session.list_line_items(
                session_id,
                expand=["data.price.product"],
                limit=100,
                api_key=self.api_key,
            )
            return [_to_plain(item) for item in items.auto_paging_iter()]

        raw_items = await asyncio.to_thread(_fetch)
        return [LineItem.model_validate(item) for item in raw_items]

    async def create_customer(self, email: str, name: str, session_id: str) -> str:
        """Create a customer tagged with the originating session; returns its id."""

        def _create() -> str:
            customer = stripe.Customer.create(
                email=email,
                name=name,
                metadata={"session_id": session_id},
                api_key=self.api_key,
            )
            return customer.id

        return await asyncio.to_thread(_create)
