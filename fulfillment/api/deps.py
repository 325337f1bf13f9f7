from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.database import get_db
from fulfillment.services.fulfillment_service import FulfillmentService
from fulfillment.services.stripe_service import StripeService


def get_stripe_service() -> StripeService:
    return StripeService()


async def get_fulfillment_service(
    db: AsyncSession = Depends(get_db),
    stripe_service: StripeService = Depends(get_stripe_service),
) -> FulfillmentService:
    """Fulfillment pipeline bound to the request's database session."""
    return FulfillmentService(db, stripe_service=stripe_service)
