"""
Abandonment Service - cancel cart recovery emails once the payer has paid.
"""

import httpx
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.logging_config import ScopedLogger
from fulfillment.models.abandonment import ScheduledAbandonmentEmail
from fulfillment.services.email_service import EmailService


class AbandonmentService:
    """Service for cancelling scheduled cart abandonment follow-ups."""

    def __init__(self, db: AsyncSession, email_service: EmailService):
        self.db = db
        self.email = email_service

    async def cancel_abandonment_emails(self, customer_email: str, log: ScopedLogger) -> int:
        """
        Cancel every scheduled follow-up for ``customer_email`` and delete the
        rows. Non-fatal: failures are logged and the checkout continues.
        Returns the number of rows removed.
        """
        try:
            result = await self.db.execute(
                select(ScheduledAbandonmentEmail).where(
                    ScheduledAbandonmentEmail.email == customer_email
                )
            )
            scheduled = result.scalars().all()
            if not scheduled:
                return 0

            log.info("Cancelling scheduled abandonment emails", count=len(scheduled), email=customer_email)

            for row in scheduled:
                try:
                    await self.email.cancel_email(row.resend_email_id)
                    log.debug("Cancelled abandonment email", email_id=row.resend_email_id)
                except (httpx.HTTPError, RuntimeError) as e:
                    # Already sent or already cancelled
                    log.debug(
                        "Could not cancel abandonment email (may already be sent)",
                        email_id=row.resend_email_id,
                        error=str(e),
                    )

            await self.db.execute(
                delete(ScheduledAbandonmentEmail).where(
                    ScheduledAbandonmentEmail.email == customer_email
                )
            )
            await self.db.commit()
            return len(scheduled)

        except SQLAlchemyError as e:
            await self.db.rollback()
            log.warning("Failed to cancel abandonment emails", error=str(e), email=customer_email)
            return 0
