"""
Upgrade Service - complete VIP upgrades paid through Stripe checkout.

An upgrade checkout carries ``upgrade_id`` and ``ticket_id`` in its metadata.
State machine of the upgrade record:
pending_payment -> completed (terminal)
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.domain.states import TicketCategory, UpgradeMode, UpgradeStatus
from fulfillment.errors import UpgradeError
from fulfillment.logging_config import ScopedLogger
from fulfillment.models.ticket import Ticket
from fulfillment.models.ticket_upgrade import TicketUpgrade
from fulfillment.schemas.checkout import CheckoutSession
from fulfillment.services.analytics_service import AnalyticsService
from fulfillment.services.email_service import EmailService, VipUpgradeEmailData
from fulfillment.services.order_token import generate_order_url


def _parse_uuid(value: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(value)
    except (ValueError, TypeError):
        return None


class UpgradeService:
    """Service moving a paid VIP upgrade to completed."""

    def __init__(
        self,
        db: AsyncSession,
        email_service: EmailService,
        analytics: AnalyticsService,
    ):
        self.db = db
        self.email = email_service
        self.analytics = analytics

    async def get_upgrade(self, upgrade_id: str, ticket_id: str) -> Optional[TicketUpgrade]:
        upgrade_uuid = _parse_uuid(upgrade_id)
        ticket_uuid = _parse_uuid(ticket_id)
        if upgrade_uuid is None or ticket_uuid is None:
            return None

        result = await self.db.execute(
            select(TicketUpgrade).where(
                TicketUpgrade.id == upgrade_uuid,
                TicketUpgrade.ticket_id == ticket_uuid,
            )
        )
        return result.scalar_one_or_none()

    async def get_ticket(self, ticket_id: uuid.UUID) -> Optional[Ticket]:
        result = await self.db.execute(select(Ticket).where(Ticket.id == ticket_id))
        return result.scalar_one_or_none()

    async def handle_vip_upgrade_payment(self, session: CheckoutSession, log: ScopedLogger) -> bool:
        """
        Complete the upgrade referenced by the session metadata.

        Returns False when the session is not an upgrade checkout, so the
        caller continues with regular ticket fulfillment. Returns True when
        the session was handled, including redeliveries of an upgrade that is
        already completed.
        """
        upgrade_id = session.meta("upgrade_id")
        ticket_id = session.meta("ticket_id")
        if not upgrade_id or not ticket_id:
            return False

        log = log.bind(upgrade_id=upgrade_id, ticket_id=ticket_id)

        try:
            return await self._complete_upgrade(session, upgrade_id, ticket_id, log)
        except Exception as e:
            log.error(
                "VIP upgrade completion failed",
                error=str(e),
                exc_info=True,
                type="payment",
                severity="critical",
                code="UPGRADE_COMPLETION_ERROR",
            )
            await self.analytics.capture_exception(
                e,
                session.customer_email or ticket_id,
                upgrade_id=upgrade_id,
                ticket_id=ticket_id,
                stripe_session_id=session.id,
            )
            raise

    async def _complete_upgrade(
        self,
        session: CheckoutSession,
        upgrade_id: str,
        ticket_id: str,
        log: ScopedLogger,
    ) -> bool:
        upgrade = await self.get_upgrade(upgrade_id, ticket_id)
        if upgrade is None:
            raise UpgradeError(
                f"Upgrade record not found: {upgrade_id}",
                code="UPGRADE_NOT_FOUND",
            )

        if upgrade.status == UpgradeStatus.COMPLETED.value:
            log.info("VIP upgrade already completed")
            return True

        if (
            upgrade.upgrade_mode != UpgradeMode.STRIPE.value
            or upgrade.status != UpgradeStatus.PENDING_PAYMENT.value
        ):
            log.warning(
                "Upgrade is not awaiting Stripe payment, skipping",
                status=upgrade.status,
                upgrade_mode=upgrade.upgrade_mode,
            )
            return True

        ticket = await self.get_ticket(upgrade.ticket_id)
        if ticket is None:
            raise UpgradeError(
                f"Ticket not found for upgrade: {ticket_id}",
                code="TICKET_NOT_FOUND",
            )

        previous_category = ticket.ticket_category
        ticket_email = ticket.email
        email_data = VipUpgradeEmailData(
            to=ticket_email,
            first_name=ticket.first_name,
            ticket_id=str(ticket.id),
            upgrade_mode=upgrade.upgrade_mode,
            upgrade_status=UpgradeStatus.COMPLETED.value,
            amount=upgrade.amount,
            currency=upgrade.currency,
            manage_ticket_url=generate_order_url(str(ticket.id)),
        )
        now = datetime.now(timezone.utc)

        ticket.ticket_category = TicketCategory.VIP.value
        # New dict so the JSON column is flagged dirty
        ticket.ticket_metadata = {
            **(ticket.ticket_metadata or {}),
            "upgraded_from": previous_category,
            "upgraded_at": now.isoformat(),
            "upgrade_id": upgrade_id,
            "stripe_upgrade_session_id": session.id,
        }
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise UpgradeError(
                f"Failed to upgrade ticket: {e}",
                code="TICKET_UPDATE_FAILED",
            ) from e

        log.info("Ticket upgraded to VIP", previous_category=previous_category)

        upgrade.status = UpgradeStatus.COMPLETED.value
        upgrade.completed_at = now
        upgrade.stripe_checkout_session_id = session.id
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            # The ticket is already VIP; the record can be fixed by hand
            await self.db.rollback()
            log.error(
                "Failed to mark upgrade completed",
                error=str(e),
                type="system",
                severity="high",
                code="UPGRADE_UPDATE_FAILED",
            )

        await self.analytics.track("vip_upgrade_completed", ticket_email, {
            "ticket_id": email_data.ticket_id,
            "upgrade_id": upgrade_id,
            "upgrade_mode": email_data.upgrade_mode,
            "amount": email_data.amount,
            "currency": email_data.currency,
            "previous_tier": previous_category,
            "stripe_session_id": session.id,
        })

        # Ticket is VIP from here on; email failures are only logged
        try:
            result = await self.email.send_vip_upgrade_confirmation(email_data)
        except Exception as e:
            log.error(
                "Error sending VIP upgrade email",
                error=str(e),
                type="system",
                severity="medium",
                code="VIP_UPGRADE_EMAIL_ERROR",
                email=ticket_email,
            )
        else:
            if not result.success:
                log.warning("Failed to send VIP upgrade email", email=ticket_email, error=result.error)

        log.info("VIP upgrade completed")
        return True
