"""
Ticket Service - the slow path of checkout fulfillment.

Creates one ticket per attendee, exactly once per checkout session:
1. Idempotency guard: skip if the session already has tickets
2. Resolve the partnership discount (coupon first, then voucher)
3. Parse attendees from session metadata (fallback: the payer)
4. Insert tickets one by one, splitting the amount across attendees
5. Track purchases and subscribe attendees to the newsletter
6. Send confirmation emails with PDF tickets

The pre-insert check is only a fast path. The unique constraint on
(stripe_session_id, attendee_index) is what actually prevents a concurrent
redelivery from creating a second set of tickets.
"""

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.domain.states import TicketStatus
from fulfillment.domain.tickets import (
    TicketInfo,
    parse_attendees,
    parse_ticket_info,
    split_amount,
)
from fulfillment.errors import (
    FulfillmentError,
    TicketCreationError,
    VoucherAlreadyRedeemedError,
)
from fulfillment.logging_config import ScopedLogger
from fulfillment.models.ticket import Ticket
from fulfillment.schemas.checkout import AttendeeInfo, CheckoutSession, LineItem
from fulfillment.services.analytics_service import AnalyticsService
from fulfillment.services.confirmation_service import ConfirmationService, CreatedTicket
from fulfillment.services.email_service import EmailService
from fulfillment.services.partnership_service import (
    PartnershipDiscountInfo,
    PartnershipService,
)
from fulfillment.services.pdf_service import generate_ticket_qr_code


class DuplicateFulfillment(Exception):
    """Another delivery of the same session inserted tickets first."""


@dataclass
class TicketCreationResult:
    attendee: AttendeeInfo
    ticket: Optional[Ticket] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.ticket is not None


class TicketService:
    """Service creating and confirming tickets for a checkout session."""

    def __init__(
        self,
        db: AsyncSession,
        partnership_service: PartnershipService,
        confirmation_service: ConfirmationService,
        email_service: EmailService,
        analytics: AnalyticsService,
        qr_code_generator: Callable[[str], str] = generate_ticket_qr_code,
    ):
        self.db = db
        self.partnerships = partnership_service
        self.confirmations = confirmation_service
        self.email = email_service
        self.analytics = analytics
        self.qr_code_generator = qr_code_generator

    async def tickets_exist_for_session(self, session_id: str) -> bool:
        """Check if tickets were already created for a checkout session."""
        try:
            result = await self.db.execute(
                select(Ticket.id).where(Ticket.stripe_session_id == session_id).limit(1)
            )
        except SQLAlchemyError as e:
            raise FulfillmentError(
                f"Error checking for existing tickets: {e}",
                code="TICKET_CHECK_ERROR",
            ) from e
        return result.first() is not None

    async def get_tickets_for_session(self, session_id: str) -> List[Ticket]:
        result = await self.db.execute(
            select(Ticket)
            .where(Ticket.stripe_session_id == session_id)
            .order_by(Ticket.attendee_index)
        )
        return list(result.scalars().all())

    async def _insert_ticket(self, ticket: Ticket, log: ScopedLogger) -> Ticket:
        """Insert and commit one ticket, then attach its QR code."""
        self.db.add(ticket)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise DuplicateFulfillment(str(e)) from e

        ticket_id = str(ticket.id)
        try:
            qr_code_url = self.qr_code_generator(ticket_id)
        except Exception as e:
            log.warning("QR code generation failed", ticket_id=ticket_id, error=str(e))
            return ticket

        ticket.qr_code_url = qr_code_url
        await self.db.commit()
        return ticket

    async def create_tickets(
        self,
        attendees: Sequence[AttendeeInfo],
        ticket_info: TicketInfo,
        session: CheckoutSession,
        stripe_customer_id: str,
        discount: PartnershipDiscountInfo,
        customer_email: str,
        log: ScopedLogger,
    ) -> List[TicketCreationResult]:
        """
        Create one ticket per attendee, one at a time.
        Raises DuplicateFulfillment if the session's tickets appear mid-way.
        """
        company = session.meta("company")
        job_title = session.meta("jobTitle")
        primary = attendees[0]

        amounts = split_amount(session.amount_total or 0, len(attendees))
        discounts = split_amount(discount.discount_amount, len(attendees))

        results: List[TicketCreationResult] = []
        for i, attendee in enumerate(attendees):
            is_primary = i == 0
            log.debug(f"Creating ticket {i + 1}/{len(attendees)}", email=attendee.email, is_primary=is_primary)

            ticket = Ticket(
                ticket_type=ticket_info.legacy_type.value,
                ticket_category=ticket_info.category.value,
                ticket_stage=ticket_info.stage.value,
                first_name=attendee.first_name,
                last_name=attendee.last_name,
                email=attendee.email,
                company=attendee.company or company,
                job_title=attendee.job_title or job_title,
                stripe_customer_id=stripe_customer_id,
                stripe_session_id=session.id,
                stripe_payment_intent_id=session.payment_intent_id,
                attendee_index=i,
                amount_paid=amounts[i],
                currency=session.currency_code,
                status=TicketStatus.CONFIRMED.value,
                coupon_code=discount.coupon_code,
                partnership_coupon_id=discount.partnership_coupon_id,
                partnership_voucher_id=discount.partnership_voucher_id,
                partnership_id=discount.partnership_id,
                discount_amount=discounts[i],
                ticket_metadata={
                    "session_metadata": dict(session.metadata),
                    "attendeeIndex": i,
                    "totalAttendees": len(attendees),
                    "isPrimary": is_primary,
                    "billingEmail": customer_email,
                    "purchaserName": primary.full_name,
                    "purchaserEmail": primary.email,
                },
            )

            try:
                await self._insert_ticket(ticket, log)
            except SQLAlchemyError as e:
                await self.db.rollback()
                log.error(
                    f"Failed to create ticket {i + 1}",
                    error=str(e),
                    type="system",
                    severity="high",
                    code="TICKET_CREATION_FAILED",
                    attendee_email=attendee.email,
                    attendee_index=i,
                )
                results.append(TicketCreationResult(attendee=attendee, error=str(e)))
                continue

            log.info(
                f"Ticket {i + 1}/{len(attendees)} created successfully",
                ticket_id=str(ticket.id),
                email=ticket.email,
                ticket_type=ticket.ticket_type,
            )
            results.append(TicketCreationResult(attendee=attendee, ticket=ticket))

        return results

    async def _resolve_discount(
        self,
        session: CheckoutSession,
        log: ScopedLogger,
    ) -> PartnershipDiscountInfo:
        try:
            discount = await self.partnerships.resolve_discount(session, log)
        except VoucherAlreadyRedeemedError as e:
            # The payer has paid; issue the tickets without the voucher link
            log.error(e.message, **e.as_fields())
            await self.analytics.error(session.id, e.message, **e.as_fields())
            return PartnershipDiscountInfo(
                coupon_code=session.meta("couponCode"),
                discount_amount=session.discount_total,
            )

        if discount.coupon_code:
            log.info(
                "Partnership discount applied",
                coupon_code=discount.coupon_code,
                partnership_id=str(discount.partnership_id) if discount.partnership_id else None,
                discount_amount=discount.discount_amount,
                is_coupon=discount.is_coupon,
                is_voucher=discount.is_voucher,
            )
        return discount

    async def _track_purchases_and_newsletter(
        self,
        created: Sequence[CreatedTicket],
        ticket_info: TicketInfo,
        session: CheckoutSession,
        log: ScopedLogger,
    ) -> None:
        for item in created:
            await self.analytics.track("ticket_purchased", item.attendee.email, {
                "ticket_id": str(item.ticket.id),
                "ticket_category": ticket_info.category.value,
                "ticket_stage": ticket_info.stage.value,
                "ticket_price": item.ticket.amount_paid,
                "currency": session.currency_code,
                "ticket_count": 1,
                "attendee_count": len(created),
                "email": item.attendee.email,
                "company": item.attendee.company,
                "payment_status": "succeeded",
                "stripe_session_id": session.id,
                "revenue_amount": item.ticket.amount_paid,
                "revenue_currency": session.currency_code,
                "revenue_type": "ticket",
            })

        for item in created:
            try:
                result = await self.email.add_newsletter_contact(item.attendee.email, "checkout")
            except Exception as e:
                log.warning("Error creating newsletter contact", email=item.attendee.email, error=str(e))
                await self.analytics.error(
                    item.attendee.email,
                    f"Error creating newsletter contact: {e}",
                    type="system",
                    severity="low",
                    code="NEWSLETTER_CONTACT_ERROR",
                )
                continue

            if not result.success:
                log.warning("Failed to create newsletter contact", email=item.attendee.email, error=result.error)
                await self.analytics.error(
                    item.attendee.email,
                    f"Failed to create newsletter contact: {result.error}",
                    type="system",
                    severity="low",
                    code="NEWSLETTER_CONTACT_FAILED",
                )

    async def process_tickets(
        self,
        ticket_items: Sequence[LineItem],
        session: CheckoutSession,
        stripe_customer_id: str,
        customer_email: str,
        first_name: str,
        last_name: str,
        log: ScopedLogger,
    ) -> List[Ticket]:
        """
        Run the ticket path for a session. Returns the tickets created by this
        call; an empty list means there was nothing to do or the session was
        already fulfilled.
        """
        if not ticket_items:
            return []

        price = ticket_items[0].price
        if not price or not price.lookup_key:
            return []

        log.debug("Checking for existing tickets with session ID", session_id=session.id)
        if await self.tickets_exist_for_session(session.id):
            existing = await self.get_tickets_for_session(session.id)
            log.warning(
                "Tickets already exist for this session. Skipping ticket creation.",
                existing_ticket_count=len(existing),
                existing_tickets=[{"id": str(t.id), "email": t.email} for t in existing],
            )
            return []

        ticket_info = parse_ticket_info(price.lookup_key)
        log.debug(
            "Ticket info parsed",
            category=ticket_info.category.value,
            stage=ticket_info.stage.value,
            display_name=ticket_info.display_name,
            lookup_key=price.lookup_key,
        )
        log.info("Processing tickets", ticket_count=len(ticket_items))

        discount = await self._resolve_discount(session, log)

        log.debug(
            "Additional customer info",
            company=session.meta("company"),
            job_title=session.meta("jobTitle"),
            total_tickets=session.meta("totalTickets") or "1",
            has_attendees=bool(session.meta("attendees")),
        )
        fallback = AttendeeInfo(
            first_name=first_name,
            last_name=last_name,
            email=customer_email,
            company=session.meta("company"),
            job_title=session.meta("jobTitle"),
        )
        attendees = parse_attendees(session.meta("attendees"), fallback, log)

        log.info("No existing tickets found. Creating tickets in database", count=len(attendees))
        try:
            results = await self.create_tickets(
                attendees, ticket_info, session, stripe_customer_id, discount, customer_email, log,
            )
        except DuplicateFulfillment:
            log.warning("Tickets were created concurrently by another delivery. Skipping.")
            return []

        failed = [r for r in results if not r.success]
        if failed:
            message = f"Failed to create {len(failed)} ticket(s)"
            await self.analytics.error(
                stripe_customer_id,
                message,
                type="system",
                severity="critical",
                code="TICKET_CREATION_FAILED",
            )
            raise TicketCreationError(
                message,
                context={"failed_emails": [r.attendee.email for r in failed]},
            )

        created = [CreatedTicket(ticket=r.ticket, attendee=r.attendee) for r in results]

        await self._track_purchases_and_newsletter(created, ticket_info, session, log)
        await self.confirmations.send_ticket_confirmations(
            created, ticket_info.display_name, session, log,
        )

        log.info("Tickets processed", count=len(created))
        return [c.ticket for c in created]
