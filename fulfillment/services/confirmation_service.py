"""
Confirmation Service - per-ticket confirmation emails with PDF tickets.

PDF rendering is best effort: a ticket whose PDF fails still gets its email,
just without the attachment. Emails go out through the rate-limited queue.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence

from fulfillment.logging_config import ScopedLogger
from fulfillment.models.ticket import Ticket
from fulfillment.schemas.checkout import AttendeeInfo, CheckoutSession
from fulfillment.services.email_service import (
    EmailResult,
    EmailService,
    TicketConfirmationData,
)
from fulfillment.services.order_token import generate_order_url
from fulfillment.services.pdf_service import (
    PdfService,
    TicketPdfData,
    image_url_to_data_url,
)


@dataclass
class CreatedTicket:
    """A persisted ticket and the attendee it was issued to."""

    ticket: Ticket
    attendee: AttendeeInfo


def build_notes(index: int, created: Sequence[CreatedTicket], session: CheckoutSession) -> Optional[str]:
    """
    Notes printed on the email and PDF.
    The purchaser of a multi-ticket order gets an order summary; every other
    attendee is told who bought the ticket for them.
    """
    primary = created[0].attendee

    if index == 0:
        if len(created) == 1:
            return None
        others = "\n".join(
            f"{c.attendee.full_name} ({c.attendee.email})" for c in created[1:]
        )
        return (
            "Order Summary:\n"
            f"Total Tickets: {len(created)}\n"
            f"Total Amount: {(session.amount_total or 0) / 100:.2f} {session.currency_code}\n\n"
            f"Additional Attendees:\n{others}\n\n"
            "Each attendee will receive their individual ticket via email."
        )

    return (
        f"This ticket was purchased by {primary.full_name} ({primary.email}).\n\n"
        "If you have any questions about this ticket, please contact them directly."
    )


class ConfirmationService:
    """Service preparing and dispatching ticket confirmations."""

    def __init__(self, email_service: EmailService, pdf_service: PdfService):
        self.email = email_service
        self.pdf = pdf_service

    async def _render_pdf(
        self,
        ticket: Ticket,
        attendee: AttendeeInfo,
        ticket_display_name: str,
        notes: Optional[str],
        log: ScopedLogger,
    ) -> Optional[bytes]:
        ticket_id = str(ticket.id)
        if not ticket.qr_code_url:
            log.warning("No QR code URL available, skipping PDF generation", ticket_id=ticket_id)
            return None

        try:
            qr_code_data_url = await image_url_to_data_url(ticket.qr_code_url)
            pdf = await self.pdf.generate_ticket_pdf(TicketPdfData(
                ticket_id=ticket_id,
                attendee_name=attendee.full_name,
                attendee_email=attendee.email,
                ticket_type=ticket_display_name,
                order_number=ticket_id,
                amount_paid=ticket.amount_paid,
                currency=ticket.currency,
                qr_code_data_url=qr_code_data_url,
                notes=notes,
            ))
            log.debug("PDF generated successfully", ticket_id=ticket_id)
            return pdf
        except Exception as e:
            log.error(
                "Error generating PDF",
                error=str(e),
                type="system",
                severity="medium",
                code="PDF_GENERATION_ERROR",
                ticket_id=ticket_id,
            )
            return None

    async def send_ticket_confirmations(
        self,
        created: Sequence[CreatedTicket],
        ticket_display_name: str,
        session: CheckoutSession,
        log: ScopedLogger,
    ) -> List[EmailResult]:
        """
        Build one email per ticket and hand the batch to the email queue.
        Failed sends are aggregated and logged; tickets are never rolled back.
        """
        if not created:
            return []

        log.info("Preparing confirmation emails", count=len(created))
        emails: List[TicketConfirmationData] = []

        for i, item in enumerate(created):
            ticket_id = str(item.ticket.id)
            notes = build_notes(i, created, session)
            log.debug(
                "Preparing email",
                email=item.attendee.email,
                is_primary=i == 0,
                has_order_summary=i == 0 and len(created) > 1,
            )

            pdf = await self._render_pdf(item.ticket, item.attendee, ticket_display_name, notes, log)

            emails.append(TicketConfirmationData(
                to=item.attendee.email,
                customer_name=item.attendee.full_name,
                customer_email=item.attendee.email,
                ticket_type=ticket_display_name,
                order_number=ticket_id,
                amount_paid=item.ticket.amount_paid,
                currency=item.ticket.currency,
                ticket_id=ticket_id,
                qr_code_url=item.ticket.qr_code_url,
                order_url=generate_order_url(ticket_id),
                notes=notes,
                pdf_attachment=pdf,
            ))

        results = await self.email.send_ticket_confirmations_queued(emails)

        successful = [r for r in results if r.success]
        failed = [r for r in results if not r.success]
        log.info("Successfully sent ticket emails", count=len(successful))
        if failed:
            log.error(
                "Failed to send ticket emails",
                type="system",
                severity="medium",
                code="TICKET_EMAIL_FAILED",
                failed_count=len(failed),
                failed_emails=[{"email": r.email, "error": r.error} for r in failed],
            )

        return results
