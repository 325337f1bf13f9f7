"""
PDF Service - ticket QR codes and printable PDF tickets.

Tickets are rendered from a Jinja2 HTML template and converted with WeasyPrint.
The QR code encodes the public validation URL for the ticket.
"""

import asyncio
import base64
import io
import logging
from dataclasses import dataclass
from typing import Optional

import httpx
import qrcode
from qrcode.constants import ERROR_CORRECT_H

from fulfillment.config import settings
from fulfillment.rendering import render_template

logger = logging.getLogger(__name__)


@dataclass
class TicketPdfData:
    ticket_id: str
    attendee_name: str
    attendee_email: str
    ticket_type: str
    order_number: str
    amount_paid: int
    currency: str
    qr_code_data_url: str
    notes: Optional[str] = None


def validation_url(ticket_id: str) -> str:
    return f"{settings.base_url}/validate/{ticket_id}"


def generate_qr_png(data: str) -> bytes:
    """Encode ``data`` as a PNG QR code with high error correction."""
    qr = qrcode.QRCode(
        error_correction=ERROR_CORRECT_H,
        box_size=10,
        border=2,
    )
    qr.add_data(data)
    qr.make(fit=True)
    image = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    image.save(buffer)
    return buffer.getvalue()


def to_data_url(png: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(png).decode("ascii")


def generate_ticket_qr_code(ticket_id: str) -> str:
    """QR code for a ticket as a PNG data URL."""
    return to_data_url(generate_qr_png(validation_url(ticket_id)))


async def image_url_to_data_url(url: str) -> str:
    """Inline an image so the PDF renderer does not fetch remote URLs."""
    if url.startswith("data:"):
        return url

    async with httpx.AsyncClient() as client:
        response = await client.get(url, timeout=10.0)
    response.raise_for_status()
    content_type = response.headers.get("content-type", "image/png")
    return f"data:{content_type};base64," + base64.b64encode(response.content).decode("ascii")


def _html_to_pdf(html: str) -> bytes:
    # Imported lazily: WeasyPrint loads native Pango/Cairo libraries on import
    from weasyprint import HTML

    return HTML(string=html).write_pdf()


class PdfService:
    """Service for rendering ticket PDFs."""

    async def generate_ticket_pdf(self, data: TicketPdfData) -> bytes:
        html = render_template(
            "ticket_pdf.html",
            conference_name=settings.conference_name,
            conference_date=settings.conference_date,
            venue_name=settings.venue_name,
            venue_address=settings.venue_address,
            ticket_id=data.ticket_id,
            attendee_name=data.attendee_name,
            attendee_email=data.attendee_email,
            ticket_type=data.ticket_type,
            order_number=data.order_number,
            amount_paid=data.amount_paid,
            currency=data.currency,
            qr_code_data_url=data.qr_code_data_url,
            notes=data.notes,
        )
        pdf = await asyncio.to_thread(_html_to_pdf, html)
        logger.debug(f"Rendered PDF for ticket {data.ticket_id} ({len(pdf)} bytes)")
        return pdf
