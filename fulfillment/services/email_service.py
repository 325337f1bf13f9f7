"""
Email Service - transactional email via the Resend API.

Send methods never raise; they return an EmailResult so callers can decide
whether a failure matters. Resend allows 2 requests/second, so batches are
sent sequentially with a fixed delay between sends.
"""

import asyncio
import base64
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import httpx
from jinja2 import TemplateError

from fulfillment.config import settings
from fulfillment.rendering import render_template

logger = logging.getLogger(__name__)

# ValueError covers a 2xx response whose body is not JSON
PROVIDER_ERRORS = (httpx.HTTPError, httpx.InvalidURL, TemplateError, ValueError, RuntimeError)

QR_CODE_CONTENT_ID = "ticket-qr"


@dataclass
class EmailResult:
    success: bool
    email: str
    error: Optional[str] = None
    email_id: Optional[str] = None


@dataclass
class TicketConfirmationData:
    to: str
    customer_name: str
    customer_email: str
    ticket_type: str
    order_number: str
    amount_paid: int
    currency: str
    ticket_id: str
    qr_code_url: Optional[str] = None
    order_url: Optional[str] = None
    notes: Optional[str] = None
    pdf_attachment: Optional[bytes] = None


@dataclass
class VoucherConfirmationData:
    to: str
    first_name: str
    # Major units (e.g. 100.0 CHF)
    amount_paid: float
    voucher_value: float
    currency: str
    bonus_percent: Optional[int] = None
    order_url: Optional[str] = None


@dataclass
class VipUpgradeEmailData:
    to: str
    first_name: str
    ticket_id: str
    upgrade_mode: str
    upgrade_status: str
    amount: Optional[int] = None
    currency: Optional[str] = None
    manage_ticket_url: Optional[str] = None


class EmailService:
    """Service for sending emails via Resend."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        send_delay_ms: Optional[int] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.resend_api_key
        self.base_url = settings.resend_api_url.rstrip("/")
        self.send_delay_ms = (
            send_delay_ms if send_delay_ms is not None else settings.email_send_delay_ms
        )
        self.headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST to Resend. Raises on transport errors and non-2xx responses."""
        if not self.api_key:
            raise RuntimeError("RESEND_API_KEY is not configured")

        async with httpx.AsyncClient() as client:
            response = await client.post(
                f"{self.base_url}{path}",
                json=payload,
                headers=self.headers,
                timeout=15.0,
            )
        response.raise_for_status()
        return response.json() if response.content else {}

    async def _send(
        self,
        to: str,
        subject: str,
        template: str,
        context: Dict[str, Any],
        attachments: Optional[List[Dict[str, str]]] = None,
    ) -> EmailResult:
        """Render ``template`` and send it. Provider and template errors become a failed result."""
        try:
            payload: Dict[str, Any] = {
                "from": settings.email_from,
                "to": [to],
                "reply_to": settings.email_reply_to,
                "subject": subject,
                "html": render_template(template, **context),
            }
            if attachments:
                payload["attachments"] = attachments

            data = await self._post("/emails", payload)
        except PROVIDER_ERRORS as e:
            logger.error(f"Error sending email to {to}: {e}")
            return EmailResult(success=False, email=to, error=str(e) or type(e).__name__)

        email_id = data.get("id") if isinstance(data, dict) else None
        return EmailResult(success=True, email=to, email_id=email_id)

    @staticmethod
    def _inline_qr_code(qr_code_url: str) -> Tuple[str, Optional[Dict[str, str]]]:
        """
        Mail clients block ``data:`` images, so an inline QR code is sent as a
        CID attachment instead. Hosted images are referenced directly.
        """
        if not qr_code_url.startswith("data:"):
            return qr_code_url, None

        header, _, content = qr_code_url.partition(",")
        extension = "png"
        if header.startswith("data:image/"):
            extension = header[len("data:image/"):].split(";")[0] or "png"
        return f"cid:{QR_CODE_CONTENT_ID}", {
            "filename": f"ticket-qr.{extension}",
            "content": content,
            "content_id": QR_CODE_CONTENT_ID,
        }

    async def send_ticket_confirmation(self, data: TicketConfirmationData) -> EmailResult:
        """Send one ticket confirmation, with the PDF ticket attached when present."""
        if not data.qr_code_url:
            logger.error(f"QR code URL is missing for ticket {data.ticket_id}")
            return EmailResult(
                success=False,
                email=data.to,
                error="QR code URL is required but was not provided",
            )

        qr_src, qr_attachment = self._inline_qr_code(data.qr_code_url)
        attachments = [qr_attachment] if qr_attachment else []
        if data.pdf_attachment:
            filename = f"{settings.conference_name.replace(' ', '_')}_Ticket_{data.ticket_id}.pdf"
            attachments.append({
                "filename": filename,
                "content": base64.b64encode(data.pdf_attachment).decode("ascii"),
            })

        result = await self._send(
            to=data.to,
            subject=f"Your {data.ticket_type} ticket for {settings.conference_name}",
            template="ticket_confirmation_email.html",
            context=dict(
                first_name=data.customer_name.split(" ")[0],
                full_name=data.customer_name,
                email=data.customer_email,
                event_name=settings.conference_name,
                tier_label=data.ticket_type,
                venue_name=settings.venue_name,
                venue_address=settings.venue_address,
                date_label=settings.conference_date,
                ticket_id=data.order_number,
                qr_src=qr_src,
                order_url=data.order_url,
                calendar_url=f"{settings.base_url}/api/calendar/{data.ticket_id}",
                refund_policy_url=f"{settings.base_url}/info/refund-policy",
                support_email=settings.support_email,
                notes=data.notes,
            ),
            attachments=attachments,
        )
        if result.success:
            logger.info(f"Ticket confirmation email sent to {data.to} for ticket {data.ticket_id}")
        return result

    async def send_ticket_confirmations_queued(
        self,
        emails: List[TicketConfirmationData],
    ) -> List[EmailResult]:
        """
        Send a batch sequentially, pausing between sends to respect the rate limit.
        One failed email never stops the rest of the batch.
        """
        logger.info(f"Sending {len(emails)} ticket emails with rate limiting")
        results: List[EmailResult] = []

        for i, email_data in enumerate(emails):
            try:
                result = await self.send_ticket_confirmation(email_data)
            except Exception as e:
                logger.error(f"Unexpected error sending ticket email to {email_data.to}: {e}", exc_info=True)
                result = EmailResult(success=False, email=email_data.to, error=str(e) or type(e).__name__)
            results.append(result)

            if i < len(emails) - 1:
                await asyncio.sleep(self.send_delay_ms / 1000)

        success_count = sum(1 for r in results if r.success)
        logger.info(
            f"Email queue completed: {success_count} sent, {len(results) - success_count} failed"
        )
        return results

    async def send_voucher_confirmation(self, data: VoucherConfirmationData) -> EmailResult:
        """Send a workshop voucher purchase confirmation."""
        return await self._send(
            to=data.to,
            subject=f"Your Workshop Voucher - {data.voucher_value:.2f} {data.currency}",
            template="voucher_confirmation_email.html",
            context=dict(
                first_name=data.first_name,
                amount_paid=f"{data.amount_paid:.2f}",
                voucher_value=f"{data.voucher_value:.2f}",
                currency=data.currency,
                bonus_percent=data.bonus_percent,
                order_url=data.order_url,
                workshops_url=f"{settings.base_url}/workshops",
                support_email=settings.support_email,
            ),
        )

    async def send_vip_upgrade_confirmation(self, data: VipUpgradeEmailData) -> EmailResult:
        """Tell the attendee their ticket is now VIP."""
        return await self._send(
            to=data.to,
            subject=f"You're now VIP at {settings.conference_name}",
            template="vip_upgrade_email.html",
            context=dict(
                first_name=data.first_name,
                ticket_id=data.ticket_id,
                upgrade_mode=data.upgrade_mode,
                upgrade_status=data.upgrade_status,
                amount=data.amount,
                currency=data.currency,
                manage_ticket_url=data.manage_ticket_url,
                event_name=settings.conference_name,
                support_email=settings.support_email,
            ),
        )

    async def add_newsletter_contact(self, email: str, source: str) -> EmailResult:
        """Add an email to the newsletter audience."""
        if not settings.resend_audience_id:
            return EmailResult(success=False, email=email, error="Newsletter audience not configured")

        try:
            await self._post(
                f"/audiences/{settings.resend_audience_id}/contacts",
                {"email": email, "unsubscribed": False, "source": source},
            )
        except PROVIDER_ERRORS as e:
            return EmailResult(success=False, email=email, error=str(e) or type(e).__name__)

        return EmailResult(success=True, email=email)

    async def cancel_email(self, email_id: str) -> None:
        """Cancel a scheduled email. Raises if Resend refuses (e.g. already sent)."""
        await self._post(f"/emails/{email_id}/cancel", {})
