"""
Voucher Service - the fast path of checkout fulfillment.

Workshop vouchers are not persisted: each unit bought is represented only by
the confirmation email it produces. Replaying a webhook therefore resends
every voucher email of the session.
"""

import asyncio
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from fulfillment.config import settings
from fulfillment.domain.pricing import PricingStage, get_current_stage
from fulfillment.logging_config import ScopedLogger
from fulfillment.schemas.checkout import CheckoutSession, LineItem
from fulfillment.services.email_service import (
    EmailResult,
    EmailService,
    VoucherConfirmationData,
)


@dataclass(frozen=True)
class VoucherFulfillment:
    """Value of one purchased voucher unit, in major units."""

    amount_paid: float
    bonus_percent: int
    voucher_value: float
    currency: str


def compute_voucher(unit_amount: int, bonus_percent: int, currency: str) -> VoucherFulfillment:
    """Voucher value is the amount paid plus the active stage's bonus."""
    amount_paid = unit_amount / 100
    bonus_amount = amount_paid * bonus_percent / 100
    return VoucherFulfillment(
        amount_paid=amount_paid,
        bonus_percent=bonus_percent,
        voucher_value=amount_paid + bonus_amount,
        currency=currency,
    )


class VoucherService:
    """Service sending one confirmation per purchased voucher unit."""

    def __init__(
        self,
        email_service: EmailService,
        send_delay_ms: Optional[int] = None,
        stage_provider: Callable[[], PricingStage] = get_current_stage,
    ):
        self.email = email_service
        self.send_delay_ms = (
            send_delay_ms if send_delay_ms is not None else settings.email_send_delay_ms
        )
        self.stage_provider = stage_provider

    async def process_vouchers(
        self,
        voucher_items: Sequence[LineItem],
        session: CheckoutSession,
        customer_email: str,
        first_name: str,
        log: ScopedLogger,
    ) -> List[EmailResult]:
        """
        Email every voucher unit in ``voucher_items``.
        A failed email is logged and the remaining units are still sent.
        """
        if not voucher_items:
            return []

        stage = self.stage_provider()
        log.info(
            "Processing workshop vouchers",
            voucher_count=len(voucher_items),
            stage=stage.stage,
            bonus_percent=stage.voucher_bonus_percent,
        )

        units: List[VoucherFulfillment] = []
        for item in voucher_items:
            price = item.price
            unit_amount = price.unit_amount if price and price.unit_amount is not None else 0
            currency = (price.currency if price and price.currency else session.currency_code).upper()
            voucher = compute_voucher(unit_amount, stage.voucher_bonus_percent, currency)
            units.extend([voucher] * (item.quantity or 1))

        results: List[EmailResult] = []
        for i, voucher in enumerate(units):
            try:
                result = await self.email.send_voucher_confirmation(VoucherConfirmationData(
                    to=customer_email,
                    first_name=first_name,
                    amount_paid=voucher.amount_paid,
                    voucher_value=voucher.voucher_value,
                    currency=voucher.currency,
                    bonus_percent=voucher.bonus_percent or None,
                ))
            except Exception as e:
                log.error(
                    "Error processing voucher",
                    error=str(e),
                    type="system",
                    severity="high",
                    code="VOUCHER_EMAIL_ERROR",
                    voucher_index=i,
                )
                result = EmailResult(success=False, email=customer_email, error=str(e))

            if result.success:
                log.info(
                    "Workshop voucher email sent",
                    amount_paid=voucher.amount_paid,
                    voucher_value=voucher.voucher_value,
                    currency=voucher.currency,
                    voucher_index=i,
                )
            elif result.error:
                log.error(
                    "Failed to send voucher email",
                    error=result.error,
                    type="system",
                    severity="high",
                    code="VOUCHER_EMAIL_FAILED",
                    voucher_index=i,
                )
            results.append(result)

            if i < len(units) - 1:
                await asyncio.sleep(self.send_delay_ms / 1000)

        return results
