"""
Partnership Service - link a checkout's discount code to a partnership.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.errors import VoucherAlreadyRedeemedError
from fulfillment.logging_config import ScopedLogger
from fulfillment.models.partnership import PartnershipCoupon, PartnershipVoucher
from fulfillment.schemas.checkout import CheckoutSession


@dataclass
class PartnershipDiscountInfo:
    """Discount resolved for one checkout session."""

    coupon_code: Optional[str] = None
    partnership_coupon_id: Optional[uuid.UUID] = None
    partnership_voucher_id: Optional[uuid.UUID] = None
    partnership_id: Optional[uuid.UUID] = None
    # Minor units, for the whole session
    discount_amount: int = 0

    @property
    def is_coupon(self) -> bool:
        return self.partnership_coupon_id is not None

    @property
    def is_voucher(self) -> bool:
        return self.partnership_voucher_id is not None


class PartnershipService:
    """Service for partnership coupon and voucher lookups."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve_discount(
        self,
        session: CheckoutSession,
        log: ScopedLogger,
    ) -> PartnershipDiscountInfo:
        """
        Look up ``metadata.couponCode`` as a partnership coupon first, then as a
        partnership voucher. A matching voucher is redeemed immediately.
        """
        info = PartnershipDiscountInfo(discount_amount=session.discount_total)

        coupon_code = session.meta("couponCode")
        if not coupon_code:
            return info

        info.coupon_code = coupon_code
        code = coupon_code.upper()

        result = await self.db.execute(
            select(PartnershipCoupon).where(PartnershipCoupon.code == code)
        )
        coupon = result.scalar_one_or_none()
        if coupon:
            info.partnership_coupon_id = coupon.id
            info.partnership_id = coupon.partnership_id
            return info

        result = await self.db.execute(
            select(PartnershipVoucher).where(PartnershipVoucher.code == code)
        )
        voucher = result.scalar_one_or_none()
        if voucher:
            info.partnership_voucher_id = voucher.id
            info.partnership_id = voucher.partnership_id
            await self.redeem_voucher(voucher, session, log)

        return info

    async def redeem_voucher(
        self,
        voucher: PartnershipVoucher,
        session: CheckoutSession,
        log: ScopedLogger,
    ) -> None:
        """
        Mark a voucher redeemed with a conditional update.
        A redelivery of the session that already redeemed it is a no-op; any
        other session finding it redeemed raises VoucherAlreadyRedeemedError.
        The redemption is committed right away so it survives a later failure.
        """
        if voucher.is_redeemed and voucher.redeemed_session_id == session.id:
            log.debug("Voucher already redeemed by this session", voucher_id=str(voucher.id))
            return

        result = await self.db.execute(
            update(PartnershipVoucher)
            .where(PartnershipVoucher.id == voucher.id)
            .where(PartnershipVoucher.is_redeemed.is_(False))
            .values(
                is_redeemed=True,
                redeemed_at=datetime.now(timezone.utc),
                redeemed_by_email=session.customer_email,
                redeemed_session_id=session.id,
            )
        )

        if result.rowcount == 0:
            raise VoucherAlreadyRedeemedError(
                f"Partnership voucher {voucher.code} was already redeemed",
                context={"voucher_id": str(voucher.id)},
            )

        await self.db.commit()
        log.info("Partnership voucher redeemed", voucher_id=str(voucher.id))
