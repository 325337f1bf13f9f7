"""Partnership coupon and voucher models."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import String, DateTime, Boolean, Integer
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment.database import Base


class PartnershipCoupon(Base):
    """Reusable discount code handed out by a partner community."""

    __tablename__ = "partnership_coupons"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    partnership_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        nullable=False,
        index=True,
    )

    # Stored upper-case
    code: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=datetime.utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<PartnershipCoupon {self.code}>"


class PartnershipVoucher(Base):
    """
    Single-use discount code.
    Redemption is a conditional update so two checkouts cannot both use it.
    """

    __tablename__ = "partnership_vouchers"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    partnership_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        nullable=False,
        index=True,
    )

    code: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)

    amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    is_redeemed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    redeemed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    redeemed_by_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    # Session that redeemed it; a redelivery of that session may redeem again
    redeemed_session_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=datetime.utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<PartnershipVoucher {self.code} redeemed={self.is_redeemed}>"
