"""Ticket upgrade model - VIP upgrade requests awaiting or past payment."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import String, DateTime, ForeignKey, Integer
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment.database import Base
from fulfillment.domain.states import UpgradeMode, UpgradeStatus


class TicketUpgrade(Base):
    """
    Upgrade of an existing ticket to VIP.
    Created by the admin flow; the Stripe webhook completes it.
    """

    __tablename__ = "ticket_upgrades"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    ticket_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("tickets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    status: Mapped[str] = mapped_column(
        String(30),
        default=UpgradeStatus.PENDING_PAYMENT.value,
        nullable=False,
    )

    upgrade_mode: Mapped[str] = mapped_column(
        String(30),
        default=UpgradeMode.STRIPE.value,
        nullable=False,
    )

    # Upgrade price in minor units
    amount: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    currency: Mapped[Optional[str]] = mapped_column(String(3), nullable=True)

    stripe_checkout_session_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=datetime.utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<TicketUpgrade {self.id} {self.status}>"
