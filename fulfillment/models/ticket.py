"""Ticket model - one durable entitlement per attendee per checkout session."""

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import String, DateTime, Integer, JSON, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment.database import Base
from fulfillment.domain.states import TicketStatus


class Ticket(Base):
    """
    Conference ticket created from a Stripe checkout session.
    (stripe_session_id, attendee_index) is unique so a redelivered webhook
    cannot create a second set of tickets.
    """

    __tablename__ = "tickets"
    __table_args__ = (
        UniqueConstraint("stripe_session_id", "attendee_index", name="uq_tickets_session_attendee"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    # Legacy single-column type (vip, student, blind_bird, ...)
    ticket_type: Mapped[str] = mapped_column(String(30), nullable=False)
    ticket_category: Mapped[str] = mapped_column(String(30), nullable=False)
    ticket_stage: Mapped[str] = mapped_column(String(30), nullable=False)

    # Attendee
    first_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    company: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    job_title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Stripe references
    stripe_customer_id: Mapped[str] = mapped_column(String(255), nullable=False)
    stripe_session_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    stripe_payment_intent_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Position of the attendee in the order; 0 is the purchaser
    attendee_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Amount in minor units (cents/rappen)
    amount_paid: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="CHF", nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        default=TicketStatus.CONFIRMED.value,
        nullable=False,
    )

    # QR code image (data URL) for validation at the door
    qr_code_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    # Partnership discount linkage
    coupon_code: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    partnership_coupon_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    partnership_voucher_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    partnership_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    discount_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Session metadata, purchaser cross-reference and upgrade audit trail
    ticket_metadata: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        "metadata",
        JSON,
        nullable=True,
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=datetime.utcnow,
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Ticket {self.id} {self.ticket_category} {self.email}>"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
