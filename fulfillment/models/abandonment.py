"""Scheduled cart abandonment emails, cancelled once the payer checks out."""

import uuid
from datetime import datetime

from sqlalchemy import String, DateTime
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment.database import Base


class ScheduledAbandonmentEmail(Base):
    """A follow-up email queued at the email provider for a cart left behind."""

    __tablename__ = "scheduled_abandonment_emails"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    # Resend id of the scheduled email
    resend_email_id: Mapped[str] = mapped_column(String(255), nullable=False)

    scheduled_for: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=datetime.utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<ScheduledAbandonmentEmail {self.email} {self.resend_email_id}>"
