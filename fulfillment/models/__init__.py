"""Models package for database models."""

from fulfillment.models.ticket import Ticket
from fulfillment.models.ticket_upgrade import TicketUpgrade
from fulfillment.models.partnership import PartnershipCoupon, PartnershipVoucher
from fulfillment.models.abandonment import ScheduledAbandonmentEmail

__all__ = [
    "Ticket",
    "TicketUpgrade",
    "PartnershipCoupon",
    "PartnershipVoucher",
    "ScheduledAbandonmentEmail",
]
