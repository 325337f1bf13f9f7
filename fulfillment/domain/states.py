"""
Ticket and upgrade enums.
Values match the strings stored in the database and used in Stripe lookup keys.
"""

from enum import Enum


class TicketCategory(str, Enum):
    """Ticket class, independent of pricing stage."""

    STANDARD = "standard"
    STUDENT = "student"
    UNEMPLOYED = "unemployed"
    VIP = "vip"

    @property
    def is_fixed(self) -> bool:
        """Categories whose display name and type ignore the stage."""
        return self in (TicketCategory.VIP, TicketCategory.STUDENT, TicketCategory.UNEMPLOYED)


class TicketStage(str, Enum):
    """Pricing stage a ticket was bought in."""

    BLIND_BIRD = "blind_bird"
    EARLY_BIRD = "early_bird"
    GENERAL_ADMISSION = "general_admission"
    LATE_BIRD = "late_bird"

    @property
    def display_name(self) -> str:
        names = {
            TicketStage.BLIND_BIRD: "Blind Bird",
            TicketStage.EARLY_BIRD: "Early Bird",
            TicketStage.GENERAL_ADMISSION: "Standard",
            TicketStage.LATE_BIRD: "Late Bird",
        }
        return names.get(self, "Conference Ticket")


# Stage segment of a lookup key -> stored stage.
# "standard" in a lookup key means general admission.
STAGE_LOOKUP_MAP = {
    "blind_bird": TicketStage.BLIND_BIRD,
    "early_bird": TicketStage.EARLY_BIRD,
    "standard": TicketStage.GENERAL_ADMISSION,
    "general_admission": TicketStage.GENERAL_ADMISSION,
    "late_bird": TicketStage.LATE_BIRD,
}


class TicketType(str, Enum):
    """Legacy single-column ticket type kept for reporting compatibility."""

    VIP = "vip"
    STUDENT = "student"
    UNEMPLOYED = "unemployed"
    BLIND_BIRD = "blind_bird"
    EARLY_BIRD = "early_bird"
    LATE_BIRD = "late_bird"
    STANDARD = "standard"


class TicketStatus(str, Enum):
    """Payment status of a ticket."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class UpgradeStatus(str, Enum):
    """
    VIP upgrade lifecycle.
    The webhook only ever moves PENDING_PAYMENT -> COMPLETED.
    """

    PENDING_PAYMENT = "pending_payment"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class UpgradeMode(str, Enum):
    """How an upgrade is paid for."""

    STRIPE = "stripe"
    COMPLIMENTARY = "complimentary"
    BANK_TRANSFER = "bank_transfer"


class ErrorType(str, Enum):
    """Error taxonomy used in logs and analytics error events."""

    VALIDATION = "validation"
    SYSTEM = "system"
    PAYMENT = "payment"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"
