"""
Ticket rules: lookup key parsing, line item classification, display names,
attendee parsing and cost splitting.

Everything here is pure (no I/O) so it can be tested without a database.
Lookup keys follow ``{category}_{stage}`` with an optional currency suffix,
e.g. ``standard_blind_bird_eur`` or ``vip_early_bird``.
"""

import json
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from fulfillment.domain.states import (
    STAGE_LOOKUP_MAP,
    TicketCategory,
    TicketStage,
    TicketType,
)
from fulfillment.logging_config import ScopedLogger
from fulfillment.schemas.checkout import (
    AttendeeInfo,
    ClassifiedLineItems,
    LineItem,
    Price,
)

CURRENCY_SUFFIXES = ("_eur", "_gbp", "_chf")

TICKET_CATEGORIES = frozenset(c.value for c in TicketCategory)
LOOKUP_KEY_STAGES = frozenset(STAGE_LOOKUP_MAP)


@dataclass(frozen=True)
class TicketInfo:
    """Category and stage parsed from a lookup key."""

    category: TicketCategory
    stage: TicketStage

    @property
    def display_name(self) -> str:
        return get_ticket_display_name(self.category, self.stage)

    @property
    def legacy_type(self) -> TicketType:
        return to_legacy_type(self.category, self.stage)


def strip_currency_suffix(lookup_key: str) -> str:
    """``standard_blind_bird_eur`` -> ``standard_blind_bird``."""
    for suffix in CURRENCY_SUFFIXES:
        if lookup_key.endswith(suffix):
            return lookup_key[: -len(suffix)]
    return lookup_key


def _is_reduced_price_key(key: str) -> bool:
    return "student" in key or "unemployed" in key


def is_ticket_lookup_key(lookup_key: Optional[str]) -> bool:
    """Check a price lookup key against the ``{category}_{stage}`` pattern."""
    if not lookup_key:
        return False

    key = strip_currency_suffix(lookup_key)

    # standard_student_unemployed and friends
    if _is_reduced_price_key(key):
        return True

    category, sep, stage = key.partition("_")
    if not sep:
        return category in TICKET_CATEGORIES
    return category in TICKET_CATEGORIES and stage in LOOKUP_KEY_STAGES


def parse_ticket_info(lookup_key: str) -> TicketInfo:
    """
    Parse category and stage from a lookup key already validated by
    is_ticket_lookup_key(). Multi-part stages like ``blind_bird`` are kept
    whole because only the first underscore separates the category.
    """
    key = strip_currency_suffix(lookup_key)

    if "student" in key:
        return TicketInfo(TicketCategory.STUDENT, TicketStage.GENERAL_ADMISSION)
    if "unemployed" in key:
        return TicketInfo(TicketCategory.UNEMPLOYED, TicketStage.GENERAL_ADMISSION)

    category, _, stage_key = key.partition("_")
    stage = STAGE_LOOKUP_MAP.get(stage_key, TicketStage.GENERAL_ADMISSION)
    return TicketInfo(TicketCategory(category), stage)


def get_ticket_display_name(category: TicketCategory, stage: TicketStage) -> str:
    if category == TicketCategory.VIP:
        return "VIP Ticket"
    if category == TicketCategory.STUDENT:
        return "Student Ticket"
    if category == TicketCategory.UNEMPLOYED:
        return "Unemployed Ticket"
    return stage.display_name


def to_legacy_type(category: TicketCategory, stage: TicketStage) -> TicketType:
    """Map category/stage to the single-column ticket type."""
    if category.is_fixed:
        return TicketType(category.value)
    if stage == TicketStage.BLIND_BIRD:
        return TicketType.BLIND_BIRD
    if stage == TicketStage.EARLY_BIRD:
        return TicketType.EARLY_BIRD
    if stage == TicketStage.LATE_BIRD:
        return TicketType.LATE_BIRD
    return TicketType.STANDARD


def is_workshop_voucher(price: Optional[Price], voucher_product_id: Optional[str]) -> bool:
    """Vouchers are recognised by product id alone, never by lookup key."""
    if not price or not voucher_product_id:
        return False
    return price.product_id == voucher_product_id


def classify_line_items(
    line_items: Iterable[LineItem],
    voucher_product_id: Optional[str],
) -> ClassifiedLineItems:
    """Bucket line items into tickets, workshop vouchers and unrecognized products."""
    result = ClassifiedLineItems()

    for item in line_items:
        if is_workshop_voucher(item.price, voucher_product_id):
            result.vouchers.append(item)
        elif item.price and is_ticket_lookup_key(item.price.lookup_key):
            result.tickets.append(item)
        else:
            result.unrecognized.append(item)

    return result


def split_name(full_name: str) -> Tuple[str, str]:
    """First token is the first name, the rest is the last name."""
    parts = full_name.split(" ")
    first_name = parts[0] if parts else ""
    last_name = " ".join(parts[1:])
    return first_name, last_name


def split_amount(total: int, count: int) -> List[int]:
    """
    Split an amount in minor units across ``count`` attendees.
    Every share is ``total // count``; the remainder goes to the first share
    so the shares always sum to ``total``.
    """
    if count <= 0:
        return []
    share, remainder = divmod(total, count)
    shares = [share] * count
    shares[0] += remainder
    return shares


def parse_attendees(
    attendees_json: Optional[str],
    fallback: AttendeeInfo,
    log: ScopedLogger,
) -> List[AttendeeInfo]:
    """
    Parse the ``attendees`` metadata JSON array.
    Missing, malformed or empty input yields a single attendee: the payer.
    """
    attendees: List[AttendeeInfo] = []

    if attendees_json:
        try:
            raw = json.loads(attendees_json)
            if not isinstance(raw, list):
                raise ValueError("attendees metadata is not a JSON array")
            attendees = [AttendeeInfo.model_validate(entry) for entry in raw]
            log.debug("Parsed attendees", count=len(attendees))
        except (ValueError, TypeError, PydanticValidationError) as e:
            log.error(
                "Failed to parse attendees JSON",
                error=str(e),
                type="validation",
                severity="medium",
                code="ATTENDEES_PARSE_ERROR",
            )
            attendees = []

    if not attendees:
        log.debug("No attendees found, creating single ticket for billing customer")
        attendees = [fallback]

    return attendees
