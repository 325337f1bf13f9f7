"""Schemas package for Stripe payload views."""

from fulfillment.schemas.checkout import (
    AttendeeInfo,
    CheckoutSession,
    ClassifiedLineItems,
    CustomerDetails,
    LineItem,
    Price,
    Product,
)

__all__ = [
    "AttendeeInfo",
    "CheckoutSession",
    "ClassifiedLineItems",
    "CustomerDetails",
    "LineItem",
    "Price",
    "Product",
]
