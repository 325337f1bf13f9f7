"""
Pydantic views of the Stripe objects the pipeline reads.

Only the fields used by fulfillment are declared; everything else in the
webhook payload is ignored.
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class StripeModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class Product(StripeModel):
    id: str
    name: Optional[str] = None


class Price(StripeModel):
    id: Optional[str] = None
    lookup_key: Optional[str] = None
    unit_amount: Optional[int] = None
    currency: Optional[str] = None
    # Expanded object or bare id depending on the API call
    product: Optional[Union[str, Product]] = None

    @property
    def product_id(self) -> Optional[str]:
        if isinstance(self.product, Product):
            return self.product.id
        return self.product


class LineItem(StripeModel):
    id: Optional[str] = None
    description: Optional[str] = None
    quantity: Optional[int] = 1
    amount_total: Optional[int] = None
    price: Optional[Price] = None


class CustomerDetails(StripeModel):
    email: Optional[str] = None
    name: Optional[str] = None


class TotalDetails(StripeModel):
    amount_discount: Optional[int] = 0


class CheckoutSession(StripeModel):
    """A completed (or async-paid) Stripe checkout session."""

    id: str
    currency: Optional[str] = None
    amount_total: Optional[int] = 0
    customer: Optional[Union[str, Dict[str, Any]]] = None
    customer_details: Optional[CustomerDetails] = None
    payment_intent: Optional[Union[str, Dict[str, Any]]] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    total_details: Optional[TotalDetails] = None

    @property
    def customer_id(self) -> Optional[str]:
        if isinstance(self.customer, dict):
            return self.customer.get("id")
        return self.customer

    @property
    def payment_intent_id(self) -> Optional[str]:
        return self.payment_intent if isinstance(self.payment_intent, str) else None

    @property
    def customer_email(self) -> Optional[str]:
        return self.customer_details.email if self.customer_details else None

    @property
    def customer_name(self) -> Optional[str]:
        return self.customer_details.name if self.customer_details else None

    @property
    def currency_code(self) -> str:
        return (self.currency or "CHF").upper()

    @property
    def discount_total(self) -> int:
        if self.total_details and self.total_details.amount_discount:
            return self.total_details.amount_discount
        return 0

    def meta(self, key: str) -> Optional[str]:
        """Metadata value, treating empty strings as missing."""
        value = self.metadata.get(key)
        return value or None


class AttendeeInfo(BaseModel):
    """One person named on an order. Accepts the camelCase keys of the checkout form."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    first_name: str = Field(default="", alias="firstName")
    last_name: str = Field(default="", alias="lastName")
    email: str
    company: Optional[str] = None
    job_title: Optional[str] = Field(default=None, alias="jobTitle")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class ClassifiedLineItems(BaseModel):
    """Line items bucketed by what the pipeline does with them."""

    tickets: List[LineItem] = Field(default_factory=list)
    vouchers: List[LineItem] = Field(default_factory=list)
    unrecognized: List[LineItem] = Field(default_factory=list)
