"""Services package."""

from fulfillment.services.analytics_service import AnalyticsService
from fulfillment.services.email_service import EmailService
from fulfillment.services.fulfillment_service import FulfillmentService
from fulfillment.services.pdf_service import PdfService
from fulfillment.services.stripe_service import StripeService
from fulfillment.services.ticket_service import TicketService
from fulfillment.services.upgrade_service import UpgradeService
from fulfillment.services.voucher_service import VoucherService

__all__ = [
    "AnalyticsService",
    "EmailService",
    "FulfillmentService",
    "PdfService",
    "StripeService",
    "TicketService",
    "UpgradeService",
    "VoucherService",
]
