"""
Tests for FulfillmentService, the checkout session dispatcher.
"""

import json
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select

from fulfillment.errors import FulfillmentError, PaymentError
from fulfillment.models.abandonment import ScheduledAbandonmentEmail
from fulfillment.models.ticket import Ticket
from fulfillment.services.fulfillment_service import FulfillmentService

from factories import VOUCHER_PRODUCT_ID, make_session, ticket_item, voucher_item

ATTENDEES = json.dumps([
    {"firstName": "Ada", "lastName": "Lovelace", "email": "ada@example.com"},
    {"firstName": "Alan", "lastName": "Turing", "email": "alan@example.com"},
])


@pytest.fixture
def service(db, stripe_service, email_service, analytics, pdf_service):
    fulfillment = FulfillmentService(
        db,
        stripe_service=stripe_service,
        email_service=email_service,
        analytics=analytics,
        pdf_service=pdf_service,
        voucher_product_id=VOUCHER_PRODUCT_ID,
    )
    fulfillment.vouchers.send_delay_ms = 0
    return fulfillment


async def count_tickets(db) -> int:
    result = await db.execute(select(func.count()).select_from(Ticket))
    return result.scalar_one()


@pytest.mark.asyncio
async def test_ticket_order_end_to_end(db, service, stripe_service, email_service, analytics):
    stripe_service.list_line_items.return_value = [ticket_item("standard_early_bird", quantity=2)]
    session = make_session(amount_total=9800, metadata={"attendees": ATTENDEES})

    await service.handle_checkout_session_completed(session)

    result = await db.execute(select(Ticket).order_by(Ticket.attendee_index))
    tickets = result.scalars().all()
    assert [t.amount_paid for t in tickets] == [4900, 4900]
    assert all(t.stripe_customer_id == "cus_123" for t in tickets)
    stripe_service.create_customer.assert_not_awaited()

    (emails,) = email_service.send_ticket_confirmations_queued.await_args.args
    assert [e.to for e in emails] == ["ada@example.com", "alan@example.com"]

    webhook_events = [c for c in analytics.track.await_args_list if c.args[0] == "webhook_received"]
    assert len(webhook_events) == 2
    assert webhook_events[-1].args[2]["webhook_success"] is True
    assert "processing_time_ms" in webhook_events[-1].args[2]


@pytest.mark.asyncio
async def test_missing_email_aborts_before_side_effects(db, service, stripe_service, email_service, analytics):
    session = make_session(customer_details={"name": "No Email"})

    with pytest.raises(PaymentError) as exc_info:
        await service.handle_checkout_session_completed(session)

    assert exc_info.value.code == "MISSING_EMAIL"
    assert await count_tickets(db) == 0
    stripe_service.list_line_items.assert_not_awaited()
    stripe_service.create_customer.assert_not_awaited()
    email_service.send_voucher_confirmation.assert_not_awaited()
    email_service.send_ticket_confirmations_queued.assert_not_awaited()
    assert analytics.error.await_args.kwargs["code"] == "MISSING_EMAIL"
    assert analytics.track.await_args.args[2]["webhook_success"] is False


@pytest.mark.asyncio
async def test_no_line_items_is_fatal(service, stripe_service, analytics):
    stripe_service.list_line_items.return_value = []

    with pytest.raises(FulfillmentError) as exc_info:
        await service.handle_checkout_session_completed(make_session())

    assert exc_info.value.code == "NO_LINE_ITEMS"
    analytics.error.assert_awaited_once()
    distinct_id, message = analytics.error.await_args.args
    assert distinct_id == "payer@example.com"
    assert message == "No line items found in session"
    assert analytics.error.await_args.kwargs["code"] == "NO_LINE_ITEMS"
    assert analytics.error.await_args.kwargs["stripe_session_id"] == "cs_test_123"


@pytest.mark.asyncio
async def test_redelivery_skips_tickets_but_resends_vouchers(db, service, stripe_service, email_service):
    stripe_service.list_line_items.return_value = [ticket_item(), voucher_item()]
    session = make_session(amount_total=14900)

    await service.handle_checkout_session_completed(session)
    await service.handle_checkout_session_completed(session)

    assert await count_tickets(db) == 1
    assert email_service.send_ticket_confirmations_queued.await_count == 1
    assert email_service.send_voucher_confirmation.await_count == 2


@pytest.mark.asyncio
async def test_voucher_only_order(db, service, stripe_service, email_service):
    stripe_service.list_line_items.return_value = [voucher_item(quantity=2)]

    await service.handle_checkout_session_completed(make_session(amount_total=20000))

    assert await count_tickets(db) == 0
    assert email_service.send_voucher_confirmation.await_count == 2
    email_service.send_ticket_confirmations_queued.assert_not_awaited()


@pytest.mark.asyncio
async def test_unrecognized_items_are_skipped(db, service, stripe_service, caplog):
    stripe_service.list_line_items.return_value = [
        ticket_item("tshirt_large"),
        ticket_item("vip_early_bird"),
    ]

    with caplog.at_level("WARNING", logger="fulfillment"):
        await service.handle_checkout_session_completed(make_session())

    assert await count_tickets(db) == 1
    warning = next(r for r in caplog.records if r.getMessage() == "Skipping unrecognized line item")
    assert warning.context["lookup_key"] == "tshirt_large"


@pytest.mark.asyncio
async def test_creates_customer_when_session_has_none(db, service, stripe_service):
    stripe_service.list_line_items.return_value = [ticket_item()]

    await service.handle_checkout_session_completed(make_session(customer=None))

    stripe_service.create_customer.assert_awaited_once_with(
        email="payer@example.com",
        name="Ada Lovelace",
        session_id="cs_test_123",
    )
    result = await db.execute(select(Ticket.stripe_customer_id))
    assert result.scalar_one() == "cus_new"


@pytest.mark.asyncio
async def test_cancels_abandonment_emails(db, service, stripe_service, email_service):
    from datetime import datetime, timedelta, timezone

    db.add(ScheduledAbandonmentEmail(
        email="payer@example.com",
        resend_email_id="em_scheduled",
        scheduled_for=datetime.now(timezone.utc) + timedelta(hours=24),
    ))
    await db.commit()
    stripe_service.list_line_items.return_value = [ticket_item()]

    await service.handle_checkout_session_completed(make_session())

    email_service.cancel_email.assert_awaited_once_with("em_scheduled")
    result = await db.execute(select(func.count()).select_from(ScheduledAbandonmentEmail))
    assert result.scalar_one() == 0


@pytest.mark.asyncio
async def test_upgrade_checkout_returns_early(service, stripe_service):
    service.upgrades.handle_vip_upgrade_payment = AsyncMock(return_value=True)

    await service.handle_checkout_session_completed(make_session())

    stripe_service.list_line_items.assert_not_awaited()


@pytest.mark.asyncio
async def test_handle_event_routes_by_type(service):
    service.handle_checkout_session_completed = AsyncMock()
    service.handle_async_payment_failed = AsyncMock()
    payload = {"id": "cs_evt", "customer_details": {"email": "payer@example.com"}}

    await service.handle_event({"type": "checkout.session.completed", "data": {"object": payload}})
    await service.handle_event({"type": "checkout.session.async_payment_failed", "data": {"object": payload}})
    await service.handle_event({"type": "customer.created", "data": {"object": {}}})

    assert service.handle_checkout_session_completed.await_args.args[0].id == "cs_evt"
    service.handle_async_payment_failed.assert_awaited_once()


@pytest.mark.asyncio
async def test_async_payment_failed_reports_error(service, analytics):
    await service.handle_async_payment_failed(make_session())

    assert analytics.error.await_args.kwargs["code"] == "ASYNC_PAYMENT_FAILED"
    assert analytics.error.await_args.kwargs["type"] == "payment"
