"""
Tests for TicketService: idempotency, cost split and failure policy.
"""

import json
import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from fulfillment.errors import TicketCreationError
from fulfillment.models.partnership import PartnershipVoucher
from fulfillment.models.ticket import Ticket
from fulfillment.services.partnership_service import PartnershipService
from fulfillment.services.ticket_service import TicketService

from factories import make_session, ticket_item

ATTENDEES = json.dumps([
    {"firstName": "Ada", "lastName": "Lovelace", "email": "ada@example.com", "company": "Engines"},
    {"firstName": "Alan", "lastName": "Turing", "email": "alan@example.com"},
])


@pytest.fixture
def confirmations():
    service = MagicMock()
    service.send_ticket_confirmations = AsyncMock(return_value=[])
    return service


@pytest.fixture
def ticket_service(db, confirmations, email_service, analytics):
    return TicketService(
        db,
        PartnershipService(db),
        confirmations,
        email_service,
        analytics,
        qr_code_generator=lambda ticket_id: f"data:image/png;base64,{ticket_id}",
    )


async def count_tickets(db, session_id: str) -> int:
    result = await db.execute(
        select(func.count()).select_from(Ticket).where(Ticket.stripe_session_id == session_id)
    )
    return result.scalar_one()


async def run(service, session, log, items=None):
    return await service.process_tickets(
        items or [ticket_item("standard_early_bird", quantity=2)],
        session,
        "cus_123",
        "payer@example.com",
        "Pay",
        "Er",
        log,
    )


@pytest.mark.asyncio
async def test_two_attendees_split_total(db, ticket_service, log):
    session = make_session(amount_total=9800, metadata={"attendees": ATTENDEES, "totalTickets": "2"})

    tickets = await run(ticket_service, session, log)

    assert [t.email for t in tickets] == ["ada@example.com", "alan@example.com"]
    assert [t.amount_paid for t in tickets] == [4900, 4900]
    assert all(t.currency == "CHF" for t in tickets)
    assert all(t.ticket_category == "standard" for t in tickets)
    assert all(t.ticket_stage == "early_bird" for t in tickets)
    assert all(t.ticket_type == "early_bird" for t in tickets)
    assert all(t.status == "confirmed" for t in tickets)
    assert tickets[0].company == "Engines"
    assert tickets[1].qr_code_url == f"data:image/png;base64,{tickets[1].id}"

    primary, secondary = tickets
    assert primary.ticket_metadata["isPrimary"] is True
    assert secondary.ticket_metadata["isPrimary"] is False
    assert secondary.ticket_metadata["purchaserEmail"] == "ada@example.com"
    assert secondary.ticket_metadata["purchaserName"] == "Ada Lovelace"
    assert secondary.ticket_metadata["totalAttendees"] == 2
    assert secondary.ticket_metadata["billingEmail"] == "payer@example.com"

    assert await count_tickets(db, session.id) == 2


@pytest.mark.asyncio
async def test_amount_is_conserved_with_remainder(db, ticket_service, log):
    attendees = json.dumps([
        {"firstName": f"Guest{i}", "lastName": "X", "email": f"guest{i}@example.com"} for i in range(3)
    ])
    session = make_session(
        amount_total=10000,
        metadata={"attendees": attendees},
        total_details={"amount_discount": 1000},
    )

    tickets = await run(ticket_service, session, log)

    assert sum(t.amount_paid for t in tickets) == 10000
    assert sum(t.discount_amount for t in tickets) == 1000
    assert tickets[0].amount_paid == 3334


@pytest.mark.asyncio
async def test_payer_is_the_attendee_without_metadata(ticket_service, log):
    session = make_session(amount_total=4900, metadata={"company": "Acme", "jobTitle": "CTO"})

    tickets = await run(ticket_service, session, log, [ticket_item("vip_early_bird")])

    assert len(tickets) == 1
    ticket = tickets[0]
    assert ticket.email == "payer@example.com"
    assert ticket.first_name == "Pay"
    assert ticket.company == "Acme"
    assert ticket.job_title == "CTO"
    assert ticket.ticket_category == "vip"
    assert ticket.ticket_type == "vip"


@pytest.mark.asyncio
async def test_second_delivery_creates_nothing(db, ticket_service, confirmations, log, caplog):
    session = make_session(metadata={"attendees": ATTENDEES})
    await run(ticket_service, session, log)

    with caplog.at_level("WARNING", logger="fulfillment"):
        again = await run(ticket_service, session, log)

    assert again == []
    assert await count_tickets(db, session.id) == 2
    assert confirmations.send_ticket_confirmations.await_count == 1
    assert any(
        r.getMessage() == "Tickets already exist for this session. Skipping ticket creation."
        for r in caplog.records
    )


@pytest.mark.asyncio
async def test_concurrent_insert_is_treated_as_fulfilled(db, ticket_service, confirmations, log):
    session = make_session(metadata={"attendees": ATTENDEES})
    # Another delivery won the race after our existence check
    db.add(Ticket(
        ticket_type="early_bird",
        ticket_category="standard",
        ticket_stage="early_bird",
        first_name="Ada",
        last_name="Lovelace",
        email="ada@example.com",
        stripe_customer_id="cus_123",
        stripe_session_id=session.id,
        attendee_index=0,
        amount_paid=4900,
    ))
    await db.commit()
    ticket_service.tickets_exist_for_session = AsyncMock(return_value=False)

    tickets = await run(ticket_service, session, log)

    assert tickets == []
    assert await count_tickets(db, session.id) == 1
    confirmations.send_ticket_confirmations.assert_not_awaited()


@pytest.mark.asyncio
async def test_insert_failure_is_fatal(db, ticket_service, analytics, confirmations, log):
    session = make_session(metadata={"attendees": ATTENDEES})
    ticket_service._insert_ticket = AsyncMock(side_effect=OperationalError("INSERT", {}, Exception("db down")))

    with pytest.raises(TicketCreationError) as exc_info:
        await run(ticket_service, session, log)

    assert exc_info.value.code == "TICKET_CREATION_FAILED"
    assert exc_info.value.context["failed_emails"] == ["ada@example.com", "alan@example.com"]
    analytics.error.assert_awaited_once()
    assert analytics.error.await_args.kwargs["severity"] == "critical"
    confirmations.send_ticket_confirmations.assert_not_awaited()


@pytest.mark.asyncio
async def test_qr_failure_keeps_ticket(db, ticket_service, log):
    def broken_qr(ticket_id):
        raise ValueError("data too long")

    ticket_service.qr_code_generator = broken_qr

    tickets = await run(ticket_service, make_session(), log, [ticket_item()])

    assert len(tickets) == 1
    assert tickets[0].qr_code_url is None


@pytest.mark.asyncio
async def test_tracks_purchases_and_newsletter(ticket_service, analytics, email_service, confirmations, log):
    session = make_session(metadata={"attendees": ATTENDEES})

    tickets = await run(ticket_service, session, log)

    purchased = [c for c in analytics.track.await_args_list if c.args[0] == "ticket_purchased"]
    assert len(purchased) == 2
    assert purchased[0].args[2]["ticket_id"] == str(tickets[0].id)
    assert purchased[0].args[2]["revenue_amount"] == 4900
    assert email_service.add_newsletter_contact.await_count == 2

    created, display_name, passed_session, _ = confirmations.send_ticket_confirmations.await_args.args
    assert display_name == "Early Bird"
    assert passed_session is session
    assert [c.attendee.email for c in created] == ["ada@example.com", "alan@example.com"]


@pytest.mark.asyncio
async def test_newsletter_failure_is_not_fatal(ticket_service, analytics, email_service, log):
    from fulfillment.services.email_service import EmailResult

    email_service.add_newsletter_contact = AsyncMock(
        return_value=EmailResult(success=False, email="payer@example.com", error="audience missing")
    )

    tickets = await run(ticket_service, make_session(), log, [ticket_item()])

    assert len(tickets) == 1
    assert analytics.error.await_args.kwargs["code"] == "NEWSLETTER_CONTACT_FAILED"


@pytest.mark.asyncio
async def test_voucher_discount_is_linked(db, ticket_service, log):
    voucher = PartnershipVoucher(partnership_id=uuid.uuid4(), code="PARTNER", amount=5000)
    db.add(voucher)
    await db.commit()
    session = make_session(metadata={"couponCode": "partner"}, total_details={"amount_discount": 5000})

    tickets = await run(ticket_service, session, log, [ticket_item()])

    assert tickets[0].partnership_voucher_id == voucher.id
    assert tickets[0].partnership_id == voucher.partnership_id
    assert tickets[0].discount_amount == 5000
    assert tickets[0].coupon_code == "partner"


@pytest.mark.asyncio
async def test_already_redeemed_voucher_still_issues_tickets(db, ticket_service, analytics, log):
    voucher = PartnershipVoucher(
        partnership_id=uuid.uuid4(),
        code="USED",
        amount=5000,
        is_redeemed=True,
        redeemed_session_id="cs_other",
    )
    db.add(voucher)
    await db.commit()
    session = make_session(metadata={"couponCode": "USED"})

    tickets = await run(ticket_service, session, log, [ticket_item()])

    assert len(tickets) == 1
    assert tickets[0].partnership_voucher_id is None
    assert tickets[0].coupon_code == "USED"
    assert analytics.error.await_args.kwargs["code"] == "VOUCHER_ALREADY_REDEEMED"


@pytest.mark.asyncio
async def test_nothing_to_do_without_ticket_items(db, ticket_service, log):
    assert await ticket_service.process_tickets([], make_session(), "cus_123", "a@b.c", "A", "B", log) == []


@pytest.mark.asyncio
async def test_partial_failure_keeps_committed_tickets_and_voucher(db, ticket_service, confirmations, log):
    voucher = PartnershipVoucher(partnership_id=uuid.uuid4(), code="PARTNER", amount=5000)
    db.add(voucher)
    await db.commit()
    voucher_id = voucher.id
    session = make_session(metadata={"attendees": ATTENDEES, "couponCode": "PARTNER"})

    insert = ticket_service._insert_ticket
    calls = []

    async def second_insert_fails(ticket, log):
        calls.append(ticket.attendee_index)
        if ticket.attendee_index == 1:
            raise OperationalError("INSERT", {}, Exception("connection lost"))
        return await insert(ticket, log)

    ticket_service._insert_ticket = second_insert_fails

    with pytest.raises(TicketCreationError) as exc_info:
        await run(ticket_service, session, log)

    assert exc_info.value.context["failed_emails"] == ["alan@example.com"]
    assert await count_tickets(db, session.id) == 1
    db.expire_all()
    stored = await db.execute(select(PartnershipVoucher).where(PartnershipVoucher.id == voucher_id))
    assert stored.scalar_one().is_redeemed is True
    confirmations.send_ticket_confirmations.assert_not_awaited()

    calls.clear()
    again = await run(ticket_service, session, log)

    assert again == []
    assert calls == []
    assert await count_tickets(db, session.id) == 1


@pytest.mark.asyncio
async def test_newsletter_exception_is_not_fatal(ticket_service, analytics, email_service, confirmations, log):
    email_service.add_newsletter_contact = AsyncMock(side_effect=ValueError("Expecting value"))
    session = make_session(metadata={"attendees": ATTENDEES})

    tickets = await run(ticket_service, session, log)

    assert len(tickets) == 2
    assert email_service.add_newsletter_contact.await_count == 2
    assert analytics.error.await_args.kwargs["code"] == "NEWSLETTER_CONTACT_ERROR"
    confirmations.send_ticket_confirmations.assert_awaited_once()
