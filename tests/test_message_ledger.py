"""Tests for the reserve/finalize notification ledger."""

import pytest

from clinic_confirm.models.base import utcnow
from clinic_confirm.models.messages import messages
from clinic_confirm.schemas.messages import MessageChannel, MessageTemplate, ReserveDecision
from clinic_confirm.services.message_ledger import MessageLedger

SMS = MessageChannel.SMS
CONFIRM_REQUEST = MessageTemplate.CONFIRM_REQUEST


@pytest.mark.asyncio
async def test_reserve_creates_queued_slot(db_session, clinic, make_appointment):
    """Test the first reservation wins and leaves a queued row."""
    appointment = await make_appointment(clinic["id"])
    ledger = MessageLedger(db_session)

    decision = await ledger.reserve(appointment["id"], SMS, CONFIRM_REQUEST, appointment["phone"])

    assert decision == ReserveDecision.SEND
    row = await ledger.get_message(appointment["id"], SMS, CONFIRM_REQUEST)
    assert row["delivery_status"] == "queued"
    assert row["recipient"] == appointment["phone"]


@pytest.mark.asyncio
async def test_sent_slot_is_skipped(db_session, clinic, make_appointment):
    """Test a slot finalized as sent is never handed out again."""
    appointment = await make_appointment(clinic["id"])
    ledger = MessageLedger(db_session)

    await ledger.reserve(appointment["id"], SMS, CONFIRM_REQUEST, appointment["phone"])
    await ledger.finalize(
        appointment["id"], SMS, CONFIRM_REQUEST, "sent", provider_message_id="SM1", raw={"a": 1}
    )

    decision = await ledger.reserve(appointment["id"], SMS, CONFIRM_REQUEST, appointment["phone"])

    assert decision == ReserveDecision.SKIP
    row = await ledger.get_message(appointment["id"], SMS, CONFIRM_REQUEST)
    assert row["provider_message_id"] == "SM1"
    assert row["raw"] == {"a": 1}


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["failed", "queued"])
async def test_unsent_slot_is_retried(db_session, clinic, make_appointment, status):
    """Test failed and queued slots stay eligible for another attempt."""
    appointment = await make_appointment(clinic["id"])
    ledger = MessageLedger(db_session)

    await ledger.reserve(appointment["id"], SMS, CONFIRM_REQUEST, appointment["phone"])
    await ledger.finalize(appointment["id"], SMS, CONFIRM_REQUEST, status, raw={"error": "x"})

    assert (
        await ledger.reserve(appointment["id"], SMS, CONFIRM_REQUEST, appointment["phone"])
        == ReserveDecision.SEND
    )


@pytest.mark.asyncio
async def test_slots_are_independent(db_session, clinic, make_appointment):
    """Test channel and template both distinguish slots."""
    appointment = await make_appointment(clinic["id"])
    ledger = MessageLedger(db_session)

    await ledger.reserve(appointment["id"], SMS, CONFIRM_REQUEST, appointment["phone"])
    await ledger.finalize(appointment["id"], SMS, CONFIRM_REQUEST, "sent")

    assert (
        await ledger.reserve(
            appointment["id"], SMS, MessageTemplate.AUTO_CANCEL_NOTICE, appointment["phone"]
        )
        == ReserveDecision.SEND
    )
    assert (
        await ledger.reserve(
            appointment["id"],
            MessageChannel.EMAIL,
            MessageTemplate.CLINIC_CANCEL_NOTICE,
            "manager@clinic.test",
        )
        == ReserveDecision.SEND
    )


@pytest.mark.asyncio
async def test_reserve_race_defers_to_existing_row(db_session, clinic, make_appointment, monkeypatch):
    """Test losing the insert race re-reads the winner's row."""
    appointment = await make_appointment(clinic["id"])
    ledger = MessageLedger(db_session)

    # Another worker already sent, but our first read did not see it
    await db_session.execute(
        messages.insert().values(
            appointment_id=appointment["id"],
            channel="sms",
            template="confirm_request",
            recipient=appointment["phone"],
            sent_at=utcnow(),
            delivery_status="sent",
        )
    )
    await db_session.commit()

    original = ledger.get_message
    calls = []

    async def stale_first_read(*args):
        calls.append(args)
        if len(calls) == 1:
            return None
        return await original(*args)

    monkeypatch.setattr(ledger, "get_message", stale_first_read)

    decision = await ledger.reserve(appointment["id"], SMS, CONFIRM_REQUEST, appointment["phone"])

    assert decision == ReserveDecision.SKIP
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_list_for_appointment(db_session, clinic, make_appointment):
    """Test the history lists every slot of the appointment."""
    appointment = await make_appointment(clinic["id"])
    other = await make_appointment(clinic["id"])
    ledger = MessageLedger(db_session)

    await ledger.reserve(appointment["id"], SMS, CONFIRM_REQUEST, appointment["phone"])
    await ledger.reserve(appointment["id"], SMS, MessageTemplate.AUTO_CANCEL_NOTICE, appointment["phone"])
    await ledger.reserve(other["id"], SMS, CONFIRM_REQUEST, other["phone"])

    rows = await ledger.list_for_appointment(appointment["id"])

    assert {row["template"] for row in rows} == {"confirm_request", "auto_cancel_notice"}
