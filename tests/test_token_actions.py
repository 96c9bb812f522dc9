"""Tests for patient confirm and cancel link handling."""

from datetime import timedelta

import pytest

from clinic_confirm.schemas.tokens import TokenActionOutcome, TokenPurpose
from clinic_confirm.services.appointment_service import AppointmentService
from clinic_confirm.services.token_action_service import (
    MSG_ALREADY_CONFIRMED,
    MSG_CANCELED,
    MSG_CANNOT_CANCEL,
    MSG_CANNOT_CONFIRM,
    MSG_CONFIRMED,
    MSG_INVALID_LINK,
    TokenActionService,
)
from clinic_confirm.services.token_service import TokenService
from conftest import DEADLINE, NOW_EXPORT

LATER = NOW_EXPORT + timedelta(hours=2)


@pytest.fixture
def actions(db_session, notifications):
    return TokenActionService(db_session, notifications)


async def _issue(db_session, appointment_id, purpose):
    issued = await TokenService(db_session).issue_or_rotate(appointment_id, purpose, DEADLINE)
    return issued["token"]


async def _status(db_session, appointment_id):
    return (await AppointmentService(db_session).get_appointment(appointment_id))["status"]


@pytest.mark.asyncio
async def test_confirm_link(db_session, clinic, make_appointment, actions):
    """Test a valid confirm link confirms and burns both tokens."""
    appointment = await make_appointment(clinic["id"])
    confirm = await _issue(db_session, appointment["id"], TokenPurpose.CONFIRM)
    cancel = await _issue(db_session, appointment["id"], TokenPurpose.CANCEL)

    result = await actions.handle(confirm, TokenPurpose.CONFIRM, LATER)

    assert result.outcome == TokenActionOutcome.SUCCESS
    assert result.message == MSG_CONFIRMED
    assert await _status(db_session, appointment["id"]) == "confirmed"

    # Both links are now spent
    reuse = await actions.handle(confirm, TokenPurpose.CONFIRM, LATER)
    assert reuse.outcome == TokenActionOutcome.INVALID
    assert reuse.message == MSG_INVALID_LINK
    stale_cancel = await actions.handle(cancel, TokenPurpose.CANCEL, LATER)
    assert stale_cancel.outcome == TokenActionOutcome.INVALID
    assert await _status(db_session, appointment["id"]) == "confirmed"


@pytest.mark.asyncio
async def test_confirm_with_ack_enabled(db_session, clinic, make_appointment, notifications, sms_sender):
    """Test the acknowledgement SMS follows a confirmation when enabled."""
    notifications.send_confirmed_ack = True
    appointment = await make_appointment(clinic["id"])
    confirm = await _issue(db_session, appointment["id"], TokenPurpose.CONFIRM)

    result = await TokenActionService(db_session, notifications).handle(
        confirm, TokenPurpose.CONFIRM, LATER
    )

    assert result.outcome == TokenActionOutcome.SUCCESS
    assert "este confirmata" in sms_sender.sent[0][1]


@pytest.mark.asyncio
async def test_confirm_already_confirmed(db_session, clinic, make_appointment, actions):
    """Test confirming a confirmed appointment is a neutral already-done."""
    appointment = await make_appointment(clinic["id"], status="confirmed")
    confirm = await _issue(db_session, appointment["id"], TokenPurpose.CONFIRM)

    result = await actions.handle(confirm, TokenPurpose.CONFIRM, LATER)

    assert result.outcome == TokenActionOutcome.ALREADY_DONE
    assert result.message == MSG_ALREADY_CONFIRMED
    assert await TokenService(db_session).get_valid_token(
        appointment["id"], TokenPurpose.CONFIRM, LATER
    ) is None


@pytest.mark.asyncio
async def test_confirm_canceled_appointment(db_session, clinic, make_appointment, actions):
    """Test a canceled appointment can no longer be confirmed."""
    appointment = await make_appointment(clinic["id"], status="canceled_auto")
    confirm = await _issue(db_session, appointment["id"], TokenPurpose.CONFIRM)

    result = await actions.handle(confirm, TokenPurpose.CONFIRM, LATER)

    assert result.outcome == TokenActionOutcome.INVALID
    assert result.message == MSG_CANNOT_CONFIRM
    assert await _status(db_session, appointment["id"]) == "canceled_auto"


@pytest.mark.asyncio
async def test_cancel_link_notifies_clinic(
    db_session, clinic, manager, make_appointment, actions, email_sender
):
    """Test a valid cancel link cancels, burns tokens and emails the manager."""
    appointment = await make_appointment(clinic["id"], status="confirmed")
    confirm = await _issue(db_session, appointment["id"], TokenPurpose.CONFIRM)
    cancel = await _issue(db_session, appointment["id"], TokenPurpose.CANCEL)

    result = await actions.handle(cancel, TokenPurpose.CANCEL, LATER)

    assert result.outcome == TokenActionOutcome.SUCCESS
    assert result.message == MSG_CANCELED
    assert await _status(db_session, appointment["id"]) == "canceled_by_patient"
    assert email_sender.sent[0][0] == manager["email"]
    assert "anulata de pacient" in email_sender.sent[0][2]

    # A stale confirm link cannot resurrect it
    stale = await actions.handle(confirm, TokenPurpose.CONFIRM, LATER)
    assert stale.outcome == TokenActionOutcome.INVALID
    assert await _status(db_session, appointment["id"]) == "canceled_by_patient"


@pytest.mark.asyncio
async def test_cancel_after_auto_cancel(db_session, clinic, make_appointment, actions):
    """Test an auto-canceled appointment cannot be canceled again."""
    appointment = await make_appointment(clinic["id"], status="canceled_auto")
    cancel = await _issue(db_session, appointment["id"], TokenPurpose.CANCEL)

    result = await actions.handle(cancel, TokenPurpose.CANCEL, LATER)

    assert result.outcome == TokenActionOutcome.INVALID
    assert result.message == MSG_CANNOT_CANCEL


@pytest.mark.asyncio
async def test_cancel_survives_email_failure(
    db_session, clinic, manager, make_appointment, actions, email_sender
):
    """Test the patient still gets success when the clinic email fails."""
    appointment = await make_appointment(clinic["id"])
    cancel = await _issue(db_session, appointment["id"], TokenPurpose.CANCEL)
    email_sender.fail = True

    result = await actions.handle(cancel, TokenPurpose.CANCEL, LATER)

    assert result.outcome == TokenActionOutcome.SUCCESS
    assert await _status(db_session, appointment["id"]) == "canceled_by_patient"


@pytest.mark.asyncio
async def test_unknown_and_empty_tokens(actions):
    """Test unknown tokens get the neutral invalid message."""
    for value in ("does-not-exist", ""):
        result = await actions.handle(value, TokenPurpose.CONFIRM, LATER)
        assert result.outcome == TokenActionOutcome.INVALID
        assert result.message == MSG_INVALID_LINK


@pytest.mark.asyncio
async def test_wrong_purpose_and_expired_tokens(db_session, clinic, make_appointment, actions):
    """Test purpose mismatch and expiry share one neutral message."""
    appointment = await make_appointment(clinic["id"])
    cancel = await _issue(db_session, appointment["id"], TokenPurpose.CANCEL)
    confirm = await _issue(db_session, appointment["id"], TokenPurpose.CONFIRM)

    wrong_purpose = await actions.handle(cancel, TokenPurpose.CONFIRM, LATER)
    expired = await actions.handle(confirm, TokenPurpose.CONFIRM, DEADLINE)

    assert wrong_purpose.outcome == expired.outcome == TokenActionOutcome.INVALID
    assert wrong_purpose.message == expired.message == MSG_INVALID_LINK
    assert await _status(db_session, appointment["id"]) == "pending"


@pytest.mark.asyncio
async def test_spent_and_unknown_tokens_look_the_same(db_session, clinic, make_appointment, actions):
    """Test a used link and a made-up link get identical results."""
    appointment = await make_appointment(clinic["id"])
    confirm = await _issue(db_session, appointment["id"], TokenPurpose.CONFIRM)
    await actions.handle(confirm, TokenPurpose.CONFIRM, LATER)

    spent = await actions.handle(confirm, TokenPurpose.CONFIRM, LATER)
    unknown = await actions.handle("never-issued", TokenPurpose.CONFIRM, LATER)

    assert spent == unknown
