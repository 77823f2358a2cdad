import pytest
from app.core.errors import ValidationError
from app.core.fsm import TicketStateMachine
from app.models.enums import TicketStatus
from app.models.ticket import RepairTicket, TicketStatusLog


def make_ticket(db_session, owner):
    ticket = RepairTicket(
        ticket_code="REP-20261018-000001",
        reporter_name="Somchai",
        problem_title="Monitor flickers",
        location="2F",
        status=TicketStatus.PENDING.value,
        user_id=owner.id,
    )
    db_session.add(ticket)
    db_session.commit()
    db_session.refresh(ticket)
    return ticket


def test_fsm_transition_appends_one_log(db_session, make_user):
    owner = make_user()
    ticket = make_ticket(db_session, owner)

    fsm = TicketStateMachine(db_session)
    updated_ticket = fsm.transition(ticket, TicketStatus.IN_PROGRESS, actor_id=owner.id, comment="Taking a look")
    db_session.commit()

    assert updated_ticket.status == TicketStatus.IN_PROGRESS.value
    logs = db_session.query(TicketStatusLog).filter_by(ticket_id=ticket.id).all()
    assert len(logs) == 1
    assert logs[0].status == TicketStatus.IN_PROGRESS.value
    assert logs[0].comment == "Taking a look"
    assert logs[0].user_id == owner.id
    assert updated_ticket.completed_at is None
    assert updated_ticket.cancelled_at is None


def test_fsm_allows_pending_straight_to_completed(db_session, make_user):
    ticket = make_ticket(db_session, make_user())

    TicketStateMachine(db_session).transition(ticket, "COMPLETED", actor_id=None)
    db_session.commit()

    assert ticket.status == "COMPLETED"
    assert ticket.completed_at is not None
    assert ticket.cancelled_at is None


def test_fsm_cancel_stamps_cancelled_at(db_session, make_user):
    ticket = make_ticket(db_session, make_user())

    TicketStateMachine(db_session).transition(ticket, TicketStatus.CANCELLED, actor_id=None)
    db_session.commit()

    assert ticket.cancelled_at is not None
    assert ticket.completed_at is None


def test_fsm_rejects_unknown_status(db_session, make_user):
    ticket = make_ticket(db_session, make_user())

    with pytest.raises(ValidationError) as exc:
        TicketStateMachine(db_session).transition(ticket, "ON_HOLD", actor_id=None)

    assert "ON_HOLD" in exc.value.detail
    assert ticket.status == TicketStatus.PENDING.value
