import json
from datetime import datetime, timedelta
import httpx
from app.models.enums import AssignmentAction, LinkStatus, NotificationStatus, UserRole
from app.models.user import ChannelLink, NotificationLog, User
from app.schemas.notification import AssignmentPayload, GenericPayload, NewTicketPayload, StatusUpdatePayload
from app.schemas.ticket import TicketCreate
from app.services.notifications import dispatcher as dispatcher_module
from app.services.notifications.dispatcher import NotificationDispatcher
from app.services.notifications.line_client import MULTICAST_LIMIT, LineMessagingClient
from app.services.notifications.renderer import RenderLinks


def new_ticket_payload(**overrides):
    fields = dict(
        ticket_code="REP-20261018-123456",
        reporter_name="Malee",
        department="Finance",
        problem_title="Printer jam",
        location="3F",
        urgency="URGENT",
    )
    fields.update(overrides)
    return NewTicketPayload(**fields)


def failed_entry(db_session, retry_count, minutes_ago, line_user_id="U-retry"):
    entry = NotificationLog(
        line_user_id=line_user_id,
        category="REPAIR_STATUS_UPDATE",
        title="อัปเดตงาน REP-20261018-123456",
        message="IN_PROGRESS",
        status=NotificationStatus.FAILED.value,
        error_message="timeout",
        retry_count=retry_count,
        created_at=datetime.utcnow() - timedelta(minutes=minutes_ago),
    )
    db_session.add(entry)
    db_session.commit()
    return entry


def test_send_to_unlinked_user_short_circuits(dispatcher, line_client, db_session, make_user):
    user = make_user()

    result = dispatcher.send_to_user(user.id, StatusUpdatePayload(ticket_code="REP-20261018-000001", status="COMPLETED"))

    assert result.success is False
    assert result.reason == "not linked"
    assert line_client.call_count == 0
    assert db_session.query(NotificationLog).count() == 0


def test_send_to_unverified_link_short_circuits(dispatcher, line_client, db_session, make_user):
    user = make_user(line_user_id="U-unverified", link_status=LinkStatus.UNVERIFIED)

    result = dispatcher.send_to_user(user.id, GenericPayload(title="Hello", message="World"))

    assert result.success is False
    assert line_client.call_count == 0
    assert db_session.query(NotificationLog).filter_by(status=NotificationStatus.SENT.value).count() == 0


def test_send_to_verified_user_logs_sent(dispatcher, line_client, db_session, make_user):
    user = make_user(line_user_id="U-owner")

    result = dispatcher.send_to_user(
        user.id, StatusUpdatePayload(ticket_code="REP-20261018-000001", status="IN_PROGRESS", remark="On my way")
    )

    assert result.success is True
    assert len(line_client.pushed) == 1
    to, messages = line_client.pushed[0]
    assert to == "U-owner"
    assert messages[0]["type"] == "flex"
    entry = db_session.query(NotificationLog).one()
    assert entry.status == NotificationStatus.SENT.value
    assert entry.category == "REPAIR_STATUS_UPDATE"
    assert entry.message == "On my way"
    assert entry.error_message is None


def test_send_failure_logs_failed_and_returns(dispatcher, line_client, db_session, make_user):
    user = make_user(line_user_id="U-tech")
    line_client.fail = True

    result = dispatcher.send_to_user(
        user.id,
        AssignmentPayload(
            ticket_code="REP-20261018-000001",
            problem_title="Printer jam",
            reporter_name="Malee",
            action=AssignmentAction.ASSIGNED,
        ),
    )

    assert result.success is False
    entry = db_session.query(NotificationLog).one()
    assert entry.status == NotificationStatus.FAILED.value
    assert entry.line_user_id == "U-tech"
    assert "500" in entry.error_message
    assert entry.retry_count == 0


def test_broadcast_without_recipients_makes_no_calls(dispatcher, line_client, db_session, make_user):
    make_user(role=UserRole.IT)
    make_user(role=UserRole.IT, line_user_id="U-pending", link_status=LinkStatus.UNVERIFIED)
    make_user(role=UserRole.USER, line_user_id="U-reporter")

    result = dispatcher.broadcast_to_role("IT", new_ticket_payload())

    assert result.success is False
    assert result.reason == "no recipients"
    assert line_client.call_count == 0
    assert db_session.query(NotificationLog).count() == 0


def test_broadcast_uses_one_multicast(dispatcher, line_client, db_session, make_user):
    make_user(role=UserRole.IT, line_user_id="U-it-1")
    make_user(role=UserRole.IT, line_user_id="U-it-2")
    make_user(role=UserRole.IT, line_user_id="U-it-3")
    make_user(role=UserRole.ADMIN, line_user_id="U-admin")

    result = dispatcher.broadcast_to_role("IT", new_ticket_payload())

    assert result.success is True
    assert result.count == 3
    assert line_client.pushed == []
    assert len(line_client.multicasts) == 1
    recipients, messages = line_client.multicasts[0]
    assert recipients == ["U-it-1", "U-it-2", "U-it-3"]
    assert messages[0]["altText"].endswith("REP-20261018-123456")
    entries = db_session.query(NotificationLog).order_by(NotificationLog.line_user_id).all()
    assert [e.line_user_id for e in entries] == recipients
    assert {e.status for e in entries} == {NotificationStatus.SENT.value}
    assert {e.category for e in entries} == {"REPAIR_TICKET_CREATED"}


def test_broadcast_failure_logs_each_recipient(dispatcher, line_client, db_session, make_user):
    make_user(role=UserRole.IT, line_user_id="U-it-1")
    make_user(role=UserRole.IT, line_user_id="U-it-2")
    line_client.fail = True

    result = dispatcher.broadcast_to_role("IT", new_ticket_payload())

    assert result.success is False
    entries = db_session.query(NotificationLog).all()
    assert len(entries) == 2
    assert {e.status for e in entries} == {NotificationStatus.FAILED.value}


def test_broadcast_logs_each_chunk_by_its_own_outcome(db_session):
    for n in range(MULTICAST_LIMIT + 1):
        tech = User(name=f"Tech {n}", email=f"tech{n}@example.org", password_hash="x", role=UserRole.IT.value)
        tech.line_link = ChannelLink(line_user_id=f"U-it-{n:04d}", status=LinkStatus.VERIFIED.value)
        db_session.add(tech)
    db_session.commit()

    multicasts = []

    def handler(request):
        recipients = json.loads(request.content)["to"]
        multicasts.append(len(recipients))
        if len(recipients) < MULTICAST_LIMIT:
            return httpx.Response(500, json={"message": "internal error"})
        return httpx.Response(200, json={})

    client = LineMessagingClient("test-token", transport=httpx.MockTransport(handler))
    dispatcher = NotificationDispatcher(db_session, client, RenderLinks(frontend_url="https://repairs.example.org"))

    result = dispatcher.broadcast_to_role("IT", new_ticket_payload())

    assert multicasts == [MULTICAST_LIMIT, 1]
    assert result.success is False
    assert result.count == MULTICAST_LIMIT
    sent = db_session.query(NotificationLog).filter_by(status=NotificationStatus.SENT.value).count()
    failed = db_session.query(NotificationLog).filter_by(status=NotificationStatus.FAILED.value).all()
    assert sent == MULTICAST_LIMIT
    assert [e.line_user_id for e in failed] == [f"U-it-{MULTICAST_LIMIT:04d}"]

    # only the undelivered recipient is retried
    report = dispatcher.retry_failed_notifications()
    assert report.attempted == 1


def test_render_failure_logs_payload_summary(dispatcher, line_client, db_session, make_user, monkeypatch):
    user = make_user(line_user_id="U-owner")

    def broken_render(payload, links):
        raise KeyError("template")

    monkeypatch.setattr(dispatcher_module, "render", broken_render)

    result = dispatcher.send_to_user(
        user.id, StatusUpdatePayload(ticket_code="REP-20261018-000007", status="IN_PROGRESS", remark="On my way")
    )

    assert result.success is False
    assert line_client.call_count == 0
    entry = db_session.query(NotificationLog).one()
    assert entry.status == NotificationStatus.FAILED.value
    assert entry.category == "REPAIR_STATUS_UPDATE"
    assert entry.title == "อัปเดตงาน REP-20261018-000007"
    assert entry.message == "On my way"


def printer_ticket(ticket_service, reporter):
    return ticket_service.create(
        reporter,
        TicketCreate(reporter_name="Malee", problem_title="Printer jam", problem_category="PRINTER", location="3F"),
    )


def test_notify_status_update_pushes_to_owner(ticket_service, dispatcher, line_client, make_user):
    reporter = make_user(line_user_id="U-owner")
    ticket = printer_ticket(ticket_service, reporter)

    result = dispatcher.notify_status_update(ticket, remark="Toner replaced", next_step="Try printing again")

    assert result.success is True
    assert [to for to, _ in line_client.pushed] == ["U-owner"]


def test_notify_assignment_targets_assignee(ticket_service, dispatcher, line_client, db_session, make_user):
    tech = make_user(role=UserRole.IT, line_user_id="U-tech")
    ticket = printer_ticket(ticket_service, make_user())
    ticket.assignee_id = tech.id
    db_session.commit()

    result = dispatcher.notify_assignment(ticket, AssignmentAction.ASSIGNED)

    assert result.success is True
    assert line_client.pushed[0][0] == "U-tech"
    assert db_session.query(NotificationLog).one().category == "REPAIR_TICKET_ASSIGNED"


def test_notify_wrappers_never_raise(ticket_service, exploding_dispatcher, make_user):
    ticket = printer_ticket(ticket_service, make_user())

    assert exploding_dispatcher.notify_new_ticket(ticket, "IT") is None
    assert exploding_dispatcher.notify_assignment(ticket, AssignmentAction.CLAIMED) is None
    assert exploding_dispatcher.notify_status_update(ticket) is None


def test_retry_skips_exhausted_entries(dispatcher, line_client, db_session):
    entries = [failed_entry(db_session, retry_count=n, minutes_ago=40 - n) for n in range(4)]

    report = dispatcher.retry_failed_notifications()

    assert report.attempted == 3
    assert report.succeeded == 3
    assert report.failed == 0
    assert len(line_client.pushed) == 3
    assert line_client.pushed[0][1][0]["type"] == "text"
    for entry in entries:
        db_session.refresh(entry)
    assert [e.status for e in entries[:3]] == [NotificationStatus.SENT.value] * 3
    assert [e.retry_count for e in entries[:3]] == [1, 2, 3]
    assert entries[3].status == NotificationStatus.FAILED.value
    assert entries[3].retry_count == 3


def test_retry_failure_increments_and_overwrites_error(dispatcher, line_client, db_session):
    entry = failed_entry(db_session, retry_count=2, minutes_ago=5)
    line_client.fail = True

    report = dispatcher.retry_failed_notifications()

    db_session.refresh(entry)
    assert report.failed == 1
    assert entry.status == NotificationStatus.FAILED.value
    assert entry.retry_count == 3
    assert entry.error_message == "LINE API returned 500"

    # exhausted now: the next pass leaves it alone
    line_client.fail = False
    assert dispatcher.retry_failed_notifications().attempted == 0


def test_retry_processes_oldest_first_in_batches(dispatcher, line_client, db_session):
    for i in range(12):
        failed_entry(db_session, retry_count=0, minutes_ago=100 - i, line_user_id=f"U-{i:02d}")

    report = dispatcher.retry_failed_notifications()

    assert report.attempted == 10
    assert [to for to, _ in line_client.pushed] == [f"U-{i:02d}" for i in range(10)]
    assert dispatcher.retry_failed_notifications().attempted == 2


def test_list_logs_filters_by_status(dispatcher, db_session, make_user):
    user = make_user(line_user_id="U-owner")
    dispatcher.send_to_user(user.id, GenericPayload(title="Hi", message="there"))
    failed_entry(db_session, retry_count=0, minutes_ago=1)

    assert len(dispatcher.list_logs()) == 2
    failed = dispatcher.list_logs(status=NotificationStatus.FAILED.value)
    assert [e.line_user_id for e in failed] == ["U-retry"]
