import logging
import re
import secrets
import time
from datetime import datetime
from typing import List, Optional, Sequence
from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload
from app.core.errors import NotFoundError, ValidationError
from app.core.fsm import TicketStateMachine, parse_status
from app.models.enums import AssignmentAction, ProblemCategory, TicketStatus, UrgencyLevel, UserRole
from app.models.ticket import RepairTicket, TicketAttachment, TicketStatusLog
from app.models.user import User
from app.schemas.ticket import TicketCreate, TicketStatistics, TicketUpdate
from app.services.storage import FileStorage
from app.services.users import UserService

logger = logging.getLogger(__name__)

TICKET_CODE_PATTERN = re.compile(r"^REP-(\d{8}-\d{6}|\d{13})$")

NEXT_STEPS = {
    TicketStatus.IN_PROGRESS.value: "เจ้าหน้าที่กำลังดำเนินการแก้ไข",
    TicketStatus.WAITING_PARTS.value: "รอการจัดหาอะไหล่ เจ้าหน้าที่จะแจ้งเมื่อดำเนินการต่อ",
    TicketStatus.COMPLETED.value: "หากยังพบปัญหา กรุณาแจ้งซ่อมใหม่",
}

STAFF_ROLES = {UserRole.IT.value, UserRole.ADMIN.value}


class AttachmentUpload(BaseModel):
    filename: str
    content: bytes
    mime_type: Optional[str] = None


def generate_ticket_code(db: Session, attempts: int = 5) -> str:
    """REP-<YYYYMMDD>-<6 digits>, falling back to REP-<epoch-ms> after repeated collisions."""
    today = datetime.utcnow().strftime("%Y%m%d")
    for _ in range(attempts):
        code = f"REP-{today}-{secrets.randbelow(10 ** 6):06d}"
        if not db.query(RepairTicket.id).filter(RepairTicket.ticket_code == code).first():
            return code
    return f"REP-{int(time.time() * 1000)}"


def coerce_enum(enum_cls, value, default):
    if value is None:
        return default
    try:
        return enum_cls(str(value).strip().upper())
    except ValueError:
        return default


def assignment_action(previous_assignee_id: Optional[int], new_assignee_id: int, actor_id: Optional[int]) -> AssignmentAction:
    if previous_assignee_id is not None and previous_assignee_id != new_assignee_id:
        return AssignmentAction.TRANSFERRED
    if actor_id is not None and actor_id == new_assignee_id:
        return AssignmentAction.CLAIMED
    return AssignmentAction.ASSIGNED


def describe_change(previous_status: str, new_status: Optional[str], previous_assignee: Optional[User], new_assignee: Optional[User], assignee_changed: bool) -> str:
    parts = []
    if new_status is not None and new_status != previous_status:
        parts.append(f"Status changed from {previous_status} to {new_status}")
    if assignee_changed:
        if previous_assignee and new_assignee:
            parts.append(f"Transferred from {previous_assignee.name} to {new_assignee.name}")
        elif new_assignee:
            parts.append(f"Assigned to {new_assignee.name}")
        elif previous_assignee:
            parts.append(f"Unassigned from {previous_assignee.name}")
    return "; ".join(parts)


class TicketService:
    """
    Repair ticket lifecycle: creation, assignment, status transitions and queries.
    Notifications are sent after commit and can never fail a ticket operation.
    """

    def __init__(self, db: Session, dispatcher, storage: Optional[FileStorage] = None, support_role: str = UserRole.IT.value, max_attachments: int = 3):
        self.db = db
        self.dispatcher = dispatcher
        self.storage = storage
        self.support_role = support_role
        self.max_attachments = max_attachments
        self.fsm = TicketStateMachine(db)
        self.users = UserService(db)

    def create(self, submitter: User, data: TicketCreate, files: Sequence[AttachmentUpload] = ()) -> RepairTicket:
        for field in ("reporter_name", "problem_title", "location"):
            if not (getattr(data, field) or "").strip():
                raise ValidationError(f"{field} is required")
        if len(files) > self.max_attachments:
            raise ValidationError(f"At most {self.max_attachments} attachments are allowed")
        if files and self.storage is None:
            raise ValidationError("Attachments are not accepted by this endpoint")

        # Store files first: a storage failure must leave nothing persisted.
        attachments = [
            TicketAttachment(
                filename=upload.filename,
                file_url=self.storage.save(upload.content, upload.filename, upload.mime_type),
                file_size=len(upload.content),
                mime_type=upload.mime_type,
            )
            for upload in files
        ]

        ticket = RepairTicket(
            ticket_code=generate_ticket_code(self.db),
            reporter_name=data.reporter_name.strip(),
            reporter_department=data.reporter_department or None,
            reporter_phone=data.reporter_phone or None,
            reporter_line_id=data.reporter_line_id or None,
            problem_category=coerce_enum(ProblemCategory, data.problem_category, ProblemCategory.OTHER).value,
            problem_title=data.problem_title.strip(),
            problem_description=data.problem_description or None,
            location=data.location.strip(),
            urgency=coerce_enum(UrgencyLevel, data.urgency, UrgencyLevel.NORMAL).value,
            status=TicketStatus.PENDING.value,
            user_id=submitter.id,
            notes=data.notes or None,
            scheduled_at=data.scheduled_at or datetime.utcnow(),
        )
        ticket.attachments = attachments

        try:
            self.db.add(ticket)
            self.db.flush()
            self.fsm.record(ticket, submitter.id, "Ticket created")
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        logger.info("Created ticket %s for user %s", ticket.ticket_code, submitter.id)

        ticket = self.get(ticket.id)
        self.dispatcher.notify_new_ticket(ticket, self.support_role)
        return ticket

    def update(self, ticket_id: int, changes: TicketUpdate, actor_id: Optional[int]) -> RepairTicket:
        ticket = self.get(ticket_id)
        fields = changes.model_dump(exclude_unset=True)
        comment = fields.pop("comment", None)

        previous_status = ticket.status
        previous_assignee = ticket.assignee
        previous_assignee_id = ticket.assignee_id

        new_status = None
        if fields.get("status") is not None:
            new_status = parse_status(fields["status"]).value
        status_changed = new_status is not None and new_status != previous_status

        assignee_changed = "assignee_id" in fields and fields["assignee_id"] != previous_assignee_id
        new_assignee = None
        if assignee_changed and fields["assignee_id"] is not None:
            new_assignee = self.users.get_user(fields["assignee_id"])

        for field in ("problem_title", "location"):
            if field in fields and not (fields[field] or "").strip():
                raise ValidationError(f"{field} cannot be empty")

        for field in ("notes", "scheduled_at", "problem_title", "problem_description", "location"):
            if field in fields:
                setattr(ticket, field, fields[field])
        if fields.get("urgency") is not None:
            ticket.urgency = UrgencyLevel(fields["urgency"]).value

        if assignee_changed:
            ticket.assignee_id = new_assignee.id if new_assignee else None
            ticket.assignee = new_assignee

        if status_changed or assignee_changed:
            description = comment or describe_change(
                previous_status, new_status, previous_assignee, new_assignee, assignee_changed
            )
            if status_changed:
                self.fsm.transition(ticket, new_status, actor_id, description)
            else:
                self.fsm.record(ticket, actor_id, description)

        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        ticket = self.get(ticket_id)
        if assignee_changed and new_assignee is not None:
            self.dispatcher.notify_assignment(ticket, assignment_action(previous_assignee_id, new_assignee.id, actor_id))
        if status_changed:
            self.dispatcher.notify_status_update(ticket, comment, NEXT_STEPS.get(ticket.status))
        return ticket

    def remove(self, ticket_id: int, actor_id: Optional[int] = None) -> RepairTicket:
        """Soft-cancel: the row and its history are kept."""
        ticket = self.get(ticket_id)
        if ticket.status == TicketStatus.CANCELLED.value:
            return ticket

        self.fsm.transition(ticket, TicketStatus.CANCELLED, actor_id, "Ticket cancelled")
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        ticket = self.get(ticket_id)
        self.dispatcher.notify_status_update(ticket, next_step=NEXT_STEPS.get(ticket.status))
        return ticket

    def _hydrated(self):
        return self.db.query(RepairTicket).options(
            selectinload(RepairTicket.user),
            selectinload(RepairTicket.assignee),
            selectinload(RepairTicket.attachments),
            selectinload(RepairTicket.logs).selectinload(TicketStatusLog.user),
        )

    def get(self, ticket_id: int) -> RepairTicket:
        ticket = self._hydrated().filter(RepairTicket.id == ticket_id).first()
        if not ticket:
            raise NotFoundError(f"Repair ticket #{ticket_id} not found")
        return ticket

    def get_by_code(self, ticket_code: str) -> RepairTicket:
        if not TICKET_CODE_PATTERN.match(ticket_code):
            raise ValidationError(f"Malformed ticket code: {ticket_code}")
        ticket = self._hydrated().filter(RepairTicket.ticket_code == ticket_code).first()
        if not ticket:
            raise NotFoundError(f"Ticket {ticket_code} not found")
        return ticket

    def list_tickets(
        self,
        viewer: Optional[User] = None,
        status: Optional[TicketStatus] = None,
        urgency: Optional[UrgencyLevel] = None,
        assignee_id: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[RepairTicket]:
        query = self._hydrated()
        if viewer is not None and viewer.role not in STAFF_ROLES:
            query = query.filter(RepairTicket.user_id == viewer.id)
        if status is not None:
            query = query.filter(RepairTicket.status == TicketStatus(status).value)
        if urgency is not None:
            query = query.filter(RepairTicket.urgency == UrgencyLevel(urgency).value)
        if assignee_id is not None:
            query = query.filter(RepairTicket.assignee_id == assignee_id)
        query = query.order_by(RepairTicket.created_at.desc(), RepairTicket.id.desc())
        if limit:
            query = query.limit(limit)
        return query.all()

    def list_user_tickets(self, user_id: int) -> List[RepairTicket]:
        return (
            self._hydrated()
            .filter(RepairTicket.user_id == user_id)
            .order_by(RepairTicket.created_at.desc(), RepairTicket.id.desc())
            .all()
        )

    def statistics(self) -> TicketStatistics:
        counts = dict(
            self.db.query(RepairTicket.status, func.count(RepairTicket.id)).group_by(RepairTicket.status).all()
        )
        return TicketStatistics(
            total=sum(counts.values()),
            pending=counts.get(TicketStatus.PENDING.value, 0),
            in_progress=counts.get(TicketStatus.IN_PROGRESS.value, 0),
            waiting_parts=counts.get(TicketStatus.WAITING_PARTS.value, 0),
            completed=counts.get(TicketStatus.COMPLETED.value, 0),
            cancelled=counts.get(TicketStatus.CANCELLED.value, 0),
        )

    def schedule(self) -> List[RepairTicket]:
        return (
            self.db.query(RepairTicket)
            .order_by(RepairTicket.scheduled_at.is_(None), RepairTicket.scheduled_at.asc(), RepairTicket.id.asc())
            .all()
        )
