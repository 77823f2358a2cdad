from typing import Optional
from datetime import datetime
from sqlalchemy.orm import Session
from app.core.errors import ValidationError
from app.models.enums import TicketStatus
from app.models.ticket import RepairTicket, TicketStatusLog


def parse_status(value) -> TicketStatus:
    # PENDING -> IN_PROGRESS <-> WAITING_PARTS -> COMPLETED, CANCELLED from anywhere.
    # Only enum membership is checked; PENDING -> COMPLETED is allowed.
    try:
        return TicketStatus(value)
    except ValueError:
        raise ValidationError(f"Unknown ticket status: {value!r}")


class TicketStateMachine:
    def __init__(self, db: Session):
        self.db = db

    def record(self, ticket: RepairTicket, actor_id: Optional[int], comment: Optional[str]) -> TicketStatusLog:
        """Append a status log entry for the ticket's current status."""
        entry = TicketStatusLog(
            status=ticket.status,
            comment=comment,
            user_id=actor_id,
            created_at=datetime.utcnow(),
        )
        ticket.logs.append(entry)
        self.db.add(entry)
        return entry

    def transition(self, ticket: RepairTicket, new_state, actor_id: Optional[int], comment: Optional[str] = None) -> RepairTicket:
        """
        Move a ticket to new_state, stamping completed_at / cancelled_at on entry into a
        terminal state, and append exactly one log entry.
        Does NOT commit. The caller must commit the transaction.
        """
        new_state = parse_status(new_state)
        ticket.status = new_state.value

        now = datetime.utcnow()
        if new_state == TicketStatus.COMPLETED:
            ticket.completed_at = now
        elif new_state == TicketStatus.CANCELLED:
            ticket.cancelled_at = now

        self.record(ticket, actor_id, comment)
        return ticket
