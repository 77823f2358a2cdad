import logging
from typing import List, Optional
from sqlalchemy.orm import Session
from app.models.enums import AssignmentAction, LinkStatus, NotificationStatus
from app.models.ticket import RepairTicket
from app.models.user import ChannelLink, NotificationLog, User
from app.schemas.notification import (
    AssignmentPayload,
    BroadcastResult,
    NewTicketPayload,
    NotificationPayload,
    NotificationResult,
    RetryReport,
    StatusUpdatePayload,
)
from app.services.notifications.line_client import MULTICAST_LIMIT
from app.services.notifications.renderer import RenderLinks, RenderedMessage, render, summarize, text_message

logger = logging.getLogger(__name__)


def new_ticket_payload(ticket: RepairTicket) -> NewTicketPayload:
    return NewTicketPayload(
        ticket_code=ticket.ticket_code,
        reporter_name=ticket.reporter_name,
        department=ticket.reporter_department,
        problem_title=ticket.problem_title,
        location=ticket.location,
        urgency=ticket.urgency,
    )


def assignment_payload(ticket: RepairTicket, action: AssignmentAction) -> AssignmentPayload:
    return AssignmentPayload(
        ticket_code=ticket.ticket_code,
        problem_title=ticket.problem_title,
        reporter_name=ticket.reporter_name,
        urgency=ticket.urgency,
        action=action,
    )


def status_update_payload(ticket: RepairTicket, remark: Optional[str] = None, next_step: Optional[str] = None) -> StatusUpdatePayload:
    return StatusUpdatePayload(
        ticket_code=ticket.ticket_code,
        problem_title=ticket.problem_title,
        status=ticket.status,
        remark=remark,
        technician_name=ticket.assignee.name if ticket.assignee else None,
        next_step=next_step,
        updated_at=ticket.updated_at,
    )


class NotificationDispatcher:
    """
    Delivers rendered notifications to users with a verified LINE link and keeps the
    notification log. Delivery failures are recorded and reported, never raised.
    """

    def __init__(self, db: Session, client, links: RenderLinks, retry_limit: int = 3, retry_batch: int = 10):
        self.db = db
        self.client = client
        self.links = links
        self.retry_limit = retry_limit
        self.retry_batch = retry_batch

    def get_verified_link(self, user_id: int) -> Optional[ChannelLink]:
        link = self.db.query(ChannelLink).filter(ChannelLink.user_id == user_id).first()
        if not link or link.status != LinkStatus.VERIFIED.value or not link.line_user_id:
            return None
        return link

    def send_to_user(self, user_id: int, payload: NotificationPayload) -> NotificationResult:
        link = self.get_verified_link(user_id)
        if link is None:
            return NotificationResult(success=False, reason="not linked")

        rendered = None
        try:
            rendered = render(payload, self.links)
            self.client.push_message(link.line_user_id, [rendered.document])
        except Exception as exc:
            logger.exception("Failed to send %s notification to user %s", payload.category, user_id)
            self._save_log(link.line_user_id, rendered or summarize(payload), NotificationStatus.FAILED, str(exc))
            self.db.commit()
            return NotificationResult(success=False, reason=str(exc))

        self._save_log(link.line_user_id, rendered, NotificationStatus.SENT)
        self.db.commit()
        return NotificationResult(success=True)

    def broadcast_to_role(self, role: str, payload: NotificationPayload) -> BroadcastResult:
        """
        One multicast per MULTICAST_LIMIT recipients. Each chunk's recipients are logged
        SENT or FAILED by that chunk's outcome, so a retry never repeats a delivered message.
        """
        recipients = self.verified_line_ids_for_role(role)
        if not recipients:
            return BroadcastResult(success=False, reason="no recipients")

        try:
            rendered = render(payload, self.links)
        except Exception as exc:
            logger.exception("Failed to render %s notification for role %s", payload.category, role)
            for line_user_id in recipients:
                self._save_log(line_user_id, summarize(payload), NotificationStatus.FAILED, str(exc))
            self.db.commit()
            return BroadcastResult(success=False, reason=str(exc))

        delivered = 0
        errors = []
        for start in range(0, len(recipients), MULTICAST_LIMIT):
            chunk = recipients[start:start + MULTICAST_LIMIT]
            try:
                self.client.multicast(chunk, [rendered.document])
            except Exception as exc:
                logger.exception("Failed to broadcast %s notification to %d %s users", payload.category, len(chunk), role)
                errors.append(str(exc))
                status, error = NotificationStatus.FAILED, str(exc)
            else:
                delivered += len(chunk)
                status, error = NotificationStatus.SENT, None
            for line_user_id in chunk:
                self._save_log(line_user_id, rendered, status, error)
        self.db.commit()

        if errors:
            return BroadcastResult(success=False, count=delivered, reason=errors[0])
        logger.info("Broadcast %s to %d %s users", payload.category, delivered, role)
        return BroadcastResult(success=True, count=delivered)

    def notify_new_ticket(self, ticket: RepairTicket, role: str) -> Optional[BroadcastResult]:
        return self._notify("new ticket", ticket, lambda: self.broadcast_to_role(role, new_ticket_payload(ticket)))

    def notify_assignment(self, ticket: RepairTicket, action: AssignmentAction) -> Optional[NotificationResult]:
        return self._notify(
            "assignment", ticket, lambda: self.send_to_user(ticket.assignee_id, assignment_payload(ticket, action))
        )

    def notify_status_update(self, ticket: RepairTicket, remark: Optional[str] = None, next_step: Optional[str] = None) -> Optional[NotificationResult]:
        return self._notify(
            "status update", ticket, lambda: self.send_to_user(ticket.user_id, status_update_payload(ticket, remark, next_step))
        )

    def verified_line_ids_for_role(self, role: str) -> List[str]:
        rows = (
            self.db.query(ChannelLink.line_user_id)
            .join(User, User.id == ChannelLink.user_id)
            .filter(
                User.role == role,
                ChannelLink.status == LinkStatus.VERIFIED.value,
                ChannelLink.line_user_id.isnot(None),
            )
            .order_by(User.id)
            .all()
        )
        seen = []
        for (line_user_id,) in rows:
            if line_user_id and line_user_id not in seen:
                seen.append(line_user_id)
        return seen

    def retry_failed_notifications(self) -> RetryReport:
        """
        Re-send the oldest FAILED entries that still have attempts left, one bounded batch.
        Entries that reach the retry limit are left FAILED for good.
        """
        entries = (
            self.db.query(NotificationLog)
            .filter(
                NotificationLog.status == NotificationStatus.FAILED.value,
                NotificationLog.retry_count < self.retry_limit,
            )
            .order_by(NotificationLog.created_at.asc(), NotificationLog.id.asc())
            .limit(self.retry_batch)
            .all()
        )

        report = RetryReport(attempted=len(entries))
        for entry in entries:
            try:
                self.client.push_message(entry.line_user_id, [text_message(entry.title, entry.message)])
            except Exception as exc:
                logger.warning("Retry %d of notification %s failed: %s", entry.retry_count + 1, entry.id, exc)
                entry.retry_count += 1
                entry.error_message = str(exc)
                report.failed += 1
            else:
                entry.status = NotificationStatus.SENT.value
                entry.retry_count += 1
                report.succeeded += 1

        self.db.commit()
        if entries:
            logger.info("Notification retry pass: %s", report.model_dump())
        return report

    def list_logs(self, status: Optional[str] = None, line_user_id: Optional[str] = None, skip: int = 0, limit: int = 100) -> List[NotificationLog]:
        query = self.db.query(NotificationLog)
        if status is not None:
            query = query.filter(NotificationLog.status == status)
        if line_user_id is not None:
            query = query.filter(NotificationLog.line_user_id == line_user_id)
        return query.order_by(NotificationLog.created_at.desc(), NotificationLog.id.desc()).offset(skip).limit(limit).all()

    def _notify(self, kind: str, ticket: RepairTicket, send):
        # Ticket operations are already committed; a notification problem must not surface.
        try:
            result = send()
        except Exception:
            logger.exception("Sending %s notification for %s failed", kind, ticket.ticket_code)
            self.db.rollback()
            return None
        if not result.success:
            logger.info("%s notification for %s not delivered: %s", kind.capitalize(), ticket.ticket_code, result.reason)
        return result

    def _save_log(self, line_user_id: str, rendered: RenderedMessage, status: NotificationStatus, error: Optional[str] = None) -> NotificationLog:
        entry = NotificationLog(
            line_user_id=line_user_id,
            category=rendered.category,
            title=rendered.title,
            message=rendered.message,
            status=status.value,
            error_message=error,
        )
        self.db.add(entry)
        return entry
