from typing import List, Optional
from datetime import datetime
from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from app.api.deps import get_current_user, get_ticket_service
from app.models.enums import TicketStatus, UrgencyLevel
from app.models.user import User
from app.schemas.ticket import ScheduleItem, TicketCreate, TicketResponse, TicketStatistics, TicketUpdate
from app.services.tickets import AttachmentUpload, TicketService

router = APIRouter(prefix="/api/repairs", tags=["Repairs"])


def ticket_form(
    reporter_name: str = Form(...),
    problem_title: str = Form(...),
    location: str = Form(...),
    problem_category: Optional[str] = Form(None),
    urgency: Optional[str] = Form(None),
    problem_description: Optional[str] = Form(None),
    reporter_department: Optional[str] = Form(None),
    reporter_phone: Optional[str] = Form(None),
    reporter_line_id: Optional[str] = Form(None),
    notes: Optional[str] = Form(None),
    scheduled_at: Optional[datetime] = Form(None),
) -> TicketCreate:
    return TicketCreate(
        reporter_name=reporter_name,
        problem_title=problem_title,
        location=location,
        problem_category=problem_category,
        urgency=urgency,
        problem_description=problem_description,
        reporter_department=reporter_department,
        reporter_phone=reporter_phone,
        reporter_line_id=reporter_line_id,
        notes=notes,
        scheduled_at=scheduled_at,
    )


def read_uploads(files: Optional[List[UploadFile]]) -> List[AttachmentUpload]:
    return [
        AttachmentUpload(filename=f.filename or "upload", content=f.file.read(), mime_type=f.content_type)
        for f in files or []
    ]


@router.post("", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
def create_ticket(
    ticket_in: TicketCreate = Depends(ticket_form),
    files: Optional[List[UploadFile]] = File(None),
    user: User = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
):
    """
    Create a repair ticket with up to three attachments.
    The support team is notified over LINE; delivery problems never fail the request.
    """
    return service.create(user, ticket_in, read_uploads(files))


@router.get("", response_model=List[TicketResponse])
def list_tickets(
    status: Optional[TicketStatus] = None,
    urgency: Optional[UrgencyLevel] = None,
    assigned_to: Optional[int] = None,
    limit: Optional[int] = Query(None, ge=1, le=1000),
    user: User = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
):
    """
    Newest first. Regular users only see their own tickets.
    """
    return service.list_tickets(user, status=status, urgency=urgency, assignee_id=assigned_to, limit=limit)


@router.get("/schedule", response_model=List[ScheduleItem])
def get_schedule(user: User = Depends(get_current_user), service: TicketService = Depends(get_ticket_service)):
    return service.schedule()


@router.get("/statistics/overview", response_model=TicketStatistics)
def get_statistics(user: User = Depends(get_current_user), service: TicketService = Depends(get_ticket_service)):
    return service.statistics()


@router.get("/code/{code}", response_model=TicketResponse)
def get_ticket_by_code(code: str, user: User = Depends(get_current_user), service: TicketService = Depends(get_ticket_service)):
    return service.get_by_code(code)


@router.get("/{ticket_id}", response_model=TicketResponse)
def get_ticket(ticket_id: int, user: User = Depends(get_current_user), service: TicketService = Depends(get_ticket_service)):
    """
    Retrieve a specific ticket by ID, including attachments and status history.
    """
    return service.get(ticket_id)


@router.put("/{ticket_id}", response_model=TicketResponse)
@router.patch("/{ticket_id}", response_model=TicketResponse)
def update_ticket(
    ticket_id: int,
    update_data: TicketUpdate,
    user: User = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
):
    """
    Partially update a ticket. Status and assignee changes are logged and notified.
    """
    return service.update(ticket_id, update_data, actor_id=user.id)


@router.delete("/{ticket_id}", response_model=TicketResponse)
def cancel_ticket(ticket_id: int, user: User = Depends(get_current_user), service: TicketService = Depends(get_ticket_service)):
    """
    Soft delete: the ticket is marked CANCELLED and kept.
    """
    return service.remove(ticket_id, actor_id=user.id)
