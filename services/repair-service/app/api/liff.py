from typing import List, Optional
from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from app.api.deps import get_identity_resolver, get_ticket_service
from app.api.tickets import read_uploads, ticket_form
from app.schemas.ticket import TicketCreate, TicketResponse
from app.services.identity import IdentityResolver
from app.services.tickets import TicketService

router = APIRouter(prefix="/api/repairs/liff", tags=["LIFF"])


@router.post("", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
def create_liff_ticket(
    ticket_in: TicketCreate = Depends(ticket_form),
    line_user_id: Optional[str] = Form(None),
    files: Optional[List[UploadFile]] = File(None),
    resolver: IdentityResolver = Depends(get_identity_resolver),
    service: TicketService = Depends(get_ticket_service),
):
    """
    Public submission from the LIFF page. The LINE user id is taken at face value and
    resolved to an internal user (existing link, new LINE user, or the shared guest).
    """
    submitter = resolver.resolve_liff_user(line_user_id)
    if line_user_id and not ticket_in.reporter_line_id:
        ticket_in.reporter_line_id = line_user_id
    return service.create(submitter, ticket_in, read_uploads(files))


@router.get("/my-tickets", response_model=List[TicketResponse])
def list_my_tickets(
    line_user_id: str = Query(..., min_length=1),
    resolver: IdentityResolver = Depends(get_identity_resolver),
    service: TicketService = Depends(get_ticket_service),
):
    user = resolver.find_user_by_line_id(line_user_id, verified_only=False)
    if user is None:
        return []
    return service.list_user_tickets(user.id)
