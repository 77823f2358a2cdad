from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime
from app.models.enums import TicketStatus, UrgencyLevel, ProblemCategory


class UserSummary(BaseModel):
    id: int
    name: str
    email: str
    role: str
    department: Optional[str] = None
    phone_number: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class AttachmentResponse(BaseModel):
    id: int
    filename: str
    file_url: str
    file_size: int
    mime_type: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class StatusLogResponse(BaseModel):
    id: int
    status: TicketStatus
    comment: Optional[str] = None
    user_id: Optional[int] = None
    user: Optional[UserSummary] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TicketCreate(BaseModel):
    """
    Fields accepted on ticket creation. Category and urgency stay plain strings here so
    that unrecognised values can fall back to OTHER / NORMAL instead of being rejected.
    """
    reporter_name: str = Field(..., description="Name of the person reporting the problem.")
    reporter_department: Optional[str] = None
    reporter_phone: Optional[str] = None
    reporter_line_id: Optional[str] = None
    problem_category: Optional[str] = Field(None, description="One of ProblemCategory; unknown values become OTHER.")
    problem_title: str = Field(..., description="Short summary of the problem.")
    problem_description: Optional[str] = None
    location: str = Field(..., description="Where the problem is.")
    urgency: Optional[str] = Field(None, description="One of UrgencyLevel; unknown values become NORMAL.")
    notes: Optional[str] = None
    scheduled_at: Optional[datetime] = None


class TicketUpdate(BaseModel):
    status: Optional[TicketStatus] = None
    notes: Optional[str] = None
    assignee_id: Optional[int] = Field(None, description="New assignee; send null explicitly to unassign.")
    scheduled_at: Optional[datetime] = None
    problem_title: Optional[str] = None
    problem_description: Optional[str] = None
    location: Optional[str] = None
    urgency: Optional[UrgencyLevel] = None
    comment: Optional[str] = Field(None, description="Remark stored on the status log and sent to the reporter.")


class TicketResponse(BaseModel):
    id: int
    ticket_code: str
    reporter_name: str
    reporter_department: Optional[str] = None
    reporter_phone: Optional[str] = None
    reporter_line_id: Optional[str] = None
    problem_category: ProblemCategory
    problem_title: str
    problem_description: Optional[str] = None
    location: str
    urgency: UrgencyLevel
    status: TicketStatus
    user_id: int
    assignee_id: Optional[int] = None
    notes: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    user: Optional[UserSummary] = None
    assignee: Optional[UserSummary] = None
    attachments: List[AttachmentResponse] = []
    logs: List[StatusLogResponse] = []

    model_config = ConfigDict(from_attributes=True)


class TicketStatistics(BaseModel):
    total: int
    pending: int
    in_progress: int
    waiting_parts: int
    completed: int
    cancelled: int


class ScheduleItem(BaseModel):
    id: int
    ticket_code: str
    problem_title: str
    status: TicketStatus
    urgency: UrgencyLevel
    scheduled_at: Optional[datetime] = None
    location: str

    model_config = ConfigDict(from_attributes=True)
