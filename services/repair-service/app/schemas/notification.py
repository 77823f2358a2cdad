from pydantic import BaseModel, Field, ConfigDict
from typing import Literal, Optional, Union
from datetime import datetime
from app.models.enums import AssignmentAction, UrgencyLevel


class NewTicketPayload(BaseModel):
    category: Literal["REPAIR_TICKET_CREATED"] = "REPAIR_TICKET_CREATED"
    ticket_code: str
    reporter_name: str
    department: Optional[str] = None
    problem_title: str
    location: str
    urgency: UrgencyLevel = UrgencyLevel.NORMAL


class AssignmentPayload(BaseModel):
    category: Literal["REPAIR_TICKET_ASSIGNED"] = "REPAIR_TICKET_ASSIGNED"
    ticket_code: str
    problem_title: str
    reporter_name: str
    urgency: UrgencyLevel = UrgencyLevel.NORMAL
    action: AssignmentAction


class StatusUpdatePayload(BaseModel):
    category: Literal["REPAIR_STATUS_UPDATE"] = "REPAIR_STATUS_UPDATE"
    ticket_code: str
    problem_title: Optional[str] = None
    status: str
    remark: Optional[str] = None
    technician_name: Optional[str] = None
    next_step: Optional[str] = None
    updated_at: Optional[datetime] = None


class GenericPayload(BaseModel):
    category: Literal["GENERIC"] = "GENERIC"
    title: str
    message: str
    action_url: Optional[str] = None


NotificationPayload = Union[NewTicketPayload, AssignmentPayload, StatusUpdatePayload, GenericPayload]


class NotificationResult(BaseModel):
    success: bool
    reason: Optional[str] = None


class BroadcastResult(BaseModel):
    success: bool
    count: int = 0
    reason: Optional[str] = None


class RetryReport(BaseModel):
    attempted: int = Field(0, description="FAILED entries picked up by this pass.")
    succeeded: int = 0
    failed: int = 0


class NotificationLogResponse(BaseModel):
    id: int
    line_user_id: str
    category: str
    title: str
    message: str
    status: str
    error_message: Optional[str] = None
    retry_count: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
