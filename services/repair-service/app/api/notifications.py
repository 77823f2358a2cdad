from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from app.api.deps import get_dispatcher, require_staff
from app.models.enums import NotificationStatus
from app.models.user import User
from app.schemas.notification import NotificationLogResponse, RetryReport
from app.services.notifications.dispatcher import NotificationDispatcher

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


@router.post("/retry", response_model=RetryReport)
def retry_failed_notifications(
    staff: User = Depends(require_staff),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """
    Run one bounded retry pass over FAILED notifications. Meant for a scheduled trigger.
    """
    return dispatcher.retry_failed_notifications()


@router.get("/logs", response_model=List[NotificationLogResponse])
def get_notification_logs(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    status: Optional[NotificationStatus] = None,
    line_user_id: Optional[str] = None,
    staff: User = Depends(require_staff),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """
    Retrieve notification delivery records, newest first.
    """
    return dispatcher.list_logs(
        status=status.value if status else None,
        line_user_id=line_user_id,
        skip=skip,
        limit=limit,
    )
