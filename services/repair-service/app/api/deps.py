from typing import Optional
from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session
from app.core.config import settings
from app.core.db import get_db
from app.models.enums import UserRole
from app.models.user import User
from app.services.identity import IdentityResolver
from app.services.notifications.dispatcher import NotificationDispatcher
from app.services.notifications.line_client import LineMessagingClient
from app.services.notifications.renderer import RenderLinks
from app.services.storage import build_storage
from app.services.tickets import TicketService


def get_line_client():
    client = LineMessagingClient(
        access_token=settings.LINE_CHANNEL_ACCESS_TOKEN,
        base_url=settings.LINE_API_BASE_URL,
        timeout=settings.LINE_REQUEST_TIMEOUT,
    )
    try:
        yield client
    finally:
        client.close()


def get_storage():
    return build_storage(settings.STORAGE_BACKEND, settings.UPLOAD_DIR, settings.UPLOAD_URL_PREFIX)


def get_dispatcher(db: Session = Depends(get_db), client=Depends(get_line_client)) -> NotificationDispatcher:
    return NotificationDispatcher(
        db,
        client,
        RenderLinks(frontend_url=settings.FRONTEND_URL, liff_id=settings.LINE_LIFF_ID),
        retry_limit=settings.NOTIFICATION_RETRY_LIMIT,
        retry_batch=settings.NOTIFICATION_RETRY_BATCH,
    )


def get_ticket_service(
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    storage=Depends(get_storage),
) -> TicketService:
    return TicketService(
        db,
        dispatcher,
        storage=storage,
        support_role=settings.SUPPORT_ROLE,
        max_attachments=settings.MAX_ATTACHMENTS,
    )


def get_identity_resolver(db: Session = Depends(get_db)) -> IdentityResolver:
    return IdentityResolver(db, guest_email=settings.GUEST_EMAIL, auto_verify_links=settings.LIFF_AUTO_VERIFY_LINKS)


def get_current_user(
    x_user_id: Optional[int] = Header(None, description="Authenticated user id, set by the auth gateway."),
    db: Session = Depends(get_db),
) -> User:
    if x_user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    user = db.get(User, x_user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown user")
    return user


def require_staff(user: User = Depends(get_current_user)) -> User:
    if user.role not in (UserRole.IT.value, UserRole.ADMIN.value):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Staff role required")
    return user
