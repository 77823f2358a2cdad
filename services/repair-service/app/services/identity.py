import logging
import time
from typing import Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from app.core.errors import ConflictError
from app.models.enums import LinkStatus, UserRole
from app.models.user import ChannelLink, User
from app.services.users import UserService

logger = logging.getLogger(__name__)


class IdentityResolver:
    """
    Maps a LIFF submission's LINE user id to an internal user:
    verified link owner, then a freshly provisioned LINE user, then the shared guest.
    """

    def __init__(self, db: Session, guest_email: str, auto_verify_links: bool = True):
        self.db = db
        self.users = UserService(db)
        self.guest_email = guest_email
        self.auto_verify_links = auto_verify_links

    def find_user_by_line_id(self, line_user_id: str, verified_only: bool = True) -> Optional[User]:
        query = self.db.query(ChannelLink).filter(ChannelLink.line_user_id == line_user_id)
        if verified_only:
            query = query.filter(ChannelLink.status == LinkStatus.VERIFIED.value)
        link = query.order_by(ChannelLink.id.asc()).first()
        return link.user if link else None

    def resolve_liff_user(self, line_user_id: Optional[str]) -> User:
        line_user_id = (line_user_id or "").strip()
        if line_user_id:
            user = self.find_user_by_line_id(line_user_id)
            if user is None and not self.auto_verify_links:
                # reuse the account provisioned on first contact while it awaits verification
                user = self.find_user_by_line_id(line_user_id, verified_only=False)
            if user:
                return user
            try:
                return self.provision_line_user(line_user_id)
            except (ConflictError, SQLAlchemyError):
                self.db.rollback()
                logger.exception("Could not provision a user for LINE id %s, using guest", line_user_id)
        return self.get_or_create_guest_user()

    def provision_line_user(self, line_user_id: str) -> User:
        status = LinkStatus.VERIFIED if self.auto_verify_links else LinkStatus.UNVERIFIED
        user = self.users.create_user(
            name=f"LINE User {line_user_id[1:6]}",
            email=f"line-{line_user_id}-{int(time.time() * 1000)}@repair-system.local",
            role=UserRole.USER,
            commit=False,
        )
        self.db.add(ChannelLink(user_id=user.id, line_user_id=line_user_id, status=status.value))
        self.db.commit()
        self.db.refresh(user)
        if status == LinkStatus.VERIFIED:
            logger.warning("LINE id %s linked to new user %s as VERIFIED without a challenge", line_user_id, user.id)
        else:
            logger.info("LINE id %s linked to new user %s, awaiting verification", line_user_id, user.id)
        return user

    def get_or_create_guest_user(self) -> User:
        guest = self.users.find_by_email(self.guest_email)
        if guest:
            return guest
        try:
            return self.users.create_user(name="Guest User", email=self.guest_email, department="General")
        except ConflictError:
            # created concurrently by another request
            return self.users.find_by_email(self.guest_email)
