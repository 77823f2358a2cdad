import secrets
from typing import List, Optional
from passlib.context import CryptContext
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from app.core.errors import ConflictError, NotFoundError
from app.models.enums import UserRole
from app.models.user import User

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def random_password_hash() -> str:
    return get_password_hash(secrets.token_urlsafe(24))


class UserService:
    def __init__(self, db: Session):
        self.db = db

    def get_user(self, user_id: int) -> User:
        user = self.db.get(User, user_id)
        if not user:
            raise NotFoundError(f"User with ID {user_id} not found")
        return user

    def find_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email).first()

    def create_user(
        self,
        name: str,
        email: str,
        password: Optional[str] = None,
        role: UserRole = UserRole.USER,
        department: Optional[str] = None,
        phone_number: Optional[str] = None,
        commit: bool = True,
    ) -> User:
        """
        Create a user. A missing password gets a random credential nobody knows.
        Raises ConflictError when the email is already registered.
        """
        if self.find_by_email(email):
            raise ConflictError(f"Email {email} is already registered")

        user = User(
            name=name,
            email=email,
            password_hash=get_password_hash(password) if password else random_password_hash(),
            role=UserRole(role).value,
            department=department,
            phone_number=phone_number,
        )
        self.db.add(user)
        try:
            self.db.flush()
        except IntegrityError as exc:
            self.db.rollback()
            raise ConflictError(f"Email {email} is already registered") from exc
        if commit:
            self.db.commit()
            self.db.refresh(user)
        return user

    def list_staff(self) -> List[User]:
        return (
            self.db.query(User)
            .filter(User.role.in_([UserRole.IT.value, UserRole.ADMIN.value]))
            .order_by(User.name.asc())
            .all()
        )
