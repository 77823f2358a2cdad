from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from app.core.db import Base
from app.models.enums import UserRole, LinkStatus, NotificationStatus


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default=UserRole.USER.value, index=True)
    department = Column(String(255), nullable=True)
    phone_number = Column(String(50), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    line_link = relationship("ChannelLink", back_populates="user", uselist=False)


class ChannelLink(Base):
    """
    Binding between a user account and a LINE user id. Only VERIFIED links receive notifications.
    """
    __tablename__ = "line_links"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    line_user_id = Column(String(100), nullable=True, index=True)
    status = Column(String(20), nullable=False, default=LinkStatus.UNVERIFIED.value)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="line_link")


class NotificationLog(Base):
    """
    Write-once delivery record. Only the retry pass touches status, retry_count and error_message.
    """
    __tablename__ = "line_notifications"

    id = Column(Integer, primary_key=True, index=True)
    line_user_id = Column(String(100), nullable=False, index=True)
    category = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False, default="")
    message = Column(Text, nullable=False, default="")
    status = Column(String(20), nullable=False, default=NotificationStatus.SENT.value, index=True)
    error_message = Column(Text, nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
