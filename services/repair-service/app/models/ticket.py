from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from app.core.db import Base
from app.models.enums import TicketStatus, UrgencyLevel, ProblemCategory


class RepairTicket(Base):
    __tablename__ = "repair_tickets"

    id = Column(Integer, primary_key=True, index=True)
    ticket_code = Column(String(40), nullable=False, unique=True, index=True)

    reporter_name = Column(String(255), nullable=False)
    reporter_department = Column(String(255), nullable=True)
    reporter_phone = Column(String(50), nullable=True)
    reporter_line_id = Column(String(100), nullable=True)

    problem_category = Column(String(50), nullable=False, default=ProblemCategory.OTHER.value)
    problem_title = Column(String(255), nullable=False)
    problem_description = Column(Text, nullable=True)
    location = Column(String(255), nullable=False)
    urgency = Column(String(20), nullable=False, default=UrgencyLevel.NORMAL.value, index=True)

    status = Column(String(50), nullable=False, default=TicketStatus.PENDING.value, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    assignee_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    notes = Column(Text, nullable=True)

    scheduled_at = Column(DateTime, nullable=True, index=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", foreign_keys=[user_id])
    assignee = relationship("User", foreign_keys=[assignee_id])
    attachments = relationship(
        "TicketAttachment",
        back_populates="ticket",
        order_by="TicketAttachment.id",
        cascade="all, delete-orphan",
    )
    logs = relationship(
        "TicketStatusLog",
        back_populates="ticket",
        order_by="TicketStatusLog.id",
        cascade="all, delete-orphan",
    )


class TicketAttachment(Base):
    __tablename__ = "repair_ticket_attachments"

    id = Column(Integer, primary_key=True, index=True)
    ticket_id = Column(Integer, ForeignKey("repair_tickets.id", ondelete="CASCADE"), nullable=False, index=True)
    filename = Column(String(255), nullable=False)
    file_url = Column(Text, nullable=False)
    file_size = Column(Integer, nullable=False, default=0)
    mime_type = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    ticket = relationship("RepairTicket", back_populates="attachments")


class TicketStatusLog(Base):
    """
    Immutable status history of a ticket. Rows are only ever inserted.
    """
    __tablename__ = "repair_ticket_logs"

    id = Column(Integer, primary_key=True, index=True)
    ticket_id = Column(Integer, ForeignKey("repair_tickets.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(50), nullable=False)
    comment = Column(Text, nullable=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    ticket = relationship("RepairTicket", back_populates="logs")
    user = relationship("User")
