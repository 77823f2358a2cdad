from .user import User, ChannelLink, NotificationLog
from .ticket import RepairTicket, TicketAttachment, TicketStatusLog

__all__ = [
    "User",
    "ChannelLink",
    "NotificationLog",
    "RepairTicket",
    "TicketAttachment",
    "TicketStatusLog",
]
