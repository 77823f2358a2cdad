from enum import Enum


class TicketStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    WAITING_PARTS = "WAITING_PARTS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class UrgencyLevel(str, Enum):
    NORMAL = "NORMAL"
    URGENT = "URGENT"
    CRITICAL = "CRITICAL"


class ProblemCategory(str, Enum):
    HARDWARE = "HARDWARE"
    SOFTWARE = "SOFTWARE"
    NETWORK = "NETWORK"
    PRINTER = "PRINTER"
    EMAIL = "EMAIL"
    ACCOUNT = "ACCOUNT"
    OTHER = "OTHER"


class UserRole(str, Enum):
    USER = "USER"
    IT = "IT"
    ADMIN = "ADMIN"


class LinkStatus(str, Enum):
    UNVERIFIED = "UNVERIFIED"
    VERIFIED = "VERIFIED"


class NotificationStatus(str, Enum):
    SENT = "SENT"
    FAILED = "FAILED"


class NotificationCategory(str, Enum):
    REPAIR_TICKET_CREATED = "REPAIR_TICKET_CREATED"
    REPAIR_TICKET_ASSIGNED = "REPAIR_TICKET_ASSIGNED"
    REPAIR_STATUS_UPDATE = "REPAIR_STATUS_UPDATE"
    GENERIC = "GENERIC"


class AssignmentAction(str, Enum):
    ASSIGNED = "ASSIGNED"
    TRANSFERRED = "TRANSFERRED"
    CLAIMED = "CLAIMED"
