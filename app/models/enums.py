from enum import Enum


class EventPhase(Enum):
    UPCOMING = "Upcoming"
    LIVE = "Live"
    PAST = "Past"


class EventCategory(Enum):
    TECHNICAL = "Technical"
    CULTURAL = "Cultural"
    SPORTS = "Sports"
    ACADEMIC = "Academic"
    WORKSHOP = "Workshop"
    SEMINAR = "Seminar"
    COMPETITION = "Competition"
    OTHER = "Other"


class EventType(Enum):
    OFFLINE = "offline"
    ONLINE = "online"
    HYBRID = "hybrid"


class RegistrationType(Enum):
    PARTICIPANT = "participant"
    COORDINATOR = "coordinator"


class RegistrationStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ATTENDED = "attended"
    COMPLETED = "completed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


# Statuses that occupy a seat and are counted in Event.current_participants
SEATED_STATUSES = (
    RegistrationStatus.CONFIRMED,
    RegistrationStatus.ATTENDED,
    RegistrationStatus.COMPLETED,
)

# Statuses an organizer may set through the approval workflow
LEDGER_STATUSES = (
    RegistrationStatus.PENDING,
    RegistrationStatus.CONFIRMED,
    RegistrationStatus.REJECTED,
    RegistrationStatus.CANCELLED,
)


class UserRole(Enum):
    PARTICIPANT = "participant"
    FACULTY = "faculty"
    ADMIN = "admin"
