from app.models.event import Event
from app.models.registration import Registration
from app.models.user import User
from app.models.enums import (
    EventCategory,
    EventPhase,
    EventType,
    RegistrationStatus,
    RegistrationType,
    UserRole,
)
