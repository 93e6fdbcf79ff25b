from app.services.event_service import EventService
from app.services.event_status_service import EventStatusService
from app.services.registration_service import RegistrationService
from app.services.user_service import UserService
