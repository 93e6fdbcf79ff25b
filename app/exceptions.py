class UnauthorizedError(Exception):
    pass


class MissingFieldsError(Exception):
    def __init__(self, fields):
        super().__init__("Missing required fields")
        self.fields = fields


class RegistrationError(Exception):
    """Base class for failures raised by the registration coordinator."""

    status_code = 400
    default_message = "Registration failed"

    def __init__(self, message=None):
        super().__init__(message or self.default_message)

    @property
    def code(self):
        return type(self).__name__.replace("Error", "")

    def to_dict(self):
        return {"error": str(self), "code": self.code}


class NotFoundError(RegistrationError):
    status_code = 404
    default_message = "Not found"


class RegistrationClosedError(RegistrationError):
    default_message = "Registration is closed for this event"


class EventFullError(RegistrationError):
    status_code = 409
    default_message = "Event is currently full"


class AlreadyRegisteredError(RegistrationError):
    default_message = "You are already registered for this event"


class NotRegisteredError(RegistrationError):
    default_message = "You are not registered for this event"


class InvalidTransitionError(RegistrationError):
    default_message = "Registration status change is not allowed"


class StorageConflictError(RegistrationError):
    """A guarded write was rejected because another request got there first."""

    status_code = 409
    default_message = "The event was modified concurrently, please retry"
