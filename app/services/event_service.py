from datetime import datetime
from flask import current_app
from sqlalchemy import or_
from app.repositories.event_repository import EventRepository
from app.exceptions import UnauthorizedError, MissingFieldsError, NotFoundError
from app.models.enums import EventCategory, EventPhase, EventType, UserRole
from app.models import Event, User
from app.services.event_status_service import as_utc, derive_phase, phase_clause, utcnow


def _parse_datetime(data: dict, field: str) -> datetime:
    value = data[field]
    try:
        return as_utc(datetime.fromisoformat(str(value).replace("Z", "+00:00")))
    except ValueError:
        raise ValueError(f"Invalid date format for {field}")


def _parse_enum(enum_cls, value, field: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise ValueError(f"Invalid {field} value: {value}")


def can_manage_event(user: User, event: Event) -> bool:
    """Admins manage every event, faculty only the ones they created."""
    if user.role == UserRole.ADMIN:
        return True
    return user.role == UserRole.FACULTY and event.creator_id == user.id


class EventService:
    @staticmethod
    def get_event(event_id: int) -> Event:
        event = EventRepository.get_active_event(event_id)
        if not event:
            raise NotFoundError(f"Event with ID {event_id} not found")
        return event

    @staticmethod
    def get_phase(event: Event, now: datetime = None) -> EventPhase:
        """Derived phase of an event. Never writes; see EventStatusService.reconcile."""
        return event.phase(now or utcnow())

    @staticmethod
    def list_events(filters: dict, page: int = 1, limit: int = 10, now: datetime = None):
        now = now or utcnow()
        query = EventRepository.get_events()

        category = filters.get("category")
        if category:
            query = query.filter(Event.category == _parse_enum(EventCategory, category, "category"))

        status = filters.get("status")
        if status and status != "all":
            query = query.filter(phase_clause(_parse_enum(EventPhase, status, "status"), now))

        search = filters.get("search")
        if search:
            pattern = f"%{search}%"
            query = query.filter(
                or_(
                    Event.title.ilike(pattern),
                    Event.description.ilike(pattern),
                    Event.venue.ilike(pattern),
                )
            )

        sort_column = Event.start_date
        if filters.get("sort_order") == "desc":
            sort_column = sort_column.desc()
        return query.order_by(sort_column, Event.id).paginate(
            page=page, per_page=limit, error_out=False
        )

    @staticmethod
    def create_event(data, user: User) -> Event:
        if user.role not in [UserRole.FACULTY, UserRole.ADMIN]:
            raise UnauthorizedError("Only faculty or admins can create events")

        required_fields = [
            "title",
            "venue",
            "start_date",
            "end_date",
            "registration_deadline",
        ]
        missing = [f for f in required_fields if f not in data]
        if missing:
            raise MissingFieldsError(missing)

        start_date = _parse_datetime(data, "start_date")
        end_date = _parse_datetime(data, "end_date")
        if end_date < start_date:
            raise ValueError("end_date must not be before start_date")

        try:
            max_participants = int(data.get("max_participants", 0))
        except (TypeError, ValueError):
            raise ValueError("Invalid format for max_participants, must be an integer")
        if max_participants < 0:
            raise ValueError("max_participants must not be negative")

        event = EventRepository.create_event(
            {
                "title": data["title"],
                "description": data.get("description"),
                "short_description": data.get("short_description"),
                "category": _parse_enum(EventCategory, data.get("category", "Other"), "category"),
                "event_type": _parse_enum(EventType, data.get("event_type", "offline"), "event_type"),
                "venue": data["venue"],
                "creator_id": user.id,
                "start_date": start_date,
                "end_date": end_date,
                "registration_deadline": _parse_datetime(data, "registration_deadline"),
                "max_participants": max_participants,
                "has_quiz": bool(data.get("has_quiz", False)),
                "has_certificate": bool(data.get("has_certificate", False)),
                "status": derive_phase(utcnow(), start_date, end_date).value,
            }
        )
        current_app.logger.info(f"Event {event.id} created by user {user.id}")
        return event

    @staticmethod
    def delete_event(event_id: int, user: User):
        """Soft delete: the event disappears from every query but keeps its rows."""
        event = EventService.get_event(event_id)
        if not can_manage_event(user, event):
            raise UnauthorizedError("You are not authorized to delete this event.")

        EventRepository.soft_delete(event)
        current_app.logger.info(f"Event {event_id} deactivated by user {user.id}")
        return event
