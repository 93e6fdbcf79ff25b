from sqlalchemy import or_, update

from app.extensions import db
from app.models import Event


def _guarded_update(event_id: int, *criteria, **values) -> bool:
    result = db.session.execute(
        update(Event)
        .where(Event.id == event_id, Event.is_active.is_(True), *criteria)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


class EventRepository:
    @staticmethod
    def get_events():
        return Event.query.filter(Event.is_active.is_(True))

    @staticmethod
    def get_active_event(event_id: int) -> Event:
        return Event.query.filter_by(id=event_id, is_active=True).first()

    @staticmethod
    def create_event(attrs):
        event = Event(**attrs)
        db.session.add(event)
        db.session.commit()
        return event

    @staticmethod
    def soft_delete(event: Event):
        event.is_active = False
        db.session.commit()
        return event

    # Counter updates below are single conditional UPDATE statements and do
    # not commit; the caller owns the transaction.

    @staticmethod
    def claim_seat(event_id: int, count_registration: bool = True) -> bool:
        """Take one seat if the event is unlimited or below capacity."""
        values = {"current_participants": Event.current_participants + 1}
        if count_registration:
            values["total_registrations"] = Event.total_registrations + 1
        return _guarded_update(
            event_id,
            or_(
                Event.max_participants == 0,
                Event.current_participants < Event.max_participants,
            ),
            **values,
        )

    @staticmethod
    def count_registration(event_id: int) -> bool:
        return _guarded_update(
            event_id, total_registrations=Event.total_registrations + 1
        )

    @staticmethod
    def release_seat(event_id: int) -> bool:
        """Give back one seat; returns False when the counter was already zero."""
        return _guarded_update(
            event_id,
            Event.current_participants > 0,
            current_participants=Event.current_participants - 1,
        )

    @staticmethod
    def increment_attendance(event_id: int) -> bool:
        return _guarded_update(event_id, attendance=Event.attendance + 1)
