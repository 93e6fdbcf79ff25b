from datetime import datetime, timezone
from typing import Optional

from flask import current_app
from sqlalchemy import and_, update

from app.extensions import db
from app.models import Event
from app.models.enums import EventPhase


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Stored timestamps come back naive from some backends; they are UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def derive_phase(now: datetime, start_date: datetime, end_date: datetime) -> EventPhase:
    now, start_date, end_date = as_utc(now), as_utc(start_date), as_utc(end_date)
    if end_date < now:
        return EventPhase.PAST
    if start_date > now:
        return EventPhase.UPCOMING
    return EventPhase.LIVE


def is_registration_open(event: Event, now: datetime) -> bool:
    if as_utc(now) > as_utc(event.registration_deadline):
        return False
    return event.phase(now) != EventPhase.PAST


def phase_clause(phase: EventPhase, now: datetime):
    """SQL predicate matching the events that derive_phase puts in ``phase``."""
    if phase == EventPhase.PAST:
        return Event.end_date < now
    if phase == EventPhase.UPCOMING:
        return Event.start_date > now
    return and_(Event.start_date <= now, Event.end_date >= now)


class EventStatusService:
    @staticmethod
    def reconcile(now: Optional[datetime] = None) -> int:
        """
        Persist the derived phase of every active event whose cached status is stale.

        Each phase is written with one conditional UPDATE, so running the pass
        twice, or concurrently, writes the same values.

        Returns:
            The number of events whose stored status changed.
        """
        now = as_utc(now or utcnow())
        changed = 0
        for phase in EventPhase:
            result = db.session.execute(
                update(Event)
                .where(
                    Event.is_active.is_(True),
                    Event.status != phase.value,
                    phase_clause(phase, now),
                )
                .values(status=phase.value)
                .execution_options(synchronize_session=False)
            )
            changed += result.rowcount
        db.session.commit()
        current_app.logger.info(f"Reconciled event statuses at {now.isoformat()}: {changed} updated")
        return changed
