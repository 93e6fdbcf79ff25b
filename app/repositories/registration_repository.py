from typing import List, Optional

from sqlalchemy import update

from app.extensions import db
from app.models import Registration
from app.models.enums import RegistrationStatus, SEATED_STATUSES


class RegistrationRepository:
    @staticmethod
    def get_registration(registration_id: int) -> Optional[Registration]:
        return db.session.get(Registration, registration_id)

    @staticmethod
    def find_by_event_and_user(event_id: int, user_id: int) -> Optional[Registration]:
        """Find the (single) registration row for an event and user, active or not."""
        return Registration.query.filter_by(event_id=event_id, user_id=user_id).first()

    @staticmethod
    def add(registration: Registration) -> Registration:
        """Stage a new registration and flush so the unique constraint is checked now."""
        db.session.add(registration)
        db.session.flush()
        return registration

    @staticmethod
    def seated_for_event(event_id: int, include_cancelled: bool = False) -> List[Registration]:
        statuses = list(SEATED_STATUSES)
        if include_cancelled:
            statuses.append(RegistrationStatus.CANCELLED)
        return (
            Registration.query.filter(Registration.event_id == event_id)
            .filter(Registration.status.in_(statuses))
            .order_by(Registration.registration_date.asc(), Registration.id.asc())
            .all()
        )

    @staticmethod
    def count_seated(event_id: int) -> int:
        return (
            Registration.query.filter(Registration.event_id == event_id)
            .filter(Registration.status.in_(SEATED_STATUSES))
            .count()
        )

    @staticmethod
    def for_event(event_id: int, status: Optional[RegistrationStatus] = None):
        query = Registration.query.filter(Registration.event_id == event_id)
        if status:
            query = query.filter(Registration.status == status)
        return query.order_by(Registration.registration_date.desc(), Registration.id.desc())

    @staticmethod
    def for_user(user_id: int) -> List[Registration]:
        return (
            Registration.query.filter_by(user_id=user_id)
            .order_by(Registration.registration_date.desc(), Registration.id.desc())
            .all()
        )

    @staticmethod
    def compare_and_set(registration_id: int, expected_status: RegistrationStatus, **values) -> bool:
        """
        Update a registration only if its status is still ``expected_status``.

        Does not commit. Returns False when another request changed the row
        first, in which case nothing was written.
        """
        result = db.session.execute(
            update(Registration)
            .where(
                Registration.id == registration_id,
                Registration.status == expected_status,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
