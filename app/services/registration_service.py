from datetime import datetime
from typing import List, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from app.extensions import db
from app.exceptions import (
    AlreadyRegisteredError,
    EventFullError,
    InvalidTransitionError,
    NotFoundError,
    NotRegisteredError,
    RegistrationClosedError,
    StorageConflictError,
    UnauthorizedError,
)
from app.models import Event, Registration
from app.models.enums import (
    LEDGER_STATUSES,
    SEATED_STATUSES,
    RegistrationStatus,
    RegistrationType,
)
from app.repositories import EventRepository, RegistrationRepository
from app.services.event_status_service import as_utc, is_registration_open, utcnow

# Organizer-driven status changes; attended, completed and cancelled are final here
ALLOWED_TRANSITIONS = {
    RegistrationStatus.PENDING: {
        RegistrationStatus.CONFIRMED,
        RegistrationStatus.REJECTED,
        RegistrationStatus.CANCELLED,
    },
    RegistrationStatus.CONFIRMED: {
        RegistrationStatus.PENDING,
        RegistrationStatus.REJECTED,
        RegistrationStatus.CANCELLED,
    },
    RegistrationStatus.REJECTED: {
        RegistrationStatus.PENDING,
        RegistrationStatus.CONFIRMED,
    },
}

WITHDRAWABLE_STATUSES = (RegistrationStatus.PENDING,) + SEATED_STATUSES


def _retry_on_conflict(operation, *args, **kwargs):
    """Run ``operation``; on a storage conflict run it once more against fresh state."""
    try:
        return operation(*args, **kwargs)
    except StorageConflictError as e:
        current_app.logger.warning(
            f"Storage conflict in {operation.__name__}, retrying once: {e}"
        )
        return operation(*args, **kwargs)


def _conflict(message: str) -> StorageConflictError:
    db.session.rollback()
    return StorageConflictError(message)


def _log_counter_drift(event_id: int):
    current_app.logger.warning(
        f"Participant counter for event {event_id} was already zero, clamped; "
        f"{RegistrationRepository.count_seated(event_id)} seated registration(s) on record"
    )


def _get_event(event_id: int) -> Event:
    event = EventRepository.get_active_event(event_id)
    if not event:
        raise NotFoundError(f"Event with ID {event_id} not found")
    return event


def _parse_status(value) -> RegistrationStatus:
    if isinstance(value, RegistrationStatus):
        status = value
    else:
        try:
            status = RegistrationStatus(value)
        except ValueError:
            raise InvalidTransitionError(f"Invalid registration status: {value}")
    if status not in LEDGER_STATUSES:
        raise InvalidTransitionError(
            f"Registration status cannot be set to {status.value} directly"
        )
    return status


def _enroll(
    event_id: int,
    user_id: int,
    registration_type: RegistrationType,
    status: RegistrationStatus,
    now: Optional[datetime] = None,
    notes: Optional[str] = None,
) -> Registration:
    now = now or utcnow()
    event = _get_event(event_id)

    if not is_registration_open(event, now):
        raise RegistrationClosedError()
    if event.is_full:
        raise EventFullError()

    registration = RegistrationRepository.find_by_event_and_user(event_id, user_id)
    if registration and registration.status == RegistrationStatus.REJECTED:
        raise AlreadyRegisteredError("Your registration for this event was rejected")
    if registration and registration.status != RegistrationStatus.CANCELLED:
        raise AlreadyRegisteredError()

    fields = {
        "registration_type": registration_type,
        "status": status,
        "registration_date": now,
        "notes": notes,
        "is_active": True,
    }
    if registration is None:
        try:
            registration = RegistrationRepository.add(
                Registration(event_id=event_id, user_id=user_id, **fields)
            )
        except IntegrityError:
            raise _conflict(
                f"Registration for user {user_id}, event {event_id} was created concurrently"
            )
    else:
        reactivated = RegistrationRepository.compare_and_set(
            registration.id,
            RegistrationStatus.CANCELLED,
            attended=False,
            attendance_date=None,
            quiz_score=None,
            certificate_issued=False,
            certificate_issued_date=None,
            coordinator_notes=None,
            **fields,
        )
        if not reactivated:
            raise _conflict(
                f"Registration {registration.id} was reactivated concurrently"
            )

    if status in SEATED_STATUSES:
        counted = EventRepository.claim_seat(event_id)
    else:
        counted = EventRepository.count_registration(event_id)
    if not counted:
        raise _conflict(f"Capacity guard rejected registration for event {event_id}")

    db.session.commit()
    return registration


def _withdraw(event_id: int, user_id: int) -> Registration:
    _get_event(event_id)
    registration = RegistrationRepository.find_by_event_and_user(event_id, user_id)
    if not registration or registration.status not in WITHDRAWABLE_STATUSES:
        raise NotRegisteredError()

    was_seated = registration.is_seated
    if not RegistrationRepository.compare_and_set(
        registration.id,
        registration.status,
        status=RegistrationStatus.CANCELLED,
        is_active=False,
    ):
        raise _conflict(f"Registration {registration.id} changed while cancelling")

    if was_seated and not EventRepository.release_seat(event_id):
        _log_counter_drift(event_id)

    db.session.commit()
    return registration


def _attend(event_id: int, user_id: int, now: Optional[datetime] = None) -> Registration:
    _get_event(event_id)
    registration = RegistrationRepository.find_by_event_and_user(event_id, user_id)
    if not registration or not registration.is_seated:
        raise NotRegisteredError()
    if registration.status != RegistrationStatus.CONFIRMED:
        # Already attended or completed
        return registration

    if not RegistrationRepository.compare_and_set(
        registration.id,
        RegistrationStatus.CONFIRMED,
        status=RegistrationStatus.ATTENDED,
        attended=True,
        attendance_date=now or utcnow(),
    ):
        raise _conflict(f"Registration {registration.id} changed while marking attendance")
    EventRepository.increment_attendance(event_id)

    db.session.commit()
    return registration


def _complete(event_id: int, user_id: int, quiz_score: Optional[float] = None) -> Registration:
    _get_event(event_id)
    registration = RegistrationRepository.find_by_event_and_user(event_id, user_id)
    if not registration or not registration.is_seated:
        raise NotRegisteredError()
    if registration.status == RegistrationStatus.CONFIRMED:
        raise InvalidTransitionError("Attendance must be marked before completing")

    values = {"status": RegistrationStatus.COMPLETED}
    if quiz_score is not None:
        values["quiz_score"] = quiz_score
    # Expected status is attended on first completion, completed when re-scoring
    if not RegistrationRepository.compare_and_set(registration.id, registration.status, **values):
        raise _conflict(f"Registration {registration.id} changed while completing")

    db.session.commit()
    return registration


def _certify(event_id: int, user_id: int, now: Optional[datetime] = None) -> Registration:
    event = _get_event(event_id)
    if not event.has_certificate:
        raise InvalidTransitionError("This event does not issue certificates")
    registration = RegistrationRepository.find_by_event_and_user(event_id, user_id)
    if not registration or not registration.is_seated:
        raise NotRegisteredError()
    if registration.status != RegistrationStatus.COMPLETED:
        raise InvalidTransitionError(
            "Participation must be completed before a certificate is issued"
        )
    if registration.certificate_issued:
        return registration

    if not RegistrationRepository.compare_and_set(
        registration.id,
        RegistrationStatus.COMPLETED,
        certificate_issued=True,
        certificate_issued_date=now or utcnow(),
    ):
        raise _conflict(f"Registration {registration.id} changed while issuing certificate")

    db.session.commit()
    return registration


def _transition(registration_id: int, new_status, notes: Optional[str] = None):
    registration = RegistrationRepository.get_registration(registration_id)
    if not registration:
        raise NotFoundError("Registration not found")
    event = EventRepository.get_active_event(registration.event_id)
    if not event:
        raise NotFoundError(f"Event with ID {registration.event_id} not found")

    new_status = _parse_status(new_status)
    old_status = registration.status

    if new_status == old_status:
        if notes:
            registration.coordinator_notes = notes
            db.session.commit()
        return registration, False

    if new_status not in ALLOWED_TRANSITIONS.get(old_status, ()):
        raise InvalidTransitionError(
            f"Cannot change registration from {old_status.value} to {new_status.value}"
        )

    entering = new_status in SEATED_STATUSES and old_status not in SEATED_STATUSES
    leaving = old_status in SEATED_STATUSES and new_status not in SEATED_STATUSES
    if entering and event.is_full:
        raise EventFullError()

    values = {
        "status": new_status,
        "is_active": new_status != RegistrationStatus.CANCELLED,
    }
    if notes:
        values["coordinator_notes"] = notes
    if not RegistrationRepository.compare_and_set(registration.id, old_status, **values):
        raise _conflict(f"Registration {registration.id} changed concurrently")

    if entering and not EventRepository.claim_seat(event.id, count_registration=False):
        raise _conflict(f"Capacity guard rejected confirmation for event {event.id}")
    if leaving and not EventRepository.release_seat(event.id):
        _log_counter_drift(event.id)

    db.session.commit()
    current_app.logger.info(
        f"Registration {registration.id} changed from {old_status.value} to {new_status.value}"
    )
    return registration, True


class RegistrationService:
    @staticmethod
    def register(
        event_id: int,
        user_id: int,
        registration_type: RegistrationType = RegistrationType.PARTICIPANT,
        now: Optional[datetime] = None,
    ) -> Registration:
        """
        Register a user for an event and take a seat immediately.

        Checks, in order: the event exists, registration is open, a seat is
        free, the user is not already registered. The registration row and the
        counter update commit together or not at all.

        Raises:
            NotFoundError, RegistrationClosedError, EventFullError,
            AlreadyRegisteredError, StorageConflictError (after one retry).
        """
        current_app.logger.info(f"Registration attempt: user {user_id} for event {event_id}")
        registration = _retry_on_conflict(
            _enroll, event_id, user_id, registration_type, RegistrationStatus.CONFIRMED, now
        )
        current_app.logger.info(f"Successfully registered user {user_id} for event {event_id}")
        return registration

    @staticmethod
    def request_registration(
        event_id: int,
        user_id: int,
        registration_type: RegistrationType = RegistrationType.PARTICIPANT,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Registration:
        """Create a pending registration that waits for organizer approval and holds no seat."""
        current_app.logger.info(
            f"Registration request: user {user_id} for event {event_id} as {registration_type.value}"
        )
        return _retry_on_conflict(
            _enroll, event_id, user_id, registration_type, RegistrationStatus.PENDING, now, notes
        )

    @staticmethod
    def unregister(event_id: int, user_id: int) -> Registration:
        registration = _retry_on_conflict(_withdraw, event_id, user_id)
        current_app.logger.info(f"User {user_id} cancelled registration for event {event_id}")
        return registration

    @staticmethod
    def cancel_registration(
        registration_id: int, user_id: int, now: Optional[datetime] = None
    ) -> Registration:
        """Participant-initiated cancellation, allowed only before the event starts."""
        registration = RegistrationRepository.get_registration(registration_id)
        if not registration:
            raise NotFoundError("Registration not found")
        if registration.user_id != user_id:
            raise UnauthorizedError("Not authorized to cancel this registration")

        event = _get_event(registration.event_id)
        if as_utc(now or utcnow()) >= as_utc(event.start_date):
            raise RegistrationClosedError(
                "Cannot cancel registration for an event that has already started"
            )
        return RegistrationService.unregister(registration.event_id, user_id)

    @staticmethod
    def mark_attendance(event_id: int, user_id: int, now: Optional[datetime] = None) -> Registration:
        """Mark a seated participant as attended. Marking twice is a no-op."""
        return _retry_on_conflict(_attend, event_id, user_id, now)

    @staticmethod
    def complete_participation(
        event_id: int, user_id: int, quiz_score: Optional[float] = None
    ) -> Registration:
        return _retry_on_conflict(_complete, event_id, user_id, quiz_score)

    @staticmethod
    def issue_certificate(event_id: int, user_id: int, now: Optional[datetime] = None) -> Registration:
        return _retry_on_conflict(_certify, event_id, user_id, now)

    @staticmethod
    def update_registration_status(
        registration_id: int, new_status, notes: Optional[str] = None
    ) -> Registration:
        """
        Move a registration through the approval workflow.

        Entering a seated status claims a seat and leaving one releases it, so
        ``current_participants`` follows the registrations. Setting the current
        status again only stores the notes.

        Raises:
            NotFoundError, InvalidTransitionError, EventFullError,
            StorageConflictError (after one retry).
        """
        registration, changed = _retry_on_conflict(
            _transition, registration_id, new_status, notes
        )

        if changed and registration.status in (
            RegistrationStatus.CONFIRMED,
            RegistrationStatus.REJECTED,
        ):
            try:
                from app.utils.email import send_registration_status_email

                send_registration_status_email(registration.user, registration.event, registration)
            except Exception as e:
                current_app.logger.error(
                    f"Failed to send registration status email for registration {registration.id}: {str(e)}"
                )
        return registration

    @staticmethod
    def get_roster(event_id: int, include_cancelled: bool = False) -> List[dict]:
        _get_event(event_id)
        return [
            registration.to_roster_entry()
            for registration in RegistrationRepository.seated_for_event(
                event_id, include_cancelled
            )
        ]

    @staticmethod
    def get_user_registrations(user_id: int) -> List[dict]:
        registrations = []
        for registration in RegistrationRepository.for_user(user_id):
            event = registration.event
            data = registration.to_dict()
            data["event"] = {
                "id": event.id,
                "title": event.title,
                "start_date": event.start_date.isoformat() if event.start_date else None,
                "venue": event.venue,
                "status": event.phase().value,
            }
            registrations.append(data)
        return registrations

    @staticmethod
    def get_event_registrations(event_id: int, status=None, page: int = 1, limit: int = 20):
        _get_event(event_id)
        if status:
            try:
                status = RegistrationStatus(status)
            except ValueError:
                raise InvalidTransitionError(f"Invalid registration status: {status}")
        return RegistrationRepository.for_event(event_id, status).paginate(
            page=page, per_page=limit, error_out=False
        )
