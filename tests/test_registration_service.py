from datetime import timedelta

import pytest
from sqlalchemy.orm.attributes import set_committed_value

from app.exceptions import (
    AlreadyRegisteredError,
    EventFullError,
    InvalidTransitionError,
    NotFoundError,
    NotRegisteredError,
    RegistrationClosedError,
    StorageConflictError,
)
from app.extensions import db
from app.models import Event
from app.models.enums import RegistrationStatus
from app.repositories import EventRepository, RegistrationRepository
from app.services.registration_service import RegistrationService


def reload(event):
    db.session.expire_all()
    return db.session.get(Event, event.id)


def assert_counter_matches_roster(event):
    event = reload(event)
    assert event.current_participants == RegistrationRepository.count_seated(event.id)


class TestRegister:
    def test_register_takes_a_seat(self, make_event, make_user):
        event = make_event(max_participants=5)
        user = make_user()

        registration = RegistrationService.register(event.id, user.id)

        assert registration.status == RegistrationStatus.CONFIRMED
        assert registration.is_active
        event = reload(event)
        assert event.current_participants == 1
        assert event.total_registrations == 1

    def test_unknown_event_is_not_found(self, make_user):
        with pytest.raises(NotFoundError):
            RegistrationService.register(999, make_user().id)

    def test_inactive_event_is_not_found(self, make_event, make_user):
        event = make_event(is_active=False)
        with pytest.raises(NotFoundError):
            RegistrationService.register(event.id, make_user().id)

    def test_deadline_passed_closes_registration(self, make_event, make_user, now):
        event = make_event(registration_deadline=now - timedelta(hours=1))
        with pytest.raises(RegistrationClosedError):
            RegistrationService.register(event.id, make_user().id)

    def test_past_event_closes_registration(self, make_event, make_user, now):
        event = make_event(
            start_date=now - timedelta(days=2),
            end_date=now - timedelta(days=1),
            registration_deadline=now + timedelta(days=1),
        )
        with pytest.raises(RegistrationClosedError):
            RegistrationService.register(event.id, make_user().id)

    def test_unlimited_event_never_fills(self, make_event, make_user):
        event = make_event(max_participants=0, current_participants=500)

        RegistrationService.register(event.id, make_user().id)

        assert reload(event).current_participants == 501

    def test_event_full_after_capacity_reached(self, make_event, make_user):
        event = make_event(max_participants=3)
        for _ in range(3):
            RegistrationService.register(event.id, make_user().id)

        with pytest.raises(EventFullError):
            RegistrationService.register(event.id, make_user().id)
        assert reload(event).current_participants == 3

    def test_registering_twice_is_rejected(self, make_event, make_user):
        event = make_event()
        user = make_user()
        RegistrationService.register(event.id, user.id)

        with pytest.raises(AlreadyRegisteredError):
            RegistrationService.register(event.id, user.id)
        assert reload(event).current_participants == 1

    def test_full_is_reported_before_duplicate(self, make_event, make_user):
        event = make_event(max_participants=1)
        user = make_user()
        RegistrationService.register(event.id, user.id)

        with pytest.raises(EventFullError):
            RegistrationService.register(event.id, user.id)

    def test_register_unregister_register_leaves_no_lockout(self, make_event, make_user):
        event = make_event(max_participants=10, current_participants=4)
        user = make_user()

        RegistrationService.register(event.id, user.id)
        RegistrationService.unregister(event.id, user.id)
        registration = RegistrationService.register(event.id, user.id)

        assert registration.status == RegistrationStatus.CONFIRMED
        event = reload(event)
        assert event.current_participants == 5
        assert event.total_registrations == 2

    def test_capacity_scenario(self, make_event, make_user):
        event = make_event(max_participants=2)
        alice, bob, carol = make_user(), make_user(), make_user()

        RegistrationService.register(event.id, alice.id)
        assert reload(event).current_participants == 1
        RegistrationService.register(event.id, bob.id)
        assert reload(event).current_participants == 2
        with pytest.raises(EventFullError):
            RegistrationService.register(event.id, carol.id)

        RegistrationService.unregister(event.id, alice.id)
        assert reload(event).current_participants == 1
        RegistrationService.register(event.id, carol.id)
        assert reload(event).current_participants == 2
        assert_counter_matches_roster(event)


class TestConflictRetry:
    def test_duplicate_insert_race_is_retried_then_reported(
        self, make_event, make_user, monkeypatch
    ):
        event = make_event()
        user = make_user()
        RegistrationService.register(event.id, user.id)

        real_find = RegistrationRepository.find_by_event_and_user
        calls = {"n": 0}

        def stale_find(event_id, user_id):
            # First lookup misses the row, as if another request inserted it concurrently
            calls["n"] += 1
            if calls["n"] == 1:
                return None
            return real_find(event_id, user_id)

        monkeypatch.setattr(RegistrationRepository, "find_by_event_and_user", stale_find)

        with pytest.raises(AlreadyRegisteredError):
            RegistrationService.register(event.id, user.id)
        assert calls["n"] == 2
        assert reload(event).current_participants == 1

    def test_capacity_guard_race_is_retried_then_reported(
        self, make_event, make_user, monkeypatch
    ):
        event = make_event(max_participants=1)
        first, second = make_user(), make_user()
        RegistrationService.register(event.id, first.id)

        real_get = EventRepository.get_active_event
        calls = {"n": 0}

        def stale_get(event_id):
            # First read sees a free seat that is already taken
            calls["n"] += 1
            event = real_get(event_id)
            if calls["n"] == 1:
                set_committed_value(event, "current_participants", 0)
            return event

        monkeypatch.setattr(EventRepository, "get_active_event", stale_get)

        with pytest.raises(EventFullError):
            RegistrationService.register(event.id, second.id)
        assert calls["n"] == 2
        assert reload(event).current_participants == 1
        assert RegistrationRepository.find_by_event_and_user(event.id, second.id) is None

    def test_completion_does_not_resurrect_a_cancelled_registration(
        self, make_event, make_user, monkeypatch
    ):
        event = make_event()
        user = make_user()
        RegistrationService.register(event.id, user.id)
        RegistrationService.mark_attendance(event.id, user.id)

        real_find = RegistrationRepository.find_by_event_and_user
        calls = {"n": 0}

        def find_then_cancel(event_id, user_id):
            # Another request cancels right after this one has read the row
            calls["n"] += 1
            registration = real_find(event_id, user_id)
            if calls["n"] == 1:
                RegistrationRepository.compare_and_set(
                    registration.id,
                    RegistrationStatus.ATTENDED,
                    status=RegistrationStatus.CANCELLED,
                    is_active=False,
                )
                EventRepository.release_seat(event_id)
                db.session.commit()
                set_committed_value(registration, "status", RegistrationStatus.ATTENDED)
            return registration

        monkeypatch.setattr(RegistrationRepository, "find_by_event_and_user", find_then_cancel)

        with pytest.raises(NotRegisteredError):
            RegistrationService.complete_participation(event.id, user.id, 75.0)
        assert calls["n"] == 2
        assert reload(event).current_participants == 0
        assert_counter_matches_roster(event)

    def test_second_conflict_propagates(self, make_event, make_user, monkeypatch):
        event = make_event()
        monkeypatch.setattr(EventRepository, "claim_seat", lambda *args, **kwargs: False)

        with pytest.raises(StorageConflictError):
            RegistrationService.register(event.id, make_user().id)
        assert reload(event).current_participants == 0


class TestUnregister:
    def test_unregister_releases_seat_and_keeps_all_time_count(self, make_event, make_user):
        event = make_event()
        user = make_user()
        RegistrationService.register(event.id, user.id)

        registration = RegistrationService.unregister(event.id, user.id)

        assert registration.status == RegistrationStatus.CANCELLED
        assert not registration.is_active
        event = reload(event)
        assert event.current_participants == 0
        assert event.total_registrations == 1

    def test_unregister_without_registration(self, make_event, make_user):
        event = make_event()
        with pytest.raises(NotRegisteredError):
            RegistrationService.unregister(event.id, make_user().id)

    def test_unregister_twice(self, make_event, make_user):
        event = make_event()
        user = make_user()
        RegistrationService.register(event.id, user.id)
        RegistrationService.unregister(event.id, user.id)

        with pytest.raises(NotRegisteredError):
            RegistrationService.unregister(event.id, user.id)

    def test_unregister_unknown_event(self, make_user):
        with pytest.raises(NotFoundError):
            RegistrationService.unregister(12345, make_user().id)

    def test_counter_drift_is_clamped_at_zero(self, make_event, make_user):
        event = make_event()
        user = make_user()
        RegistrationService.register(event.id, user.id)
        event = reload(event)
        event.current_participants = 0
        db.session.commit()

        RegistrationService.unregister(event.id, user.id)

        assert reload(event).current_participants == 0

    def test_unregister_pending_request_does_not_touch_seats(self, make_event, make_user):
        event = make_event(current_participants=2)
        user = make_user()
        RegistrationService.request_registration(event.id, user.id)

        RegistrationService.unregister(event.id, user.id)

        assert reload(event).current_participants == 2


class TestAttendance:
    def test_mark_attendance(self, make_event, make_user):
        event = make_event()
        user = make_user()
        RegistrationService.register(event.id, user.id)

        registration = RegistrationService.mark_attendance(event.id, user.id)

        assert registration.status == RegistrationStatus.ATTENDED
        assert registration.attended
        assert registration.attendance_date is not None
        event = reload(event)
        assert event.attendance == 1
        assert event.current_participants == 1

    def test_mark_attendance_is_idempotent(self, make_event, make_user):
        event = make_event()
        user = make_user()
        RegistrationService.register(event.id, user.id)

        RegistrationService.mark_attendance(event.id, user.id)
        RegistrationService.mark_attendance(event.id, user.id)

        assert reload(event).attendance == 1

    def test_mark_attendance_requires_registration(self, make_event, make_user):
        event = make_event()
        with pytest.raises(NotRegisteredError):
            RegistrationService.mark_attendance(event.id, make_user().id)

    def test_pending_request_cannot_be_marked_attended(self, make_event, make_user):
        event = make_event()
        user = make_user()
        RegistrationService.request_registration(event.id, user.id)

        with pytest.raises(NotRegisteredError):
            RegistrationService.mark_attendance(event.id, user.id)

    def test_completion_and_certificate(self, make_event, make_user):
        event = make_event(has_certificate=True, has_quiz=True)
        user = make_user()
        RegistrationService.register(event.id, user.id)

        with pytest.raises(InvalidTransitionError):
            RegistrationService.complete_participation(event.id, user.id)

        RegistrationService.mark_attendance(event.id, user.id)
        registration = RegistrationService.complete_participation(event.id, user.id, 87.5)
        assert registration.status == RegistrationStatus.COMPLETED
        assert registration.quiz_score == 87.5

        registration = RegistrationService.issue_certificate(event.id, user.id)
        assert registration.certificate_issued
        assert registration.certificate_issued_date is not None
        assert reload(event).current_participants == 1

    def test_completion_can_be_rescored(self, make_event, make_user):
        event = make_event()
        user = make_user()
        RegistrationService.register(event.id, user.id)
        RegistrationService.mark_attendance(event.id, user.id)
        RegistrationService.complete_participation(event.id, user.id, 60.0)

        registration = RegistrationService.complete_participation(event.id, user.id, 80.0)

        assert registration.status == RegistrationStatus.COMPLETED
        assert registration.quiz_score == 80.0
        assert_counter_matches_roster(event)

    def test_certificate_needs_an_event_that_offers_one(self, make_event, make_user):
        event = make_event(has_certificate=False)
        user = make_user()
        RegistrationService.register(event.id, user.id)
        RegistrationService.mark_attendance(event.id, user.id)
        RegistrationService.complete_participation(event.id, user.id)

        with pytest.raises(InvalidTransitionError):
            RegistrationService.issue_certificate(event.id, user.id)


class TestRoster:
    def test_roster_is_a_projection_of_registrations(self, make_event, make_user):
        event = make_event()
        seated, attended, pending, gone = make_user(), make_user(), make_user(), make_user()
        RegistrationService.register(event.id, seated.id)
        RegistrationService.register(event.id, attended.id)
        RegistrationService.mark_attendance(event.id, attended.id)
        RegistrationService.request_registration(event.id, pending.id)
        RegistrationService.register(event.id, gone.id)
        RegistrationService.unregister(event.id, gone.id)

        roster = RegistrationService.get_roster(event.id)

        assert {entry["user_id"]: entry["status"] for entry in roster} == {
            seated.id: "registered",
            attended.id: "attended",
        }
        assert len(roster) == reload(event).current_participants

        with_cancelled = RegistrationService.get_roster(event.id, include_cancelled=True)
        assert {entry["user_id"] for entry in with_cancelled} == {seated.id, attended.id, gone.id}
