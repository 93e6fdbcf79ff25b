"""Shared fixtures: an app bound to in-memory SQLite plus user/event factories."""

from datetime import datetime, timedelta, timezone

import pytest
from flask_jwt_extended import create_access_token
from werkzeug.security import generate_password_hash

from app import create_app
from app.extensions import db
from app.models import Event, User
from app.models.enums import EventCategory, EventPhase, UserRole


@pytest.fixture
def app():
    app = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite://",
            "JWT_SECRET_KEY": "test-secret-key-with-enough-length",
            "RATELIMIT_ENABLED": False,
        }
    )
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def now():
    return datetime.now(timezone.utc)


@pytest.fixture
def make_user(app):
    counter = {"n": 0}

    def _make_user(role=UserRole.PARTICIPANT, **attrs):
        counter["n"] += 1
        user = User(
            email=attrs.pop("email", f"user{counter['n']}@campus.edu"),
            password=generate_password_hash(attrs.pop("password", "secret123")),
            full_name=attrs.pop("full_name", f"User {counter['n']}"),
            role=role,
            **attrs,
        )
        db.session.add(user)
        db.session.commit()
        return user

    return _make_user


@pytest.fixture
def organizer(make_user):
    return make_user(role=UserRole.FACULTY, full_name="Faculty Organizer")


@pytest.fixture
def make_event(app, organizer, now):
    def _make_event(**attrs):
        defaults = {
            "title": "Intro to Robotics",
            "venue": "Main Hall",
            "category": EventCategory.WORKSHOP,
            "creator_id": organizer.id,
            "start_date": now + timedelta(days=2),
            "end_date": now + timedelta(days=2, hours=3),
            "registration_deadline": now + timedelta(days=1),
            "max_participants": 0,
            "status": EventPhase.UPCOMING.value,
        }
        defaults.update(attrs)
        event = Event(**defaults)
        db.session.add(event)
        db.session.commit()
        return event

    return _make_event


@pytest.fixture
def auth_headers(app):
    def _auth_headers(user):
        token = create_access_token(identity=str(user.id))
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers
