from app.extensions import db
from .enums import EventCategory, EventPhase, EventType


class Event(db.Model):
    __tablename__ = "events"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    short_description = db.Column(db.String(200), nullable=True)
    category = db.Column(db.Enum(EventCategory), nullable=False, default=EventCategory.OTHER)
    event_type = db.Column(db.Enum(EventType), nullable=False, default=EventType.OFFLINE)
    venue = db.Column(db.String(255), nullable=False)
    creator_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    start_date = db.Column(db.TIMESTAMP(timezone=True), nullable=False)
    end_date = db.Column(db.TIMESTAMP(timezone=True), nullable=False)
    registration_deadline = db.Column(db.TIMESTAMP(timezone=True), nullable=False)

    # 0 means unlimited
    max_participants = db.Column(db.Integer, nullable=False, default=0)
    # Active seats, kept equal to the number of seated registrations
    current_participants = db.Column(db.Integer, nullable=False, default=0)
    # All-time count of registrations, never decremented
    total_registrations = db.Column(db.Integer, nullable=False, default=0)
    attendance = db.Column(db.Integer, nullable=False, default=0)

    # Cached phase, only written by EventStatusService.reconcile
    status = db.Column(db.String(20), nullable=False, default=EventPhase.UPCOMING.value)
    has_quiz = db.Column(db.Boolean, nullable=False, default=False)
    has_certificate = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(
        db.TIMESTAMP(timezone=True), nullable=False, server_default=db.func.now()
    )
    updated_at = db.Column(
        db.TIMESTAMP(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    creator = db.relationship("User", backref=db.backref("created_events", lazy="dynamic"))

    __table_args__ = (
        db.CheckConstraint("max_participants >= 0", name="ck_events_max_participants_non_negative"),
        db.CheckConstraint("current_participants >= 0", name="ck_events_current_participants_non_negative"),
        db.CheckConstraint("total_registrations >= 0", name="ck_events_total_registrations_non_negative"),
        db.CheckConstraint("attendance >= 0", name="ck_events_attendance_non_negative"),
        db.Index("ix_events_start_date_status", "start_date", "status"),
    )

    @property
    def is_unlimited(self) -> bool:
        return self.max_participants == 0

    @property
    def is_full(self) -> bool:
        return not self.is_unlimited and self.current_participants >= self.max_participants

    def phase(self, now=None) -> EventPhase:
        from app.services.event_status_service import derive_phase, utcnow

        return derive_phase(now or utcnow(), self.start_date, self.end_date)

    def to_dict(self, now=None):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "short_description": self.short_description,
            "category": self.category.value if self.category else None,
            "event_type": self.event_type.value if self.event_type else None,
            "venue": self.venue,
            "creator_id": self.creator_id,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "registration_deadline": (
                self.registration_deadline.isoformat()
                if self.registration_deadline
                else None
            ),
            "max_participants": self.max_participants,
            "current_participants": self.current_participants,
            "total_registrations": self.total_registrations,
            "attendance": self.attendance,
            "status": self.phase(now).value,
            "has_quiz": self.has_quiz,
            "has_certificate": self.has_certificate,
        }

    def __repr__(self):
        return (
            f"Event("
            f"id={self.id}, "
            f"title='{self.title}', "
            f"participants={self.current_participants}/{self.max_participants or 'unlimited'}"
            f")"
        )
