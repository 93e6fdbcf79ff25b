from app.extensions import db
from .enums import RegistrationStatus, RegistrationType, SEATED_STATUSES

# How a registration shows up on the event's participant roster
ROSTER_STATUS = {
    RegistrationStatus.CONFIRMED: "registered",
    RegistrationStatus.ATTENDED: "attended",
    RegistrationStatus.COMPLETED: "completed",
    RegistrationStatus.CANCELLED: "cancelled",
}


class Registration(db.Model):
    __tablename__ = "registrations"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey("events.id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    registration_type = db.Column(
        db.Enum(RegistrationType), nullable=False, default=RegistrationType.PARTICIPANT
    )
    status = db.Column(db.Enum(RegistrationStatus), nullable=False)

    registration_date = db.Column(db.TIMESTAMP(timezone=True), nullable=False, server_default=db.func.now())
    attended = db.Column(db.Boolean, nullable=False, default=False)
    attendance_date = db.Column(db.TIMESTAMP(timezone=True), nullable=True)
    quiz_score = db.Column(db.Float, nullable=True)
    certificate_issued = db.Column(db.Boolean, nullable=False, default=False)
    certificate_issued_date = db.Column(db.TIMESTAMP(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    coordinator_notes = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    updated_at = db.Column(
        db.TIMESTAMP(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    created_at = db.Column(
        db.TIMESTAMP(timezone=True), nullable=False, server_default=db.func.now()
    )

    event = db.relationship("Event", backref=db.backref("registrations", lazy="dynamic"))
    user = db.relationship("User", backref=db.backref("registrations", lazy="dynamic"))

    # One row per (event, user); a cancelled row is reactivated on re-registration
    __table_args__ = (
        db.UniqueConstraint("event_id", "user_id", name="uq_registration_event_user"),
        db.Index("ix_registrations_status_date", "status", "registration_date"),
        db.Index("ix_registrations_user_status", "user_id", "status"),
    )

    @property
    def is_seated(self) -> bool:
        return self.status in SEATED_STATUSES

    def to_dict(self):
        return {
            "id": self.id,
            "event_id": self.event_id,
            "user_id": self.user_id,
            "registration_type": self.registration_type.value if self.registration_type else None,
            "status": self.status.value if self.status else None,
            "registration_date": self.registration_date.isoformat() if self.registration_date else None,
            "attended": self.attended,
            "attendance_date": self.attendance_date.isoformat() if self.attendance_date else None,
            "quiz_score": self.quiz_score,
            "certificate_issued": self.certificate_issued,
            "notes": self.notes,
            "coordinator_notes": self.coordinator_notes,
            "is_active": self.is_active,
        }

    def to_roster_entry(self):
        return {
            "registration_id": self.id,
            "user_id": self.user_id,
            "full_name": self.user.full_name if self.user else None,
            "registration_date": self.registration_date.isoformat() if self.registration_date else None,
            "status": ROSTER_STATUS.get(self.status),
            "attendance_marked": self.attended,
            "attendance_date": self.attendance_date.isoformat() if self.attendance_date else None,
            "quiz_score": self.quiz_score,
            "certificate_issued": self.certificate_issued,
            "certificate_issued_date": (
                self.certificate_issued_date.isoformat()
                if self.certificate_issued_date
                else None
            ),
        }

    def __repr__(self):
        return (
            f"Registration("
            f"id={self.id}, "
            f"event_id={self.event_id}, "
            f"user_id={self.user_id}, "
            f"status={self.status}, "
            f"is_active={self.is_active}"
            f")"
        )
