from flask import current_app
from flask_mail import Message
from threading import Thread

from app.extensions import mail
from app.models.enums import RegistrationStatus


def send_async_email(app, msg):
    with app.app_context():
        try:
            mail.send(msg)
        except Exception as e:
            app.logger.error(f"Failed to send email: {e}")


def send_registration_status_email(user, event, registration):
    """Tell a participant that an organizer confirmed or rejected their request."""
    app = current_app._get_current_object()
    confirmed = registration.status == RegistrationStatus.CONFIRMED
    subject = (
        f"Registration Confirmed - {event.title}"
        if confirmed
        else f"Registration Update - {event.title}"
    )

    # If in testing mode, log the email instead of sending it
    if app.testing:
        app.logger.info("--- MOCK REGISTRATION STATUS EMAIL ---")
        app.logger.info(f"To: {user.email}")
        app.logger.info(f"Subject: {subject}")
        app.logger.info(f"Status: {registration.status.value}")
        app.logger.info("--- END MOCK REGISTRATION STATUS EMAIL ---")
        return

    msg = Message(
        subject,
        sender=("Campus Events", app.config.get("MAIL_USERNAME")),
        recipients=[user.email],
    )

    if confirmed:
        outcome = "Your registration has been confirmed. We look forward to seeing you there!"
    else:
        outcome = f"Your registration status is now: {registration.status.value}."
    notes = f"\nNotes from the organizer: {registration.coordinator_notes}\n" if registration.coordinator_notes else ""

    msg.body = f"""
Hi {user.full_name},

{outcome}

Event Details:
- Event: {event.title}
- Starts: {event.start_date.strftime('%B %d, %Y at %I:%M %p')}
- Venue: {event.venue}
{notes}
View the event: {app.config.get('CLIENT_URL')}/events/{event.id}

Thanks!
The Campus Events Team
"""

    Thread(target=send_async_email, args=(app, msg)).start()
