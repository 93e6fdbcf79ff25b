from flask import Blueprint, current_app, g, jsonify, request
from flask_cors import cross_origin
from app.extensions import db
from app.exceptions import (
    MissingFieldsError,
    NotFoundError,
    RegistrationError,
    UnauthorizedError,
)
from app.models.enums import UserRole
from app.services.event_service import EventService, can_manage_event
from app.services.registration_service import RegistrationService
from app.utils.auth import login_required, roles_required

event_bp = Blueprint("event", __name__)

manager_required = roles_required(UserRole.FACULTY, UserRole.ADMIN)


def _managed_event(event_id):
    """Load an event the current user may manage, or raise."""
    event = EventService.get_event(event_id)
    if not can_manage_event(g.current_user, event):
        raise UnauthorizedError("Not authorized to manage this event")
    return event


def _target_user_id():
    data = request.get_json() or {}
    user_id = data.get("user_id")
    if user_id is None:
        raise MissingFieldsError(["user_id"])
    return int(user_id)


@event_bp.route("/events", methods=["GET", "OPTIONS"])
@cross_origin(supports_credentials=True)
def get_all_events():
    if request.method == "OPTIONS":
        return "", 204

    try:
        page = int(request.args.get("page", 1))
        limit = min(int(request.args.get("limit", 10)), 100)
        pagination = EventService.list_events(request.args, page=page, limit=limit)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify(
        {
            "events": [event.to_dict() for event in pagination.items],
            "pagination": {
                "current_page": pagination.page,
                "total_pages": pagination.pages,
                "total_events": pagination.total,
                "events_per_page": pagination.per_page,
            },
        }
    ), 200


@event_bp.route("/events", methods=["POST", "OPTIONS"])
@cross_origin(supports_credentials=True)
@manager_required
def create_event():
    data = request.get_json()
    if not data:
        return jsonify({"error": "No data provided"}), 400

    try:
        event = EventService.create_event(data, g.current_user)
    except MissingFieldsError as e:
        return jsonify({"error": str(e), "missing_fields": e.fields}), 400
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except UnauthorizedError as e:
        return jsonify({"error": str(e)}), 403

    return jsonify(event.to_dict()), 201


@event_bp.route("/events/<int:event_id>", methods=["GET", "OPTIONS"])
@cross_origin(supports_credentials=True)
def get_event(event_id):
    if request.method == "OPTIONS":
        return "", 204

    try:
        event = EventService.get_event(event_id)
    except NotFoundError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify(event.to_dict()), 200


@event_bp.route("/events/<int:event_id>", methods=["DELETE", "OPTIONS"])
@cross_origin(supports_credentials=True)
@manager_required
def delete_event(event_id):
    try:
        EventService.delete_event(event_id, g.current_user)
    except NotFoundError as e:
        return jsonify(e.to_dict()), e.status_code
    except UnauthorizedError as e:
        return jsonify({"error": str(e)}), 403

    return jsonify({"message": "Event deleted successfully"}), 200


@event_bp.route("/events/<int:event_id>/register", methods=["POST", "OPTIONS"])
@cross_origin(supports_credentials=True)
@login_required
def register_for_event(event_id):
    user = g.current_user
    try:
        registration = RegistrationService.register(event_id, user.id)
    except RegistrationError as e:
        current_app.logger.warning(
            f"User {user.id} could not register for event {event_id}: {e}"
        )
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(
            f"Failed to register user {user.id} for event {event_id}: {str(e)}",
            exc_info=True,
        )
        return jsonify({"error": "Registration failed. Please try again."}), 500

    return jsonify(
        {
            "message": "Successfully registered for event",
            "registration": registration.to_roster_entry(),
        }
    ), 200


@event_bp.route("/events/<int:event_id>/unregister", methods=["POST", "OPTIONS"])
@cross_origin(supports_credentials=True)
@login_required
def unregister_from_event(event_id):
    user = g.current_user
    try:
        RegistrationService.unregister(event_id, user.id)
    except RegistrationError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(
            f"Failed to unregister user {user.id} from event {event_id}: {str(e)}",
            exc_info=True,
        )
        return jsonify({"error": "Failed to cancel registration"}), 500

    return jsonify({"message": "Successfully unregistered from event"}), 200


@event_bp.route("/events/<int:event_id>/attendance", methods=["POST", "OPTIONS"])
@cross_origin(supports_credentials=True)
@manager_required
def mark_attendance(event_id):
    try:
        _managed_event(event_id)
        registration = RegistrationService.mark_attendance(event_id, _target_user_id())
    except RegistrationError as e:
        return jsonify(e.to_dict()), e.status_code
    except MissingFieldsError as e:
        return jsonify({"error": "User ID required", "missing_fields": e.fields}), 400
    except UnauthorizedError as e:
        return jsonify({"error": str(e)}), 403
    except ValueError:
        return jsonify({"error": "Invalid user ID"}), 400

    return jsonify(
        {
            "message": "Attendance marked successfully",
            "participant": registration.to_roster_entry(),
        }
    ), 200


@event_bp.route("/events/<int:event_id>/complete", methods=["POST", "OPTIONS"])
@cross_origin(supports_credentials=True)
@manager_required
def complete_participation(event_id):
    data = request.get_json() or {}
    try:
        _managed_event(event_id)
        quiz_score = data.get("quiz_score")
        registration = RegistrationService.complete_participation(
            event_id,
            _target_user_id(),
            float(quiz_score) if quiz_score is not None else None,
        )
    except RegistrationError as e:
        return jsonify(e.to_dict()), e.status_code
    except MissingFieldsError as e:
        return jsonify({"error": "User ID required", "missing_fields": e.fields}), 400
    except UnauthorizedError as e:
        return jsonify({"error": str(e)}), 403
    except (TypeError, ValueError):
        return jsonify({"error": "Invalid user ID or quiz score"}), 400

    return jsonify({"participant": registration.to_roster_entry()}), 200


@event_bp.route("/events/<int:event_id>/certificate", methods=["POST", "OPTIONS"])
@cross_origin(supports_credentials=True)
@manager_required
def issue_certificate(event_id):
    try:
        _managed_event(event_id)
        registration = RegistrationService.issue_certificate(event_id, _target_user_id())
    except RegistrationError as e:
        return jsonify(e.to_dict()), e.status_code
    except MissingFieldsError as e:
        return jsonify({"error": "User ID required", "missing_fields": e.fields}), 400
    except UnauthorizedError as e:
        return jsonify({"error": str(e)}), 403
    except ValueError:
        return jsonify({"error": "Invalid user ID"}), 400

    return jsonify({"participant": registration.to_roster_entry()}), 200


@event_bp.route("/events/<int:event_id>/participants", methods=["GET", "OPTIONS"])
@cross_origin(supports_credentials=True)
@manager_required
def get_participants(event_id):
    include_cancelled = request.args.get("include_cancelled", "false").lower() in ["true", "1"]
    try:
        event = _managed_event(event_id)
        participants = RegistrationService.get_roster(event_id, include_cancelled)
    except RegistrationError as e:
        return jsonify(e.to_dict()), e.status_code
    except UnauthorizedError as e:
        return jsonify({"error": str(e)}), 403

    return jsonify(
        {
            "participants": participants,
            "current_participants": event.current_participants,
            "max_participants": event.max_participants,
        }
    ), 200
