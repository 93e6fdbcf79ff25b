from flask import Blueprint, current_app, g, jsonify, request
from app.extensions import db
from app.exceptions import RegistrationError, UnauthorizedError
from app.models.enums import RegistrationType, UserRole
from app.repositories import RegistrationRepository
from app.services.event_service import EventService, can_manage_event
from app.services.registration_service import RegistrationService
from app.utils.auth import login_required, roles_required

registration_bp = Blueprint("registration", __name__)

manager_required = roles_required(UserRole.FACULTY, UserRole.ADMIN)


@registration_bp.route("/registrations", methods=["POST"])
@login_required
def request_registration():
    data = request.get_json() or {}
    event_id = data.get("event_id")
    if event_id is None:
        return jsonify({"error": "Valid event ID is required"}), 400

    try:
        registration_type = RegistrationType(data.get("registration_type", "participant"))
    except ValueError:
        return jsonify({"error": "Invalid registration type"}), 400

    try:
        registration = RegistrationService.request_registration(
            int(event_id),
            g.current_user.id,
            registration_type,
            notes=data.get("notes"),
        )
    except RegistrationError as e:
        return jsonify(e.to_dict()), e.status_code
    except ValueError:
        return jsonify({"error": "Valid event ID is required"}), 400
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Registration request error: {str(e)}", exc_info=True)
        return jsonify({"error": "Server error during registration"}), 500

    return jsonify(
        {"message": "Registration successful", "registration": registration.to_dict()}
    ), 201


@registration_bp.route("/registrations/my", methods=["GET"])
@login_required
def get_my_registrations():
    registrations = RegistrationService.get_user_registrations(g.current_user.id)
    return jsonify({"registrations": registrations}), 200


@registration_bp.route("/registrations/event/<int:event_id>", methods=["GET"])
@manager_required
def get_event_registrations(event_id):
    try:
        event = EventService.get_event(event_id)
        if not can_manage_event(g.current_user, event):
            raise UnauthorizedError("Not authorized to view this event's registrations")

        page = int(request.args.get("page", 1))
        limit = min(int(request.args.get("limit", 20)), 100)
        pagination = RegistrationService.get_event_registrations(
            event_id, request.args.get("status"), page=page, limit=limit
        )
    except RegistrationError as e:
        return jsonify(e.to_dict()), e.status_code
    except UnauthorizedError as e:
        return jsonify({"error": str(e)}), 403
    except ValueError:
        return jsonify({"error": "Invalid pagination parameters"}), 400

    return jsonify(
        {
            "registrations": [registration.to_dict() for registration in pagination.items],
            "pagination": {
                "current_page": pagination.page,
                "total_pages": pagination.pages,
                "total_registrations": pagination.total,
                "has_next": pagination.has_next,
                "has_prev": pagination.has_prev,
            },
        }
    ), 200


@registration_bp.route("/registrations/<int:registration_id>/status", methods=["PUT"])
@manager_required
def update_registration_status(registration_id):
    data = request.get_json() or {}
    if "status" not in data:
        return jsonify({"error": "Status is required"}), 400

    try:
        registration = RegistrationRepository.get_registration(registration_id)
        if registration and not can_manage_event(g.current_user, registration.event):
            raise UnauthorizedError("Not authorized to update this registration")

        registration = RegistrationService.update_registration_status(
            registration_id, data["status"], data.get("notes")
        )
    except RegistrationError as e:
        return jsonify(e.to_dict()), e.status_code
    except UnauthorizedError as e:
        return jsonify({"error": str(e)}), 403
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(
            f"Update registration status error: {str(e)}", exc_info=True
        )
        return jsonify({"error": "Server error updating registration status"}), 500

    return jsonify(
        {
            "message": "Registration status updated successfully",
            "registration": registration.to_dict(),
        }
    ), 200


@registration_bp.route("/registrations/<int:registration_id>", methods=["DELETE"])
@login_required
def cancel_registration(registration_id):
    try:
        RegistrationService.cancel_registration(registration_id, g.current_user.id)
    except RegistrationError as e:
        return jsonify(e.to_dict()), e.status_code
    except UnauthorizedError as e:
        return jsonify({"error": str(e)}), 403
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(
            f"Cancel registration {registration_id} error: {str(e)}", exc_info=True
        )
        return jsonify({"error": "Failed to cancel registration"}), 500

    return jsonify({"message": "Registration cancelled successfully"}), 200
