from flask import Blueprint, current_app, g, jsonify, request
from app.models.enums import UserRole
from app.extensions import db
from app.services import EventStatusService, UserService
from app.utils.auth import login_required, roles_required

admin_bp = Blueprint("admin", __name__)

admin_required = roles_required(UserRole.ADMIN)


@admin_bp.route("/admin/check", methods=["GET"])
@login_required
def check_admin():
    """Check if current user is an admin"""
    if g.current_user.role != UserRole.ADMIN:
        return jsonify({"is_admin": False}), 403

    return jsonify({"is_admin": True})


@admin_bp.route("/admin/users/<int:user_id>/role", methods=["PUT"])
@admin_required
def update_user_role(user_id):
    """Update a user's role (admin only)"""
    data = request.get_json() or {}
    new_role = data.get("role")

    if new_role is None:
        return jsonify({"error": "Role is required"}), 400

    try:
        user = UserService.update_role(user_id, new_role)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        db.session.rollback()
        return jsonify({"error": f"Failed to update user role: {str(e)}"}), 500

    if not user:
        return jsonify({"error": "User not found"}), 404

    return jsonify({"message": "User role updated successfully", "user": user.to_dict()})


@admin_bp.route("/admin/events/reconcile-status", methods=["POST"])
@admin_required
def reconcile_event_status():
    """Persist the derived phase of every event whose stored status is stale (admin only)"""
    try:
        updated = EventStatusService.reconcile()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Status reconciliation failed: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to reconcile event statuses"}), 500

    return jsonify({"updated": updated})
