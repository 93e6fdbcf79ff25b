from functools import wraps

from flask import g, jsonify, request
from flask_jwt_extended import get_jwt_identity, jwt_required

from app.repositories import UserRepository


def get_current_user():
    identity = get_jwt_identity()
    if identity is None:
        return None
    user = UserRepository.find_by_id(int(identity))
    if not user or not user.is_active:
        return None
    return user


def roles_required(*roles):
    """
    Require a valid JWT and, when ``roles`` are given, one of those roles.

    The authenticated user is available as ``g.current_user`` inside the view.
    """

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            if request.method == "OPTIONS":
                return "", 204

            user = get_current_user()
            if not user:
                return jsonify({"error": "User not found"}), 401
            if roles and user.role not in roles:
                return jsonify({"error": "Insufficient permissions"}), 403

            g.current_user = user
            return fn(*args, **kwargs)

        return jwt_required()(wrapper)

    return decorator


login_required = roles_required()
