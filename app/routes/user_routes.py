from flask import Blueprint, current_app, g, request, jsonify, make_response
from app.services import UserService
from app.utils.auth import login_required

user_bp = Blueprint("user", __name__)


@user_bp.route("/signup", methods=["POST"])
def sign_up():
    try:
        user_data = request.get_json()
        if not user_data:
            return jsonify({"error": "No data provided"}), 400

        required_fields = ["email", "password", "full_name"]
        missing_fields = [field for field in required_fields if field not in user_data]

        if missing_fields:
            return (
                jsonify(
                    {
                        "error": "Missing required fields",
                        "missing_fields": missing_fields,
                    }
                ),
                400,
            )

        result = UserService.sign_up(user_data)
        return make_response(jsonify(result), 201)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        current_app.logger.error(f"Signup error: {str(e)}", exc_info=True)
        return jsonify({"error": "An unexpected error occurred"}), 500


@user_bp.route("/signin", methods=["POST", "OPTIONS"])
def sign_in():
    if request.method == "OPTIONS":
        response = make_response()
        response.headers["Access-Control-Allow-Methods"] = "POST, OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type"
        return response

    try:
        user_data = request.get_json()
        if not user_data:
            return jsonify({"error": "No data provided"}), 400

        required_fields = ["email", "password"]
        missing_fields = [field for field in required_fields if field not in user_data]

        if missing_fields:
            return (
                jsonify(
                    {
                        "error": "Missing required fields",
                        "missing_fields": missing_fields,
                    }
                ),
                400,
            )

        result = UserService.sign_in(user_data["email"], user_data["password"])
        return make_response(jsonify(result), 200)
    except ValueError as e:
        return jsonify({"error": str(e)}), 401
    except Exception as e:
        current_app.logger.error(f"Login error: {str(e)}", exc_info=True)
        return jsonify({"error": "An unexpected error occurred"}), 500


@user_bp.route("/me", methods=["GET"])
@login_required
def get_me():
    return jsonify({"user": g.current_user.to_dict()}), 200
