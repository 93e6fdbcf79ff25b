from app.models import User
from app.models.enums import UserRole
from werkzeug.security import generate_password_hash, check_password_hash
from flask_jwt_extended import create_access_token
from app.repositories import UserRepository
from datetime import timedelta
import logging

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def _issue_token(user: User) -> str:
    return create_access_token(
        identity=str(user.id),
        additional_claims={"role": user.role.value},
        expires_delta=timedelta(days=1),
    )


class UserService:
    @staticmethod
    def sign_up(user_data):
        # Check if user exists
        email = user_data["email"].strip().lower()
        existing_user = UserRepository.find_by_email(email)
        if existing_user:
            logger.warning(f"Signup attempt with existing email: {email}")
            raise ValueError("User already exists")

        if len(user_data["password"]) < 6:
            raise ValueError("Password must be at least 6 characters")

        # Self sign-up always creates participants; admins promote accounts later
        user = User(
            email=email,
            password=generate_password_hash(user_data["password"]),
            full_name=user_data["full_name"].strip(),
            role=UserRole.PARTICIPANT,
            department=user_data.get("department"),
        )

        created_user = UserRepository.sign_up(user)
        logger.info(f"User created successfully: {created_user.email}")

        return {"token": _issue_token(created_user), "user": created_user.to_dict()}

    @staticmethod
    def sign_in(email, password):
        user = UserRepository.find_by_email(email)
        if not user:
            logger.warning(f"Login attempt with non-existent email: {email}")
            raise ValueError("Invalid email or password")

        if not check_password_hash(user.password, password):
            logger.warning(f"Failed login attempt for user: {email}")
            raise ValueError("Invalid email or password")

        if not user.is_active:
            logger.warning(f"Login attempt for deactivated user: {email}")
            raise ValueError("Account is deactivated")

        logger.info(f"User logged in successfully: {email}")

        return {"token": _issue_token(user), "user": user.to_dict()}

    @staticmethod
    def update_role(user_id: int, role_value: str):
        try:
            role = UserRole(role_value)
        except ValueError:
            raise ValueError(f"Invalid role: {role_value}")

        user = UserRepository.find_by_id(user_id)
        if not user:
            return None
        UserRepository.update_role(user, role)
        logger.info(f"User {user_id} role changed to {role.value}")
        return user
