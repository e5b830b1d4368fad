from sqlalchemy.orm import Session
from datetime import datetime, timedelta
from typing import Optional
import logging

from ..core.config import settings
from ..core.exceptions import ConflictError, InvalidRequestError, NotFoundError
from ..models.user import User
from ..core.security import (
    verify_password, get_password_hash, create_user_token,
    generate_verification_token, AuthenticationError
)
from ..schemas.auth import UserLogin, UserRegister, TokenResponse, UserResponse, ChangePassword
from .email_service import EmailService

logger = logging.getLogger(__name__)


class AuthService:
    def __init__(self, db: Session, email_service: Optional[EmailService] = None):
        self.db = db
        self.email_service = email_service or EmailService()

    def register_user(self, user_data: UserRegister) -> User:
        """Register a new user and send the verification email."""
        existing_user = self.db.query(User).filter(
            User.email == user_data.email
        ).first()

        if existing_user:
            raise ConflictError("Email already registered")

        verification_token, token_expiry = self._new_verification_token()

        new_user = User(
            name=user_data.name,
            email=user_data.email,
            phone=user_data.phone,
            password_hash=get_password_hash(user_data.password),
            role=user_data.role,
            is_active=True,
            email_verified=False,  # Require email verification
            verification_token=verification_token,
            token_expiry=token_expiry,
        )

        self.db.add(new_user)
        self.db.commit()
        self.db.refresh(new_user)

        # Registration succeeds even if the email cannot be delivered
        self.email_service.send_verification_email(
            new_user.email, verification_token, new_user.name
        )
        logger.info(f"Registered {new_user.role.value} account {new_user.email}")

        return new_user

    def authenticate_user(self, login_data: UserLogin) -> TokenResponse:
        """Authenticate user and return an access token."""
        user = self.db.query(User).filter(
            User.email == login_data.email
        ).first()

        if not user or not verify_password(login_data.password, user.password_hash):
            raise AuthenticationError("Invalid email or password")

        if not user.is_active:
            raise AuthenticationError("Account is deactivated")

        if not user.email_verified:
            raise AuthenticationError(
                "Please verify your email before logging in. "
                "Check your inbox for the verification link."
            )

        token = create_user_token(user.id, user.role)

        return TokenResponse(
            access_token=token.access_token,
            token_type=token.token_type,
            expires_in=token.expires_in,
            user=UserResponse.model_validate(user)
        )

    def verify_email(self, token: str) -> User:
        """Mark the account owning ``token`` as verified."""
        user = self.db.query(User).filter(
            User.verification_token == token
        ).first()

        if not user:
            raise InvalidRequestError("Invalid or expired verification token")

        if user.token_expiry and user.token_expiry < datetime.utcnow():
            raise InvalidRequestError(
                "Verification token has expired. Please request a new one."
            )

        user.email_verified = True
        user.is_active = True
        user.verification_token = None
        user.token_expiry = None
        self.db.commit()
        self.db.refresh(user)

        self.email_service.send_welcome_email(user.email, user.name)

        return user

    def resend_verification_email(self, email: str) -> bool:
        user = self.db.query(User).filter(User.email == email).first()

        if not user:
            raise NotFoundError("User not found")

        if user.email_verified:
            raise InvalidRequestError("Email is already verified")

        user.verification_token, user.token_expiry = self._new_verification_token()
        self.db.commit()

        return self.email_service.send_verification_email(
            user.email, user.verification_token, user.name
        )

    def change_password(self, user: User, password_data: ChangePassword):
        if not verify_password(password_data.current_password, user.password_hash):
            raise InvalidRequestError("Current password is incorrect")

        user.password_hash = get_password_hash(password_data.new_password)
        self.db.commit()

    def _new_verification_token(self):
        token = generate_verification_token()
        expiry = datetime.utcnow() + timedelta(hours=settings.VERIFICATION_TOKEN_EXPIRE_HOURS)
        return token, expiry
