from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...api.deps import get_current_user, get_current_user_token, rate_limit_check
from ...services.auth_service import AuthService
from ...services.email_service import EmailService, get_email_service
from ...schemas.auth import (
    UserLogin, UserRegister, TokenResponse, UserResponse, RegisterResponse,
    VerifyEmail, ResendVerification, ChangePassword, MessageResponse
)
from ...models.user import User

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", response_model=RegisterResponse, status_code=201)
async def register(
    user_data: UserRegister,
    db: Session = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
    _: None = Depends(rate_limit_check)
):
    """Register a new user. The account stays unverified until the emailed link is used."""
    auth_service = AuthService(db, email_service)
    user = auth_service.register_user(user_data)

    return RegisterResponse(
        message="User registered successfully. Please check your email to verify your account.",
        user=UserResponse.model_validate(user),
    )


@router.post("/login", response_model=TokenResponse)
async def login(
    login_data: UserLogin,
    db: Session = Depends(get_db),
):
    """Authenticate user and return an access token."""
    auth_service = AuthService(db)
    return auth_service.authenticate_user(login_data)


@router.post("/verify-email", response_model=MessageResponse)
async def verify_email(
    verify_data: VerifyEmail,
    db: Session = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
):
    """Verify an email address with the token from the verification email."""
    auth_service = AuthService(db, email_service)
    auth_service.verify_email(verify_data.token)

    return MessageResponse(message="Email verified successfully! You can now log in.")


@router.post("/resend-verification", response_model=MessageResponse)
async def resend_verification(
    resend_data: ResendVerification,
    db: Session = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
    _: None = Depends(rate_limit_check)
):
    """Issue a fresh verification token and email it."""
    auth_service = AuthService(db, email_service)
    auth_service.resend_verification_email(resend_data.email)

    return MessageResponse(
        message="Verification email sent successfully. Please check your inbox."
    )


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    current_user: User = Depends(get_current_user)
):
    """Get current user information."""
    return UserResponse.model_validate(current_user)


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    password_data: ChangePassword,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Change user password."""
    AuthService(db).change_password(current_user, password_data)

    return MessageResponse(message="Password changed successfully")


@router.post("/verify-token")
async def verify_token_endpoint(
    token_payload = Depends(get_current_user_token)
):
    """Verify if token is valid."""
    return {
        "valid": True,
        "user_id": token_payload.sub,
        "role": token_payload.role,
        "expires": token_payload.exp
    }
