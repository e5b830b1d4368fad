from sqlalchemy import func
from sqlalchemy.orm import Session
from typing import List
import logging

from ..core.exceptions import ConflictError, InvalidRequestError, NotFoundError
from ..core.security import UserRole, get_password_hash
from ..models.appointment import Appointment
from ..models.clinic import Clinic
from ..models.user import User
from ..schemas.clinic import CreateClinicWithAdmin
from .clinic_service import clinic_detail

logger = logging.getLogger(__name__)


class SuperAdminService:
    def __init__(self, db: Session):
        self.db = db

    def create_clinic_with_admin(self, dto: CreateClinicWithAdmin) -> dict:
        """Create a clinic together with an admin whose password the system admin chose."""
        if self.db.query(Clinic).filter(Clinic.code == dto.clinic_code).first():
            raise ConflictError("Clinic code already exists")

        if self.db.query(Clinic).filter(Clinic.email == dto.clinic_email).first():
            raise ConflictError("Clinic email already exists")

        if self.db.query(User).filter(User.email == dto.admin_email).first():
            raise ConflictError("Admin email already exists")

        admin = User(
            name=dto.admin_name,
            email=dto.admin_email,
            password_hash=get_password_hash(dto.admin_password),
            role=UserRole.CLINIC_ADMIN,
            is_active=True,
            email_verified=True,
        )
        self.db.add(admin)
        self.db.flush()

        clinic = Clinic(
            name=dto.clinic_name,
            code=dto.clinic_code,
            email=dto.clinic_email,
            phone=dto.clinic_phone,
            admin_id=admin.id,
        )
        self.db.add(clinic)
        self.db.commit()
        self.db.refresh(clinic)
        logger.info(f"System admin created clinic {clinic.code} with admin {admin.email}")

        return {
            "message": "Clinic + Admin created successfully",
            "clinic": clinic_detail(clinic),
        }

    def get_all_clinics(self) -> List[dict]:
        """Every clinic with its admin count and distinct patient count."""
        patient_counts = dict(
            self.db.query(
                Appointment.clinic_id, func.count(func.distinct(Appointment.patient_id))
            ).group_by(Appointment.clinic_id).all()
        )

        clinics = self.db.query(Clinic).order_by(Clinic.created_at.desc(), Clinic.id.desc()).all()

        return [
            {
                "id": c.id,
                "name": c.name,
                "code": c.code,
                "email": c.email,
                "phone": c.phone,
                "admins": 1 if c.admin_id else 0,
                "patients": patient_counts.get(c.id, 0),
            }
            for c in clinics
        ]

    def verify_user_email(self, user_id: int) -> User:
        user = self.db.query(User).filter(User.id == user_id).first()

        if not user:
            raise NotFoundError("User not found")

        if user.email_verified:
            raise InvalidRequestError("Email is already verified")

        user.email_verified = True
        user.verification_token = None
        user.token_expiry = None
        self.db.commit()
        self.db.refresh(user)
        logger.info(f"System admin verified {user.email}")
        return user
