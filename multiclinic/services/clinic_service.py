from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload
from typing import List, Optional
import logging

from ..core.exceptions import ConflictError, InvalidRequestError, NotFoundError, PermissionDeniedError
from ..core.security import UserRole, get_password_hash, generate_temporary_password
from ..models.appointment import Appointment
from ..models.clinic import (
    Clinic, ClinicDoctor, ClinicDoctorSpeciality, ClinicReceptionist, Speciality
)
from ..models.user import StaffSchedule, User
from ..schemas.clinic import AddDoctor, AddReceptionist, CreateClinic, SpecialityCreate
from .email_service import EmailService

logger = logging.getLogger(__name__)


def staff_member(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "phone": user.phone,
        "is_active": user.is_active,
    }


def clinic_detail(clinic: Clinic) -> dict:
    return {
        "id": clinic.id,
        "name": clinic.name,
        "code": clinic.code,
        "email": clinic.email,
        "phone": clinic.phone,
        "is_active": clinic.is_active,
        "created_at": clinic.created_at,
        "admin": staff_member(clinic.admin) if clinic.admin else None,
        "doctors": [staff_member(cd.doctor) for cd in clinic.doctors],
        "receptionists": [staff_member(cr.receptionist) for cr in clinic.receptionists],
    }


class ClinicService:
    def __init__(self, db: Session, email_service: Optional[EmailService] = None):
        self.db = db
        self.email_service = email_service or EmailService()

    # -----------------------------------
    # Clinics
    # -----------------------------------
    def create(self, dto: CreateClinic) -> dict:
        """Create a clinic and its admin account, then invite the admin by email."""
        if self.db.query(Clinic).filter(Clinic.code == dto.code).first():
            raise ConflictError("Clinic code already exists")

        if self.db.query(Clinic).filter(Clinic.email == dto.email).first():
            raise ConflictError("Clinic email already exists")

        if self.db.query(User).filter(User.email == dto.admin_email).first():
            raise ConflictError("Admin email already exists")

        temporary_password = generate_temporary_password()

        admin = User(
            name=dto.admin_name,
            email=dto.admin_email,
            phone=dto.admin_phone,
            password_hash=get_password_hash(temporary_password),
            role=UserRole.CLINIC_ADMIN,
            is_active=True,
            email_verified=True,  # Invited admins are pre-verified
        )
        self.db.add(admin)
        self.db.flush()

        clinic = Clinic(
            name=dto.name,
            code=dto.code,
            email=dto.email,
            phone=dto.phone or "",
            is_active=dto.is_active,
            admin_id=admin.id,
        )
        self.db.add(clinic)
        self.db.commit()
        self.db.refresh(clinic)
        logger.info(f"Created clinic {clinic.code} with admin {admin.email}")

        # Clinic creation stands even if the invitation cannot be delivered
        self.email_service.send_clinic_admin_invitation(
            admin.email, admin.name, clinic.name, temporary_password
        )

        return {
            "message": "Clinic created successfully. Invitation email sent to clinic admin.",
            "clinic": clinic_detail(clinic),
            # Returned so the system admin can pass it on if the email never arrives
            "temporary_password": temporary_password,
        }

    def find_all(self) -> List[Clinic]:
        return self.db.query(Clinic).filter(
            Clinic.is_active == True  # noqa: E712
        ).order_by(Clinic.name.asc()).all()

    def get_clinic(self, clinic_id: int) -> Clinic:
        clinic = self.db.query(Clinic).filter(Clinic.id == clinic_id).first()
        if not clinic:
            raise NotFoundError("Clinic not found")
        return clinic

    def get_my_clinic(self, admin_id: int) -> dict:
        clinic = self.db.query(Clinic).options(
            selectinload(Clinic.doctors).selectinload(ClinicDoctor.doctor),
            selectinload(Clinic.receptionists).selectinload(ClinicReceptionist.receptionist),
        ).filter(Clinic.admin_id == admin_id).first()

        if not clinic:
            raise NotFoundError("No clinic found for this admin")
        return clinic_detail(clinic)

    # -----------------------------------
    # Staff
    # -----------------------------------
    def add_receptionist(self, clinic_id: int, dto: AddReceptionist, admin_id: int) -> User:
        clinic = self._get_managed_clinic(clinic_id, admin_id)
        receptionist = self._create_staff_user(dto, UserRole.RECEPTIONIST)

        self.db.add(ClinicReceptionist(clinic_id=clinic.id, receptionist_id=receptionist.id))
        self.db.commit()
        self.db.refresh(receptionist)
        logger.info(f"Added receptionist {receptionist.email} to clinic {clinic.code}")
        return receptionist

    def add_doctor(self, clinic_id: int, dto: AddDoctor, admin_id: int) -> User:
        clinic = self._get_managed_clinic(clinic_id, admin_id)

        specialities = []
        if dto.speciality_ids:
            specialities = self.db.query(Speciality).filter(
                Speciality.id.in_(dto.speciality_ids)
            ).all()
            missing = set(dto.speciality_ids) - {s.id for s in specialities}
            if missing:
                raise InvalidRequestError(f"Unknown speciality ids: {sorted(missing)}")

        doctor = self._create_staff_user(dto, UserRole.DOCTOR)

        clinic_doctor = ClinicDoctor(clinic_id=clinic.id, doctor_id=doctor.id)
        self.db.add(clinic_doctor)
        self.db.flush()

        for speciality in specialities:
            self.db.add(ClinicDoctorSpeciality(
                clinic_doctor_id=clinic_doctor.id, speciality_id=speciality.id
            ))

        for entry in dto.schedule:
            self.db.add(StaffSchedule(
                user_id=doctor.id,
                day_of_week=entry.day_of_week,
                start_time=entry.start_time,
                end_time=entry.end_time,
            ))

        self.db.commit()
        self.db.refresh(doctor)
        logger.info(f"Added doctor {doctor.email} to clinic {clinic.code}")
        return doctor

    def _get_managed_clinic(self, clinic_id: int, admin_id: int) -> Clinic:
        clinic = self.get_clinic(clinic_id)
        if clinic.admin_id != admin_id:
            raise PermissionDeniedError("Only the clinic admin can manage staff for this clinic")
        return clinic

    def _create_staff_user(self, dto, role: UserRole) -> User:
        if self.db.query(User).filter(User.email == dto.email).first():
            raise ConflictError("User with this email already exists")

        user = User(
            name=dto.name,
            email=dto.email,
            phone=dto.phone,
            password_hash=get_password_hash(dto.password),
            role=role,
            is_active=True,
            email_verified=True,  # Staff created by a clinic admin skip verification
        )
        self.db.add(user)
        self.db.flush()
        return user

    # -----------------------------------
    # Clinic listings
    # -----------------------------------
    def get_clinic_doctors(self, clinic_id: int) -> List[dict]:
        self.get_clinic(clinic_id)

        clinic_doctors = self.db.query(ClinicDoctor).options(
            selectinload(ClinicDoctor.doctor),
            selectinload(ClinicDoctor.specialities).selectinload(ClinicDoctorSpeciality.speciality),
        ).filter(ClinicDoctor.clinic_id == clinic_id).order_by(ClinicDoctor.id.asc()).all()

        return [
            {
                **staff_member(cd.doctor),
                "specialities": [
                    {"id": s.speciality.id, "name": s.speciality.name} for s in cd.specialities
                ],
            }
            for cd in clinic_doctors
        ]

    def get_clinic_patients(self, clinic_id: int) -> List[User]:
        """Distinct patients with at least one appointment at the clinic."""
        self.get_clinic(clinic_id)

        patient_ids = select(Appointment.patient_id).where(
            Appointment.clinic_id == clinic_id
        ).distinct()

        return self.db.query(User).filter(User.id.in_(patient_ids)).order_by(User.name.asc()).all()

    def get_clinic_appointments(self, clinic_id: int) -> List[Appointment]:
        self.get_clinic(clinic_id)

        return self.db.query(Appointment).filter(
            Appointment.clinic_id == clinic_id
        ).order_by(Appointment.start_time.desc()).all()

    def get_clinic_receptionists(self, clinic_id: int) -> List[dict]:
        self.get_clinic(clinic_id)

        clinic_receptionists = self.db.query(ClinicReceptionist).options(
            selectinload(ClinicReceptionist.receptionist)
        ).filter(ClinicReceptionist.clinic_id == clinic_id).order_by(ClinicReceptionist.id.asc()).all()

        return [staff_member(cr.receptionist) for cr in clinic_receptionists]

    # -----------------------------------
    # Specialities
    # -----------------------------------
    def list_specialities(self) -> List[Speciality]:
        return self.db.query(Speciality).order_by(Speciality.name.asc()).all()

    def create_speciality(self, dto: SpecialityCreate) -> Speciality:
        if self.db.query(Speciality).filter(Speciality.name == dto.name).first():
            raise ConflictError("Speciality already exists")

        speciality = Speciality(name=dto.name)
        self.db.add(speciality)
        self.db.commit()
        self.db.refresh(speciality)
        return speciality
