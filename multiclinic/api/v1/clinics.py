from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from ...core.database import get_db
from ...core.timezone import get_zone
from ...api.deps import get_clinic_admin, get_current_user, get_system_admin
from ...models.user import User
from ...schemas.appointment import AppointmentResponse
from ...schemas.auth import UserResponse
from ...schemas.clinic import (
    AddDoctor, AddReceptionist, ClinicCreatedResponse, ClinicDetail,
    ClinicDoctorResponse, ClinicSummary, CreateClinic, StaffCreatedResponse, StaffMember
)
from ...services.appointment_service import serialize_appointment
from ...services.clinic_service import ClinicService
from ...services.email_service import EmailService, get_email_service

router = APIRouter(prefix="/clinics", tags=["Clinics"])


@router.post("", response_model=ClinicCreatedResponse, status_code=201)
async def create_clinic(
    dto: CreateClinic,
    current_user: User = Depends(get_system_admin),
    db: Session = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
):
    """Create a clinic and invite its admin by email."""
    return ClinicService(db, email_service).create(dto)


@router.get("", response_model=List[ClinicSummary])
async def list_clinics(db: Session = Depends(get_db)):
    """Active clinics, open to everyone."""
    return ClinicService(db).find_all()


@router.get("/my-clinic", response_model=ClinicDetail)
async def get_my_clinic(
    current_user: User = Depends(get_clinic_admin),
    db: Session = Depends(get_db),
):
    return ClinicService(db).get_my_clinic(current_user.id)


@router.post("/{clinic_id}/receptionist", response_model=StaffCreatedResponse, status_code=201)
async def add_receptionist(
    clinic_id: int,
    dto: AddReceptionist,
    current_user: User = Depends(get_clinic_admin),
    db: Session = Depends(get_db),
):
    """Create a receptionist account and assign it to the clinic you manage."""
    receptionist = ClinicService(db).add_receptionist(clinic_id, dto, current_user.id)
    return StaffCreatedResponse(
        message="Receptionist added successfully",
        user=UserResponse.model_validate(receptionist),
    )


@router.post("/{clinic_id}/doctor", response_model=StaffCreatedResponse, status_code=201)
async def add_doctor(
    clinic_id: int,
    dto: AddDoctor,
    current_user: User = Depends(get_clinic_admin),
    db: Session = Depends(get_db),
):
    """Create a doctor account with specialities and weekly schedule."""
    doctor = ClinicService(db).add_doctor(clinic_id, dto, current_user.id)
    return StaffCreatedResponse(
        message="Doctor added successfully",
        user=UserResponse.model_validate(doctor),
    )


@router.get("/{clinic_id}/doctors", response_model=List[ClinicDoctorResponse])
async def get_clinic_doctors(
    clinic_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return ClinicService(db).get_clinic_doctors(clinic_id)


@router.get("/{clinic_id}/patients", response_model=List[StaffMember])
async def get_clinic_patients(
    clinic_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Patients who have booked at least once at this clinic."""
    return ClinicService(db).get_clinic_patients(clinic_id)


@router.get("/{clinic_id}/appointments", response_model=List[AppointmentResponse])
async def get_clinic_appointments(
    clinic_id: int,
    timezone: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    get_zone(timezone)
    appointments = ClinicService(db).get_clinic_appointments(clinic_id)
    return [serialize_appointment(a, timezone) for a in appointments]


@router.get("/{clinic_id}/receptionists", response_model=List[StaffMember])
async def get_clinic_receptionists(
    clinic_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return ClinicService(db).get_clinic_receptionists(clinic_id)
