from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from ...core.database import get_db
from ...core.exceptions import PermissionDeniedError
from ...core.security import UserRole
from ...core.timezone import get_zone
from ...api.deps import get_current_user, get_doctor_user, get_patient_user, require_role
from ...models.appointment import AppointmentStatus
from ...models.user import User
from ...schemas.appointment import AppointmentCreate, AppointmentUpdate, AppointmentResponse
from ...services.appointment_service import AppointmentService, serialize_appointment

router = APIRouter(prefix="/appointments", tags=["Appointments"])

# Roles that may look at any doctor's or patient's agenda
OVERSIGHT_ROLES = (UserRole.SYSTEM_ADMIN, UserRole.CLINIC_ADMIN, UserRole.RECEPTIONIST)


@router.post("", response_model=AppointmentResponse, status_code=201)
async def create_appointment(
    dto: AppointmentCreate,
    current_user: User = Depends(get_patient_user),
    db: Session = Depends(get_db),
):
    """Request an appointment. It starts out PENDING until the clinic accepts it."""
    appointment = AppointmentService(db).create_appointment(dto, current_user)
    return serialize_appointment(appointment, dto.timezone)


@router.patch("/{appointment_id}", response_model=AppointmentResponse)
async def update_appointment(
    appointment_id: int,
    dto: AppointmentUpdate,
    current_user: User = Depends(get_patient_user),
    db: Session = Depends(get_db),
):
    """Move or annotate one of your own pending or scheduled appointments."""
    get_zone(dto.timezone)
    appointment = AppointmentService(db).update_patient_appointment(appointment_id, dto, current_user)
    return serialize_appointment(appointment, dto.timezone)


@router.patch("/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel_appointment(
    appointment_id: int,
    timezone: Optional[str] = Query(None),
    current_user: User = Depends(get_patient_user),
    db: Session = Depends(get_db),
):
    """Cancel one of your own pending or scheduled appointments."""
    get_zone(timezone)
    appointment = AppointmentService(db).cancel_patient_appointment(appointment_id, current_user)
    return serialize_appointment(appointment, timezone)


@router.patch("/{appointment_id}/complete", response_model=AppointmentResponse)
async def complete_appointment(
    appointment_id: int,
    timezone: Optional[str] = Query(None),
    current_user: User = Depends(get_doctor_user),
    db: Session = Depends(get_db),
):
    """Mark one of your scheduled appointments as completed (doctors)."""
    get_zone(timezone)
    appointment = AppointmentService(db).complete_doctor_appointment(appointment_id, current_user)
    return serialize_appointment(appointment, timezone)


@router.get("/doctor/{doctor_id}", response_model=List[AppointmentResponse])
async def get_doctor_appointments(
    doctor_id: int,
    timezone: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Scheduled and completed appointments of a doctor."""
    get_zone(timezone)
    if current_user.role not in OVERSIGHT_ROLES and current_user.id != doctor_id:
        raise PermissionDeniedError("You can only view your own appointments")

    appointments = AppointmentService(db).get_doctor_appointments(doctor_id)
    return [serialize_appointment(a, timezone) for a in appointments]


@router.get("/patient/{patient_id}", response_model=List[AppointmentResponse])
async def get_patient_appointments(
    patient_id: int,
    timezone: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """All appointments of a patient."""
    get_zone(timezone)
    if current_user.role not in OVERSIGHT_ROLES and current_user.id != patient_id:
        raise PermissionDeniedError("You can only view your own appointments")

    appointments = AppointmentService(db).get_patient_appointments(patient_id)
    return [serialize_appointment(a, timezone) for a in appointments]


@router.get("", response_model=List[AppointmentResponse])
async def get_all_appointments(
    status: Optional[AppointmentStatus] = Query(None),
    clinic_id: Optional[int] = Query(None),
    timezone: Optional[str] = Query(None),
    current_user: User = Depends(require_role(list(OVERSIGHT_ROLES))),
    db: Session = Depends(get_db),
):
    """Every appointment, optionally filtered by status and clinic."""
    get_zone(timezone)
    appointments = AppointmentService(db).get_all_appointments(status=status, clinic_id=clinic_id)
    return [serialize_appointment(a, timezone) for a in appointments]
