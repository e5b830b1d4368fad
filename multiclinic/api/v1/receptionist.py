from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from ...core.database import get_db
from ...core.timezone import get_zone
from ...api.deps import get_receptionist_user
from ...models.user import User
from ...schemas.appointment import (
    AppointmentResponse, AppointmentUpdate, ReceptionistAppointmentCreate
)
from ...schemas.billing import BillCreate, BillResponse, RecordPayment
from ...schemas.clinic import ClinicSummary, ScheduleResponse, StaffMember
from ...services.appointment_service import serialize_appointment
from ...services.receptionist_service import ReceptionistService

router = APIRouter(prefix="/receptionist", tags=["Receptionist"])


def get_receptionist_service(
    current_user: User = Depends(get_receptionist_user),
    db: Session = Depends(get_db),
) -> ReceptionistService:
    return ReceptionistService(db, current_user)


@router.get("/clinics", response_model=List[ClinicSummary])
async def get_clinics(service: ReceptionistService = Depends(get_receptionist_service)):
    return service.get_clinics()


@router.get("/my-clinic", response_model=ClinicSummary)
async def get_my_clinic(service: ReceptionistService = Depends(get_receptionist_service)):
    return service.get_my_clinic()


@router.get("/clinics/{clinic_id}/doctors", response_model=List[StaffMember])
@router.get("/clinic-doctors/{clinic_id}", response_model=List[StaffMember])
async def get_clinic_doctors(
    clinic_id: int,
    service: ReceptionistService = Depends(get_receptionist_service),
):
    return service.get_clinic_doctors(clinic_id)


@router.get("/doctors/{doctor_id}/availability", response_model=List[ScheduleResponse])
async def get_doctor_availability(
    doctor_id: int,
    service: ReceptionistService = Depends(get_receptionist_service),
):
    """Weekly working hours of a doctor in your clinic."""
    return service.get_doctor_availability(doctor_id)


@router.get("/patients", response_model=List[StaffMember])
async def list_patients(service: ReceptionistService = Depends(get_receptionist_service)):
    return service.list_patients()


@router.post("/appointments", response_model=AppointmentResponse, status_code=201)
async def create_appointment(
    dto: ReceptionistAppointmentCreate,
    service: ReceptionistService = Depends(get_receptionist_service),
):
    """Book an appointment for a patient at your clinic."""
    appointment = service.create_appointment(dto)
    return serialize_appointment(appointment, dto.timezone)


@router.get("/appointments/pending", response_model=List[AppointmentResponse])
async def list_pending_appointments(
    timezone: Optional[str] = Query(None),
    service: ReceptionistService = Depends(get_receptionist_service),
):
    get_zone(timezone)
    return [serialize_appointment(a, timezone) for a in service.list_pending_appointments()]


@router.patch("/appointments/{appointment_id}/accept", response_model=AppointmentResponse)
async def accept_appointment(
    appointment_id: int,
    timezone: Optional[str] = Query(None),
    service: ReceptionistService = Depends(get_receptionist_service),
):
    get_zone(timezone)
    return serialize_appointment(service.accept_appointment(appointment_id), timezone)


@router.patch("/appointments/{appointment_id}/complete", response_model=AppointmentResponse)
async def complete_appointment(
    appointment_id: int,
    timezone: Optional[str] = Query(None),
    service: ReceptionistService = Depends(get_receptionist_service),
):
    get_zone(timezone)
    return serialize_appointment(service.complete_appointment(appointment_id), timezone)


@router.patch("/appointments/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel_appointment(
    appointment_id: int,
    timezone: Optional[str] = Query(None),
    service: ReceptionistService = Depends(get_receptionist_service),
):
    get_zone(timezone)
    return serialize_appointment(service.cancel_appointment(appointment_id), timezone)


@router.patch("/appointments/{appointment_id}", response_model=AppointmentResponse)
async def update_appointment(
    appointment_id: int,
    dto: AppointmentUpdate,
    service: ReceptionistService = Depends(get_receptionist_service),
):
    """Move or annotate an appointment of your clinic."""
    appointment = service.update_appointment(appointment_id, dto)
    return serialize_appointment(appointment, dto.timezone)


@router.post("/bills", response_model=BillResponse, status_code=201)
async def create_bill(
    dto: BillCreate,
    service: ReceptionistService = Depends(get_receptionist_service),
):
    return service.create_bill(dto)


@router.post("/payments", response_model=BillResponse)
async def record_payment(
    dto: RecordPayment,
    service: ReceptionistService = Depends(get_receptionist_service),
):
    """Record a payment against a bill of your clinic."""
    return service.record_payment(dto)


@router.get("/bills", response_model=List[BillResponse])
async def list_bills(service: ReceptionistService = Depends(get_receptionist_service)):
    return service.list_bills()
