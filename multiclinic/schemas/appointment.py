from pydantic import BaseModel
from typing import Optional
from datetime import datetime

from ..models.appointment import AppointmentStatus, AppointmentPriority


class AppointmentCreate(BaseModel):
    clinic_id: int
    doctor_id: int
    start_time: datetime
    end_time: datetime
    notes: Optional[str] = None
    priority: AppointmentPriority = AppointmentPriority.MEDIUM
    timezone: Optional[str] = None  # Client timezone, e.g. "Asia/Karachi"


class ReceptionistAppointmentCreate(AppointmentCreate):
    patient_id: int
    clinic_id: Optional[int] = None


class AppointmentUpdate(BaseModel):
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    notes: Optional[str] = None
    priority: Optional[AppointmentPriority] = None
    timezone: Optional[str] = None


class AppointmentResponse(BaseModel):
    id: int
    clinic_id: int
    clinic_name: Optional[str] = None
    doctor_id: int
    doctor_name: Optional[str] = None
    patient_id: int
    patient_name: Optional[str] = None
    start_time: str
    end_time: str
    status: AppointmentStatus
    priority: AppointmentPriority
    notes: str = ""
    timezone: str

