from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from typing import List, Optional
from datetime import datetime
import re

from .auth import UserResponse

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class CreateClinic(BaseModel):
    name: str = Field(..., min_length=1)
    code: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    phone: Optional[str] = None
    is_active: bool = True

    # Clinic admin details
    admin_name: str = Field(..., min_length=1)
    admin_email: EmailStr
    admin_phone: Optional[str] = None


class ScheduleEntry(BaseModel):
    day_of_week: int = Field(..., ge=0, le=6)
    start_time: str
    end_time: str

    @field_validator("start_time", "end_time")
    @classmethod
    def wall_clock(cls, value):
        if not _HHMM.match(value):
            raise ValueError("Time must be formatted as HH:MM")
        return value

    @model_validator(mode="after")
    def start_before_end(self):
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self


class AddStaffMember(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=1)
    phone: Optional[str] = None


class AddReceptionist(AddStaffMember):
    pass


class AddDoctor(AddStaffMember):
    speciality_ids: List[int] = []
    schedule: List[ScheduleEntry] = []


class SpecialityCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class SpecialityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


class ClinicSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    code: str
    email: EmailStr
    phone: Optional[str] = None
    is_active: bool = True


class StaffMember(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: EmailStr
    phone: Optional[str] = None
    is_active: bool = True


class ClinicDoctorResponse(StaffMember):
    specialities: List[SpecialityResponse] = []


class ClinicDetail(ClinicSummary):
    admin: Optional[StaffMember] = None
    doctors: List[StaffMember] = []
    receptionists: List[StaffMember] = []
    created_at: Optional[datetime] = None


class ClinicCreatedResponse(BaseModel):
    message: str
    clinic: ClinicDetail
    temporary_password: str


class StaffCreatedResponse(BaseModel):
    message: str
    user: UserResponse


class ScheduleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    day_of_week: int
    start_time: str
    end_time: str


class CreateClinicWithAdmin(BaseModel):
    clinic_name: str = Field(..., min_length=1)
    clinic_code: str = Field(..., min_length=1, max_length=50)
    clinic_email: EmailStr
    clinic_phone: str = Field(..., min_length=1)
    admin_name: str = Field(..., min_length=1)
    admin_email: EmailStr
    admin_password: str = Field(..., min_length=1)


class ClinicOverview(BaseModel):
    id: int
    name: str
    code: str
    email: EmailStr
    phone: Optional[str] = None
    admins: int
    patients: int
