from sqlalchemy import (
    Column, Integer, ForeignKey, DateTime, Text, Index, CheckConstraint, text, Enum as SQLEnum
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from ..core.database import Base


class AppointmentStatus(str, enum.Enum):
    PENDING = "PENDING"
    SCHEDULED = "SCHEDULED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class AppointmentPriority(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


TERMINAL_STATUSES = (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED)


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_appointment_interval"),
        # Backstop for the exact-time check: one live booking per doctor, clinic and start
        Index(
            "uq_appointment_active_slot",
            "doctor_id", "clinic_id", "start_time",
            unique=True,
            postgresql_where=text("status <> 'CANCELLED'"),
            sqlite_where=text("status <> 'CANCELLED'"),
        ),
        Index("ix_appointment_doctor_window", "doctor_id", "clinic_id", "start_time", "end_time"),
    )

    id = Column(Integer, primary_key=True, index=True)

    # Relationships
    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=False, index=True)
    doctor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Appointment details, naive UTC
    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime, nullable=False)
    status = Column(SQLEnum(AppointmentStatus), nullable=False, default=AppointmentStatus.PENDING)
    priority = Column(SQLEnum(AppointmentPriority), nullable=False, default=AppointmentPriority.MEDIUM)
    notes = Column(Text, nullable=False, default="")

    # Tracking
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    clinic = relationship("Clinic", back_populates="appointments")
    doctor = relationship("User", foreign_keys=[doctor_id])
    patient = relationship("User", foreign_keys=[patient_id])
    bill = relationship("Bill", back_populates="appointment", uselist=False)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def __repr__(self):
        return f"<Appointment(id={self.id}, doctor_id={self.doctor_id}, clinic_id={self.clinic_id}, start='{self.start_time}', status='{self.status}')>"
