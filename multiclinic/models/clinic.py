from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Boolean, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from ..core.database import Base


class Clinic(Base):
    __tablename__ = "clinics"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(150), nullable=False)
    code = Column(String(50), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False)
    phone = Column(String(30), nullable=True)
    is_active = Column(Boolean, default=True)
    admin_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)

    # Timestamps
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    admin = relationship("User")
    doctors = relationship("ClinicDoctor", back_populates="clinic", cascade="all, delete-orphan")
    receptionists = relationship("ClinicReceptionist", back_populates="clinic", cascade="all, delete-orphan")
    appointments = relationship("Appointment", back_populates="clinic")

    def __repr__(self):
        return f"<Clinic(id={self.id}, code='{self.code}', name='{self.name}')>"


class Speciality(Base):
    __tablename__ = "specialities"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)

    def __repr__(self):
        return f"<Speciality(id={self.id}, name='{self.name}')>"


class ClinicDoctor(Base):
    __tablename__ = "clinic_doctors"
    __table_args__ = (UniqueConstraint("clinic_id", "doctor_id", name="uq_clinic_doctor"),)

    id = Column(Integer, primary_key=True, index=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=False, index=True)
    doctor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime, server_default=func.now())

    clinic = relationship("Clinic", back_populates="doctors")
    doctor = relationship("User")
    specialities = relationship("ClinicDoctorSpeciality", back_populates="clinic_doctor", cascade="all, delete-orphan")


class ClinicDoctorSpeciality(Base):
    __tablename__ = "clinic_doctor_specialities"
    __table_args__ = (UniqueConstraint("clinic_doctor_id", "speciality_id", name="uq_clinic_doctor_speciality"),)

    id = Column(Integer, primary_key=True, index=True)
    clinic_doctor_id = Column(Integer, ForeignKey("clinic_doctors.id"), nullable=False)
    speciality_id = Column(Integer, ForeignKey("specialities.id"), nullable=False)

    clinic_doctor = relationship("ClinicDoctor", back_populates="specialities")
    speciality = relationship("Speciality")


class ClinicReceptionist(Base):
    __tablename__ = "clinic_receptionists"

    id = Column(Integer, primary_key=True, index=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=False, index=True)
    # A receptionist works for exactly one clinic
    receptionist_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    clinic = relationship("Clinic", back_populates="receptionists")
    receptionist = relationship("User")
