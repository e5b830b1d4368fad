from sqlalchemy.orm import Session, joinedload
from typing import List, Optional

from ..core.exceptions import InvalidRequestError, NotFoundError, PermissionDeniedError
from ..core.security import UserRole
from ..core.timezone import format_in_zone, get_zone
from ..models.appointment import Appointment, AppointmentStatus
from ..models.billing import Bill
from ..models.clinic import Clinic, ClinicDoctor, ClinicReceptionist
from ..models.user import StaffSchedule, User
from ..schemas.appointment import AppointmentUpdate, ReceptionistAppointmentCreate
from ..schemas.billing import BillCreate, RecordPayment
from .appointment_service import AppointmentService
from .billing_service import BillingService
from .notification_service import NotificationService
from . import scheduling

_DISPLAY_FORMAT = "%Y-%m-%d %H:%M"


class ReceptionistService:
    """Clinic-scoped operations for a receptionist. Every call is limited to their one clinic."""

    def __init__(self, db: Session, receptionist: User):
        self.db = db
        self.receptionist = receptionist
        self.notifications = NotificationService(db)
        self.appointments = AppointmentService(db, self.notifications)
        self.billing = BillingService(db)
        self._clinic_id: Optional[int] = None

    @property
    def clinic_id(self) -> int:
        if self._clinic_id is None:
            assignment = self.db.query(ClinicReceptionist).filter(
                ClinicReceptionist.receptionist_id == self.receptionist.id
            ).first()
            if not assignment:
                raise NotFoundError("Receptionist is not assigned to any clinic")
            self._clinic_id = assignment.clinic_id
        return self._clinic_id

    # -------------------- Clinics --------------------------
    def get_clinics(self) -> List[Clinic]:
        return self.db.query(Clinic).filter(Clinic.id == self.clinic_id).all()

    def get_my_clinic(self) -> Clinic:
        return self.db.query(Clinic).filter(Clinic.id == self.clinic_id).first()

    # ------------------ Clinic -> Doctors -------------------
    def get_clinic_doctors(self, clinic_id: int) -> List[User]:
        if clinic_id != self.clinic_id:
            raise PermissionDeniedError("You can only access doctors from your assigned clinic")

        return self.db.query(User).join(
            ClinicDoctor, ClinicDoctor.doctor_id == User.id
        ).filter(ClinicDoctor.clinic_id == clinic_id).order_by(User.name.asc()).all()

    def get_doctor_availability(self, doctor_id: int) -> List[StaffSchedule]:
        self._ensure_doctor_in_clinic(doctor_id)

        return self.db.query(StaffSchedule).filter(
            StaffSchedule.user_id == doctor_id
        ).order_by(StaffSchedule.day_of_week.asc(), StaffSchedule.start_time.asc()).all()

    # -------------------- Patients --------------------------
    def list_patients(self) -> List[User]:
        # Patients are shared across clinics
        return self.db.query(User).filter(
            User.role == UserRole.PATIENT,
            User.email_verified == True,  # noqa: E712
        ).order_by(User.created_at.desc(), User.id.desc()).all()

    # ------------------ Appointments ------------------------
    def create_appointment(self, dto: ReceptionistAppointmentCreate) -> Appointment:
        if dto.clinic_id is not None and dto.clinic_id != self.clinic_id:
            raise PermissionDeniedError("You can only create appointments for your assigned clinic")

        get_zone(dto.timezone)
        self._ensure_doctor_in_clinic(dto.doctor_id)

        patient = self.db.query(User).filter(
            User.id == dto.patient_id, User.role == UserRole.PATIENT
        ).first()
        if not patient:
            raise InvalidRequestError("Patient not found or invalid user type")

        appointment = self.appointments.book(
            clinic_id=self.clinic_id,
            doctor_id=dto.doctor_id,
            patient_id=patient.id,
            start_time=dto.start_time,
            end_time=dto.end_time,
            notes=dto.notes,
            priority=dto.priority,
            tz=dto.timezone,
        )

        self.appointments.notify_patient(
            appointment,
            "APPOINTMENT_CREATED",
            f"Your appointment request is submitted for {self._when(appointment, dto.timezone)}.",
        )
        return appointment

    def list_pending_appointments(self) -> List[Appointment]:
        return self.appointments.get_all_appointments(
            status=AppointmentStatus.PENDING, clinic_id=self.clinic_id
        )

    def accept_appointment(self, appointment_id: int) -> Appointment:
        appointment = self._transition(appointment_id, AppointmentStatus.SCHEDULED)
        self.appointments.notify_patient(
            appointment,
            "APPOINTMENT_ACCEPTED",
            f"Your appointment on {self._when(appointment)} has been accepted.",
        )
        return appointment

    def complete_appointment(self, appointment_id: int) -> Appointment:
        appointment = self._transition(appointment_id, AppointmentStatus.COMPLETED)
        self.appointments.notify_patient(
            appointment,
            "APPOINTMENT_COMPLETED",
            f"Your appointment on {self._when(appointment)} has been completed.",
        )
        return appointment

    def cancel_appointment(self, appointment_id: int) -> Appointment:
        appointment = self._transition(appointment_id, AppointmentStatus.CANCELLED)
        self.appointments.notify_patient(
            appointment,
            "APPOINTMENT_CANCELLED",
            f"Your appointment on {self._when(appointment)} has been cancelled.",
        )
        return appointment

    def update_appointment(self, appointment_id: int, dto: AppointmentUpdate) -> Appointment:
        appointment = self._get_clinic_appointment(appointment_id, "update")
        get_zone(dto.timezone)

        scheduling.ensure_editable(appointment, self.receptionist.role)

        appointment = self.appointments.reschedule(appointment, dto)
        self.appointments.notify_patient(
            appointment, "APPOINTMENT_UPDATED", "Your appointment has been updated."
        )
        return appointment

    # ---------------------- Billing -------------------------
    def create_bill(self, dto: BillCreate) -> Bill:
        appointment = self.db.query(Appointment).filter(
            Appointment.id == dto.appointment_id
        ).first()

        if not appointment or appointment.clinic_id != self.clinic_id:
            raise PermissionDeniedError("You can only create bills for appointments in your clinic")

        return self.billing.create_bill(dto, appointment)

    def record_payment(self, dto: RecordPayment) -> Bill:
        self.ensure_bill_in_clinic(dto.bill_id)
        return self.billing.pay_bill(dto.bill_id, dto)

    def ensure_bill_in_clinic(self, bill_id: int) -> Bill:
        bill = self.db.query(Bill).options(joinedload(Bill.appointment)).filter(
            Bill.id == bill_id
        ).first()

        if not bill or bill.appointment.clinic_id != self.clinic_id:
            raise PermissionDeniedError("You can only record payments for bills in your clinic")
        return bill

    def list_bills(self) -> List[Bill]:
        return self.billing.get_clinic_bills(self.clinic_id)

    # ---------------------- Helpers -------------------------
    def _ensure_doctor_in_clinic(self, doctor_id: int):
        clinic_doctor = self.db.query(ClinicDoctor).filter(
            ClinicDoctor.clinic_id == self.clinic_id,
            ClinicDoctor.doctor_id == doctor_id,
        ).first()

        if not clinic_doctor:
            raise PermissionDeniedError("This doctor does not belong to your clinic")

    def _get_clinic_appointment(self, appointment_id: int, action: str) -> Appointment:
        appointment = self.db.query(Appointment).filter(Appointment.id == appointment_id).first()

        if not appointment or appointment.clinic_id != self.clinic_id:
            raise PermissionDeniedError(f"You can only {action} appointments from your clinic")
        return appointment

    def _transition(self, appointment_id: int, target: AppointmentStatus) -> Appointment:
        appointment = self._get_clinic_appointment(
            appointment_id, scheduling.TRANSITION_VERBS[target]
        )
        return self.appointments.transition(
            appointment, target, self.receptionist, managed_clinic_id=self.clinic_id
        )

    def _when(self, appointment: Appointment, tz: Optional[str] = None) -> str:
        return format_in_zone(appointment.start_time, tz, _DISPLAY_FORMAT)
