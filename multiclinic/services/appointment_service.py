from sqlalchemy.orm import Session, joinedload
from sqlalchemy.exc import IntegrityError
from datetime import datetime
from typing import List, Optional
import logging

from ..core.exceptions import InvalidRequestError, NotFoundError, PermissionDeniedError, SchedulingConflictError
from ..core.security import UserRole
from ..core.timezone import DEFAULT_TIMEZONE, from_canonical, format_in_zone, get_zone, to_storage
from ..models.appointment import Appointment, AppointmentStatus, AppointmentPriority
from ..models.clinic import Clinic, ClinicDoctor
from ..models.user import User
from ..schemas.appointment import AppointmentCreate, AppointmentUpdate, AppointmentResponse
from .notification_service import NotificationService
from . import scheduling

logger = logging.getLogger(__name__)

# Statuses shown on a doctor's agenda
DOCTOR_VISIBLE_STATUSES = (AppointmentStatus.SCHEDULED, AppointmentStatus.COMPLETED)


def serialize_appointment(appointment: Appointment, tz: Optional[str] = None) -> AppointmentResponse:
    """Render an appointment with its times in the caller's timezone."""
    zone_name = tz or DEFAULT_TIMEZONE
    return AppointmentResponse(
        id=appointment.id,
        clinic_id=appointment.clinic_id,
        clinic_name=appointment.clinic.name if appointment.clinic else None,
        doctor_id=appointment.doctor_id,
        doctor_name=appointment.doctor.name if appointment.doctor else None,
        patient_id=appointment.patient_id,
        patient_name=appointment.patient.name if appointment.patient else None,
        start_time=from_canonical(appointment.start_time, zone_name),
        end_time=from_canonical(appointment.end_time, zone_name),
        status=appointment.status,
        priority=appointment.priority,
        notes=appointment.notes or "",
        timezone=zone_name,
    )


class AppointmentService:
    def __init__(self, db: Session, notifications: Optional[NotificationService] = None):
        self.db = db
        self.notifications = notifications or NotificationService(db)

    # -----------------------------------
    # Shared building blocks
    # -----------------------------------
    def get_appointment(self, appointment_id: int) -> Appointment:
        appointment = self.db.query(Appointment).options(
            joinedload(Appointment.clinic),
            joinedload(Appointment.doctor),
            joinedload(Appointment.patient),
        ).filter(Appointment.id == appointment_id).first()

        if not appointment:
            raise NotFoundError("Appointment not found")
        return appointment

    def ensure_doctor_in_clinic(self, doctor_id: int, clinic_id: int):
        clinic_doctor = self.db.query(ClinicDoctor).filter(
            ClinicDoctor.clinic_id == clinic_id,
            ClinicDoctor.doctor_id == doctor_id,
        ).first()

        if not clinic_doctor:
            raise InvalidRequestError("This doctor does not work at this clinic")

    def book(
        self,
        clinic_id: int,
        doctor_id: int,
        patient_id: int,
        start_time: datetime,
        end_time: datetime,
        notes: Optional[str] = None,
        priority: AppointmentPriority = AppointmentPriority.MEDIUM,
        tz: Optional[str] = None,
    ) -> Appointment:
        """Conflict-checked insert of a PENDING appointment."""
        start = to_storage(start_time, tz)
        end = to_storage(end_time, tz)
        scheduling.validate_interval(start, end)

        with scheduling.doctor_slot_lock(self.db, doctor_id):
            scheduling.ensure_no_conflict(self.db, doctor_id, clinic_id, start, end)

            appointment = Appointment(
                clinic_id=clinic_id,
                doctor_id=doctor_id,
                patient_id=patient_id,
                start_time=start,
                end_time=end,
                notes=notes or "",
                priority=priority,
                status=AppointmentStatus.PENDING,
            )
            self.db.add(appointment)
            self._commit_slot()

        self.db.refresh(appointment)
        logger.info(
            f"Booked appointment {appointment.id} for doctor {doctor_id} "
            f"at clinic {clinic_id} ({start.isoformat()} - {end.isoformat()} UTC)"
        )
        return appointment

    def reschedule(self, appointment: Appointment, dto: AppointmentUpdate) -> Appointment:
        """Apply time, notes and priority changes, re-checking conflicts when the time moves."""
        if dto.start_time is None and dto.end_time is None:
            self._apply_details(appointment, dto)
            self.db.commit()
            self.db.refresh(appointment)
            return appointment

        start = to_storage(dto.start_time, dto.timezone) if dto.start_time else appointment.start_time
        end = to_storage(dto.end_time, dto.timezone) if dto.end_time else appointment.end_time
        scheduling.validate_interval(start, end)

        with scheduling.doctor_slot_lock(self.db, appointment.doctor_id):
            scheduling.ensure_no_conflict(
                self.db,
                appointment.doctor_id,
                appointment.clinic_id,
                start,
                end,
                exclude_appointment_id=appointment.id,
            )
            appointment.start_time = start
            appointment.end_time = end
            self._apply_details(appointment, dto)
            self._commit_slot()

        self.db.refresh(appointment)
        return appointment

    def transition(
        self,
        appointment: Appointment,
        target: AppointmentStatus,
        actor: User,
        managed_clinic_id: Optional[int] = None,
    ) -> Appointment:
        scheduling.ensure_actor_owns(appointment, actor, managed_clinic_id)
        scheduling.validate_transition(appointment.status, target, actor.role)

        appointment.status = target
        self.db.commit()
        self.db.refresh(appointment)
        logger.info(
            f"Appointment {appointment.id} moved to {target.value} by {actor.role.value} {actor.id}"
        )
        return appointment

    def notify_patient(self, appointment: Appointment, type: str, message: str):
        self.notifications.send_notification(
            user_id=appointment.patient_id,
            appointment_id=appointment.id,
            type=type,
            message=message,
        )

    def _apply_details(self, appointment: Appointment, dto: AppointmentUpdate):
        if dto.notes is not None:
            appointment.notes = dto.notes
        if dto.priority is not None:
            appointment.priority = dto.priority

    def _commit_slot(self):
        try:
            self.db.commit()
        except IntegrityError:
            # Lost a race on the active-slot unique index
            self.db.rollback()
            raise SchedulingConflictError(
                scheduling.CONFLICT_MESSAGES[scheduling.ConflictKind.EXACT]
            )

    # -----------------------------------
    # Patient flows
    # -----------------------------------
    def create_appointment(self, dto: AppointmentCreate, patient: User) -> Appointment:
        if patient.role != UserRole.PATIENT:
            raise InvalidRequestError("Patient not found or invalid user type")

        get_zone(dto.timezone)

        clinic = self.db.query(Clinic).filter(Clinic.id == dto.clinic_id).first()
        if not clinic:
            raise NotFoundError("Clinic not found")

        self.ensure_doctor_in_clinic(dto.doctor_id, dto.clinic_id)

        return self.book(
            clinic_id=dto.clinic_id,
            doctor_id=dto.doctor_id,
            patient_id=patient.id,
            start_time=dto.start_time,
            end_time=dto.end_time,
            notes=dto.notes,
            priority=dto.priority,
            tz=dto.timezone,
        )

    def update_patient_appointment(
        self, appointment_id: int, dto: AppointmentUpdate, patient: User
    ) -> Appointment:
        appointment = self.get_appointment(appointment_id)

        if appointment.patient_id != patient.id:
            raise PermissionDeniedError("You can only update your own appointments")

        scheduling.ensure_editable(appointment, patient.role)
        return self.reschedule(appointment, dto)

    def cancel_patient_appointment(self, appointment_id: int, patient: User) -> Appointment:
        appointment = self.get_appointment(appointment_id)

        if appointment.patient_id != patient.id:
            raise PermissionDeniedError("You can only cancel your own appointments")

        return self.transition(appointment, AppointmentStatus.CANCELLED, patient)

    # -----------------------------------
    # Doctor flows
    # -----------------------------------
    def complete_doctor_appointment(self, appointment_id: int, doctor: User) -> Appointment:
        appointment = self.get_appointment(appointment_id)
        appointment = self.transition(appointment, AppointmentStatus.COMPLETED, doctor)

        self.notify_patient(
            appointment,
            "APPOINTMENT_COMPLETED",
            f"Your appointment on {format_in_zone(appointment.start_time, None, '%Y-%m-%d %H:%M')} "
            f"has been completed.",
        )
        return appointment

    # -----------------------------------
    # Listings
    # -----------------------------------
    def get_doctor_appointments(self, doctor_id: int) -> List[Appointment]:
        return self._listing_query().filter(
            Appointment.doctor_id == doctor_id,
            Appointment.status.in_(DOCTOR_VISIBLE_STATUSES),
        ).order_by(Appointment.start_time.asc()).all()

    def get_patient_appointments(self, patient_id: int) -> List[Appointment]:
        return self._listing_query().filter(
            Appointment.patient_id == patient_id
        ).order_by(Appointment.start_time.asc()).all()

    def get_all_appointments(
        self,
        status: Optional[AppointmentStatus] = None,
        clinic_id: Optional[int] = None,
    ) -> List[Appointment]:
        query = self._listing_query()
        if status is not None:
            query = query.filter(Appointment.status == status)
        if clinic_id is not None:
            query = query.filter(Appointment.clinic_id == clinic_id)
        return query.order_by(Appointment.start_time.asc()).all()

    def _listing_query(self):
        return self.db.query(Appointment).options(
            joinedload(Appointment.clinic),
            joinedload(Appointment.doctor),
            joinedload(Appointment.patient),
        )
