"""
Appointment scheduling rules.

Conflict detection, status transitions and ownership checks shared by the
patient-facing and receptionist-facing appointment flows.

Conflicts are only ever computed against non-cancelled appointments of the
same doctor at the same clinic. Intervals are half-open: an appointment ending
at 10:30 does not collide with one starting at 10:30.
"""
import threading
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from typing import Dict, Optional, Tuple

from sqlalchemy import text
from sqlalchemy.orm import Session

from ..core.exceptions import (
    InvalidRequestError, InvalidTransitionError, PermissionDeniedError, SchedulingConflictError
)
from ..core.security import UserRole
from ..models.appointment import Appointment, AppointmentStatus
from ..models.user import User


class ConflictKind(str, Enum):
    EXACT = "exact"
    OVERLAP = "overlap"


CONFLICT_MESSAGES = {
    ConflictKind.EXACT: "This doctor already has an appointment at this exact time.",
    ConflictKind.OVERLAP: "This appointment overlaps with an existing appointment.",
}

ALLOWED_TRANSITIONS = {
    AppointmentStatus.PENDING: {AppointmentStatus.SCHEDULED, AppointmentStatus.CANCELLED},
    AppointmentStatus.SCHEDULED: {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED},
    AppointmentStatus.COMPLETED: set(),
    AppointmentStatus.CANCELLED: set(),
}

# Which target statuses each role may request
ROLE_TRANSITIONS = {
    UserRole.PATIENT: {AppointmentStatus.CANCELLED},
    UserRole.RECEPTIONIST: {
        AppointmentStatus.SCHEDULED,
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
    },
    UserRole.DOCTOR: {AppointmentStatus.COMPLETED},
}

# Roles that may change the time or notes of an appointment
EDITOR_ROLES = (UserRole.PATIENT, UserRole.RECEPTIONIST)

TRANSITION_VERBS = {
    AppointmentStatus.SCHEDULED: "accept",
    AppointmentStatus.COMPLETED: "complete",
    AppointmentStatus.CANCELLED: "cancel",
}


# ---------------------------------------------------------------------------
# Conflict checker
# ---------------------------------------------------------------------------

def validate_interval(start: datetime, end: datetime):
    if start >= end:
        raise InvalidRequestError("start_time must be before end_time")


def find_conflict(
    db: Session,
    doctor_id: int,
    clinic_id: int,
    start: datetime,
    end: datetime,
    exclude_appointment_id: Optional[int] = None,
) -> Optional[Tuple[ConflictKind, Appointment]]:
    """Return the first colliding appointment and how it collides, or None."""
    candidates = db.query(Appointment).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.clinic_id == clinic_id,
        Appointment.status != AppointmentStatus.CANCELLED,
    )
    if exclude_appointment_id is not None:
        candidates = candidates.filter(Appointment.id != exclude_appointment_id)

    exact = candidates.filter(Appointment.start_time == start).first()
    if exact:
        return ConflictKind.EXACT, exact

    overlapping = candidates.filter(
        Appointment.start_time < end,
        Appointment.end_time > start,
    ).first()
    if overlapping:
        return ConflictKind.OVERLAP, overlapping

    return None


def has_conflict(
    db: Session,
    doctor_id: int,
    clinic_id: int,
    start: datetime,
    end: datetime,
    exclude_appointment_id: Optional[int] = None,
) -> bool:
    return find_conflict(db, doctor_id, clinic_id, start, end, exclude_appointment_id) is not None


def ensure_no_conflict(
    db: Session,
    doctor_id: int,
    clinic_id: int,
    start: datetime,
    end: datetime,
    exclude_appointment_id: Optional[int] = None,
):
    conflict = find_conflict(db, doctor_id, clinic_id, start, end, exclude_appointment_id)
    if conflict:
        kind, _ = conflict
        raise SchedulingConflictError(CONFLICT_MESSAGES[kind])


_registry_lock = threading.Lock()
# One lock per doctor id, so the registry is bounded by the number of doctors
_doctor_locks: Dict[int, threading.Lock] = {}


@contextmanager
def doctor_slot_lock(db: Session, doctor_id: int):
    """
    Serialize check-then-write sequences for one doctor.

    PostgreSQL takes a transaction-scoped advisory lock, released by the
    caller's commit or rollback. Other backends fall back to an in-process lock.
    """
    if db.get_bind().dialect.name == "postgresql":
        db.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": doctor_id})
        yield
        return

    with _registry_lock:
        lock = _doctor_locks.setdefault(doctor_id, threading.Lock())
    with lock:
        yield


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------

def validate_transition(current: AppointmentStatus, target: AppointmentStatus, role: UserRole):
    verb = TRANSITION_VERBS.get(target, "change")

    if target not in ROLE_TRANSITIONS.get(role, set()):
        raise PermissionDeniedError(f"Your role cannot {verb} appointments")

    if target in ALLOWED_TRANSITIONS[current]:
        return

    if current == target:
        raise InvalidTransitionError(f"This appointment is already {current.value.lower()}")
    if current in (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED):
        raise InvalidTransitionError(f"Cannot {verb} a {current.value.lower()} appointment")
    if target == AppointmentStatus.SCHEDULED:
        raise InvalidTransitionError("Only pending appointments can be accepted")
    if target == AppointmentStatus.COMPLETED:
        raise InvalidTransitionError("Only scheduled appointments can be completed")
    raise InvalidTransitionError()


def ensure_editable(appointment: Appointment, role: UserRole):
    if role not in EDITOR_ROLES:
        raise PermissionDeniedError("Your role cannot update appointments")
    if appointment.is_terminal:
        raise InvalidTransitionError(
            f"Cannot update a {appointment.status.value.lower()} appointment"
        )


def ensure_actor_owns(
    appointment: Appointment,
    actor: User,
    managed_clinic_id: Optional[int] = None,
):
    """The acting user must be the patient, the doctor, or staff of the appointment's clinic."""
    if actor.role == UserRole.PATIENT and appointment.patient_id == actor.id:
        return
    if actor.role == UserRole.DOCTOR and appointment.doctor_id == actor.id:
        return
    if actor.role == UserRole.RECEPTIONIST and managed_clinic_id is not None \
            and appointment.clinic_id == managed_clinic_id:
        return
    raise PermissionDeniedError("You can only manage your own appointments")
