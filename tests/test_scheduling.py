from datetime import datetime
import threading

import pytest

from multiclinic.core.exceptions import (
    InvalidRequestError, InvalidTransitionError, PermissionDeniedError, SchedulingConflictError
)
from multiclinic.core.database import SessionLocal
from multiclinic.core.security import UserRole
from multiclinic.models.appointment import Appointment, AppointmentStatus
from multiclinic.services import scheduling
from multiclinic.services.appointment_service import AppointmentService
from multiclinic.services.scheduling import ConflictKind


def at(hour, minute=0):
    return datetime(2030, 1, 7, hour, minute)


@pytest.fixture
def booked(db, clinic_world):
    """A 10:00-10:30 (UTC) appointment for the world's doctor."""
    appointment = Appointment(
        clinic_id=clinic_world.clinic_id,
        doctor_id=clinic_world.doctor_id,
        patient_id=clinic_world.patient_id,
        start_time=at(10),
        end_time=at(10, 30),
        status=AppointmentStatus.PENDING,
    )
    db.add(appointment)
    db.commit()
    db.refresh(appointment)
    return appointment


class TestConflictChecker:

    def test_exact_start_match(self, db, clinic_world, booked):
        kind, existing = scheduling.find_conflict(
            db, clinic_world.doctor_id, clinic_world.clinic_id, at(10), at(11)
        )
        assert kind == ConflictKind.EXACT
        assert existing.id == booked.id

    def test_partial_overlap(self, db, clinic_world, booked):
        kind, _ = scheduling.find_conflict(
            db, clinic_world.doctor_id, clinic_world.clinic_id, at(10, 15), at(10, 45)
        )
        assert kind == ConflictKind.OVERLAP

    def test_containing_interval_overlaps(self, db, clinic_world, booked):
        assert scheduling.has_conflict(
            db, clinic_world.doctor_id, clinic_world.clinic_id, at(9), at(11)
        )

    def test_touching_intervals_do_not_conflict(self, db, clinic_world, booked):
        assert not scheduling.has_conflict(
            db, clinic_world.doctor_id, clinic_world.clinic_id, at(10, 30), at(11)
        )
        assert not scheduling.has_conflict(
            db, clinic_world.doctor_id, clinic_world.clinic_id, at(9, 30), at(10)
        )

    def test_cancelled_appointments_are_ignored(self, db, clinic_world, booked):
        booked.status = AppointmentStatus.CANCELLED
        db.commit()

        assert not scheduling.has_conflict(
            db, clinic_world.doctor_id, clinic_world.clinic_id, at(10), at(10, 30)
        )

    def test_other_clinic_is_ignored(self, db, clinic_world, booked):
        assert not scheduling.has_conflict(
            db, clinic_world.doctor_id, clinic_world.other_clinic_id, at(10), at(10, 30)
        )

    def test_excluded_appointment_is_ignored(self, db, clinic_world, booked):
        assert not scheduling.has_conflict(
            db,
            clinic_world.doctor_id,
            clinic_world.clinic_id,
            at(10, 10),
            at(10, 40),
            exclude_appointment_id=booked.id,
        )

    def test_ensure_no_conflict_raises(self, db, clinic_world, booked):
        with pytest.raises(SchedulingConflictError) as exc:
            scheduling.ensure_no_conflict(
                db, clinic_world.doctor_id, clinic_world.clinic_id, at(10, 15), at(10, 45)
            )
        assert exc.value.status_code == 409
        assert "overlaps" in exc.value.message

    def test_empty_interval_rejected(self):
        with pytest.raises(InvalidRequestError):
            scheduling.validate_interval(at(10), at(10))


class TestTransitions:

    @pytest.mark.parametrize("current,target,role", [
        (AppointmentStatus.PENDING, AppointmentStatus.SCHEDULED, UserRole.RECEPTIONIST),
        (AppointmentStatus.PENDING, AppointmentStatus.CANCELLED, UserRole.PATIENT),
        (AppointmentStatus.SCHEDULED, AppointmentStatus.CANCELLED, UserRole.RECEPTIONIST),
        (AppointmentStatus.SCHEDULED, AppointmentStatus.COMPLETED, UserRole.DOCTOR),
        (AppointmentStatus.SCHEDULED, AppointmentStatus.COMPLETED, UserRole.RECEPTIONIST),
    ])
    def test_allowed(self, current, target, role):
        scheduling.validate_transition(current, target, role)

    def test_cancel_twice(self):
        with pytest.raises(InvalidTransitionError) as exc:
            scheduling.validate_transition(
                AppointmentStatus.CANCELLED, AppointmentStatus.CANCELLED, UserRole.PATIENT
            )
        assert exc.value.message == "This appointment is already cancelled"

    def test_cancel_completed(self):
        with pytest.raises(InvalidTransitionError) as exc:
            scheduling.validate_transition(
                AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED, UserRole.RECEPTIONIST
            )
        assert exc.value.message == "Cannot cancel a completed appointment"

    def test_complete_pending(self):
        with pytest.raises(InvalidTransitionError):
            scheduling.validate_transition(
                AppointmentStatus.PENDING, AppointmentStatus.COMPLETED, UserRole.DOCTOR
            )

    def test_accept_scheduled(self):
        with pytest.raises(InvalidTransitionError):
            scheduling.validate_transition(
                AppointmentStatus.SCHEDULED, AppointmentStatus.SCHEDULED, UserRole.RECEPTIONIST
            )

    @pytest.mark.parametrize("target,role", [
        (AppointmentStatus.SCHEDULED, UserRole.PATIENT),
        (AppointmentStatus.COMPLETED, UserRole.PATIENT),
        (AppointmentStatus.CANCELLED, UserRole.DOCTOR),
        (AppointmentStatus.SCHEDULED, UserRole.CLINIC_ADMIN),
    ])
    def test_role_not_permitted(self, target, role):
        with pytest.raises(PermissionDeniedError):
            scheduling.validate_transition(AppointmentStatus.PENDING, target, role)

    def test_terminal_appointment_not_editable(self, booked):
        booked.status = AppointmentStatus.COMPLETED
        with pytest.raises(InvalidTransitionError):
            scheduling.ensure_editable(booked, UserRole.RECEPTIONIST)

    def test_doctor_cannot_edit(self, booked):
        with pytest.raises(PermissionDeniedError):
            scheduling.ensure_editable(booked, UserRole.DOCTOR)


class TestDoubleBookingGuard:

    def test_concurrent_overlapping_bookings(self, clinic_world):
        attempts = 8
        barrier = threading.Barrier(attempts)
        outcomes = []

        def attempt(offset):
            session = SessionLocal()
            try:
                barrier.wait()
                AppointmentService(session).book(
                    clinic_id=clinic_world.clinic_id,
                    doctor_id=clinic_world.doctor_id,
                    patient_id=clinic_world.patient_id,
                    start_time=at(10, offset),
                    end_time=at(10, offset + 30),
                    tz="UTC",
                )
                outcomes.append("booked")
            except SchedulingConflictError:
                outcomes.append("conflict")
            finally:
                session.close()

        # Every start lies within 30 minutes of every other, so all pairs overlap
        threads = [threading.Thread(target=attempt, args=(i * 3,)) for i in range(attempts)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(outcomes) == ["booked"] + ["conflict"] * (attempts - 1)

    def test_slot_lock_serializes_same_doctor(self, db, clinic_world):
        entered = threading.Event()

        def contender():
            with scheduling.doctor_slot_lock(db, clinic_world.doctor_id):
                entered.set()

        with scheduling.doctor_slot_lock(db, clinic_world.doctor_id):
            thread = threading.Thread(target=contender)
            thread.start()
            assert not entered.wait(timeout=0.2)

        thread.join(timeout=5)
        assert entered.is_set()

    def test_unique_slot_index_backs_the_check(self, db, clinic_world, booked, monkeypatch):
        # Simulate a booking that slipped past the conflict query
        monkeypatch.setattr(scheduling, "ensure_no_conflict", lambda *args, **kwargs: None)

        with pytest.raises(SchedulingConflictError) as exc:
            AppointmentService(db).book(
                clinic_id=clinic_world.clinic_id,
                doctor_id=clinic_world.doctor_id,
                patient_id=clinic_world.other_patient_id,
                start_time=at(10),
                end_time=at(10, 45),
                tz="UTC",
            )

        assert exc.value.status_code == 409
        assert "exact time" in exc.value.message
        # The failed insert was rolled back and the session is usable again
        assert db.query(Appointment).count() == 1

    def test_unique_slot_index_ignores_cancelled(self, db, clinic_world, booked, monkeypatch):
        booked.status = AppointmentStatus.CANCELLED
        db.commit()
        monkeypatch.setattr(scheduling, "ensure_no_conflict", lambda *args, **kwargs: None)

        appointment = AppointmentService(db).book(
            clinic_id=clinic_world.clinic_id,
            doctor_id=clinic_world.doctor_id,
            patient_id=clinic_world.patient_id,
            start_time=at(10),
            end_time=at(10, 30),
            tz="UTC",
        )
        assert appointment.status == AppointmentStatus.PENDING


class TestTransitionVerbs:

    def test_every_target_has_a_verb(self):
        targets = set().union(*scheduling.ROLE_TRANSITIONS.values())
        assert targets <= set(scheduling.TRANSITION_VERBS)
