from sqlalchemy.orm import Session, selectinload
from decimal import Decimal
from typing import List, Optional
import logging

from ..core.exceptions import ConflictError, InvalidRequestError, NotFoundError
from ..models.appointment import Appointment, AppointmentStatus
from ..models.billing import Bill, BillStatus, Payment
from ..schemas.billing import BillCreate, PaymentCreate

logger = logging.getLogger(__name__)

# A bill can only be raised once the clinic has committed to the visit
BILLABLE_STATUSES = (AppointmentStatus.SCHEDULED, AppointmentStatus.COMPLETED)


def _money(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value or 0))


def compute_bill_status(total_amount: Decimal, discount: Decimal, amount_paid: Decimal) -> BillStatus:
    """Bill status as a pure function of the amounts involved."""
    net_amount = _money(total_amount) - _money(discount)
    amount_paid = _money(amount_paid)
    if amount_paid >= net_amount:
        return BillStatus.PAID
    if amount_paid > 0:
        return BillStatus.PARTIAL
    return BillStatus.UNPAID


class BillingService:
    def __init__(self, db: Session):
        self.db = db

    def create_bill(self, dto: BillCreate, appointment: Optional[Appointment] = None) -> Bill:
        if appointment is None:
            appointment = self.db.query(Appointment).filter(
                Appointment.id == dto.appointment_id
            ).first()
        if not appointment:
            raise NotFoundError("Appointment not found")

        if appointment.status not in BILLABLE_STATUSES:
            raise InvalidRequestError(
                "Bills can only be created for scheduled or completed appointments"
            )

        existing = self.db.query(Bill).filter(Bill.appointment_id == appointment.id).first()
        if existing:
            raise ConflictError("A bill already exists for this appointment")

        bill = Bill(
            appointment_id=appointment.id,
            patient_id=appointment.patient_id,
            total_amount=dto.total_amount,
            discount=dto.discount,
            status=compute_bill_status(dto.total_amount, dto.discount, Decimal("0")),
        )
        self.db.add(bill)
        self.db.commit()
        self.db.refresh(bill)
        logger.info(f"Created bill {bill.id} for appointment {appointment.id}")
        return bill

    def get_bill(self, bill_id: int) -> Bill:
        bill = self.db.query(Bill).options(
            selectinload(Bill.payments),
            selectinload(Bill.appointment),
        ).filter(Bill.id == bill_id).first()

        if not bill:
            raise NotFoundError("Bill not found")
        return bill

    def pay_bill(self, bill_id: int, dto: PaymentCreate) -> Bill:
        bill = self.get_bill(bill_id)

        self.db.add(Payment(bill_id=bill.id, amount=dto.amount, method=dto.method))
        self.db.commit()
        logger.info(f"Recorded {dto.method.value} payment of {dto.amount} on bill {bill.id}")

        return self.update_status(bill.id)

    def update_status(self, bill_id: int) -> Bill:
        """Recompute the status from the full payment history."""
        bill = self.get_bill(bill_id)
        self.db.expire(bill, ["payments"])

        bill.status = compute_bill_status(bill.total_amount, bill.discount, bill.amount_paid)
        self.db.commit()
        self.db.refresh(bill)
        return bill

    def get_patient_bills(self, patient_id: int) -> List[Bill]:
        return self.db.query(Bill).options(selectinload(Bill.payments)).filter(
            Bill.patient_id == patient_id
        ).order_by(Bill.created_at.desc(), Bill.id.desc()).all()

    def get_clinic_bills(self, clinic_id: int) -> List[Bill]:
        return self.db.query(Bill).options(selectinload(Bill.payments)).join(
            Appointment, Bill.appointment_id == Appointment.id
        ).filter(
            Appointment.clinic_id == clinic_id
        ).order_by(Bill.created_at.desc(), Bill.id.desc()).all()
