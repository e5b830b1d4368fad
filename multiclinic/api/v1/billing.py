from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List

from ...core.database import get_db
from ...core.exceptions import PermissionDeniedError
from ...core.security import UserRole
from ...api.deps import get_current_user, get_receptionist_user
from ...models.user import User
from ...schemas.billing import BillCreate, BillResponse, PaymentCreate, RecordPayment
from ...services.billing_service import BillingService
from ...services.receptionist_service import ReceptionistService

router = APIRouter(prefix="/bills", tags=["Billing"])


@router.post("", response_model=BillResponse, status_code=201)
async def create_bill(
    dto: BillCreate,
    current_user: User = Depends(get_receptionist_user),
    db: Session = Depends(get_db),
):
    """Bill a scheduled or completed appointment of your clinic."""
    return ReceptionistService(db, current_user).create_bill(dto)


@router.get("/patient/{patient_id}", response_model=List[BillResponse])
async def get_patient_bills(
    patient_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if current_user.role == UserRole.PATIENT and current_user.id != patient_id:
        raise PermissionDeniedError("You can only view your own bills")
    if current_user.role == UserRole.DOCTOR:
        raise PermissionDeniedError("Doctors cannot view bills")

    return BillingService(db).get_patient_bills(patient_id)


@router.get("/{bill_id}", response_model=BillResponse)
async def get_bill(
    bill_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    billing = BillingService(db)

    if current_user.role == UserRole.RECEPTIONIST:
        ReceptionistService(db, current_user).ensure_bill_in_clinic(bill_id)
        return billing.get_bill(bill_id)

    bill = billing.get_bill(bill_id)
    if current_user.role == UserRole.SYSTEM_ADMIN:
        return bill
    if current_user.role == UserRole.PATIENT and bill.patient_id == current_user.id:
        return bill

    raise PermissionDeniedError("You are not allowed to view this bill")


@router.post("/{bill_id}/pay", response_model=BillResponse)
async def pay_bill(
    bill_id: int,
    dto: PaymentCreate,
    current_user: User = Depends(get_receptionist_user),
    db: Session = Depends(get_db),
):
    """Record a payment and recompute the bill status."""
    payment = RecordPayment(bill_id=bill_id, amount=dto.amount, method=dto.method)
    return ReceptionistService(db, current_user).record_payment(payment)
