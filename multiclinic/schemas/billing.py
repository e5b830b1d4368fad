from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, model_validator
from typing import Annotated, List, Optional
from datetime import datetime
from decimal import Decimal

from ..models.billing import BillStatus, PaymentMethod

# Exact arithmetic inside, plain JSON numbers on the wire
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class BillCreate(BaseModel):
    appointment_id: int
    total_amount: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    discount: Decimal = Field(default=Decimal("0"), ge=0, max_digits=10, decimal_places=2)

    @model_validator(mode="after")
    def discount_within_total(self):
        if self.discount > self.total_amount:
            raise ValueError("discount cannot exceed total_amount")
        return self


class PaymentCreate(BaseModel):
    amount: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    method: PaymentMethod


class RecordPayment(PaymentCreate):
    bill_id: int


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    bill_id: int
    amount: Money
    method: PaymentMethod
    paid_at: Optional[datetime] = None


class BillResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    appointment_id: int
    patient_id: int
    total_amount: Money
    discount: Money
    net_amount: Money
    amount_paid: Money
    status: BillStatus
    payments: List[PaymentResponse] = []
    created_at: Optional[datetime] = None
