from sqlalchemy import Column, Integer, ForeignKey, DateTime, Numeric, Enum as SQLEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from decimal import Decimal
import enum

from ..core.database import Base


class BillStatus(str, enum.Enum):
    UNPAID = "UNPAID"
    PARTIAL = "PARTIAL"
    PAID = "PAID"


class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    CARD = "CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    ONLINE = "ONLINE"


class Bill(Base):
    __tablename__ = "bills"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), unique=True, nullable=False)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    total_amount = Column(Numeric(10, 2), nullable=False)
    discount = Column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    status = Column(SQLEnum(BillStatus), nullable=False, default=BillStatus.UNPAID)

    # Timestamps
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    appointment = relationship("Appointment", back_populates="bill")
    patient = relationship("User")
    payments = relationship("Payment", back_populates="bill", order_by="Payment.id")

    @property
    def net_amount(self) -> Decimal:
        return (self.total_amount or Decimal("0")) - (self.discount or Decimal("0"))

    @property
    def amount_paid(self) -> Decimal:
        return sum((payment.amount for payment in self.payments), Decimal("0"))

    def __repr__(self):
        return f"<Bill(id={self.id}, appointment_id={self.appointment_id}, status='{self.status}')>"


class Payment(Base):
    """A recorded payment. Rows are only ever inserted."""
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    bill_id = Column(Integer, ForeignKey("bills.id"), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    method = Column(SQLEnum(PaymentMethod), nullable=False)
    paid_at = Column(DateTime, server_default=func.now())

    bill = relationship("Bill", back_populates="payments")

    def __repr__(self):
        return f"<Payment(id={self.id}, bill_id={self.bill_id}, amount={self.amount})>"
