import enum
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean, DateTime, Float, ForeignKey, Numeric, String, Text
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


Money = Numeric(12, 2)


class PaymentStatus(str, enum.Enum):
    pending = "pending"
    completed = "completed"
    refunded = "refunded"
    failed = "failed"


class ReconciliationStatus(str, enum.Enum):
    pending_approval = "pending_approval"
    approved = "approved"
    rejected = "rejected"


class Customer(Base):
    __tablename__ = "customers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(String(36), index=True)
    first_name: Mapped[str] = mapped_column(String(100), default="")
    last_name: Mapped[str] = mapped_column(String(100), default="")
    email: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    payments: Mapped[list["PaymentTransaction"]] = relationship("PaymentTransaction", back_populates="customer")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class PaymentTransaction(Base):
    """A payment recorded by the payments subsystem; reconciliation only flips the reconciled fields."""
    __tablename__ = "payment_transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(String(36), index=True)
    customer_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("customers.id"), nullable=True)
    transaction_reference: Mapped[str] = mapped_column(String(200), default="")
    amount: Mapped[Decimal] = mapped_column(Money)
    currency: Mapped[str] = mapped_column(String(10), default="ZMW")
    payment_method: Mapped[str] = mapped_column(String(50), default="")
    status: Mapped[str] = mapped_column(String(20), default=PaymentStatus.pending.value)
    transaction_date: Mapped[datetime] = mapped_column(DateTime)
    is_reconciled: Mapped[bool] = mapped_column(Boolean, default=False)
    reconciled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    # Not a foreign key: reconciliation_records already points back here
    reconciliation_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    customer: Mapped[Optional[Customer]] = relationship("Customer", back_populates="payments")
    reconciliations: Mapped[list["ReconciliationRecord"]] = relationship("ReconciliationRecord", back_populates="payment_transaction")

    @property
    def customer_name(self) -> str:
        return self.customer.full_name if self.customer else ""

    @property
    def customer_email(self) -> str:
        return (self.customer.email or "") if self.customer else ""


class ReconciliationRecord(Base):
    __tablename__ = "reconciliation_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(String(36), index=True)
    bank_transaction_id: Mapped[str] = mapped_column(String(200))
    payment_transaction_id: Mapped[str] = mapped_column(String(36), ForeignKey("payment_transactions.id"))
    match_type: Mapped[str] = mapped_column(String(100), default="")  # e.g. amount;date;reference
    match_score: Mapped[float] = mapped_column(Float)
    status: Mapped[str] = mapped_column(String(20), default=ReconciliationStatus.pending_approval.value)
    notes: Mapped[str] = mapped_column(Text, default="")
    reconciled_by: Mapped[str] = mapped_column(String(100))
    reconciled_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    bank_amount: Mapped[Decimal] = mapped_column(Money)
    payment_amount: Mapped[Decimal] = mapped_column(Money)
    difference: Mapped[Decimal] = mapped_column(Money)

    payment_transaction: Mapped[PaymentTransaction] = relationship("PaymentTransaction", back_populates="reconciliations")


class UnmatchedBankTransaction(Base):
    __tablename__ = "unmatched_bank_transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(String(36), index=True)
    transaction_id: Mapped[str] = mapped_column(String(200))
    transaction_date: Mapped[datetime] = mapped_column(DateTime)
    description: Mapped[str] = mapped_column(String(500), default="")
    amount: Mapped[Decimal] = mapped_column(Money)
    reference: Mapped[str] = mapped_column(String(200), default="")
    account_number: Mapped[str] = mapped_column(String(50), default="")
    imported_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    imported_by: Mapped[str] = mapped_column(String(100))


class BankAccount(Base):
    __tablename__ = "bank_accounts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(String(36), index=True)
    bank_name: Mapped[str] = mapped_column(String(200))
    account_name: Mapped[str] = mapped_column(String(200), default="")
    account_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    branch_code: Mapped[str] = mapped_column(String(50), default="")
    routing_number: Mapped[str] = mapped_column(String(50), default="")
    swift_code: Mapped[str] = mapped_column(String(20), default="")
    currency: Mapped[str] = mapped_column(String(10), default="ZMW")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
