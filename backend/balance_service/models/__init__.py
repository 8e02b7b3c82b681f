"""
SQLAlchemy Models for the Balance Reporting Service
"""
from datetime import datetime
from decimal import Decimal
from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime, Numeric,
    ForeignKey, Index, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import relationship
import enum

from balance_service.core.database import Base


ZERO = Decimal("0.00")


# ==================== ENUMS ====================

class TransactionType(enum.Enum):
    SALES_PAYMENT = "SALES_PAYMENT"
    PROCUREMENT_PAYMENT = "PROCUREMENT_PAYMENT"
    EXPENSE = "EXPENSE"
    INCOME = "INCOME"
    SALARY = "SALARY"
    ADVANCE = "ADVANCE"
    BANK_TRANSFER = "BANK_TRANSFER"
    COMMISSION = "COMMISSION"


class PaymentMethod(enum.Enum):
    CASH = "CASH"
    BANK = "BANK"
    BANK_NILE = "BANK_NILE"


class PaymentStatus(enum.Enum):
    PAID = "PAID"
    PARTIAL = "PARTIAL"
    CREDIT = "CREDIT"


class DeliveryStatus(enum.Enum):
    DELIVERED = "DELIVERED"
    NOT_DELIVERED = "NOT_DELIVERED"


class OrderStatus(enum.Enum):
    CREATED = "CREATED"
    RECEIVED = "RECEIVED"
    PARTIAL = "PARTIAL"
    CANCELLED = "CANCELLED"


class Section(enum.Enum):
    GROCERY = "GROCERY"
    BAKERY = "BAKERY"


class Role(enum.Enum):
    SALES_GROCERY = "SALES_GROCERY"
    SALES_BAKERY = "SALES_BAKERY"
    INVENTORY = "INVENTORY"
    PROCUREMENT = "PROCUREMENT"
    ACCOUNTANT = "ACCOUNTANT"
    AUDITOR = "AUDITOR"
    MANAGER = "MANAGER"


class SessionStatus(enum.Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


def derive_payment_status(total, paid) -> str:
    """Payment status follows from the amounts, never from a stored flag."""
    total = total or ZERO
    paid = paid or ZERO
    if paid == total:
        return PaymentStatus.PAID.value
    if paid == 0:
        return PaymentStatus.CREDIT.value
    return PaymentStatus.PARTIAL.value


# ==================== USERS ====================

class User(Base):
    """User account"""
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True)
    username = Column(String(100), nullable=False, unique=True)
    hashed_password = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=True)
    role = Column(String(50), nullable=False, default=Role.AUDITOR.value)
    is_active = Column(Boolean, default=True)
    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


# ==================== PARTIES ====================

class Customer(Base):
    __tablename__ = 'customers'

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    invoices = relationship("Invoice", back_populates="customer")


class Supplier(Base):
    __tablename__ = 'suppliers'

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    orders = relationship("ProcurementOrder", back_populates="supplier")


# ==================== SALES ====================

class Invoice(Base):
    """Sales invoice; payment status is derived from total and paid_amount"""
    __tablename__ = 'invoices'

    id = Column(Integer, primary_key=True)
    invoice_number = Column(String(50), nullable=False, unique=True)
    customer_id = Column(Integer, ForeignKey('customers.id', ondelete='SET NULL'), nullable=True)
    section = Column(String(20), default=Section.GROCERY.value)
    total = Column(Numeric(18, 2), nullable=False, default=ZERO)
    paid_amount = Column(Numeric(18, 2), nullable=False, default=ZERO)
    delivery_status = Column(String(20), default=DeliveryStatus.NOT_DELIVERED.value)
    notes = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    customer = relationship("Customer", back_populates="invoices")
    items = relationship("InvoiceItem", back_populates="invoice", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint('paid_amount >= 0', name='ck_invoice_paid_non_negative'),
        CheckConstraint('paid_amount <= total', name='ck_invoice_paid_within_total'),
        Index('ix_invoices_created_at', 'created_at'),
    )

    @property
    def payment_status(self) -> str:
        return derive_payment_status(self.total, self.paid_amount)

    @property
    def receivable(self) -> Decimal:
        return (self.total or ZERO) - (self.paid_amount or ZERO)


class InvoiceItem(Base):
    __tablename__ = 'invoice_items'

    id = Column(Integer, primary_key=True)
    invoice_id = Column(Integer, ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False)
    description = Column(String(255), nullable=False)
    quantity = Column(Numeric(12, 3), nullable=False)
    unit_price = Column(Numeric(18, 2), nullable=False)
    line_total = Column(Numeric(18, 2), nullable=False)

    invoice = relationship("Invoice", back_populates="items")


# ==================== PROCUREMENT ====================

class ProcurementOrder(Base):
    """Purchase order placed with a supplier"""
    __tablename__ = 'procurement_orders'

    id = Column(Integer, primary_key=True)
    order_number = Column(String(50), nullable=False, unique=True)
    supplier_id = Column(Integer, ForeignKey('suppliers.id', ondelete='SET NULL'), nullable=True)
    section = Column(String(20), default=Section.GROCERY.value)
    total = Column(Numeric(18, 2), nullable=False, default=ZERO)
    paid = Column(Numeric(18, 2), nullable=False, default=ZERO)
    status = Column(String(20), nullable=False, default=OrderStatus.CREATED.value)
    notes = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    supplier = relationship("Supplier", back_populates="orders")

    __table_args__ = (
        CheckConstraint('paid >= 0', name='ck_order_paid_non_negative'),
        CheckConstraint('paid <= total', name='ck_order_paid_within_total'),
        Index('ix_procurement_orders_created_at', 'created_at'),
    )

    @property
    def payment_status(self) -> str:
        return derive_payment_status(self.total, self.paid)

    @property
    def outstanding(self) -> Decimal:
        return (self.total or ZERO) - (self.paid or ZERO)

    @property
    def is_cancelled(self) -> bool:
        return self.status == OrderStatus.CANCELLED.value


# ==================== EMPLOYEES ====================

class Employee(Base):
    __tablename__ = 'employees'

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    position = Column(String(100), nullable=True)
    phone = Column(String(50), nullable=True)
    salary = Column(Numeric(18, 2), nullable=False, default=ZERO)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    salaries = relationship("SalaryPayment", back_populates="employee", cascade="all, delete-orphan",
                            order_by="SalaryPayment.id")
    advances = relationship("Advance", back_populates="employee", cascade="all, delete-orphan",
                            order_by="Advance.id")


class SalaryPayment(Base):
    """Monthly salary record; unpaid while paid_at is null"""
    __tablename__ = 'salaries'

    id = Column(Integer, primary_key=True)
    employee_id = Column(Integer, ForeignKey('employees.id', ondelete='CASCADE'), nullable=False)
    amount = Column(Numeric(18, 2), nullable=False)
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    payment_method = Column(String(20), nullable=False, default=PaymentMethod.CASH.value)
    paid_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    employee = relationship("Employee", back_populates="salaries")

    __table_args__ = (
        UniqueConstraint('employee_id', 'month', 'year', name='uq_salary_employee_month'),
    )


class Advance(Base):
    """Ad-hoc draw against an employee's salary"""
    __tablename__ = 'advances'

    id = Column(Integer, primary_key=True)
    employee_id = Column(Integer, ForeignKey('employees.id', ondelete='CASCADE'), nullable=False)
    amount = Column(Numeric(18, 2), nullable=False)
    reason = Column(String(255), nullable=True)
    payment_method = Column(String(20), nullable=False, default=PaymentMethod.CASH.value)
    paid_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    employee = relationship("Employee", back_populates="advances")


# ==================== LEDGER ====================

class Transaction(Base):
    """
    Append-only ledger row.

    Rows are never updated or deleted; a correction is a new offsetting row.
    `reference` points at the source document implied by `type` and carries no
    foreign key, so it may dangle.
    """
    __tablename__ = 'ledger_transactions'

    id = Column(Integer, primary_key=True)
    type = Column(String(30), nullable=False)
    amount = Column(Numeric(18, 2), nullable=False)
    method = Column(String(20), nullable=False)
    to_method = Column(String(20), nullable=True)  # BANK_TRANSFER only
    date = Column(DateTime, nullable=False, default=datetime.utcnow)
    reference = Column(Integer, nullable=True)
    description = Column(Text, nullable=True)
    recorded_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    recorder = relationship("User")

    __table_args__ = (
        CheckConstraint('amount >= 0', name='ck_transaction_amount_non_negative'),
        Index('ix_ledger_transactions_date', 'date'),
        Index('ix_ledger_transactions_type', 'type'),
        Index('ix_ledger_transactions_reference', 'type', 'reference'),
    )


# ==================== BALANCE SESSIONS ====================

class BalanceSession(Base):
    """Frozen closing snapshot of a period; never recomputed after close"""
    __tablename__ = 'balance_sessions'

    id = Column(Integer, primary_key=True)
    period_start = Column(DateTime, nullable=False)
    period_end = Column(DateTime, nullable=False)
    status = Column(String(20), nullable=False, default=SessionStatus.CLOSED.value)
    summary = Column(Text, nullable=False)  # JSON, amounts as strings
    last_transaction_id = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    closed_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    closed_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)

    closed_by_user = relationship("User")

    __table_args__ = (
        UniqueConstraint('period_start', name='uq_balance_session_start'),
        Index('ix_balance_sessions_period_end', 'period_end'),
    )


# ==================== AUDIT LOG ====================

class AuditLog(Base):
    """Audit trail for sensitive operations"""
    __tablename__ = 'audit_logs'

    id = Column(Integer, primary_key=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)

    user_id = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    username = Column(String(100), nullable=True)  # Store username in case user is deleted
    role = Column(String(50), nullable=True)
    ip_address = Column(String(50), nullable=True)

    action = Column(String(50), nullable=False)
    resource_type = Column(String(100), nullable=False)
    resource_id = Column(Integer, nullable=True)

    description = Column(Text, nullable=True)
    new_values = Column(Text, nullable=True)  # JSON string
    request_path = Column(String(500), nullable=True)

    status = Column(String(20), default='success')  # success, failure, error
    error_message = Column(Text, nullable=True)

    user = relationship("User")

    __table_args__ = (
        Index('ix_audit_logs_timestamp', 'timestamp'),
        Index('ix_audit_logs_user_id', 'user_id'),
        Index('ix_audit_logs_resource', 'resource_type', 'resource_id'),
        Index('ix_audit_logs_action', 'action'),
    )
