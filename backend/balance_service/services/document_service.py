"""
Document Services - Invoices, Procurement Orders, Employees

Documents are the sources ledger rows point at. Money only moves through the
ledger: an upfront payment on a new invoice or order, and paying a salary or
advance, are appended as ledger transactions in the same DB transaction.
"""
from typing import Optional, List
from decimal import Decimal
from datetime import datetime
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from balance_service.core.errors import ValidationError, NotFoundError, ConflictError
from balance_service.models import (
    Invoice, InvoiceItem, Customer, Supplier, ProcurementOrder, Employee,
    SalaryPayment, Advance, OrderStatus, DeliveryStatus, Section, PaymentMethod,
    TransactionType
)
from balance_service.services.aggregation import money, ZERO
from balance_service.services.ledger_service import LedgerService, enum_value
from balance_service.services.periods import DateRange, ALL_TIME

logger = logging.getLogger(__name__)

# CANCELLED is terminal; RECEIVED is terminal
ORDER_TRANSITIONS = {
    OrderStatus.CREATED.value: {OrderStatus.RECEIVED.value, OrderStatus.PARTIAL.value,
                                OrderStatus.CANCELLED.value},
    OrderStatus.PARTIAL.value: {OrderStatus.RECEIVED.value, OrderStatus.CANCELLED.value},
    OrderStatus.RECEIVED.value: set(),
    OrderStatus.CANCELLED.value: set(),
}


def _next_number(db: Session, column, prefix: str) -> str:
    """Next sequential document number such as INV-00042"""
    last = db.query(column).filter(column.like(f"{prefix}-%")).order_by(column.desc()).first()
    if last:
        try:
            return f"{prefix}-{int(last[0].replace(prefix + '-', '')) + 1:05d}"
        except ValueError:
            pass
    return f"{prefix}-00001"


def _party(db: Session, model, party_id: Optional[int], name: Optional[str], phone: Optional[str]):
    """Look a customer/supplier up by id, or by name creating it when new"""
    if party_id is not None:
        party = db.get(model, party_id)
        if party is None:
            raise NotFoundError(f"{model.__name__} {party_id} not found")
        return party
    if not name:
        raise ValidationError(f"{model.__name__.lower()}_id or {model.__name__.lower()}_name is required")
    party = db.query(model).filter(model.name == name).first()
    if party is None:
        party = model(name=name, phone=phone)
        db.add(party)
        db.flush()
    return party


def _upfront_payment(db: Session, txn_type: TransactionType, reference: int, amount: Decimal,
                     method, user_id: Optional[int], description: str):
    if amount > 0:
        LedgerService(db).append({
            "type": txn_type,
            "amount": amount,
            "method": method or PaymentMethod.CASH,
            "reference": reference,
            "description": description,
        }, recorded_by=user_id)


class InvoiceService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, invoice_id: int) -> Optional[Invoice]:
        return self.db.query(Invoice).options(
            joinedload(Invoice.items),
            joinedload(Invoice.customer)
        ).filter(Invoice.id == invoice_id).first()

    def list(self, date_range: DateRange = ALL_TIME, customer_id: int = None,
             section: str = None) -> List[Invoice]:
        query = self.db.query(Invoice).options(
            joinedload(Invoice.customer),
            joinedload(Invoice.items)
        )
        if date_range.start is not None:
            query = query.filter(Invoice.created_at >= date_range.start)
        if date_range.end is not None:
            query = query.filter(Invoice.created_at < date_range.end)
        if customer_id:
            query = query.filter(Invoice.customer_id == customer_id)
        if section:
            query = query.filter(Invoice.section == enum_value(Section, section, "section"))
        return query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).all()

    def create(self, data: dict, user_id: int = None) -> Invoice:
        """Totals come from the items; an upfront paid amount is recorded as a SALES_PAYMENT"""
        items = data.get("items") or []
        if not items:
            raise ValidationError("An invoice needs at least one item")

        customer = _party(self.db, Customer, data.get("customer_id"),
                          data.get("customer_name"), data.get("customer_phone"))

        invoice = Invoice(
            invoice_number=_next_number(self.db, Invoice.invoice_number, "INV"),
            customer_id=customer.id,
            section=enum_value(Section, data.get("section") or Section.GROCERY, "section"),
            delivery_status=enum_value(
                DeliveryStatus, data.get("delivery_status") or DeliveryStatus.NOT_DELIVERED,
                "delivery status"),
            notes=data.get("notes"),
            created_by=user_id,
            total=ZERO,
            paid_amount=ZERO,
        )

        total = ZERO
        for item in items:
            quantity = Decimal(str(item["quantity"]))
            unit_price = money(item["unit_price"])
            if quantity <= 0 or unit_price < 0:
                raise ValidationError(f"Invalid quantity or price for item '{item['description']}'")
            line_total = money(quantity * unit_price)
            invoice.items.append(InvoiceItem(
                description=item["description"],
                quantity=quantity,
                unit_price=unit_price,
                line_total=line_total,
            ))
            total += line_total
        invoice.total = money(total)

        paid = money(data.get("paid_amount") or ZERO)
        if paid < 0 or paid > invoice.total:
            raise ValidationError(f"Paid amount must be between 0 and the invoice total ({invoice.total})")

        self.db.add(invoice)
        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError("Invoice number was taken concurrently; retry")

        _upfront_payment(self.db, TransactionType.SALES_PAYMENT, invoice.id, paid,
                         data.get("payment_method"), user_id,
                         f"Payment for invoice {invoice.invoice_number}")
        logger.info(f"Invoice {invoice.invoice_number} created total={invoice.total}")
        return invoice


class ProcurementService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, order_id: int) -> Optional[ProcurementOrder]:
        return self.db.query(ProcurementOrder).options(
            joinedload(ProcurementOrder.supplier)
        ).filter(ProcurementOrder.id == order_id).first()

    def list(self, date_range: DateRange = ALL_TIME, supplier_id: int = None,
             status: str = None) -> List[ProcurementOrder]:
        query = self.db.query(ProcurementOrder).options(joinedload(ProcurementOrder.supplier))
        if date_range.start is not None:
            query = query.filter(ProcurementOrder.created_at >= date_range.start)
        if date_range.end is not None:
            query = query.filter(ProcurementOrder.created_at < date_range.end)
        if supplier_id:
            query = query.filter(ProcurementOrder.supplier_id == supplier_id)
        if status:
            query = query.filter(ProcurementOrder.status == enum_value(OrderStatus, status, "order status"))
        return query.order_by(ProcurementOrder.created_at.desc(), ProcurementOrder.id.desc()).all()

    def create(self, data: dict, user_id: int = None) -> ProcurementOrder:
        supplier = _party(self.db, Supplier, data.get("supplier_id"),
                          data.get("supplier_name"), data.get("supplier_phone"))
        total = money(data.get("total"))
        if total <= 0:
            raise ValidationError("Order total must be positive")
        paid = money(data.get("paid") or ZERO)
        if paid < 0 or paid > total:
            raise ValidationError(f"Paid amount must be between 0 and the order total ({total})")

        order = ProcurementOrder(
            order_number=_next_number(self.db, ProcurementOrder.order_number, "PO"),
            supplier_id=supplier.id,
            section=enum_value(Section, data.get("section") or Section.GROCERY, "section"),
            total=total,
            paid=ZERO,
            status=OrderStatus.CREATED.value,
            notes=data.get("notes"),
            created_by=user_id,
        )
        self.db.add(order)
        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError("Order number was taken concurrently; retry")

        _upfront_payment(self.db, TransactionType.PROCUREMENT_PAYMENT, order.id, paid,
                         data.get("payment_method"), user_id,
                         f"Payment for order {order.order_number}")
        logger.info(f"Order {order.order_number} created total={order.total}")
        return order

    def update_status(self, order_id: int, status) -> ProcurementOrder:
        order = self.get_by_id(order_id)
        if order is None:
            raise NotFoundError(f"Procurement order {order_id} not found")

        new_status = enum_value(OrderStatus, status, "order status")
        if new_status == order.status:
            return order
        if new_status not in ORDER_TRANSITIONS[order.status]:
            raise ValidationError(f"Cannot move order from {order.status} to {new_status}")
        if new_status == OrderStatus.CANCELLED.value and money(order.paid) > 0:
            raise ValidationError("An order with recorded payments cannot be cancelled")

        order.status = new_status
        self.db.flush()
        return order


class EmployeeService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, employee_id: int) -> Optional[Employee]:
        return self.db.query(Employee).options(
            joinedload(Employee.salaries),
            joinedload(Employee.advances)
        ).filter(Employee.id == employee_id).first()

    def list(self, active_only: bool = False) -> List[Employee]:
        query = self.db.query(Employee).options(
            joinedload(Employee.salaries),
            joinedload(Employee.advances)
        )
        if active_only:
            query = query.filter(Employee.is_active == True)
        return query.order_by(Employee.name, Employee.id).all()

    def create(self, data: dict) -> Employee:
        salary = money(data.get("salary"))
        if salary < 0:
            raise ValidationError("Salary must not be negative")
        employee = Employee(
            name=data["name"],
            position=data.get("position"),
            phone=data.get("phone"),
            salary=salary,
            is_active=True,
        )
        self.db.add(employee)
        self.db.flush()
        return employee

    def _require(self, employee_id: int) -> Employee:
        employee = self.db.get(Employee, employee_id)
        if employee is None:
            raise NotFoundError(f"Employee {employee_id} not found")
        return employee

    def add_salary(self, employee_id: int, data: dict, user_id: int = None) -> SalaryPayment:
        employee = self._require(employee_id)
        month, year = data["month"], data["year"]
        if not 1 <= month <= 12:
            raise ValidationError("month must be between 1 and 12")

        exists = self.db.query(SalaryPayment).filter(
            SalaryPayment.employee_id == employee.id,
            SalaryPayment.month == month,
            SalaryPayment.year == year
        ).first()
        if exists:
            raise ConflictError(f"Salary for {month:02d}/{year} is already recorded for {employee.name}")

        amount = money(data.get("amount") or employee.salary)
        if amount <= 0:
            raise ValidationError("Salary amount must be positive")

        record = SalaryPayment(
            employee_id=employee.id,
            amount=amount,
            month=month,
            year=year,
            payment_method=enum_value(PaymentMethod, data.get("payment_method") or PaymentMethod.CASH,
                                       "payment method"),
            notes=data.get("notes"),
            created_by=user_id,
        )
        self.db.add(record)
        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError(f"Salary for {month:02d}/{year} is already recorded for {employee.name}")

        if data.get("pay_now"):
            self.pay_salary(record.id, record.payment_method, user_id)
        return record

    def add_advance(self, employee_id: int, data: dict, user_id: int = None) -> Advance:
        employee = self._require(employee_id)
        amount = money(data.get("amount"))
        if amount <= 0:
            raise ValidationError("Advance amount must be positive")

        record = Advance(
            employee_id=employee.id,
            amount=amount,
            reason=data.get("reason"),
            payment_method=enum_value(PaymentMethod, data.get("payment_method") or PaymentMethod.CASH,
                                       "payment method"),
            notes=data.get("notes"),
            created_by=user_id,
        )
        self.db.add(record)
        self.db.flush()

        if data.get("pay_now"):
            self.pay_advance(record.id, record.payment_method, user_id)
        return record

    def pay_salary(self, salary_id: int, method=None, user_id: int = None) -> SalaryPayment:
        record = self.db.get(SalaryPayment, salary_id)
        if record is None:
            raise NotFoundError(f"Salary record {salary_id} not found")
        self._pay(TransactionType.SALARY, record, method, user_id,
                  f"Salary {record.month:02d}/{record.year} for {record.employee.name}")
        return record

    def pay_advance(self, advance_id: int, method=None, user_id: int = None) -> Advance:
        record = self.db.get(Advance, advance_id)
        if record is None:
            raise NotFoundError(f"Advance {advance_id} not found")
        self._pay(TransactionType.ADVANCE, record, method, user_id,
                  f"Advance for {record.employee.name}")
        return record

    def _pay(self, txn_type: TransactionType, record, method, user_id, description: str):
        """The ledger append stamps paid_at on the record"""
        LedgerService(self.db).append({
            "type": txn_type,
            "amount": record.amount,
            "method": method or record.payment_method,
            "reference": record.id,
            "date": datetime.utcnow(),
            "description": description,
        }, recorded_by=user_id)
