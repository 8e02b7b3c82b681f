"""
Test invoices, procurement orders and payroll, and their ledger bookings
"""
from decimal import Decimal

import pytest

from balance_service.core.errors import ConflictError, ValidationError, NotFoundError
from balance_service.models import Role, Transaction
from balance_service.services.document_service import (
    InvoiceService, ProcurementService, EmployeeService
)

API = "/api/v1"


# ======================
# Invoices
# ======================

def test_invoice_total_comes_from_items_and_upfront_payment_is_booked(db):
    invoice = InvoiceService(db).create({
        "customer_name": "Acme",
        "items": [
            {"description": "Flour 50kg", "quantity": Decimal("2"), "unit_price": Decimal("120.50")},
            {"description": "Sugar", "quantity": Decimal("1.5"), "unit_price": Decimal("10")},
        ],
        "paid_amount": Decimal("100"),
        "payment_method": "BANK",
    })
    db.commit()

    assert invoice.invoice_number == "INV-00001"
    assert invoice.total == Decimal("256.00")
    assert invoice.paid_amount == Decimal("100.00")
    assert invoice.payment_status == "PARTIAL"

    (payment,) = db.query(Transaction).all()
    assert (payment.type, payment.method, payment.reference) == ("SALES_PAYMENT", "BANK", invoice.id)


def test_invoice_numbers_are_sequential_and_customers_reused(db):
    service = InvoiceService(db)
    item = {"description": "Bread", "quantity": Decimal("1"), "unit_price": Decimal("5")}

    first = service.create({"customer_name": "Acme", "items": [item]})
    second = service.create({"customer_name": "Acme", "items": [item]})
    db.commit()

    assert (first.invoice_number, second.invoice_number) == ("INV-00001", "INV-00002")
    assert first.customer_id == second.customer_id
    assert second.payment_status == "CREDIT"


def test_invoice_cannot_be_overpaid_upfront(db):
    with pytest.raises(ValidationError):
        InvoiceService(db).create({
            "customer_name": "Acme",
            "items": [{"description": "Bread", "quantity": Decimal("1"), "unit_price": Decimal("5")}],
            "paid_amount": Decimal("6"),
        })


def test_unknown_customer_id_is_not_found(db):
    with pytest.raises(NotFoundError):
        InvoiceService(db).create({
            "customer_id": 12,
            "items": [{"description": "Bread", "quantity": Decimal("1"), "unit_price": Decimal("5")}],
        })


# ======================
# Procurement Orders
# ======================

def test_order_with_payments_cannot_be_cancelled(db):
    service = ProcurementService(db)
    order = service.create({"supplier_name": "Nile Foods", "total": Decimal("400"), "paid": Decimal("50")})
    db.commit()

    assert order.paid == Decimal("50.00")
    with pytest.raises(ValidationError):
        service.update_status(order.id, "CANCELLED")


def test_order_status_transitions(db):
    service = ProcurementService(db)
    order = service.create({"supplier_name": "Nile Foods", "total": Decimal("400")})

    assert service.update_status(order.id, "PARTIAL").status == "PARTIAL"
    assert service.update_status(order.id, "RECEIVED").status == "RECEIVED"
    with pytest.raises(ValidationError):
        service.update_status(order.id, "CREATED")
    with pytest.raises(ValidationError):
        service.update_status(order.id, "LOST")


# ======================
# Payroll
# ======================

def test_salary_month_is_recorded_once_and_paid_through_the_ledger(db, accountant):
    service = EmployeeService(db)
    emp = service.create({"name": "Huda", "salary": Decimal("900")})
    salary = service.add_salary(emp.id, {"month": 3, "year": 2024})
    db.commit()

    with pytest.raises(ConflictError):
        service.add_salary(emp.id, {"month": 3, "year": 2024})

    service.pay_salary(salary.id, "BANK_NILE", accountant.id)
    db.commit()

    assert salary.paid_at is not None
    (txn,) = db.query(Transaction).filter(Transaction.type == "SALARY").all()
    assert (txn.amount, txn.method, txn.reference) == (Decimal("900.00"), "BANK_NILE", salary.id)


def test_advance_paid_now(db):
    service = EmployeeService(db)
    emp = service.create({"name": "Omer"})
    advance = service.add_advance(emp.id, {"amount": Decimal("150"), "reason": "Eid", "pay_now": True})
    db.commit()

    assert advance.paid_at is not None
    assert db.query(Transaction).filter(Transaction.type == "ADVANCE").count() == 1


# ======================
# Routes
# ======================

def test_sales_staff_create_invoices_over_the_api(client, auth_headers):
    headers = auth_headers(Role.SALES_BAKERY)

    response = client.post(f"{API}/sales/invoices", json={
        "customerName": "Corner Shop",
        "section": "BAKERY",
        "items": [{"description": "Baguette", "quantity": "10", "unitPrice": "1.25"}],
        "paidAmount": "12.50",
    }, headers=headers)

    assert response.status_code == 201
    body = response.json()
    assert body["total"] == "12.50"
    assert body["paymentStatus"] == "PAID"
    assert body["customer"]["name"] == "Corner Shop"

    listed = client.get(f"{API}/sales/invoices", headers=headers).json()
    assert [i["invoiceNumber"] for i in listed] == [body["invoiceNumber"]]


def test_payroll_endpoints(client, auth_headers):
    headers = auth_headers()

    emp = client.post(f"{API}/employees", json={"name": "Huda", "salary": "900"}, headers=headers).json()
    salary = client.post(f"{API}/employees/{emp['id']}/salaries",
                         json={"month": 4, "year": 2024}, headers=headers)
    assert salary.status_code == 201
    assert salary.json()["paidAt"] is None

    paid = client.post(f"{API}/employees/salaries/{salary.json()['id']}/pay",
                       json={"method": "BANK"}, headers=headers)
    assert paid.status_code == 200
    assert paid.json()["paidAt"] is not None

    again = client.post(f"{API}/employees/salaries/{salary.json()['id']}/pay", headers=headers)
    assert again.status_code == 409

    payroll = client.get(f"{API}/employees", headers=headers).json()
    assert payroll["reportType"] == "payroll"
    assert payroll["summary"]["salariesPaid"] == "900.00"
    assert payroll["summary"]["salariesOutstanding"] == "0.00"
