"""
Test the aggregation engine on in-memory snapshots
"""
import json
import random
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from balance_service.models import (
    Customer, Supplier, Invoice, ProcurementOrder, Transaction, Employee,
    SalaryPayment, Advance, OrderStatus, PaymentStatus, derive_payment_status
)
from balance_service.services import aggregation
from balance_service.services.periods import Granularity, days_range, report_zone

ZONE = report_zone("Africa/Khartoum")
DAY = datetime(2024, 3, 10, 9, 0)


def txn(id, type, amount, method="CASH", to_method=None, date=DAY, reference=None):
    return Transaction(id=id, type=type, amount=Decimal(amount), method=method,
                       to_method=to_method, date=date, reference=reference)


def invoice(id, total, paid, customer):
    return Invoice(id=id, invoice_number=f"INV-{id:05d}", customer=customer,
                   total=Decimal(total), paid_amount=Decimal(paid),
                   section="GROCERY", delivery_status="NOT_DELIVERED", created_at=DAY)


def order(id, total, paid, supplier, status=OrderStatus.CREATED):
    return ProcurementOrder(id=id, order_number=f"PO-{id:05d}", supplier=supplier,
                            total=Decimal(total), paid=Decimal(paid), status=status.value,
                            section="GROCERY", created_at=DAY)


# ======================
# Scenarios
# ======================

def test_daily_income_loss_scenario():
    report = aggregation.daily_income_loss([
        txn(1, "SALES_PAYMENT", "1000"),
        txn(2, "EXPENSE", "300"),
    ], ZONE)

    assert report["summary"] == {
        "totalIncome": Decimal("1000.00"),
        "totalLosses": Decimal("300.00"),
        "netProfit": Decimal("700.00"),
    }
    (day,) = report["dailyReports"]
    assert day["date"] == date(2024, 3, 10)
    assert [row["id"] for row in day["income"]] == [1]
    assert [row["id"] for row in day["losses"]] == [2]


def test_partial_invoice_outstanding():
    acme = Customer(id=1, name="Acme")
    inv = invoice(1, "500", "200", acme)

    assert inv.receivable == Decimal("300")
    assert inv.payment_status == PaymentStatus.PARTIAL.value

    fees = aggregation.outstanding_fees([inv], [])
    assert fees["customers"] == [
        {"id": 1, "name": "Acme", "outstanding": Decimal("300.00"), "invoiceCount": 1}
    ]
    assert fees["summary"]["customersOwesUs"] == Decimal("300.00")


@pytest.mark.parametrize("total,paid,status", [
    ("100", "100", "PAID"),
    ("100", "0", "CREDIT"),
    ("100", "0.01", "PARTIAL"),
    ("0", "0", "PAID"),
])
def test_payment_status_is_derived_from_amounts(total, paid, status):
    assert derive_payment_status(Decimal(total), Decimal(paid)) == status


def test_empty_snapshot_yields_zeros():
    summary = aggregation.balance_summary([], [], [])

    assert summary["sales"] == {"total": Decimal("0.00"), "count": 0,
                                "collected": Decimal("0.00"), "receivable": Decimal("0.00")}
    assert summary["netBalance"] == Decimal("0.00")
    assert summary["profitMargin"] == Decimal("0.00")

    cash = aggregation.liquid_cash([])
    assert cash["net"] == {"total": 0, "cash": 0, "bank": 0, "bankNile": 0}
    assert [row["method"] for row in cash["byMethod"]] == ["CASH", "BANK", "BANK_NILE"]

    assert aggregation.daily_income_loss([], ZONE) == {
        "summary": {"totalIncome": 0, "totalLosses": 0, "netProfit": 0},
        "dailyReports": [],
    }


# ======================
# Balance Summary
# ======================

def test_cash_and_accrual_bottom_lines_differ():
    acme, nile = Customer(id=1, name="Acme"), Supplier(id=1, name="Nile Foods")
    invoices = [invoice(1, "1000", "600", acme)]
    orders = [
        order(1, "400", "100", nile),
        order(2, "999", "0", nile, OrderStatus.CANCELLED),
    ]
    transactions = [
        txn(1, "SALES_PAYMENT", "600", reference=1),
        txn(2, "PROCUREMENT_PAYMENT", "100", reference=1),
        txn(3, "EXPENSE", "50"),
    ]

    summary = aggregation.balance_summary(invoices, orders, transactions)

    assert summary["procurement"] == {"total": Decimal("400.00"), "count": 1, "paid": Decimal("100.00")}
    assert summary["netBalance"] == Decimal("450.00")   # 600 - 100 - 50
    assert summary["netProfit"] == Decimal("550.00")    # 1000 - 400 - 50
    assert summary["profitMargin"] == Decimal("55.00")


def test_balance_summary_is_idempotent():
    acme = Customer(id=1, name="Acme")
    invoices = [invoice(i, f"{i * 10}.33", f"{i}.10", acme) for i in range(1, 20)]
    transactions = [txn(i, "EXPENSE", f"{i}.05") for i in range(1, 20)]

    first = aggregation.balance_summary(invoices, [], transactions)
    second = aggregation.balance_summary(invoices, [], transactions)

    assert json.dumps(first, default=str, sort_keys=True) == json.dumps(second, default=str, sort_keys=True)


def test_sales_total_never_below_collected():
    rng = random.Random(11)
    acme = Customer(id=1, name="Acme")
    for _ in range(50):
        invoices = []
        for i in range(rng.randrange(0, 10)):
            total = Decimal(rng.randrange(0, 100000)) / 100
            paid = Decimal(rng.randrange(0, int(total * 100) + 1)) / 100
            invoices.append(invoice(i + 1, str(total), str(paid), acme))

        sales = aggregation.balance_summary(invoices, [], [])["sales"]

        assert sales["total"] >= sales["collected"]
        assert sales["receivable"] == sales["total"] - sales["collected"]


# ======================
# Outstanding Fees
# ======================

def test_outstanding_ordering_is_deterministic():
    b, a, c = Customer(id=2, name="Beta"), Customer(id=1, name="Alpha"), Customer(id=3, name="Gamma")
    invoices = [
        invoice(1, "100", "0", b),
        invoice(2, "100", "0", a),
        invoice(3, "300", "100", c),
        invoice(4, "100", "100", c),   # paid, not outstanding
    ]

    rows = aggregation.outstanding_fees(invoices, [])["customers"]

    assert [r["name"] for r in rows] == ["Gamma", "Alpha", "Beta"]
    assert rows[0]["invoiceCount"] == 1


def test_cancelled_orders_are_not_liabilities():
    nile = Supplier(id=1, name="Nile Foods")
    orders = [order(1, "500", "200", nile), order(2, "700", "0", nile, OrderStatus.CANCELLED)]

    fees = aggregation.outstanding_fees([], orders)

    assert fees["summary"]["weOweSuppliers"] == Decimal("300.00")
    assert fees["suppliers"][0]["orderCount"] == 1


def test_document_with_missing_party_is_skipped(caplog):
    orphan = invoice(1, "100", "0", None)

    fees = aggregation.outstanding_fees([orphan], [])

    assert fees["customers"] == []
    assert "missing" in caplog.text


# ======================
# Liquid Cash & Bank
# ======================

def test_liquid_cash_nets_per_method_and_moves_transfers():
    cash = aggregation.liquid_cash([
        txn(1, "SALES_PAYMENT", "1000", "CASH"),
        txn(2, "BANK_TRANSFER", "400", "CASH", to_method="BANK"),
        txn(3, "SALARY", "100", "BANK"),
        txn(4, "COMMISSION", "25.50", "BANK_NILE"),
    ])

    assert cash["net"] == {
        "total": Decimal("925.50"),
        "cash": Decimal("600.00"),
        "bank": Decimal("300.00"),
        "bankNile": Decimal("25.50"),
    }
    bank = next(r for r in cash["byMethod"] if r["method"] == "BANK")
    assert (bank["deposits"], bank["withdrawals"], bank["count"]) == (Decimal("400.00"), Decimal("100.00"), 2)


def test_bank_transactions_list_transfers_without_totalling_them():
    report = aggregation.bank_transactions([
        txn(1, "SALES_PAYMENT", "500", "BANK"),
        txn(2, "EXPENSE", "120", "BANK_NILE"),
        txn(3, "BANK_TRANSFER", "1000", "CASH", to_method="BANK"),
        txn(4, "EXPENSE", "999", "CASH"),
    ])

    assert report["summary"] == {
        "income": Decimal("500.00"),
        "expenses": Decimal("120.00"),
        "net": Decimal("380.00"),
        "total": Decimal("620.00"),
        "count": 3,
    }
    assert [(r["id"], r["type"]) for r in report["transactions"]] == [
        (1, "INCOME"), (2, "EXPENSE"), (3, "TRANSFER")
    ]


# ======================
# Commissions
# ======================

def test_commission_report_joins_orders_and_skips_dangling(caplog):
    nile = Supplier(id=1, name="Nile Foods")
    po = order(7, "1000", "0", nile)

    report = aggregation.commission_report([
        txn(1, "COMMISSION", "50", reference=7),
        txn(2, "COMMISSION", "30", reference=99),
        txn(3, "COMMISSION", "20"),
        txn(4, "INCOME", "1000"),
    ], {7: po})

    assert report["summary"] == {"total": Decimal("70.00"), "count": 2}
    assert report["data"][0]["orderNumber"] == "PO-00007"
    assert report["data"][0]["supplier"] == "Nile Foods"
    assert report["data"][1]["orderNumber"] is None
    assert "99" in caplog.text


# ======================
# Customer / Supplier / Daily
# ======================

def test_supplier_report_lists_but_does_not_total_cancelled_orders():
    nile = Supplier(id=1, name="Nile Foods")
    report = aggregation.supplier_report([
        order(1, "300", "300", nile),
        order(2, "500", "0", nile, OrderStatus.CANCELLED),
    ])

    assert report["summary"]["totalOrders"] == 1
    assert report["summary"]["cancelledOrders"] == 1
    assert report["summary"]["totalPurchases"] == Decimal("300.00")
    assert len(report["data"]) == 2


def test_daily_report_cash_flow():
    acme, nile = Customer(id=1, name="Acme"), Supplier(id=1, name="Nile Foods")
    report = aggregation.daily_report(
        date(2024, 3, 10),
        [invoice(1, "800", "300", acme)],
        [order(1, "200", "0", nile)],
        [txn(1, "SALES_PAYMENT", "300"), txn(2, "INCOME", "50"), txn(3, "EXPENSE", "120")],
    )

    assert report["sales"]["pending"] == Decimal("500.00")
    assert report["expenses"]["total"] == Decimal("120.00")
    assert report["summary"] == {
        "totalRevenue": Decimal("350.00"),
        "totalCosts": Decimal("120.00"),
        "netCashFlow": Decimal("230.00"),
    }


# ======================
# Payroll / Assets
# ======================

def test_unpaid_payroll_is_outstanding_not_disbursed():
    emp = Employee(id=1, name="Huda", salary=Decimal("900"), is_active=True)
    emp.salaries = [
        SalaryPayment(id=1, amount=Decimal("900"), month=1, year=2024, payment_method="CASH", paid_at=DAY),
        SalaryPayment(id=2, amount=Decimal("900"), month=2, year=2024, payment_method="CASH"),
    ]
    emp.advances = [Advance(id=1, amount=Decimal("150"), payment_method="CASH")]

    summary = aggregation.payroll_summary([emp])["summary"]

    assert summary["salariesPaid"] == Decimal("900.00")
    assert summary["salariesOutstanding"] == Decimal("900.00")
    assert summary["advancesPaid"] == Decimal("0.00")
    assert summary["advancesOutstanding"] == Decimal("150.00")


def test_assets_and_liabilities():
    acme, nile = Customer(id=1, name="Acme"), Supplier(id=1, name="Nile Foods")
    emp = Employee(id=1, name="Huda", salary=Decimal("900"), is_active=True)
    emp.salaries = [SalaryPayment(id=1, amount=Decimal("900"), month=2, year=2024, payment_method="CASH")]

    report = aggregation.assets_liabilities(
        [invoice(1, "1000", "400", acme)],
        [order(1, "700", "200", nile)],
        [txn(1, "SALES_PAYMENT", "400"), txn(2, "PROCUREMENT_PAYMENT", "200")],
        [emp],
    )

    assert report["assets"] == {"total": Decimal("800.00"), "liquidCash": Decimal("200.00"),
                                "receivables": Decimal("600.00")}
    assert report["liabilities"]["total"] == Decimal("1400.00")
    assert report["netWorth"] == Decimal("-600.00")


# ======================
# Periodic Totals
# ======================

def test_periodic_bucket_totals_sum_to_range_total():
    transactions = [
        txn(i, "SALES_PAYMENT" if i % 3 else "EXPENSE", f"{i}.25",
            date=datetime(2024, 1, 1, 10, 0) + timedelta(days=i % 60))
        for i in range(1, 121)
    ]
    r = days_range(date(2024, 1, 1), date(2024, 2, 29), ZONE)

    report = aggregation.periodic_totals(transactions, Granularity.WEEKLY, r, ZONE)

    assert sum(b["income"] for b in report["buckets"]) == report["summary"]["income"]
    assert sum(b["expenses"] for b in report["buckets"]) == report["summary"]["expenses"]
    assert report["summary"]["count"] == 120
    assert report["summary"]["income"] == aggregation.total(
        t.amount for t in transactions if t.type == "SALES_PAYMENT"
    )


def test_money_rounds_half_up():
    assert aggregation.money("2.345") == Decimal("2.35")
    assert aggregation.money(None) == Decimal("0.00")
    assert str(aggregation.money(7)) == "7.00"
