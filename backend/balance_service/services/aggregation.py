"""
Aggregation Engine - pure report computations

Every function takes already-scoped snapshots (invoices, orders, ledger
transactions, employees) and returns a fixed-shape dict with camelCase keys
and Decimal amounts. Nothing here touches the database or the clock, so the
same snapshot always yields the same figures.
"""
from collections import OrderedDict
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Mapping, Optional, Sequence
import logging

from balance_service.models import (
    TransactionType, PaymentMethod, PaymentStatus, derive_payment_status
)
from balance_service.services.periods import (
    ALL_TIME, DateRange, Granularity, bucket, local_date
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
TWOPLACES = Decimal("0.01")

INCOME_TYPES = frozenset({
    TransactionType.SALES_PAYMENT.value,
    TransactionType.INCOME.value,
    TransactionType.COMMISSION.value,
})
EXPENSE_TYPES = frozenset({
    TransactionType.PROCUREMENT_PAYMENT.value,
    TransactionType.EXPENSE.value,
    TransactionType.SALARY.value,
    TransactionType.ADVANCE.value,
})
TRANSFER = TransactionType.BANK_TRANSFER.value

METHODS = [m.value for m in PaymentMethod]
BANK_METHODS = (PaymentMethod.BANK.value, PaymentMethod.BANK_NILE.value)
METHOD_KEYS = {
    PaymentMethod.CASH.value: "cash",
    PaymentMethod.BANK.value: "bank",
    PaymentMethod.BANK_NILE.value: "bankNile",
}

OUTSTANDING_STATUSES = (PaymentStatus.CREDIT.value, PaymentStatus.PARTIAL.value)


# ==================== HELPERS ====================

def money(value) -> Decimal:
    """Two-place decimal, half-up; None counts as zero"""
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def total(values: Iterable) -> Decimal:
    return money(sum((money(v) for v in values), ZERO))


def classify(txn) -> str:
    """Display class of a transaction: INCOME, EXPENSE or TRANSFER"""
    if txn.type in INCOME_TYPES:
        return "INCOME"
    if txn.type in EXPENSE_TYPES:
        return "EXPENSE"
    if txn.type == TRANSFER:
        return "TRANSFER"
    raise ValueError(f"Unknown transaction type: {txn.type}")


def _ordered(transactions: Iterable) -> List:
    return sorted(transactions, key=lambda t: (t.date, t.id or 0))


def _recorder_name(txn) -> Optional[str]:
    recorder = getattr(txn, "recorder", None)
    return recorder.username if recorder is not None else None


def transaction_row(txn) -> Dict:
    return {
        "id": txn.id,
        "type": txn.type,
        "amount": money(txn.amount),
        "method": txn.method,
        "toMethod": txn.to_method,
        "date": txn.date,
        "reference": txn.reference,
        "description": txn.description,
        "recordedBy": _recorder_name(txn),
    }


def _party(entity) -> Optional[Dict]:
    if entity is None:
        return None
    return {"id": entity.id, "name": entity.name}


def invoice_row(invoice) -> Dict:
    return {
        "id": invoice.id,
        "invoiceNumber": invoice.invoice_number,
        "customer": _party(invoice.customer),
        "section": invoice.section,
        "total": money(invoice.total),
        "paidAmount": money(invoice.paid_amount),
        "outstanding": money(invoice.total) - money(invoice.paid_amount),
        "paymentStatus": derive_payment_status(money(invoice.total), money(invoice.paid_amount)),
        "deliveryStatus": invoice.delivery_status,
        "notes": invoice.notes,
        "createdAt": invoice.created_at,
        "items": [{
            "id": item.id,
            "description": item.description,
            "quantity": item.quantity,
            "unitPrice": money(item.unit_price),
            "lineTotal": money(item.line_total),
        } for item in invoice.items],
    }


def order_row(order) -> Dict:
    return {
        "id": order.id,
        "orderNumber": order.order_number,
        "supplier": _party(order.supplier),
        "section": order.section,
        "total": money(order.total),
        "paid": money(order.paid),
        "outstanding": money(order.total) - money(order.paid),
        "status": order.status,
        "paymentStatus": derive_payment_status(money(order.total), money(order.paid)),
        "notes": order.notes,
        "createdAt": order.created_at,
    }


def _live_orders(orders: Iterable) -> List:
    return [order for order in orders if not order.is_cancelled]


# ==================== BALANCE SUMMARY ====================

def balance_summary(invoices: Sequence, orders: Sequence, transactions: Sequence) -> Dict:
    """
    Cash-basis and accrual-basis figures side by side.

    netBalance = collected - (procurement paid + expenses)   (cash)
    netProfit  = revenue - (procurement total + expenses)    (accrual)
    """
    sales_total = total(inv.total for inv in invoices)
    collected = total(inv.paid_amount for inv in invoices)

    live_orders = _live_orders(orders)
    procurement_total = total(order.total for order in live_orders)
    procurement_paid = total(
        t.amount for t in transactions if t.type == TransactionType.PROCUREMENT_PAYMENT.value
    )

    expenses = [t for t in transactions if t.type == TransactionType.EXPENSE.value]
    expenses_total = total(t.amount for t in expenses)

    net_profit = sales_total - procurement_total - expenses_total
    if sales_total == 0:
        profit_margin = ZERO
    else:
        profit_margin = money(net_profit / sales_total * 100)

    return {
        "sales": {
            "total": sales_total,
            "count": len(invoices),
            "collected": collected,
            "receivable": sales_total - collected,
        },
        "procurement": {
            "total": procurement_total,
            "count": len(live_orders),
            "paid": procurement_paid,
        },
        "expenses": {
            "total": expenses_total,
            "count": len(expenses),
        },
        "netBalance": collected - procurement_paid - expenses_total,
        "netProfit": net_profit,
        "profitMargin": profit_margin,
    }


# ==================== OUTSTANDING FEES ====================

def _group_outstanding(documents: Iterable, party_attr: str, count_key: str) -> List[Dict]:
    grouped: Dict[int, Dict] = {}
    for doc, outstanding in documents:
        party = getattr(doc, party_attr)
        if party is None:
            logger.warning(f"Skipping document {doc.id}: referenced {party_attr} is missing")
            continue
        row = grouped.setdefault(party.id, {
            "id": party.id,
            "name": party.name,
            "outstanding": ZERO,
            count_key: 0,
        })
        row["outstanding"] += outstanding
        row[count_key] += 1

    # Deterministic order for pagination: amount desc, then name, then id
    return sorted(grouped.values(), key=lambda r: (-r["outstanding"], r["name"], r["id"]))


def outstanding_fees(invoices: Sequence, orders: Sequence) -> Dict:
    open_invoices = [
        (inv, money(inv.total) - money(inv.paid_amount)) for inv in invoices
        if derive_payment_status(money(inv.total), money(inv.paid_amount)) in OUTSTANDING_STATUSES
    ]
    open_orders = [
        (order, money(order.total) - money(order.paid)) for order in _live_orders(orders)
        if money(order.total) - money(order.paid) > 0
    ]

    customers = _group_outstanding(open_invoices, "customer", "invoiceCount")
    suppliers = _group_outstanding(open_orders, "supplier", "orderCount")

    return {
        "summary": {
            "customersOwesUs": total(r["outstanding"] for r in customers),
            "totalCustomersOutstanding": len(customers),
            "weOweSuppliers": total(r["outstanding"] for r in suppliers),
            "totalSuppliersOutstanding": len(suppliers),
        },
        "customers": customers,
        "suppliers": suppliers,
    }


# ==================== LIQUID CASH ====================

def liquid_cash(transactions: Iterable) -> Dict:
    """Deposits minus withdrawals per payment method; every method is present"""
    per_method = OrderedDict(
        (method, {"method": method, "deposits": ZERO, "withdrawals": ZERO, "count": 0})
        for method in METHODS
    )

    for txn in transactions:
        amount = money(txn.amount)
        if txn.method not in per_method:
            logger.warning(f"Skipping transaction {txn.id}: unknown method {txn.method}")
            continue
        if txn.type == TRANSFER:
            if txn.to_method not in per_method:
                logger.warning(f"Skipping transfer {txn.id}: unknown target method {txn.to_method}")
                continue
            per_method[txn.method]["withdrawals"] += amount
            per_method[txn.method]["count"] += 1
            per_method[txn.to_method]["deposits"] += amount
            per_method[txn.to_method]["count"] += 1
        elif txn.type in INCOME_TYPES:
            per_method[txn.method]["deposits"] += amount
            per_method[txn.method]["count"] += 1
        elif txn.type in EXPENSE_TYPES:
            per_method[txn.method]["withdrawals"] += amount
            per_method[txn.method]["count"] += 1

    by_method = []
    net = {"total": ZERO}
    for method, row in per_method.items():
        row["total"] = row["deposits"] - row["withdrawals"]
        net[METHOD_KEYS[method]] = row["total"]
        net["total"] += row["total"]
        by_method.append(row)

    return {"net": net, "byMethod": by_method}


# ==================== DAILY INCOME / LOSS ====================

def daily_income_loss(transactions: Iterable, zone) -> Dict:
    """Income and losses per local calendar day; idle days are omitted"""
    days: Dict = {}
    for txn in _ordered(transactions):
        kind = classify(txn)
        if kind == "TRANSFER":
            continue
        day = local_date(txn.date, zone)
        report = days.setdefault(day, {"date": day, "income": [], "losses": []})
        report["income" if kind == "INCOME" else "losses"].append(transaction_row(txn))

    daily_reports = []
    for day in sorted(days):
        report = days[day]
        report["totalIncome"] = total(row["amount"] for row in report["income"])
        report["totalLosses"] = total(row["amount"] for row in report["losses"])
        report["netProfit"] = report["totalIncome"] - report["totalLosses"]
        daily_reports.append(report)

    total_income = total(r["totalIncome"] for r in daily_reports)
    total_losses = total(r["totalLosses"] for r in daily_reports)
    return {
        "summary": {
            "totalIncome": total_income,
            "totalLosses": total_losses,
            "netProfit": total_income - total_losses,
        },
        "dailyReports": daily_reports,
    }


# ==================== COMMISSIONS ====================

def commission_report(transactions: Iterable, orders_by_id: Mapping[int, object]) -> Dict:
    rows = []
    for txn in _ordered(transactions):
        if txn.type != TransactionType.COMMISSION.value:
            continue
        order = None
        if txn.reference is not None:
            order = orders_by_id.get(txn.reference)
            if order is None:
                logger.warning(
                    f"Skipping commission {txn.id}: procurement order {txn.reference} not found"
                )
                continue
        rows.append({
            "id": txn.id,
            "amount": abs(money(txn.amount)),
            "method": txn.method,
            "date": txn.date,
            "orderNumber": order.order_number if order is not None else None,
            "supplier": order.supplier.name if order is not None and order.supplier else None,
            "section": order.section if order is not None else None,
            "recordedBy": _recorder_name(txn),
            "notes": txn.description,
        })

    return {
        "summary": {"total": total(r["amount"] for r in rows), "count": len(rows)},
        "data": rows,
    }


# ==================== BANK TRANSACTIONS ====================

def bank_transactions(transactions: Iterable, methods: Sequence[str] = BANK_METHODS) -> Dict:
    """
    Transactions touching the given methods, signed for display.

    Transfers are listed but stay out of the income and expense totals.
    """
    rows = []
    income = ZERO
    expenses = ZERO
    for txn in _ordered(transactions):
        if txn.method not in methods and txn.to_method not in methods:
            continue
        kind = classify(txn)
        amount = money(txn.amount)
        if kind == "INCOME":
            income += amount
        elif kind == "EXPENSE":
            expenses += amount
        row = transaction_row(txn)
        row["sourceType"] = txn.type
        row["type"] = kind
        rows.append(row)

    return {
        "summary": {
            "income": income,
            "expenses": expenses,
            "net": income - expenses,
            "total": income + expenses,
            "count": len(rows),
        },
        "transactions": rows,
    }


# ==================== CUSTOMER / SUPPLIER REPORTS ====================

def customer_report(invoices: Sequence) -> Dict:
    rows = [invoice_row(inv) for inv in sorted(invoices, key=lambda i: (i.created_at, i.id), reverse=True)]
    sales = total(r["total"] for r in rows)
    collected = total(r["paidAmount"] for r in rows)
    return {
        "summary": {
            "totalInvoices": len(rows),
            "totalSales": sales,
            "totalCollected": collected,
            "totalOutstanding": sales - collected,
        },
        "data": rows,
    }


def supplier_report(orders: Sequence) -> Dict:
    rows = [order_row(o) for o in sorted(orders, key=lambda o: (o.created_at, o.id), reverse=True)]
    live = [r for r in rows if r["status"] != "CANCELLED"]
    purchases = total(r["total"] for r in live)
    paid = total(r["paid"] for r in live)
    return {
        "summary": {
            "totalOrders": len(live),
            "cancelledOrders": len(rows) - len(live),
            "totalPurchases": purchases,
            "totalPaid": paid,
            "totalOutstanding": purchases - paid,
        },
        "data": rows,
    }


# ==================== DAILY REPORT ====================

def daily_report(day, invoices: Sequence, orders: Sequence, transactions: Sequence) -> Dict:
    """One day at a glance: documents issued that day and cash moved that day"""
    sales_total = total(inv.total for inv in invoices)
    received = total(inv.paid_amount for inv in invoices)

    live_orders = _live_orders(orders)
    orders_total = total(o.total for o in live_orders)
    orders_paid = total(o.paid for o in live_orders)

    expenses = [t for t in _ordered(transactions) if t.type == TransactionType.EXPENSE.value]

    revenue = total(t.amount for t in transactions if t.type in INCOME_TYPES)
    costs = total(t.amount for t in transactions if t.type in EXPENSE_TYPES)

    return {
        "date": day,
        "sales": {
            "invoices": len(invoices),
            "total": sales_total,
            "received": received,
            "pending": sales_total - received,
            "invoiceList": [{
                "number": inv.invoice_number,
                "customer": inv.customer.name if inv.customer else None,
                "total": money(inv.total),
                "paid": money(inv.paid_amount),
                "status": derive_payment_status(money(inv.total), money(inv.paid_amount)),
            } for inv in invoices],
        },
        "procurement": {
            "orders": len(live_orders),
            "total": orders_total,
            "paid": orders_paid,
            "pending": orders_total - orders_paid,
            "orderList": [{
                "number": o.order_number,
                "supplier": o.supplier.name if o.supplier else None,
                "total": money(o.total),
                "paid": money(o.paid),
                "status": o.status,
            } for o in live_orders],
        },
        "expenses": {
            "count": len(expenses),
            "total": total(t.amount for t in expenses),
            "items": [{
                "description": t.description,
                "amount": money(t.amount),
                "method": t.method,
            } for t in expenses],
        },
        "summary": {
            "totalRevenue": revenue,
            "totalCosts": costs,
            "netCashFlow": revenue - costs,
        },
    }


# ==================== PAYROLL ====================

def _payroll_item(record) -> Dict:
    return {
        "id": record.id,
        "amount": money(record.amount),
        "paymentMethod": record.payment_method,
        "paidAt": record.paid_at,
        "notes": record.notes,
        "createdAt": record.created_at,
    }


def payroll_summary(employees: Sequence) -> Dict:
    """Paid items count as disbursed; unpaid ones only as outstanding"""
    rows = []
    for emp in sorted(employees, key=lambda e: (e.name, e.id)):
        salaries = []
        for rec in emp.salaries:
            item = _payroll_item(rec)
            item.update({"month": rec.month, "year": rec.year})
            salaries.append(item)
        advances = []
        for rec in emp.advances:
            item = _payroll_item(rec)
            item["reason"] = rec.reason
            advances.append(item)

        rows.append({
            "id": emp.id,
            "name": emp.name,
            "position": emp.position,
            "phone": emp.phone,
            "salary": money(emp.salary),
            "isActive": bool(emp.is_active),
            "salaries": salaries,
            "advances": advances,
            "totals": {
                "salariesPaid": total(s["amount"] for s in salaries if s["paidAt"] is not None),
                "salariesOutstanding": total(s["amount"] for s in salaries if s["paidAt"] is None),
                "advancesPaid": total(a["amount"] for a in advances if a["paidAt"] is not None),
                "advancesOutstanding": total(a["amount"] for a in advances if a["paidAt"] is None),
            },
        })

    return {
        "summary": {
            "employees": len(rows),
            "active": sum(1 for r in rows if r["isActive"]),
            "salariesPaid": total(r["totals"]["salariesPaid"] for r in rows),
            "salariesOutstanding": total(r["totals"]["salariesOutstanding"] for r in rows),
            "advancesPaid": total(r["totals"]["advancesPaid"] for r in rows),
            "advancesOutstanding": total(r["totals"]["advancesOutstanding"] for r in rows),
        },
        "employees": rows,
    }


# ==================== ASSETS & LIABILITIES ====================

def assets_liabilities(invoices: Sequence, orders: Sequence, transactions: Sequence,
                       employees: Sequence) -> Dict:
    cash = liquid_cash(transactions)["net"]["total"]
    receivables = total(money(inv.total) - money(inv.paid_amount) for inv in invoices)
    payables = total(o.outstanding for o in _live_orders(orders))
    payroll = payroll_summary(employees)["summary"]

    assets_total = cash + receivables
    liabilities_total = payables + payroll["salariesOutstanding"] + payroll["advancesOutstanding"]
    return {
        "assets": {
            "total": assets_total,
            "liquidCash": cash,
            "receivables": receivables,
        },
        "liabilities": {
            "total": liabilities_total,
            "supplierPayables": payables,
            "unpaidSalaries": payroll["salariesOutstanding"],
            "unpaidAdvances": payroll["advancesOutstanding"],
        },
        "netWorth": assets_total - liabilities_total,
    }


# ==================== LISTINGS ====================

def method_breakdown(transactions: Iterable) -> Dict:
    """Totals per payment method for a single-type listing (income, expenses)"""
    rows = [transaction_row(t) for t in _ordered(transactions)]
    by_method = OrderedDict(
        (method, {"total": ZERO, "count": 0}) for method in METHODS
    )
    for row in rows:
        if row["method"] in by_method:
            by_method[row["method"]]["total"] += row["amount"]
            by_method[row["method"]]["count"] += 1
    return {
        "total": total(r["amount"] for r in rows),
        "count": len(rows),
        "byMethod": by_method,
        "items": rows,
    }


def periodic_totals(transactions: Iterable, granularity: Granularity,
                    date_range: DateRange = ALL_TIME, zone=None) -> Dict:
    """Income/expense totals per period bucket; buckets sum to the range total"""
    buckets = []
    for b in bucket(transactions, granularity, date_range, zone):
        income = total(t.amount for t in b.items if t.type in INCOME_TYPES)
        expenses = total(t.amount for t in b.items if t.type in EXPENSE_TYPES)
        buckets.append({
            "periodStart": b.start_day,
            "periodEnd": b.end_day,
            "income": income,
            "expenses": expenses,
            "net": income - expenses,
            "count": len(b.items),
        })

    income = total(b["income"] for b in buckets)
    expenses = total(b["expenses"] for b in buckets)
    return {
        "granularity": Granularity(granularity).value,
        "summary": {
            "income": income,
            "expenses": expenses,
            "net": income - expenses,
            "count": sum(b["count"] for b in buckets),
        },
        "buckets": buckets,
    }
