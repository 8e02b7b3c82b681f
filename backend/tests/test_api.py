"""
API tests: auth, error envelope, ledger writes and the report endpoints
"""
import time

from sqlalchemy.exc import SQLAlchemyError

from balance_service.models import Role
from balance_service.schemas import (
    BalanceSummaryReport, DailyIncomeLossReport, LiquidCashReport, parse_report
)
from balance_service.services.report_service import ReportService
from conftest import PASSWORD, make_invoice, make_order, make_user

API = "/api/v1"


def post_txn(client, headers, **body):
    body.setdefault("method", "CASH")
    return client.post(f"{API}/ledger/transactions", json=body, headers=headers)


# ======================
# Auth
# ======================

def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_login_returns_token_and_user(client, db):
    make_user(db, Role.MANAGER, username="amna")

    response = client.post(f"{API}/auth/login", json={"username": "amna", "password": PASSWORD})

    assert response.status_code == 200
    body = response.json()
    assert body["user"] == {"id": body["user"]["id"], "username": "amna",
                            "fullName": "Manager", "role": "MANAGER"}

    me = client.get(f"{API}/auth/me", headers={"Authorization": f"Bearer {body['token']}"})
    assert me.status_code == 200
    assert me.json()["username"] == "amna"


def test_bad_credentials_are_401_with_error_envelope(client, db):
    make_user(db, Role.MANAGER, username="amna")

    response = client.post(f"{API}/auth/login", json={"username": "amna", "password": "wrong"})

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid username or password"}


def test_disabled_account_is_forbidden(client, db):
    make_user(db, Role.ACCOUNTANT, username="gone", is_active=False)

    response = client.post(f"{API}/auth/login", json={"username": "gone", "password": PASSWORD})

    assert response.status_code == 403


def test_reports_require_a_token(client):
    response = client.get(f"{API}/reports/liquid-cash")

    assert response.status_code == 401
    assert "error" in response.json()


def test_sales_role_cannot_read_reports(client, auth_headers):
    response = client.get(f"{API}/reports/liquid-cash", headers=auth_headers(Role.SALES_GROCERY))

    assert response.status_code == 403
    assert set(response.json()) == {"error"}


def test_auditor_reads_but_cannot_write(client, auth_headers):
    headers = auth_headers(Role.AUDITOR)

    assert client.get(f"{API}/balance/summary", headers=headers).status_code == 200
    assert post_txn(client, headers, type="EXPENSE", amount="5").status_code == 403


# ======================
# Ledger
# ======================

def test_append_returns_amount_as_string(client, auth_headers):
    response = post_txn(client, auth_headers(), type="EXPENSE", amount="12.5",
                        description="Generator fuel")

    assert response.status_code == 201
    body = response.json()
    assert body["amount"] == "12.50"
    assert body["recordedBy"] == "accountant"
    assert body["toMethod"] is None


def test_invalid_append_is_400(client, auth_headers):
    headers = auth_headers()

    negative = post_txn(client, headers, type="EXPENSE", amount="-3")
    assert negative.status_code == 400
    assert "negative" in negative.json()["error"]

    assert post_txn(client, headers, type="EXPENSE", amount="lots").status_code == 400
    assert post_txn(client, headers, type="REFUND", amount="3").status_code == 400


def test_payment_for_unknown_invoice_is_404(client, auth_headers):
    response = post_txn(client, auth_headers(), type="SALES_PAYMENT", amount="10", reference=999)

    assert response.status_code == 404


def test_ledger_pages_with_cursor(client, auth_headers):
    headers = auth_headers()
    for i in range(5):
        post_txn(client, headers, type="INCOME", amount=str(i + 1))

    first = client.get(f"{API}/ledger/transactions", params={"limit": 3}, headers=headers).json()
    assert len(first["transactions"]) == 3
    assert first["nextCursor"] == first["transactions"][-1]["id"]

    rest = client.get(f"{API}/ledger/transactions",
                      params={"limit": 3, "afterId": first["nextCursor"]}, headers=headers).json()
    assert [t["amount"] for t in rest["transactions"]] == ["4.00", "5.00"]
    assert rest["nextCursor"] is None


def test_ledger_limit_is_capped(client, auth_headers):
    response = client.get(f"{API}/ledger/transactions", params={"limit": 100000},
                          headers=auth_headers())

    assert response.status_code == 400


def test_missing_transaction_is_404(client, auth_headers):
    response = client.get(f"{API}/ledger/transactions/4242", headers=auth_headers())

    assert response.status_code == 404
    assert response.json() == {"error": "Transaction 4242 not found"}


# ======================
# Reports
# ======================

def test_daily_income_loss_for_a_day(client, auth_headers):
    headers = auth_headers()
    post_txn(client, headers, type="INCOME", amount="1000", date="2024-03-10T08:00:00Z")
    post_txn(client, headers, type="EXPENSE", amount="300", date="2024-03-10T09:00:00Z")
    post_txn(client, headers, type="EXPENSE", amount="999", date="2024-03-11T09:00:00Z")

    response = client.get(f"{API}/reports/daily-income-loss", params={"date": "2024-03-10"},
                          headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["reportType"] == "daily-income-loss"
    assert body["dateRange"] == {"startDate": "2024-03-10", "endDate": "2024-03-10"}
    assert body["summary"] == {"totalIncome": "1000.00", "totalLosses": "300.00", "netProfit": "700.00"}
    assert [d["date"] for d in body["dailyReports"]] == ["2024-03-10"]
    assert isinstance(parse_report(body), DailyIncomeLossReport)


def test_balance_summary_over_the_api(client, db, auth_headers):
    headers = auth_headers()
    invoice = make_invoice(db, "500")
    post_txn(client, headers, type="SALES_PAYMENT", amount="200", reference=invoice.id)
    make_order(db, "100")

    body = client.get(f"{API}/accounting/balance/summary", headers=headers).json()

    assert body["sales"] == {"total": "500.00", "count": 1, "collected": "200.00", "receivable": "300.00"}
    assert body["netBalance"] == "200.00"
    assert body["netProfit"] == "400.00"
    assert body["profitMargin"] == "80.00"
    report = parse_report(body)
    assert isinstance(report, BalanceSummaryReport)
    assert str(report.net_profit) == "400.00"

    short = client.get(f"{API}/balance/summary", headers=headers).json()
    assert short == body


def test_outstanding_fees_reflect_partial_invoice(client, db, auth_headers):
    make_invoice(db, "500", paid="200", customer_name="Acme")
    make_order(db, "80", paid="30", supplier_name="Nile Foods")

    body = client.get(f"{API}/reports/outstanding-fees", headers=auth_headers()).json()

    assert body["customers"] == [{"id": 1, "name": "Acme", "outstanding": "300.00", "invoiceCount": 1}]
    assert body["suppliers"] == [{"id": 1, "name": "Nile Foods", "outstanding": "50.00", "orderCount": 1}]
    assert body["summary"]["customersOwesUs"] == "300.00"
    assert body["summary"]["weOweSuppliers"] == "50.00"


def test_liquid_cash_lists_every_method(client, auth_headers):
    headers = auth_headers()
    post_txn(client, headers, type="INCOME", amount="100")
    post_txn(client, headers, type="BANK_TRANSFER", amount="40", toMethod="BANK_NILE")

    body = client.get(f"{API}/reports/liquid-cash", headers=headers).json()

    assert body["net"] == {"total": "100.00", "cash": "60.00", "bank": "0.00", "bankNile": "40.00"}
    assert [m["method"] for m in body["byMethod"]] == ["CASH", "BANK", "BANK_NILE"]
    assert isinstance(parse_report(body), LiquidCashReport)


def test_every_report_parses_through_the_union(client, auth_headers):
    headers = auth_headers(Role.MANAGER)
    paths = [
        "/reports/customer", "/reports/supplier", "/reports/outstanding-fees",
        "/reports/liquid-cash", "/reports/daily-income-loss", "/reports/bank-transactions",
        "/reports/commission", "/reports/daily", "/reports/assets-liabilities",
        "/reports/periodic?granularity=weekly", "/accounting/balance/summary",
        "/accounting/expenses", "/accounting/income", "/employees",
    ]
    seen = set()
    for path in paths:
        response = client.get(f"{API}{path}", headers=headers)
        assert response.status_code == 200, path
        seen.add(parse_report(response.json()).report_type)

    assert len(seen) == len(paths)


def test_bad_range_is_400(client, auth_headers):
    headers = auth_headers()

    backwards = client.get(f"{API}/reports/customer",
                           params={"startDate": "2024-03-10", "endDate": "2024-03-01"}, headers=headers)
    assert backwards.status_code == 400

    garbled = client.get(f"{API}/reports/customer", params={"startDate": "10/03/2024"}, headers=headers)
    assert garbled.status_code == 400
    assert "startDate" in garbled.json()["error"]

    unknown = client.get(f"{API}/reports/periodic", params={"granularity": "hourly"}, headers=headers)
    assert unknown.status_code == 400


def test_slow_report_times_out_as_500(client, auth_headers, monkeypatch):
    def crawl(self, date_range=None):
        time.sleep(1)
        return {}

    monkeypatch.setattr(ReportService, "liquid_cash", crawl)

    response = client.get(f"{API}/reports/liquid-cash", params={"timeout": 0.05}, headers=auth_headers())

    assert response.status_code == 500
    assert "did not finish" in response.json()["error"]


def test_database_failure_in_report_is_500(client, auth_headers, monkeypatch):
    def broken(self, date_range=None):
        raise SQLAlchemyError("disk I/O error")

    monkeypatch.setattr(ReportService, "liquid_cash", broken)

    response = client.get(f"{API}/reports/liquid-cash", headers=auth_headers())

    assert response.status_code == 500
    assert response.json() == {"error": "Report could not be computed"}


def test_non_positive_timeout_is_400(client, auth_headers):
    response = client.get(f"{API}/reports/liquid-cash", params={"timeout": 0}, headers=auth_headers())

    assert response.status_code == 400


# ======================
# Balance Sessions
# ======================

def test_close_session_twice_is_409(client, auth_headers):
    headers = auth_headers()
    post_txn(client, headers, type="INCOME", amount="250", date="2024-03-10T08:00:00Z")
    period = {"periodStart": "2024-03-10", "periodEnd": "2024-03-10", "notes": "Sunday"}

    first = client.post(f"{API}/balance-sessions/close", json=period, headers=headers)
    assert first.status_code == 201
    closed = first.json()
    assert closed["status"] == "CLOSED"
    assert closed["closedBy"] == "accountant"
    assert closed["summary"]["liquidCash"]["cash"] == "250.00"

    second = client.post(f"{API}/balance-sessions/close", json=period, headers=headers)
    assert second.status_code == 409
    assert "error" in second.json()

    fetched = client.get(f"{API}/balance-sessions/{closed['id']}", headers=headers).json()
    assert fetched["summary"] == closed["summary"]
    assert client.get(f"{API}/balance-sessions/77", headers=headers).status_code == 404


def test_open_session_view(client, auth_headers):
    headers = auth_headers()
    post_txn(client, headers, type="INCOME", amount="75")

    body = client.get(f"{API}/balance-sessions/open", headers=headers).json()

    assert body["status"] == "OPEN"
    assert body["id"] is None
    assert body["summary"]["liquidCash"]["total"] == "75.00"


def test_audit_log_is_manager_or_auditor_only(client, auth_headers):
    post_txn(client, auth_headers(), type="EXPENSE", amount="1")

    assert client.get(f"{API}/accounting/audit-logs", headers=auth_headers()).status_code == 403
    logs = client.get(f"{API}/accounting/audit-logs", headers=auth_headers(Role.AUDITOR)).json()
    assert logs[0]["action"] == "TRANSACTION_APPENDED"
