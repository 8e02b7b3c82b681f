"""
Pydantic Schemas for API Validation

Wire names are camelCase; amounts travel as two-place decimal strings. Every
report model carries a `reportType` tag so clients can parse any report
payload through one discriminated union.
"""
from pydantic import BaseModel, Field, ConfigDict, PlainSerializer, TypeAdapter
from pydantic.alias_generators import to_camel
from typing import Annotated, Dict, List, Literal, Optional, Union
from datetime import datetime, date
from decimal import Decimal, ROUND_HALF_UP


def _money_str(value: Decimal) -> str:
    return format(Decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP), "f")


Money = Annotated[Decimal, PlainSerializer(_money_str, return_type=str)]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# ==================== COMMON ====================

class ErrorResponse(CamelModel):
    error: str


class MessageResponse(CamelModel):
    message: str


class PartyRef(CamelModel):
    id: int
    name: str


class RangeOut(CamelModel):
    start_date: Optional[str] = None
    end_date: Optional[str] = None


# ==================== AUTH ====================

class LoginRequest(CamelModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class UserOut(CamelModel):
    id: int
    username: str
    full_name: Optional[str] = None
    role: str


class LoginResponse(CamelModel):
    token: str
    user: UserOut


# ==================== LEDGER ====================

class TransactionCreate(CamelModel):
    type: str
    amount: Decimal
    method: str
    to_method: Optional[str] = None
    date: Optional[datetime] = None
    reference: Optional[int] = None
    description: Optional[str] = Field(None, max_length=1000)


class TransactionOut(CamelModel):
    id: int
    type: str
    amount: Money
    method: str
    to_method: Optional[str] = None
    date: datetime
    reference: Optional[int] = None
    description: Optional[str] = None
    recorded_by: Optional[str] = None


class TransactionPage(CamelModel):
    transactions: List[TransactionOut]
    next_cursor: Optional[int] = None


# ==================== DOCUMENTS ====================

class InvoiceItemIn(CamelModel):
    description: str = Field(..., min_length=1)
    quantity: Decimal = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0)


class InvoiceCreate(CamelModel):
    customer_id: Optional[int] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    section: Optional[str] = None
    delivery_status: Optional[str] = None
    items: List[InvoiceItemIn] = Field(..., min_length=1)
    paid_amount: Decimal = Decimal("0")
    payment_method: Optional[str] = None
    notes: Optional[str] = None


class InvoiceItemOut(CamelModel):
    id: int
    description: str
    quantity: Decimal
    unit_price: Money
    line_total: Money


class InvoiceOut(CamelModel):
    id: int
    invoice_number: str
    customer: Optional[PartyRef] = None
    section: str
    total: Money
    paid_amount: Money
    outstanding: Money
    payment_status: str
    delivery_status: str
    notes: Optional[str] = None
    created_at: datetime
    items: List[InvoiceItemOut] = []


class OrderCreate(CamelModel):
    supplier_id: Optional[int] = None
    supplier_name: Optional[str] = None
    supplier_phone: Optional[str] = None
    section: Optional[str] = None
    total: Decimal
    paid: Decimal = Decimal("0")
    payment_method: Optional[str] = None
    notes: Optional[str] = None


class OrderStatusUpdate(CamelModel):
    status: str


class OrderOut(CamelModel):
    id: int
    order_number: str
    supplier: Optional[PartyRef] = None
    section: str
    total: Money
    paid: Money
    outstanding: Money
    status: str
    payment_status: str
    notes: Optional[str] = None
    created_at: datetime


class EmployeeCreate(CamelModel):
    name: str = Field(..., min_length=1)
    position: Optional[str] = None
    phone: Optional[str] = None
    salary: Decimal = Decimal("0")


class SalaryCreate(CamelModel):
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=2000, le=2100)
    amount: Optional[Decimal] = None
    payment_method: Optional[str] = None
    notes: Optional[str] = None
    pay_now: bool = False


class AdvanceCreate(CamelModel):
    amount: Decimal
    reason: Optional[str] = None
    payment_method: Optional[str] = None
    notes: Optional[str] = None
    pay_now: bool = False


class PayRequest(CamelModel):
    method: Optional[str] = None


class SalaryOut(CamelModel):
    id: int
    amount: Money
    month: int
    year: int
    payment_method: str
    paid_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


class AdvanceOut(CamelModel):
    id: int
    amount: Money
    reason: Optional[str] = None
    payment_method: str
    paid_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


class PayrollTotals(CamelModel):
    salaries_paid: Money
    salaries_outstanding: Money
    advances_paid: Money
    advances_outstanding: Money


class EmployeeOut(CamelModel):
    id: int
    name: str
    position: Optional[str] = None
    phone: Optional[str] = None
    salary: Money
    is_active: bool
    salaries: List[SalaryOut] = []
    advances: List[AdvanceOut] = []
    totals: Optional[PayrollTotals] = None


class AuditLogOut(CamelModel):
    id: int
    timestamp: datetime
    username: Optional[str] = None
    role: Optional[str] = None
    action: str
    resource_type: str
    resource_id: Optional[int] = None
    description: Optional[str] = None
    status: Optional[str] = None
    error_message: Optional[str] = None


# ==================== REPORT BUILDING BLOCKS ====================

class SalesFigures(CamelModel):
    total: Money
    count: int
    collected: Money
    receivable: Money


class ProcurementFigures(CamelModel):
    total: Money
    count: int
    paid: Money


class ExpenseFigures(CamelModel):
    total: Money
    count: int


class CashNet(CamelModel):
    total: Money
    cash: Money
    bank: Money
    bank_nile: Money


class MethodPosition(CamelModel):
    method: str
    deposits: Money
    withdrawals: Money
    total: Money
    count: int


class OutstandingSummary(CamelModel):
    customers_owes_us: Money
    total_customers_outstanding: int
    we_owe_suppliers: Money
    total_suppliers_outstanding: int


class CustomerOutstandingRow(CamelModel):
    id: int
    name: str
    outstanding: Money
    invoice_count: int


class SupplierOutstandingRow(CamelModel):
    id: int
    name: str
    outstanding: Money
    order_count: int


class IncomeLossSummary(CamelModel):
    total_income: Money
    total_losses: Money
    net_profit: Money


class DayIncomeLoss(CamelModel):
    day: date = Field(..., alias="date")
    income: List[TransactionOut]
    losses: List[TransactionOut]
    total_income: Money
    total_losses: Money
    net_profit: Money


class CommissionRow(CamelModel):
    id: int
    amount: Money
    method: str
    date: datetime
    order_number: Optional[str] = None
    supplier: Optional[str] = None
    section: Optional[str] = None
    recorded_by: Optional[str] = None
    notes: Optional[str] = None


class CountTotal(CamelModel):
    total: Money
    count: int


class BankSummary(CamelModel):
    income: Money
    expenses: Money
    net: Money
    total: Money
    count: int


class BankTransactionOut(TransactionOut):
    source_type: str


class CustomerSummary(CamelModel):
    total_invoices: int
    total_sales: Money
    total_collected: Money
    total_outstanding: Money


class SupplierSummary(CamelModel):
    total_orders: int
    cancelled_orders: int
    total_purchases: Money
    total_paid: Money
    total_outstanding: Money


class DailyInvoiceLine(CamelModel):
    number: str
    customer: Optional[str] = None
    total: Money
    paid: Money
    status: str


class DailyOrderLine(CamelModel):
    number: str
    supplier: Optional[str] = None
    total: Money
    paid: Money
    status: str


class DailySales(CamelModel):
    invoices: int
    total: Money
    received: Money
    pending: Money
    invoice_list: List[DailyInvoiceLine]


class DailyProcurement(CamelModel):
    orders: int
    total: Money
    paid: Money
    pending: Money
    order_list: List[DailyOrderLine]


class DailyExpenseLine(CamelModel):
    description: Optional[str] = None
    amount: Money
    method: str


class DailyExpenses(CamelModel):
    count: int
    total: Money
    items: List[DailyExpenseLine]


class DailySummary(CamelModel):
    total_revenue: Money
    total_costs: Money
    net_cash_flow: Money


class Assets(CamelModel):
    total: Money
    liquid_cash: Money
    receivables: Money


class Liabilities(CamelModel):
    total: Money
    supplier_payables: Money
    unpaid_salaries: Money
    unpaid_advances: Money


class PeriodBucketOut(CamelModel):
    period_start: date
    period_end: date
    income: Money
    expenses: Money
    net: Money
    count: int


class PeriodicSummary(CamelModel):
    income: Money
    expenses: Money
    net: Money
    count: int


class PayrollSummary(CamelModel):
    employees: int
    active: int
    salaries_paid: Money
    salaries_outstanding: Money
    advances_paid: Money
    advances_outstanding: Money


# ==================== REPORTS ====================

class BalanceSummaryReport(CamelModel):
    report_type: Literal["balance-summary"] = "balance-summary"
    date_range: Optional[RangeOut] = None
    sales: SalesFigures
    procurement: ProcurementFigures
    expenses: ExpenseFigures
    net_balance: Money
    net_profit: Money
    profit_margin: Money


class CustomerReport(CamelModel):
    report_type: Literal["customer"] = "customer"
    date_range: Optional[RangeOut] = None
    customer: Optional[PartyRef] = None
    summary: CustomerSummary
    data: List[InvoiceOut]


class SupplierReport(CamelModel):
    report_type: Literal["supplier"] = "supplier"
    date_range: Optional[RangeOut] = None
    supplier: Optional[PartyRef] = None
    summary: SupplierSummary
    data: List[OrderOut]


class OutstandingFeesReport(CamelModel):
    report_type: Literal["outstanding-fees"] = "outstanding-fees"
    date_range: Optional[RangeOut] = None
    summary: OutstandingSummary
    customers: List[CustomerOutstandingRow]
    suppliers: List[SupplierOutstandingRow]


class LiquidCashReport(CamelModel):
    report_type: Literal["liquid-cash"] = "liquid-cash"
    date_range: Optional[RangeOut] = None
    net: CashNet
    by_method: List[MethodPosition]


class DailyIncomeLossReport(CamelModel):
    report_type: Literal["daily-income-loss"] = "daily-income-loss"
    date_range: Optional[RangeOut] = None
    summary: IncomeLossSummary
    daily_reports: List[DayIncomeLoss]


class CommissionReport(CamelModel):
    report_type: Literal["commission"] = "commission"
    date_range: Optional[RangeOut] = None
    summary: CountTotal
    data: List[CommissionRow]


class BankTransactionsReport(CamelModel):
    report_type: Literal["bank-transactions"] = "bank-transactions"
    date_range: Optional[RangeOut] = None
    summary: BankSummary
    transactions: List[BankTransactionOut]


class DailyReport(CamelModel):
    report_type: Literal["daily"] = "daily"
    day: date = Field(..., alias="date")
    sales: DailySales
    procurement: DailyProcurement
    expenses: DailyExpenses
    summary: DailySummary


class AssetsLiabilitiesReport(CamelModel):
    report_type: Literal["assets-liabilities"] = "assets-liabilities"
    assets: Assets
    liabilities: Liabilities
    net_worth: Money


class PeriodicReport(CamelModel):
    report_type: Literal["periodic"] = "periodic"
    date_range: Optional[RangeOut] = None
    granularity: str
    summary: PeriodicSummary
    buckets: List[PeriodBucketOut]


class ListingReport(CamelModel):
    report_type: Literal["income", "expenses"]
    date_range: Optional[RangeOut] = None
    total: Money
    count: int
    by_method: Dict[str, CountTotal]
    items: List[TransactionOut]


class PayrollReport(CamelModel):
    report_type: Literal["payroll"] = "payroll"
    summary: PayrollSummary
    employees: List[EmployeeOut]


ReportResponse = Annotated[
    Union[
        BalanceSummaryReport, CustomerReport, SupplierReport, OutstandingFeesReport,
        LiquidCashReport, DailyIncomeLossReport, CommissionReport, BankTransactionsReport,
        DailyReport, AssetsLiabilitiesReport, PeriodicReport, ListingReport, PayrollReport,
    ],
    Field(discriminator="report_type"),
]

_report_adapter = TypeAdapter(ReportResponse)


def parse_report(payload: dict):
    """Validate a report payload (wire form) into its tagged model"""
    return _report_adapter.validate_python(payload)


# ==================== BALANCE SESSIONS ====================

class SessionCloseRequest(CamelModel):
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    notes: Optional[str] = Field(None, max_length=1000)


class SessionSummary(CamelModel):
    sales: SalesFigures
    procurement: ProcurementFigures
    expenses: ExpenseFigures
    net_balance: Money
    net_profit: Money
    profit_margin: Money
    liquid_cash: CashNet
    outstanding_fees: OutstandingSummary
    daily_income_loss: IncomeLossSummary


class BalanceSessionOut(CamelModel):
    id: Optional[int] = None
    status: str
    period_start: datetime
    period_end: datetime
    summary: SessionSummary
    last_transaction_id: Optional[int] = None
    closed_at: Optional[datetime] = None
    closed_by: Optional[str] = None
    notes: Optional[str] = None
