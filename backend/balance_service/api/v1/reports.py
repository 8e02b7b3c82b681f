"""
Reports API Routes - Customer, Supplier, Outstanding Fees, Cash, Daily P&L,
Bank, Commission, Daily, Assets & Liabilities, Periodic
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Callable, List, Optional
from datetime import date

from balance_service.core.database import get_db
from balance_service.core.security import require_report_reader
from balance_service.schemas import (
    CustomerReport, SupplierReport, OutstandingFeesReport, LiquidCashReport,
    DailyIncomeLossReport, BankTransactionsReport, CommissionReport, DailyReport,
    AssetsLiabilitiesReport, PeriodicReport
)
from balance_service.services.periods import (
    DateRange, Granularity, local_today, report_zone, resolve_range
)
from balance_service.services.report_service import ReportService, run_report

router = APIRouter(prefix="/reports", tags=["Reports"])


async def render(db: Session, build: Callable[[ReportService], dict],
                 date_range: DateRange = None, timeout: float = None) -> dict:
    """Run a report under the timeout and stamp the resolved range on it"""
    result = await run_report(db, build, timeout)
    if date_range is not None:
        result["dateRange"] = date_range.as_dict()
    return result


@router.get("/customer", response_model=CustomerReport)
async def customer_report(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    period: Optional[str] = None,
    customer_id: Optional[int] = Query(None, alias="customerId"),
    timeout: Optional[float] = None,
    db: Session = Depends(get_db),
    current_user = Depends(require_report_reader)
):
    """Invoices in range with sales, collected and outstanding totals"""
    date_range = resolve_range(start_date=start_date, end_date=end_date, period=period)
    return await render(db, lambda r: r.customer(date_range, customer_id), date_range, timeout)


@router.get("/supplier", response_model=SupplierReport)
async def supplier_report(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    period: Optional[str] = None,
    supplier_id: Optional[int] = Query(None, alias="supplierId"),
    timeout: Optional[float] = None,
    db: Session = Depends(get_db),
    current_user = Depends(require_report_reader)
):
    """Orders in range; cancelled orders are listed but not totalled"""
    date_range = resolve_range(start_date=start_date, end_date=end_date, period=period)
    return await render(db, lambda r: r.supplier(date_range, supplier_id), date_range, timeout)


@router.get("/outstanding-fees", response_model=OutstandingFeesReport)
async def outstanding_fees_report(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    period: Optional[str] = None,
    timeout: Optional[float] = None,
    db: Session = Depends(get_db),
    current_user = Depends(require_report_reader)
):
    """What customers owe us and what we owe suppliers, largest first"""
    date_range = resolve_range(start_date=start_date, end_date=end_date, period=period)
    return await render(db, lambda r: r.outstanding_fees(date_range), date_range, timeout)


@router.get("/liquid-cash", response_model=LiquidCashReport)
async def liquid_cash_report(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    period: Optional[str] = None,
    timeout: Optional[float] = None,
    db: Session = Depends(get_db),
    current_user = Depends(require_report_reader)
):
    """Net position per payment method; all time unless a range is given"""
    date_range = resolve_range(start_date=start_date, end_date=end_date, period=period)
    return await render(db, lambda r: r.liquid_cash(date_range), date_range, timeout)


@router.get("/daily-income-loss", response_model=DailyIncomeLossReport)
async def daily_income_loss_report(
    day: Optional[date] = Query(None, alias="date"),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    period: Optional[str] = None,
    timeout: Optional[float] = None,
    db: Session = Depends(get_db),
    current_user = Depends(require_report_reader)
):
    """Income and losses per day; defaults to today"""
    date_range = resolve_range(day, start_date, end_date, period, default="today")
    return await render(db, lambda r: r.daily_income_loss(date_range), date_range, timeout)


@router.get("/bank-transactions", response_model=BankTransactionsReport)
async def bank_transactions_report(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    period: Optional[str] = None,
    methods: Optional[List[str]] = Query(None),
    timeout: Optional[float] = None,
    db: Session = Depends(get_db),
    current_user = Depends(require_report_reader)
):
    """Transactions through BANK and BANK_NILE; transfers listed, not totalled"""
    date_range = resolve_range(start_date=start_date, end_date=end_date, period=period)
    return await render(db, lambda r: r.bank_transactions(date_range, methods), date_range, timeout)


@router.get("/commission", response_model=CommissionReport)
async def commission_report(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    period: Optional[str] = None,
    timeout: Optional[float] = None,
    db: Session = Depends(get_db),
    current_user = Depends(require_report_reader)
):
    date_range = resolve_range(start_date=start_date, end_date=end_date, period=period)
    return await render(db, lambda r: r.commission(date_range), date_range, timeout)


@router.get("/daily", response_model=DailyReport)
async def daily_report(
    day: Optional[date] = Query(None, alias="date"),
    timeout: Optional[float] = None,
    db: Session = Depends(get_db),
    current_user = Depends(require_report_reader)
):
    """Documents issued and cash moved on one day; defaults to today"""
    day = day or local_today(report_zone())
    return await render(db, lambda r: r.daily(day), timeout=timeout)


@router.get("/assets-liabilities", response_model=AssetsLiabilitiesReport)
async def assets_liabilities_report(
    timeout: Optional[float] = None,
    db: Session = Depends(get_db),
    current_user = Depends(require_report_reader)
):
    return await render(db, lambda r: r.assets_liabilities(), timeout=timeout)


@router.get("/periodic", response_model=PeriodicReport)
async def periodic_report(
    granularity: Granularity = Granularity.DAILY,
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    period: Optional[str] = None,
    timeout: Optional[float] = None,
    db: Session = Depends(get_db),
    current_user = Depends(require_report_reader)
):
    """Income and expense totals per daily, weekly or monthly bucket"""
    date_range = resolve_range(start_date=start_date, end_date=end_date, period=period)
    return await render(db, lambda r: r.periodic(granularity, date_range), date_range, timeout)
