"""
Accounting API Routes - Balance Summary, Income & Expense listings, Audit Logs
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date

from balance_service.core.database import get_db
from balance_service.core.security import RoleChecker, require_report_reader
from balance_service.models import Role
from balance_service.schemas import BalanceSummaryReport, ListingReport, AuditLogOut
from balance_service.services.audit_service import AuditService
from balance_service.services.periods import resolve_range
from balance_service.api.v1.reports import render

router = APIRouter(prefix="/accounting", tags=["Accounting"])
balance_router = APIRouter(prefix="/balance", tags=["Accounting"])

require_auditor = RoleChecker([Role.AUDITOR, Role.MANAGER])


async def _balance_summary(start_date, end_date, period, timeout, db):
    date_range = resolve_range(start_date=start_date, end_date=end_date, period=period)
    result = await render(db, lambda r: r.balance_summary(date_range), date_range, timeout)
    result["reportType"] = "balance-summary"
    return result


@router.get("/balance/summary", response_model=BalanceSummaryReport)
async def balance_summary(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    period: Optional[str] = None,
    timeout: Optional[float] = None,
    db: Session = Depends(get_db),
    current_user = Depends(require_report_reader)
):
    """
    Sales, procurement and expense totals with both bottom lines:
    netBalance (cash basis) and netProfit (accrual basis).
    """
    return await _balance_summary(start_date, end_date, period, timeout, db)


@balance_router.get("/summary", response_model=BalanceSummaryReport)
async def balance_summary_short(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    period: Optional[str] = None,
    timeout: Optional[float] = None,
    db: Session = Depends(get_db),
    current_user = Depends(require_report_reader)
):
    return await _balance_summary(start_date, end_date, period, timeout, db)


@router.get("/expenses", response_model=ListingReport)
async def list_expenses(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    period: Optional[str] = None,
    timeout: Optional[float] = None,
    db: Session = Depends(get_db),
    current_user = Depends(require_report_reader)
):
    """EXPENSE transactions with totals per payment method"""
    date_range = resolve_range(start_date=start_date, end_date=end_date, period=period)
    result = await render(db, lambda r: r.expenses(date_range), date_range, timeout)
    result["reportType"] = "expenses"
    return result


@router.get("/income", response_model=ListingReport)
async def list_income(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    period: Optional[str] = None,
    timeout: Optional[float] = None,
    db: Session = Depends(get_db),
    current_user = Depends(require_report_reader)
):
    """Other income and commissions with totals per payment method"""
    date_range = resolve_range(start_date=start_date, end_date=end_date, period=period)
    result = await render(db, lambda r: r.income(date_range), date_range, timeout)
    result["reportType"] = "income"
    return result


@router.get("/audit-logs", response_model=List[AuditLogOut])
async def list_audit_logs(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    action: Optional[str] = None,
    resource_type: Optional[str] = Query(None, alias="resourceType"),
    user_id: Optional[int] = Query(None, alias="userId"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    current_user = Depends(require_auditor)
):
    date_range = resolve_range(start_date=start_date, end_date=end_date)
    return AuditService(db).get_logs(
        start=date_range.start,
        end=date_range.end,
        user_id=user_id,
        action=action,
        resource_type=resource_type,
        limit=limit,
        offset=offset
    )
