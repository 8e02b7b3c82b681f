"""
Employees API Routes - Salaries and Advances
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from typing import Optional

from balance_service.core.database import get_db
from balance_service.core.security import require_bookkeeper, require_report_reader
from balance_service.schemas import (
    EmployeeCreate, EmployeeOut, SalaryCreate, SalaryOut, AdvanceCreate, AdvanceOut,
    PayRequest, PayrollReport
)
from balance_service.services.aggregation import payroll_summary
from balance_service.services.audit_service import AuditService, AuditAction
from balance_service.services.document_service import EmployeeService

router = APIRouter(prefix="/employees", tags=["Employees"])


@router.get("", response_model=PayrollReport)
async def list_employees(
    active_only: bool = False,
    db: Session = Depends(get_db),
    current_user = Depends(require_report_reader)
):
    """Employees with their salary and advance records; unpaid items count as outstanding"""
    return payroll_summary(EmployeeService(db).list(active_only=active_only))


@router.post("", response_model=EmployeeOut, status_code=201)
async def create_employee(
    data: EmployeeCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user = Depends(require_bookkeeper)
):
    employee = EmployeeService(db).create(data.model_dump())
    AuditService(db).log(
        action=AuditAction.EMPLOYEE_CREATED,
        resource_type="Employee",
        resource_id=employee.id,
        description=f"Employee '{employee.name}' created",
        user=current_user,
        request_path=request.url.path
    )
    db.commit()
    db.refresh(employee)
    return employee


@router.post("/{employee_id}/salaries", response_model=SalaryOut, status_code=201)
async def add_salary(
    employee_id: int,
    data: SalaryCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user = Depends(require_bookkeeper)
):
    record = EmployeeService(db).add_salary(employee_id, data.model_dump(), user_id=current_user.id)
    AuditService(db).log(
        action=AuditAction.SALARY_RECORDED,
        resource_type="SalaryPayment",
        resource_id=record.id,
        description=f"Salary {record.month:02d}/{record.year} for employee {employee_id}",
        new_values={"amount": record.amount, "paid": record.paid_at is not None},
        user=current_user,
        request_path=request.url.path
    )
    db.commit()
    db.refresh(record)
    return record


@router.post("/{employee_id}/advances", response_model=AdvanceOut, status_code=201)
async def add_advance(
    employee_id: int,
    data: AdvanceCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user = Depends(require_bookkeeper)
):
    record = EmployeeService(db).add_advance(employee_id, data.model_dump(), user_id=current_user.id)
    AuditService(db).log(
        action=AuditAction.ADVANCE_RECORDED,
        resource_type="Advance",
        resource_id=record.id,
        description=f"Advance for employee {employee_id}",
        new_values={"amount": record.amount, "paid": record.paid_at is not None},
        user=current_user,
        request_path=request.url.path
    )
    db.commit()
    db.refresh(record)
    return record


@router.post("/salaries/{salary_id}/pay", response_model=SalaryOut)
async def pay_salary(
    salary_id: int,
    data: Optional[PayRequest] = None,
    db: Session = Depends(get_db),
    current_user = Depends(require_bookkeeper)
):
    """Pays the salary through a SALARY ledger transaction"""
    record = EmployeeService(db).pay_salary(salary_id, data.method if data else None, current_user.id)
    db.commit()
    db.refresh(record)
    return record


@router.post("/advances/{advance_id}/pay", response_model=AdvanceOut)
async def pay_advance(
    advance_id: int,
    data: Optional[PayRequest] = None,
    db: Session = Depends(get_db),
    current_user = Depends(require_bookkeeper)
):
    """Pays the advance through an ADVANCE ledger transaction"""
    record = EmployeeService(db).pay_advance(advance_id, data.method if data else None, current_user.id)
    db.commit()
    db.refresh(record)
    return record
