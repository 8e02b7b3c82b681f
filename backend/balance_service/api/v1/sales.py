"""
Sales API Routes - Invoices
"""
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date

from balance_service.core.database import get_db
from balance_service.core.errors import NotFoundError
from balance_service.core.security import RoleChecker, SALES_WRITERS, REPORT_READERS
from balance_service.schemas import InvoiceCreate, InvoiceOut
from balance_service.services.aggregation import invoice_row
from balance_service.services.audit_service import AuditService, AuditAction
from balance_service.services.document_service import InvoiceService
from balance_service.services.periods import resolve_range

router = APIRouter(prefix="/sales", tags=["Sales"])

require_sales_writer = RoleChecker(SALES_WRITERS)
require_sales_reader = RoleChecker(SALES_WRITERS + REPORT_READERS)


@router.post("/invoices", response_model=InvoiceOut, status_code=201)
async def create_invoice(
    data: InvoiceCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user = Depends(require_sales_writer)
):
    """Create an invoice; an upfront paid amount is booked as a sales payment"""
    invoice = InvoiceService(db).create(data.model_dump(), user_id=current_user.id)
    AuditService(db).log(
        action=AuditAction.INVOICE_CREATED,
        resource_type="Invoice",
        resource_id=invoice.id,
        description=f"Invoice {invoice.invoice_number} for {invoice.customer.name}",
        new_values={"total": invoice.total, "paidAmount": invoice.paid_amount},
        user=current_user,
        request_path=request.url.path
    )
    db.commit()
    return invoice_row(InvoiceService(db).get_by_id(invoice.id))


@router.get("/invoices", response_model=List[InvoiceOut])
async def list_invoices(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    customer_id: Optional[int] = Query(None, alias="customerId"),
    section: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user = Depends(require_sales_reader)
):
    date_range = resolve_range(start_date=start_date, end_date=end_date)
    invoices = InvoiceService(db).list(date_range, customer_id=customer_id, section=section)
    return [invoice_row(inv) for inv in invoices]


@router.get("/invoices/{invoice_id}", response_model=InvoiceOut)
async def get_invoice(
    invoice_id: int,
    db: Session = Depends(get_db),
    current_user = Depends(require_sales_reader)
):
    invoice = InvoiceService(db).get_by_id(invoice_id)
    if not invoice:
        raise NotFoundError(f"Invoice {invoice_id} not found")
    return invoice_row(invoice)
