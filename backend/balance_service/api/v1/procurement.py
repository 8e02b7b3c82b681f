"""
Procurement API Routes - Orders
"""
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date

from balance_service.core.database import get_db
from balance_service.core.errors import NotFoundError
from balance_service.core.security import RoleChecker, PROCUREMENT_WRITERS, REPORT_READERS
from balance_service.schemas import OrderCreate, OrderOut, OrderStatusUpdate
from balance_service.services.aggregation import order_row
from balance_service.services.audit_service import AuditService, AuditAction
from balance_service.services.document_service import ProcurementService
from balance_service.services.periods import resolve_range

router = APIRouter(prefix="/procurement", tags=["Procurement"])

require_procurement_writer = RoleChecker(PROCUREMENT_WRITERS)
require_procurement_reader = RoleChecker(PROCUREMENT_WRITERS + REPORT_READERS)


@router.post("/orders", response_model=OrderOut, status_code=201)
async def create_order(
    data: OrderCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user = Depends(require_procurement_writer)
):
    order = ProcurementService(db).create(data.model_dump(), user_id=current_user.id)
    AuditService(db).log(
        action=AuditAction.ORDER_CREATED,
        resource_type="ProcurementOrder",
        resource_id=order.id,
        description=f"Order {order.order_number} from {order.supplier.name}",
        new_values={"total": order.total, "paid": order.paid},
        user=current_user,
        request_path=request.url.path
    )
    db.commit()
    return order_row(ProcurementService(db).get_by_id(order.id))


@router.get("/orders", response_model=List[OrderOut])
async def list_orders(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    supplier_id: Optional[int] = Query(None, alias="supplierId"),
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user = Depends(require_procurement_reader)
):
    date_range = resolve_range(start_date=start_date, end_date=end_date)
    orders = ProcurementService(db).list(date_range, supplier_id=supplier_id, status=status)
    return [order_row(o) for o in orders]


@router.get("/orders/{order_id}", response_model=OrderOut)
async def get_order(
    order_id: int,
    db: Session = Depends(get_db),
    current_user = Depends(require_procurement_reader)
):
    order = ProcurementService(db).get_by_id(order_id)
    if not order:
        raise NotFoundError(f"Procurement order {order_id} not found")
    return order_row(order)


@router.post("/orders/{order_id}/status", response_model=OrderOut)
async def update_order_status(
    order_id: int,
    data: OrderStatusUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user = Depends(require_procurement_writer)
):
    """Move an order through CREATED -> PARTIAL -> RECEIVED, or cancel it"""
    service = ProcurementService(db)
    previous = getattr(service.get_by_id(order_id), "status", None)
    order = service.update_status(order_id, data.status)
    AuditService(db).log(
        action=AuditAction.ORDER_STATUS_CHANGED,
        resource_type="ProcurementOrder",
        resource_id=order.id,
        description=f"Order {order.order_number}: {previous} -> {order.status}",
        new_values={"status": order.status},
        user=current_user,
        request_path=request.url.path
    )
    db.commit()
    return order_row(order)
