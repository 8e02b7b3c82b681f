"""
Ledger API Routes - append and browse transactions
"""
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date

from balance_service.core.config import settings
from balance_service.core.database import get_db
from balance_service.core.errors import NotFoundError, ValidationError
from balance_service.core.security import require_bookkeeper, require_report_reader
from balance_service.schemas import TransactionCreate, TransactionOut, TransactionPage
from balance_service.services.aggregation import transaction_row
from balance_service.services.audit_service import AuditService, AuditAction
from balance_service.services.ledger_service import LedgerService, LedgerFilter
from balance_service.services.periods import resolve_range

router = APIRouter(prefix="/ledger", tags=["Ledger"])


@router.post("/transactions", response_model=TransactionOut, status_code=201)
async def append_transaction(
    data: TransactionCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user = Depends(require_bookkeeper)
):
    """Append a transaction; corrections are new offsetting transactions"""
    txn = LedgerService(db).append(data.model_dump(), recorded_by=current_user.id)
    AuditService(db).log(
        action=AuditAction.TRANSACTION_APPENDED,
        resource_type="Transaction",
        resource_id=txn.id,
        description=f"{txn.type} {txn.amount} via {txn.method}",
        new_values={"type": txn.type, "amount": txn.amount, "method": txn.method,
                    "toMethod": txn.to_method, "reference": txn.reference},
        user=current_user,
        request_path=request.url.path
    )
    db.commit()
    db.refresh(txn)
    return transaction_row(txn)


@router.get("/transactions", response_model=TransactionPage)
async def list_transactions(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    types: Optional[List[str]] = Query(None),
    methods: Optional[List[str]] = Query(None),
    reference: Optional[int] = None,
    limit: Optional[int] = Query(None, ge=1),
    after_id: Optional[int] = Query(None, alias="afterId"),
    db: Session = Depends(get_db),
    current_user = Depends(require_report_reader)
):
    """Keyset-paginated listing; pass nextCursor back as afterId"""
    limit = limit or settings.LEDGER_PAGE_SIZE
    if limit > settings.MAX_PAGE_SIZE:
        raise ValidationError(f"limit must not exceed {settings.MAX_PAGE_SIZE}")

    ledger_filter = LedgerFilter.build(
        resolve_range(start_date=start_date, end_date=end_date),
        types=types, methods=methods, reference=reference
    )
    rows, next_cursor = LedgerService(db).query(ledger_filter).page(limit, after_id)
    return {
        "transactions": [transaction_row(t) for t in rows],
        "nextCursor": next_cursor,
    }


@router.get("/transactions/{transaction_id}", response_model=TransactionOut)
async def get_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    current_user = Depends(require_report_reader)
):
    txn = LedgerService(db).get_by_id(transaction_id)
    if not txn:
        raise NotFoundError(f"Transaction {transaction_id} not found")
    return transaction_row(txn)
