"""
Balance Sessions API Routes - closing the books
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from balance_service.core.database import get_db
from balance_service.core.errors import NotFoundError
from balance_service.core.security import require_bookkeeper, require_report_reader
from balance_service.models import BalanceSession
from balance_service.schemas import BalanceSessionOut, SessionCloseRequest
from balance_service.services.balance_session_service import BalanceSessionService, snapshot
from balance_service.services.report_service import run_report

router = APIRouter(prefix="/balance-sessions", tags=["Balance Sessions"])


def session_out(session: BalanceSession) -> dict:
    return {
        "id": session.id,
        "status": session.status,
        "periodStart": session.period_start,
        "periodEnd": session.period_end,
        "summary": snapshot(session),
        "lastTransactionId": session.last_transaction_id,
        "closedAt": session.closed_at,
        "closedBy": session.closed_by_user.username if session.closed_by_user else None,
        "notes": session.notes,
    }


@router.post("/close", response_model=BalanceSessionOut, status_code=201)
async def close_session(
    data: Optional[SessionCloseRequest] = None,
    db: Session = Depends(get_db),
    current_user = Depends(require_bookkeeper)
):
    """
    Close the books for a period. Without dates the open period is closed.
    A second close of the same or an overlapping period fails with 409.
    """
    data = data or SessionCloseRequest()
    session = BalanceSessionService(db).close(
        current_user,
        period_start_date=data.period_start,
        period_end_date=data.period_end,
        notes=data.notes
    )
    return session_out(session)


@router.get("", response_model=List[BalanceSessionOut])
async def list_sessions(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    current_user = Depends(require_report_reader)
):
    """Closed sessions, newest period first; figures are as frozen at close"""
    return [session_out(s) for s in BalanceSessionService(db).list(limit, offset)]


@router.get("/open", response_model=BalanceSessionOut)
async def open_session(
    timeout: Optional[float] = None,
    db: Session = Depends(get_db),
    current_user = Depends(require_report_reader)
):
    """Live figures since the last close"""
    return await run_report(
        db, lambda r: BalanceSessionService(r.db, r.zone).open_view(reports=r), timeout
    )


@router.get("/{session_id}", response_model=BalanceSessionOut)
async def get_session(
    session_id: int,
    db: Session = Depends(get_db),
    current_user = Depends(require_report_reader)
):
    session = BalanceSessionService(db).get_by_id(session_id)
    if not session:
        raise NotFoundError(f"Balance session {session_id} not found")
    return session_out(session)
