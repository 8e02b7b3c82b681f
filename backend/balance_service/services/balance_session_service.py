"""
Balance Session Service - closing the books

The OPEN session is a live view from the end of the last closed session up to
now. Closing freezes its figures into a BalanceSession row; a closed session is
never recomputed or reopened. One close wins per period: overlapping periods
are rejected up front, and the unique period_start constraint settles
concurrent closers of the same open period.
"""
from datetime import date, datetime
from typing import Dict, List, Optional, Tuple
import json
import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from balance_service.core.errors import ConflictError, ValidationError
from balance_service.models import (
    BalanceSession, SessionStatus, Transaction, Invoice, ProcurementOrder
)
from balance_service.services.audit_service import AuditService, AuditAction
from balance_service.services.periods import DateRange, days_range, local_date, report_zone
from balance_service.services.report_service import ReportService, report_snapshot

logger = logging.getLogger(__name__)


class BalanceSessionService:
    def __init__(self, db: Session, zone=None):
        self.db = db
        self.zone = zone or report_zone()

    def get_by_id(self, session_id: int) -> Optional[BalanceSession]:
        return self.db.query(BalanceSession).options(
            joinedload(BalanceSession.closed_by_user)
        ).filter(BalanceSession.id == session_id).first()

    def list(self, limit: int = 100, offset: int = 0) -> List[BalanceSession]:
        return self.db.query(BalanceSession).options(
            joinedload(BalanceSession.closed_by_user)
        ).order_by(BalanceSession.period_end.desc(), BalanceSession.id.desc()).offset(offset).limit(limit).all()

    def last_closed(self) -> Optional[BalanceSession]:
        return self.db.query(BalanceSession).order_by(BalanceSession.period_end.desc()).first()

    def _earliest_activity(self) -> Optional[datetime]:
        candidates = [
            self.db.query(func.min(Transaction.date)).scalar(),
            self.db.query(func.min(Invoice.created_at)).scalar(),
            self.db.query(func.min(ProcurementOrder.created_at)).scalar(),
        ]
        candidates = [c for c in candidates if c is not None]
        return min(candidates) if candidates else None

    def open_period(self, now: datetime = None) -> Tuple[datetime, datetime]:
        """[end of the last closed session or first activity, now)"""
        now = now or datetime.utcnow()
        last = self.last_closed()
        if last is not None:
            return last.period_end, now
        return self._earliest_activity() or now, now

    def _summarize(self, start: datetime, end: datetime,
                   reports: ReportService = None) -> Tuple[Dict, int]:
        """Figures for [start, end), all read from one snapshot"""
        if reports is None:
            with report_snapshot(self.db.get_bind(), self.zone) as snapshot:
                return self._summarize(start, end, snapshot)
        window = DateRange(start=start, end=end,
                           first_day=local_date(start, self.zone), last_day=local_date(end, self.zone))
        summary = reports.balance_summary(window)
        summary["liquidCash"] = reports.liquid_cash(window)["net"]
        summary["outstandingFees"] = reports.outstanding_fees(window)["summary"]
        summary["dailyIncomeLoss"] = reports.daily_income_loss(window)["summary"]
        return summary, reports.watermark

    def open_view(self, now: datetime = None, reports: ReportService = None) -> Dict:
        """The live OPEN session; nothing is persisted"""
        start, end = self.open_period(now)
        summary, watermark = self._summarize(start, end, reports)
        return {
            "id": None,
            "status": SessionStatus.OPEN.value,
            "periodStart": start,
            "periodEnd": end,
            "summary": summary,
            "lastTransactionId": watermark,
            "closedAt": None,
            "closedBy": None,
            "notes": None,
        }

    def close(self, user, period_start_date: date = None, period_end_date: date = None,
              notes: str = None, now: datetime = None) -> BalanceSession:
        """
        Freeze the figures of a period into a closed session and commit.

        With no dates the open period is closed. Explicit dates are inclusive
        local calendar days. Raises ConflictError when the period overlaps an
        existing session, including when a concurrent close won the race.
        """
        if period_start_date is not None or period_end_date is not None:
            if period_start_date is None or period_end_date is None:
                raise ValidationError("Provide both periodStart and periodEnd, or neither")
            window = days_range(period_start_date, period_end_date, self.zone)
            start, end = window.start, window.end
        else:
            start, end = self.open_period(now)
        if start >= end:
            raise ValidationError("The period to close is empty")

        overlapping = self._overlapping(start, end)
        if overlapping is not None:
            self._reject(user, start, end, f"overlaps closed session {overlapping.id}")

        summary, watermark = self._summarize(start, end)
        session = BalanceSession(
            period_start=start,
            period_end=end,
            status=SessionStatus.CLOSED.value,
            summary=json.dumps(summary, default=str, sort_keys=True),
            last_transaction_id=watermark,
            notes=notes,
            closed_at=datetime.utcnow(),
            closed_by=user.id if user is not None else None,
        )
        self.db.add(session)
        try:
            self.db.flush()
            raced = self._overlapping(start, end, exclude_id=session.id)
            if raced is not None:
                self.db.rollback()
                self._reject(user, start, end, f"overlaps closed session {raced.id}")
            AuditService(self.db).log(
                action=AuditAction.SESSION_CLOSED,
                resource_type="BalanceSession",
                resource_id=session.id,
                description=f"Closed balance session {start:%Y-%m-%d %H:%M} - {end:%Y-%m-%d %H:%M}",
                new_values={"netBalance": summary["netBalance"], "netProfit": summary["netProfit"]},
                user=user,
            )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            self._reject(user, start, end, "closed concurrently by another request")

        logger.info(f"Balance session {session.id} closed for [{start}, {end}) up to txn {watermark}")
        return session

    def _overlapping(self, start: datetime, end: datetime, exclude_id: int = None) -> Optional[BalanceSession]:
        query = self.db.query(BalanceSession).filter(
            BalanceSession.period_start < end,
            BalanceSession.period_end > start
        )
        if exclude_id is not None:
            query = query.filter(BalanceSession.id != exclude_id)
        return query.first()

    def _reject(self, user, start: datetime, end: datetime, reason: str):
        message = f"Period {start:%Y-%m-%d %H:%M} - {end:%Y-%m-%d %H:%M} {reason}"
        logger.warning(f"Balance session close rejected: {message}")
        AuditService(self.db).log(
            action=AuditAction.SESSION_CLOSE_REJECTED,
            resource_type="BalanceSession",
            description=message,
            user=user,
            status="failure",
            error_message=reason,
        )
        self.db.commit()
        raise ConflictError(message)


def snapshot(session: BalanceSession) -> Dict:
    """Stored figures exactly as frozen at close"""
    return json.loads(session.summary)
