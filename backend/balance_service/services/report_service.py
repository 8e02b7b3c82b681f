"""
Report Service - snapshot reads feeding the aggregation engine

A ReportService reads the ledger high-water mark once, on construction, and
bounds every ledger read by it. Opened through report_snapshot, its session
holds one read snapshot, so documents are read as they stood at that same
moment. Reports run in a worker thread with their own snapshot session and a
caller-supplied timeout.
"""
import asyncio
import logging
from contextlib import contextmanager
from datetime import date
from typing import Callable, Dict, Iterator, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from balance_service.core.config import settings
from balance_service.core.database import begin_snapshot
from balance_service.core.errors import ValidationError, ReportTimeoutError, InternalError
from balance_service.models import (
    Invoice, ProcurementOrder, Employee, TransactionType, Customer, Supplier
)
from balance_service.services import aggregation
from balance_service.services.ledger_service import LedgerService, LedgerFilter
from balance_service.services.periods import (
    ALL_TIME, DateRange, Granularity, day_range, report_zone
)

logger = logging.getLogger(__name__)


class ReportService:
    def __init__(self, db: Session, zone=None):
        self.db = db
        self.zone = zone or report_zone()
        self.ledger = LedgerService(db)
        self.watermark = self.ledger.high_water_mark()

    # ==================== SNAPSHOT READS ====================

    def transactions(self, date_range: DateRange = ALL_TIME, types=None, methods=None) -> List:
        ledger_filter = LedgerFilter.build(date_range, types=types, methods=methods)
        return list(self.ledger.query(ledger_filter, up_to_id=self.watermark))

    def invoices(self, date_range: DateRange = ALL_TIME, customer_id: int = None) -> List[Invoice]:
        query = self.db.query(Invoice).options(
            joinedload(Invoice.customer),
            joinedload(Invoice.items)
        )
        query = _within(query, Invoice.created_at, date_range)
        if customer_id:
            query = query.filter(Invoice.customer_id == customer_id)
        return query.order_by(Invoice.id).all()

    def orders(self, date_range: DateRange = ALL_TIME, supplier_id: int = None) -> List[ProcurementOrder]:
        query = self.db.query(ProcurementOrder).options(joinedload(ProcurementOrder.supplier))
        query = _within(query, ProcurementOrder.created_at, date_range)
        if supplier_id:
            query = query.filter(ProcurementOrder.supplier_id == supplier_id)
        return query.order_by(ProcurementOrder.id).all()

    def employees(self) -> List[Employee]:
        return self.db.query(Employee).options(
            joinedload(Employee.salaries),
            joinedload(Employee.advances)
        ).order_by(Employee.id).all()

    # ==================== REPORTS ====================

    def balance_summary(self, date_range: DateRange = ALL_TIME) -> Dict:
        return aggregation.balance_summary(
            self.invoices(date_range),
            self.orders(date_range),
            self.transactions(date_range),
        )

    def outstanding_fees(self, date_range: DateRange = ALL_TIME) -> Dict:
        return aggregation.outstanding_fees(self.invoices(date_range), self.orders(date_range))

    def liquid_cash(self, date_range: DateRange = ALL_TIME) -> Dict:
        return aggregation.liquid_cash(self.transactions(date_range))

    def daily_income_loss(self, date_range: DateRange = ALL_TIME) -> Dict:
        return aggregation.daily_income_loss(self.transactions(date_range), self.zone)

    def commission(self, date_range: DateRange = ALL_TIME) -> Dict:
        txns = self.transactions(date_range, types=[TransactionType.COMMISSION])
        order_ids = {t.reference for t in txns if t.reference is not None}
        orders = {}
        if order_ids:
            orders = {
                o.id: o for o in self.db.query(ProcurementOrder).options(
                    joinedload(ProcurementOrder.supplier)
                ).filter(ProcurementOrder.id.in_(order_ids)).all()
            }
        return aggregation.commission_report(txns, orders)

    def bank_transactions(self, date_range: DateRange = ALL_TIME, methods=None) -> Dict:
        methods = [m.value if hasattr(m, "value") else m for m in (methods or aggregation.BANK_METHODS)]
        txns = self.transactions(date_range, methods=methods)
        return aggregation.bank_transactions(txns, methods)

    def customer(self, date_range: DateRange = ALL_TIME, customer_id: int = None) -> Dict:
        report = aggregation.customer_report(self.invoices(date_range, customer_id))
        if customer_id:
            report["customer"] = _party(self.db.get(Customer, customer_id))
        return report

    def supplier(self, date_range: DateRange = ALL_TIME, supplier_id: int = None) -> Dict:
        report = aggregation.supplier_report(self.orders(date_range, supplier_id))
        if supplier_id:
            report["supplier"] = _party(self.db.get(Supplier, supplier_id))
        return report

    def daily(self, day: date) -> Dict:
        window = day_range(day, self.zone)
        return aggregation.daily_report(
            day,
            self.invoices(window),
            self.orders(window),
            self.transactions(window),
        )

    def assets_liabilities(self) -> Dict:
        return aggregation.assets_liabilities(
            self.invoices(), self.orders(), self.transactions(), self.employees()
        )

    def periodic(self, granularity: Granularity, date_range: DateRange = ALL_TIME) -> Dict:
        return aggregation.periodic_totals(
            self.transactions(date_range), granularity, date_range, self.zone
        )

    def expenses(self, date_range: DateRange = ALL_TIME) -> Dict:
        return aggregation.method_breakdown(
            self.transactions(date_range, types=[TransactionType.EXPENSE])
        )

    def income(self, date_range: DateRange = ALL_TIME) -> Dict:
        return aggregation.method_breakdown(
            self.transactions(date_range, types=[TransactionType.INCOME, TransactionType.COMMISSION])
        )

    def payroll(self) -> Dict:
        return aggregation.payroll_summary(self.employees())


def _within(query, column, date_range: DateRange):
    if date_range.start is not None:
        query = query.filter(column >= date_range.start)
    if date_range.end is not None:
        query = query.filter(column < date_range.end)
    return query


def _party(entity) -> Optional[Dict]:
    return {"id": entity.id, "name": entity.name} if entity is not None else None


@contextmanager
def report_snapshot(bind, zone=None) -> Iterator[ReportService]:
    """A ReportService on its own session, pinned to one consistent database state"""
    session = Session(bind=bind)
    try:
        begin_snapshot(session)
        yield ReportService(session, zone)
    finally:
        session.close()


def resolve_timeout(timeout: Optional[float]) -> float:
    """Caller timeout, capped by the configured maximum"""
    if timeout is None:
        return settings.REPORT_TIMEOUT_SECONDS
    if timeout <= 0:
        raise ValidationError("timeout must be positive")
    return min(timeout, settings.REPORT_TIMEOUT_SECONDS)


async def run_report(db: Session, build: Callable[[ReportService], Dict],
                     timeout: Optional[float] = None, zone=None) -> Dict:
    """
    Run `build` against a fresh ReportService in a worker thread.

    The worker opens its own snapshot session on the request's engine, so
    abandoning it on timeout never touches the request session.
    """
    limit = resolve_timeout(timeout)
    bind = db.get_bind()

    def work():
        with report_snapshot(bind, zone) as reports:
            return build(reports)

    loop = asyncio.get_running_loop()
    try:
        return await asyncio.wait_for(loop.run_in_executor(None, work), timeout=limit)
    except asyncio.TimeoutError:
        logger.warning(f"Report {getattr(build, '__name__', build)} exceeded {limit:g}s")
        raise ReportTimeoutError(f"Report did not finish within {limit:g} seconds")
    except SQLAlchemyError as e:
        logger.error(f"Report {getattr(build, '__name__', build)} failed reading the database: {e}")
        raise InternalError("Report could not be computed")
