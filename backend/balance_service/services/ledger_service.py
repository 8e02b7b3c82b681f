"""
Ledger Service - append-only transaction store

Transactions are only ever appended. Reads go through LedgerQuery, a lazy
sequence that pages by primary key, so it can be iterated any number of times
and never holds a cursor open between pages.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Iterator, List, Optional, Tuple, FrozenSet
import logging

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from balance_service.core.config import settings
from balance_service.core.errors import ValidationError, NotFoundError, ConflictError
from balance_service.models import (
    Transaction, TransactionType, PaymentMethod, Invoice, ProcurementOrder,
    SalaryPayment, Advance
)
from balance_service.services.aggregation import money
from balance_service.services.periods import ALL_TIME, DateRange, to_utc_naive

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerFilter:
    """Selection over the ledger; empty sets mean no restriction"""
    date_range: DateRange = ALL_TIME
    types: FrozenSet[str] = field(default_factory=frozenset)
    methods: FrozenSet[str] = field(default_factory=frozenset)
    reference: Optional[int] = None

    @classmethod
    def build(cls, date_range: DateRange = ALL_TIME, types=None, methods=None, reference=None):
        types = frozenset(enum_value(TransactionType, t, "transaction type") for t in (types or ()))
        methods = frozenset(enum_value(PaymentMethod, m, "payment method") for m in (methods or ()))
        return cls(date_range=date_range, types=types, methods=methods, reference=reference)


def enum_value(enum_cls, value, label: str) -> str:
    try:
        return enum_cls(getattr(value, "value", value)).value
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        raise ValidationError(f"Invalid {label} '{value}'. Expected one of: {allowed}")


class LedgerQuery:
    """
    Lazy, restartable view over ledger rows matching a filter.

    Every iteration starts a fresh keyset scan (id > last ORDER BY id), so rows
    appended after `up_to_id` are never seen and no row is seen twice.
    """

    def __init__(self, db: Session, ledger_filter: LedgerFilter, up_to_id: Optional[int] = None,
                 page_size: int = None):
        self.db = db
        self.filter = ledger_filter
        self.up_to_id = up_to_id
        self.page_size = page_size or settings.LEDGER_PAGE_SIZE

    def _base_query(self):
        query = self.db.query(Transaction).options(joinedload(Transaction.recorder))
        f = self.filter

        if f.date_range.start is not None:
            query = query.filter(Transaction.date >= f.date_range.start)
        if f.date_range.end is not None:
            query = query.filter(Transaction.date < f.date_range.end)
        if f.types:
            query = query.filter(Transaction.type.in_(f.types))
        if f.methods:
            query = query.filter(or_(
                Transaction.method.in_(f.methods),
                Transaction.to_method.in_(f.methods),
            ))
        if f.reference is not None:
            query = query.filter(Transaction.reference == f.reference)
        if self.up_to_id is not None:
            query = query.filter(Transaction.id <= self.up_to_id)
        return query

    def page(self, limit: int = None, after_id: int = None) -> Tuple[List[Transaction], Optional[int]]:
        """One page of rows plus the cursor for the next page (None when exhausted)"""
        limit = limit or self.page_size
        query = self._base_query()
        if after_id is not None:
            query = query.filter(Transaction.id > after_id)
        rows = query.order_by(Transaction.id).limit(limit + 1).all()
        if len(rows) > limit:
            return rows[:limit], rows[limit - 1].id
        return rows, None

    def __iter__(self) -> Iterator[Transaction]:
        after_id = None
        while True:
            rows, after_id = self.page(self.page_size, after_id)
            yield from rows
            if after_id is None:
                return


class LedgerService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, transaction_id: int) -> Optional[Transaction]:
        return self.db.query(Transaction).options(
            joinedload(Transaction.recorder)
        ).filter(Transaction.id == transaction_id).first()

    def high_water_mark(self) -> int:
        """Highest committed transaction id; 0 for an empty ledger"""
        return self.db.query(func.max(Transaction.id)).scalar() or 0

    def query(self, ledger_filter: LedgerFilter = None, up_to_id: int = None,
              page_size: int = None) -> LedgerQuery:
        return LedgerQuery(self.db, ledger_filter or LedgerFilter(), up_to_id, page_size)

    # ==================== APPEND ====================

    def append(self, data: dict, recorded_by: int = None) -> Transaction:
        """
        Validate and append one transaction, applying it to the document it
        references. Flushes but does not commit; the caller owns the transaction.
        """
        txn_type = enum_value(TransactionType, data.get("type"), "transaction type")
        method = enum_value(PaymentMethod, data.get("method"), "payment method")
        amount = self._parse_amount(data.get("amount"))

        to_method = data.get("to_method")
        if txn_type == TransactionType.BANK_TRANSFER.value:
            if to_method is None:
                raise ValidationError("BANK_TRANSFER requires to_method")
            to_method = enum_value(PaymentMethod, to_method, "payment method")
            if to_method == method:
                raise ValidationError("Transfer source and target methods must differ")
        elif to_method is not None:
            raise ValidationError("to_method is only allowed on BANK_TRANSFER")

        date = data.get("date") or datetime.utcnow()
        reference = data.get("reference")

        txn = Transaction(
            type=txn_type,
            amount=amount,
            method=method,
            to_method=to_method,
            date=to_utc_naive(date),
            reference=reference,
            description=data.get("description"),
            recorded_by=recorded_by,
        )

        try:
            # savepoint: a rejected append rolls back only itself
            with self.db.begin_nested():
                if reference is not None:
                    self._apply_to_document(txn)
                self.db.add(txn)
                self.db.flush()
        except IntegrityError as e:
            logger.warning(f"Ledger append rejected by the database: {e.orig}")
            raise ConflictError("The referenced document changed concurrently; refresh and retry")

        logger.info(f"Ledger: appended {txn.type} #{txn.id} amount={txn.amount} method={txn.method}")
        return txn

    def _parse_amount(self, value) -> Decimal:
        if value is None:
            raise ValidationError("amount is required")
        try:
            amount = money(value)
        except (InvalidOperation, ValueError, TypeError):
            raise ValidationError(f"Invalid amount '{value}'")
        if not amount.is_finite():
            raise ValidationError(f"Invalid amount '{value}'")
        if amount < 0:
            raise ValidationError("amount must not be negative")
        return amount

    def _apply_to_document(self, txn: Transaction):
        """Payment-type rows move the paid amount of the document they reference"""
        if txn.type == TransactionType.SALES_PAYMENT.value:
            invoice = self.db.query(Invoice).filter(Invoice.id == txn.reference).first()
            if invoice is None:
                raise NotFoundError(f"Invoice {txn.reference} not found")
            if txn.amount > invoice.receivable:
                raise ValidationError(
                    f"Payment amount ({txn.amount:.2f}) exceeds outstanding balance "
                    f"({invoice.receivable:.2f}) of invoice {invoice.invoice_number}"
                )
            invoice.paid_amount = money(invoice.paid_amount) + txn.amount

        elif txn.type == TransactionType.PROCUREMENT_PAYMENT.value:
            order = self._get_order(txn.reference)
            if order.is_cancelled:
                raise ValidationError(f"Order {order.order_number} is cancelled")
            if txn.amount > order.outstanding:
                raise ValidationError(
                    f"Payment amount ({txn.amount:.2f}) exceeds outstanding balance "
                    f"({order.outstanding:.2f}) of order {order.order_number}"
                )
            order.paid = money(order.paid) + txn.amount

        elif txn.type == TransactionType.COMMISSION.value:
            self._get_order(txn.reference)

        elif txn.type in (TransactionType.SALARY.value, TransactionType.ADVANCE.value):
            model = SalaryPayment if txn.type == TransactionType.SALARY.value else Advance
            record = self.db.query(model).filter(model.id == txn.reference).first()
            if record is None:
                raise NotFoundError(f"{txn.type.title()} record {txn.reference} not found")
            if record.paid_at is not None:
                raise ConflictError(f"{txn.type.title()} record {record.id} is already paid")
            if txn.amount != money(record.amount):
                raise ValidationError(
                    f"Amount ({txn.amount:.2f}) must equal the recorded {txn.type.lower()} "
                    f"({money(record.amount):.2f})"
                )
            record.paid_at = txn.date
            record.payment_method = txn.method

    def _get_order(self, order_id: int) -> ProcurementOrder:
        order = self.db.query(ProcurementOrder).filter(ProcurementOrder.id == order_id).first()
        if order is None:
            raise NotFoundError(f"Procurement order {order_id} not found")
        return order
