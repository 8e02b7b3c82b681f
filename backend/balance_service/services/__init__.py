# Services Package
from balance_service.services.user_service import UserService
from balance_service.services.audit_service import AuditService, AuditAction
from balance_service.services.ledger_service import LedgerService, LedgerFilter, LedgerQuery
from balance_service.services.document_service import (
    InvoiceService, ProcurementService, EmployeeService
)
from balance_service.services.report_service import ReportService, run_report
from balance_service.services.balance_session_service import BalanceSessionService

__all__ = [
    'UserService',
    'AuditService',
    'AuditAction',
    'LedgerService',
    'LedgerFilter',
    'LedgerQuery',
    'InvoiceService',
    'ProcurementService',
    'EmployeeService',
    'ReportService',
    'run_report',
    'BalanceSessionService',
]
