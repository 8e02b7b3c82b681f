"""
Audit Logging Service
Provides an audit trail for ledger writes, document changes and closings
"""
from sqlalchemy.orm import Session
from sqlalchemy import desc
from typing import Optional, List, Dict
from datetime import datetime
import json
import logging

from balance_service.models import AuditLog

logger = logging.getLogger(__name__)


class AuditAction:
    """Constants for audit actions"""
    # Authentication
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    LOGIN_FAILED = "LOGIN_FAILED"

    # Ledger
    TRANSACTION_APPENDED = "TRANSACTION_APPENDED"

    # Documents
    INVOICE_CREATED = "INVOICE_CREATED"
    ORDER_CREATED = "ORDER_CREATED"
    ORDER_STATUS_CHANGED = "ORDER_STATUS_CHANGED"
    EMPLOYEE_CREATED = "EMPLOYEE_CREATED"
    SALARY_RECORDED = "SALARY_RECORDED"
    ADVANCE_RECORDED = "ADVANCE_RECORDED"

    # Closing the books
    SESSION_CLOSED = "SESSION_CLOSED"
    SESSION_CLOSE_REJECTED = "SESSION_CLOSE_REJECTED"


class AuditService:
    """Service for recording and retrieving audit logs"""

    def __init__(self, db: Session):
        self.db = db

    def log(
        self,
        action: str,
        resource_type: str,
        resource_id: Optional[int] = None,
        description: Optional[str] = None,
        new_values: Optional[Dict] = None,
        user=None,
        ip_address: Optional[str] = None,
        request_path: Optional[str] = None,
        status: str = "success",
        error_message: Optional[str] = None
    ) -> Optional[AuditLog]:
        """
        Create an audit log entry in the caller's transaction.

        Args:
            action: One of the AuditAction constants
            resource_type: Type of resource affected (e.g. 'Transaction', 'BalanceSession')
            resource_id: ID of the affected resource
            description: Human-readable description
            new_values: Values after the change, stored as JSON
            user: Acting user; username and role are copied in case the user is removed
            status: 'success', 'failure', or 'error'

        Returns:
            The created AuditLog, or None if it could not be written
        """
        try:
            audit_log = AuditLog(
                action=action,
                resource_type=resource_type,
                resource_id=resource_id,
                description=description,
                new_values=json.dumps(new_values, default=str) if new_values else None,
                user_id=user.id if user is not None else None,
                username=user.username if user is not None else None,
                role=user.role if user is not None else None,
                ip_address=ip_address,
                request_path=request_path,
                status=status,
                error_message=error_message
            )

            self.db.add(audit_log)
            self.db.flush()

            logger.info(
                f"Audit: {action} {resource_type}(id={resource_id}) "
                f"by user={audit_log.username} status={status}"
            )
            return audit_log

        except Exception as e:
            logger.error(f"Failed to create audit log: {e}")
            # Audit logging must not break the main operation
            return None

    def get_logs(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        user_id: Optional[int] = None,
        action: Optional[str] = None,
        resource_type: Optional[str] = None,
        limit: int = 100,
        offset: int = 0
    ) -> List[AuditLog]:
        """Newest first, with optional filters; `end` is exclusive"""
        query = self.db.query(AuditLog)

        if start:
            query = query.filter(AuditLog.timestamp >= start)
        if end:
            query = query.filter(AuditLog.timestamp < end)
        if user_id:
            query = query.filter(AuditLog.user_id == user_id)
        if action:
            query = query.filter(AuditLog.action == action)
        if resource_type:
            query = query.filter(AuditLog.resource_type == resource_type)

        return query.order_by(desc(AuditLog.timestamp), desc(AuditLog.id)).offset(offset).limit(limit).all()
