# API v1 Package
from balance_service.api.v1 import auth, ledger, sales, procurement, employees, accounting, reports, balance_sessions

__all__ = [
    'auth',
    'ledger',
    'sales',
    'procurement',
    'employees',
    'accounting',
    'reports',
    'balance_sessions',
]
