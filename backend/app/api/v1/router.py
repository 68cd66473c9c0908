"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import reconciliation, settlements, credit, admin_ops

router = APIRouter()

# Ledger engine endpoints
router.include_router(settlements.router)
router.include_router(reconciliation.router)
router.include_router(reconciliation.automation_router)

# Credit, settings and reporting
router.include_router(credit.customers_router)
router.include_router(credit.overdue_router)
router.include_router(credit.reports_router)

# Ops endpoints
router.include_router(admin_ops.router)
