"""
Service layer
"""
from .base import BaseService
from .connection_reconciler import ConnectionReconciler, ReconcileResult
from .google_sheets_service import GoogleSheetsService, SheetsApiError, extract_spreadsheet_id
from .token_lifecycle import TokenLifecycleManager

__all__ = [
    "BaseService",
    "ConnectionReconciler",
    "ReconcileResult",
    "GoogleSheetsService",
    "SheetsApiError",
    "extract_spreadsheet_id",
    "TokenLifecycleManager",
]
