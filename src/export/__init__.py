"""
Export Module for Admin Audit Replay

This module exposes the audit replay export boundary: request
normalization, the Supabase RPC client, and the authenticated export
handler that builds and records replay bundles.

Usage:
    from src.export import AuditExportHandler
    from src.utils.config import load_export_config

    handler = AuditExportHandler(load_export_config())
    response = handler.handle("POST", {"Authorization": f"Bearer {token}"}, {"dateRange": "7d"})
"""

from src.export.errors import ExportAuthError, ExportConfigError, ExportError, SupabaseRPCError
from src.export.filters import ExportRequest, filter_timeline_entries, normalize_export_request
from src.export.handler import AuditExportHandler, ExportResponse
from src.export.supabase_client import SupabaseClient

__all__ = [
    "ExportError",
    "ExportConfigError",
    "ExportAuthError",
    "SupabaseRPCError",
    "ExportRequest",
    "normalize_export_request",
    "filter_timeline_entries",
    "AuditExportHandler",
    "ExportResponse",
    "SupabaseClient",
]

__version__ = "1.0.0"
