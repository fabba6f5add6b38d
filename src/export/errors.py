"""Exceptions raised at the audit export boundary."""


class ExportError(Exception):
    """Base error for audit export failures, carrying an HTTP status."""

    status_code = 500

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ExportConfigError(ExportError):
    """Raised when the Supabase configuration is missing."""
    status_code = 500


class ExportAuthError(ExportError):
    """Raised when the caller is not authorized to export audit data."""
    status_code = 403


class SupabaseRPCError(ExportError):
    """Raised when a Supabase RPC call fails."""
    status_code = 500
