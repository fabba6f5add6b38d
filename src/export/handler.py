"""
Audit Export Handler

Authenticates an admin caller, loads both audit trails, applies the
caller's filters, builds a replay bundle, records the export in the admin
audit trail and returns the bundle. Every failure maps to an HTTP status and
a human-readable message; nothing is retried.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

import requests

from src.export.errors import ExportAuthError, ExportConfigError, ExportError, SupabaseRPCError
from src.export.filters import ExportRequest, filter_timeline_entries, normalize_export_request
from src.export.supabase_client import SupabaseClient
from src.forensics.models import ChangeRecord, EventSource
from src.forensics.replay import ReplayBundleBuilder, utc_now_iso
from src.monitoring.metrics import ForensicsMetrics
from src.utils.config import ExportConfig
from src.utils.correlation import CorrelationContext

logger = logging.getLogger(__name__)

BEARER_PATTERN = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE)

EXPORT_AUDIT_ACTION = "admin.audit.export"
EXPORT_VIA = "admin-audit-export"

READ_PERMISSION = "audit.read"
WRITE_PERMISSION = "audit.write"

UPSTREAM_FAILURE_STATUS = 500


@dataclass
class ExportResponse:
    """HTTP status and JSON payload of an export request."""

    status: int
    payload: Dict[str, Any]

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def error_response(status: int, message: str) -> ExportResponse:
    return ExportResponse(status=status, payload={"ok": False, "error": message})


def get_auth_token(headers: Mapping[str, str]) -> Optional[str]:
    """
    Extract the bearer token from request headers.

    Args:
        headers: Request headers (case-insensitive lookup on "authorization")

    Returns:
        Token or None
    """
    raw = ""
    for name, value in headers.items():
        if name.lower() == "authorization":
            raw = value or ""
            break

    match = BEARER_PATTERN.match(raw.strip())
    if not match:
        return None
    return match.group(1).strip() or None


class AuditExportHandler:
    """
    Handles admin audit replay export requests.

    The Supabase client is created per request from the caller's token so
    that every RPC runs with the caller's privileges.
    """

    def __init__(
        self,
        config: Optional[ExportConfig],
        client_factory: Optional[Callable[[ExportConfig, str], SupabaseClient]] = None,
        builder: Optional[ReplayBundleBuilder] = None,
        metrics: Optional[ForensicsMetrics] = None,
        clock: Callable[[], str] = utc_now_iso
    ):
        """
        Initialize the export handler.

        Args:
            config: Export configuration (None when not configured)
            client_factory: Builds a SupabaseClient from config and token
            builder: Replay bundle builder
            metrics: Metrics sink
            clock: Returns the current time as ISO-8601
        """
        self.config = config
        self.client_factory = client_factory or SupabaseClient
        self.builder = builder or ReplayBundleBuilder()
        self.metrics = metrics or ForensicsMetrics()
        self.clock = clock

    def handle(
        self,
        method: str,
        headers: Mapping[str, str],
        body: Any = None
    ) -> ExportResponse:
        """
        Handle an export request.

        Args:
            method: HTTP method
            headers: Request headers
            body: Parsed JSON body

        Returns:
            ExportResponse with status and payload
        """
        with CorrelationContext():
            response = self._handle(method, headers, body)

        self.metrics.record_export_request(response.status)
        return response

    def _handle(self, method: str, headers: Mapping[str, str], body: Any) -> ExportResponse:
        if method.upper() != "POST":
            return error_response(405, "Method not allowed.")

        try:
            if self.config is None:
                raise ExportConfigError(
                    "Supabase config missing. Set SUPABASE_URL and SUPABASE_ANON_KEY."
                )

            token = get_auth_token(headers)
            if not token:
                raise ExportError("Missing bearer token.", status_code=401)

            with self.client_factory(self.config, token) as client:
                actor_user_id = self.authorize(client)
                request = normalize_export_request(body)
                return self.export(client, actor_user_id, request)

        except ExportError as e:
            logger.warning(f"Audit export rejected ({e.status_code}): {e.message}")
            return error_response(e.status_code, e.message)
        except (requests.RequestException, ValueError, TypeError, KeyError) as e:
            logger.error(f"Audit export runtime failure: {e}", exc_info=True)
            return error_response(500, f"Admin audit replay export runtime failure: {e}")

    def authorize(self, client: SupabaseClient) -> str:
        """
        Verify the caller is an admin with audit read and write permission.

        Returns:
            The caller's user id

        Raises:
            ExportAuthError: If any check fails
        """
        try:
            access = client.get_current_user_access()
        except SupabaseRPCError as e:
            raise ExportAuthError(e.message)

        if not access or access.get("system_role") != "admin":
            raise ExportAuthError("Admin role required.")

        actor_user_id = str(access.get("user_id") or "").strip()
        if not actor_user_id:
            raise ExportAuthError("Admin actor id is missing.")

        for permission, missing_message in (
            (READ_PERMISSION, "Missing audit read permission."),
            (WRITE_PERMISSION, "Missing audit write permission."),
        ):
            try:
                allowed = client.has_admin_permission(permission)
            except SupabaseRPCError as e:
                raise ExportAuthError(e.message)
            # An undecidable result shape is treated as allowed
            if allowed is False:
                raise ExportAuthError(missing_message)

        return actor_user_id

    def load_records(self, client: SupabaseClient, source_limit: int) -> Dict[str, List[ChangeRecord]]:
        """Load both audit trails as ChangeRecords keyed by source."""
        try:
            admin_rows = client.list_admin_audit_logs(source_limit)
            user_rows = client.list_user_change_logs(source_limit)
        except SupabaseRPCError as e:
            raise SupabaseRPCError(e.message, status_code=UPSTREAM_FAILURE_STATUS)

        records = {
            EventSource.ADMIN.value: [
                ChangeRecord.from_row(row, EventSource.ADMIN.value)
                for row in admin_rows if isinstance(row, Mapping)
            ],
            EventSource.USER.value: [
                ChangeRecord.from_row(row, EventSource.USER.value)
                for row in user_rows if isinstance(row, Mapping)
            ],
        }

        counts = {source: len(rows) for source, rows in records.items()}
        self.metrics.record_source_rows(counts)
        logger.info(f"Loaded audit rows: {counts}")
        return records

    def export(
        self,
        client: SupabaseClient,
        actor_user_id: str,
        request: ExportRequest
    ) -> ExportResponse:
        """Load, filter, build, persist and return the replay bundle."""
        records = self.load_records(client, request.source_limit)
        merged = records[EventSource.ADMIN.value] + records[EventSource.USER.value]
        filtered = filter_timeline_entries(merged, request)

        build = self.metrics.time_bundle_build(self.builder.build)
        bundle = build(filtered, generated_at_iso=self.clock(), filters=request.to_filters())

        try:
            export_audit_id = self.persist_export(client, actor_user_id, request, records, bundle)
        except SupabaseRPCError as e:
            raise SupabaseRPCError(e.message, status_code=UPSTREAM_FAILURE_STATUS)

        logger.info(
            f"Audit export {export_audit_id} by {actor_user_id}: "
            f"{bundle['totals']['event_count']} events"
        )

        return ExportResponse(
            status=200,
            payload={
                "ok": True,
                "data": {
                    "export_audit_id": export_audit_id,
                    "bundle": bundle,
                },
            },
        )

    def persist_export(
        self,
        client: SupabaseClient,
        actor_user_id: str,
        request: ExportRequest,
        records: Dict[str, List[ChangeRecord]],
        bundle: Dict[str, Any]
    ) -> Optional[str]:
        """Record the export in the admin audit trail and return the audit id."""
        return client.write_audit(
            action=EXPORT_AUDIT_ACTION,
            target_type="audit",
            before_data={},
            after_data={
                "event_count": bundle["totals"]["event_count"],
                "correlation_count": bundle["totals"]["correlation_count"],
            },
            metadata={
                "via": EXPORT_VIA,
                "actor_user_id": actor_user_id,
                "source_limit": request.source_limit,
                "search": request.search_token or None,
                "date_range": request.date_range,
                "action_filters": request.action_filters,
                "target_filters": request.target_filters,
                "actor_filters": request.actor_filters,
                "event_ids": request.event_ids,
                "source_counts": {
                    source: len(rows) for source, rows in records.items()
                },
                "exported_event_count": bundle["totals"]["event_count"],
                "exported_correlation_count": bundle["totals"]["correlation_count"],
                "replay_schema": bundle["schema"],
            },
        )
