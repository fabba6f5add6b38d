"""
Supabase RPC Client for Audit Export

Thin HTTP client over the PostgREST RPC endpoints that expose the admin
audit trail, the user change trail, admin permission checks and audit
writes.
"""

import json
import logging
from typing import Any, Dict, List, Optional

import requests

from src.export.errors import SupabaseRPCError
from src.utils.config import ExportConfig

logger = logging.getLogger(__name__)


def extract_service_error(payload: Any, fallback: str) -> str:
    """
    Pull a human-readable message out of an error payload.

    Args:
        payload: Parsed JSON body (any shape)
        fallback: Message used when none is found

    Returns:
        Error message
    """
    if isinstance(payload, dict):
        for key in ("message", "error_description", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return fallback


def _first_scalar(payload: Any) -> Any:
    """First scalar of an RPC result: the value, first row, or first column."""
    if isinstance(payload, list):
        if not payload:
            return None
        payload = payload[0]
    if isinstance(payload, dict):
        values = list(payload.values())
        return values[0] if values else None
    return payload


def extract_boolean_result(payload: Any) -> Optional[bool]:
    value = _first_scalar(payload)
    return value if isinstance(value, bool) else None


def extract_string_result(payload: Any) -> Optional[str]:
    value = _first_scalar(payload)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


class SupabaseClient:
    """
    Calls Supabase RPC functions on behalf of an authenticated admin.

    Every request carries the project anon key and the caller's bearer
    token, so row-level security and admin checks run as the caller.
    """

    def __init__(
        self,
        config: ExportConfig,
        auth_token: str,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the client.

        Args:
            config: Export configuration
            auth_token: Caller's bearer token
            session: Optional requests session (for connection reuse)
        """
        self.base_url = config.supabase_url.rstrip("/")
        self.timeout = config.request_timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Content-Type": "application/json",
            "apikey": config.anon_key,
            "Authorization": f"Bearer {auth_token}",
            "Prefer": "params=single-object",
        })

    def rpc(
        self,
        function: str,
        params: Optional[Dict[str, Any]] = None,
        error_message: str = "RPC call failed."
    ) -> Any:
        """
        Call an RPC function.

        Args:
            function: RPC function name
            params: JSON body
            error_message: Fallback message when the service gives none

        Returns:
            Parsed JSON response (None for an empty body)

        Raises:
            SupabaseRPCError: On transport failure or a non-2xx status
        """
        url = f"{self.base_url}/rest/v1/rpc/{function}"
        logger.debug(f"Calling RPC {function}")

        try:
            response = self.session.post(url, json=params or {}, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"RPC {function} transport failure: {e}")
            raise SupabaseRPCError(f"{error_message} {e}")

        payload = self._parse_json(response)

        if not response.ok:
            message = extract_service_error(payload, f"{error_message} ({response.status_code})")
            logger.error(f"RPC {function} failed with status {response.status_code}: {message}")
            raise SupabaseRPCError(message, status_code=response.status_code)

        return payload

    @staticmethod
    def _parse_json(response: requests.Response) -> Any:
        text = response.text
        if not text:
            return None
        try:
            return json.loads(text)
        except ValueError:
            return None

    def get_current_user_access(self) -> Optional[Dict[str, Any]]:
        """Access row (user_id, system_role) of the caller."""
        payload = self.rpc("get_current_user_access", error_message="Admin role verification failed.")
        row = payload[0] if isinstance(payload, list) and payload else payload
        return row if isinstance(row, dict) else None

    def has_admin_permission(self, permission: str) -> Optional[bool]:
        """
        Check an admin permission.

        Returns:
            True/False, or None when the RPC result shape is not boolean
        """
        payload = self.rpc(
            "has_admin_permission",
            {"p_permission": permission},
            error_message="Permission check failed."
        )
        return extract_boolean_result(payload)

    def list_admin_audit_logs(self, limit: int) -> List[Dict[str, Any]]:
        payload = self.rpc(
            "admin_list_audit_logs",
            {
                "p_limit": limit,
                "p_offset": 0,
                "p_action": None,
                "p_target_type": None,
                "p_actor_user_id": None,
            },
            error_message="Could not load admin audit rows."
        )
        return payload if isinstance(payload, list) else []

    def list_user_change_logs(self, limit: int) -> List[Dict[str, Any]]:
        payload = self.rpc(
            "admin_list_user_change_logs",
            {
                "p_limit": limit,
                "p_offset": 0,
                "p_action": None,
                "p_owner_user_id": None,
            },
            error_message="Could not load user change rows."
        )
        return payload if isinstance(payload, list) else []

    def write_audit(
        self,
        action: str,
        target_type: str,
        target_id: Optional[str] = None,
        before_data: Optional[Dict[str, Any]] = None,
        after_data: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Optional[str]:
        """
        Persist an admin audit entry.

        Returns:
            Id of the written audit row, if the RPC returned one
        """
        payload = self.rpc(
            "admin_write_audit",
            {
                "p_action": action,
                "p_target_type": target_type,
                "p_target_id": target_id,
                "p_before_data": before_data or {},
                "p_after_data": after_data or {},
                "p_metadata": metadata or {},
            },
            error_message="Could not persist export audit entry."
        )
        return extract_string_result(payload)

    def close(self):
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
