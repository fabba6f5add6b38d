"""
Unit tests for supabase_client module.
"""

import json

import pytest
import requests
from unittest.mock import MagicMock

from src.export.errors import SupabaseRPCError
from src.export.supabase_client import (
    SupabaseClient,
    extract_boolean_result,
    extract_service_error,
    extract_string_result,
)
from src.utils.config import ExportConfig


def make_response(status_code=200, payload=None):
    response = MagicMock(spec=requests.Response)
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.text = "" if payload is None else json.dumps(payload)
    return response


class TestResultHelpers:
    """Test RPC result shape helpers."""

    @pytest.mark.parametrize("payload,expected", [
        (True, True),
        ([{"has_admin_permission": False}], False),
        ({"has_admin_permission": True}, True),
        ([], None),
        ("yes", None),
    ])
    def test_extract_boolean_result(self, payload, expected):
        assert extract_boolean_result(payload) is expected

    def test_extract_string_result(self):
        assert extract_string_result([{"admin_write_audit": " audit-1 "}]) == "audit-1"
        assert extract_string_result(None) is None

    def test_extract_service_error(self):
        assert extract_service_error({"message": "denied"}, "fallback") == "denied"
        assert extract_service_error({"error": ""}, "fallback") == "fallback"
        assert extract_service_error(None, "fallback") == "fallback"


class TestSupabaseClient:
    """Test suite for SupabaseClient class."""

    @pytest.fixture
    def session(self):
        session = MagicMock(spec=requests.Session)
        session.headers = {}
        return session

    @pytest.fixture
    def client(self, session):
        config = ExportConfig(supabase_url="https://project.supabase.co/", anon_key="anon", request_timeout=5.0)
        return SupabaseClient(config, "jwt-token", session=session)

    def test_headers(self, client, session):
        assert session.headers["apikey"] == "anon"
        assert session.headers["Authorization"] == "Bearer jwt-token"

    def test_rpc_posts_to_endpoint(self, client, session):
        """Test RPC URL, body and timeout."""
        session.post.return_value = make_response(payload=[{"id": 1}])

        result = client.rpc("some_fn", {"p": 1})

        assert result == [{"id": 1}]
        session.post.assert_called_once_with(
            "https://project.supabase.co/rest/v1/rpc/some_fn",
            json={"p": 1},
            timeout=5.0
        )

    def test_rpc_error_status_raises(self, client, session):
        session.post.return_value = make_response(403, {"message": "permission denied"})

        with pytest.raises(SupabaseRPCError) as exc_info:
            client.rpc("some_fn")

        assert exc_info.value.message == "permission denied"
        assert exc_info.value.status_code == 403

    def test_rpc_transport_failure_raises(self, client, session):
        session.post.side_effect = requests.ConnectionError("refused")

        with pytest.raises(SupabaseRPCError, match="refused"):
            client.rpc("some_fn", error_message="Could not load.")

    def test_get_current_user_access(self, client, session):
        session.post.return_value = make_response(payload=[{"user_id": "u1", "system_role": "admin"}])

        assert client.get_current_user_access() == {"user_id": "u1", "system_role": "admin"}

    def test_has_admin_permission(self, client, session):
        session.post.return_value = make_response(payload=True)

        assert client.has_admin_permission("audit.read") is True
        assert session.post.call_args.kwargs["json"] == {"p_permission": "audit.read"}

    def test_list_logs_non_list_payload(self, client, session):
        session.post.return_value = make_response(payload={"unexpected": True})

        assert client.list_admin_audit_logs(10) == []

    def test_list_user_change_logs(self, client, session):
        session.post.return_value = make_response(payload=[{"id": "u1"}])

        assert client.list_user_change_logs(25) == [{"id": "u1"}]
        assert session.post.call_args.kwargs["json"]["p_limit"] == 25

    def test_write_audit_returns_id(self, client, session):
        session.post.return_value = make_response(payload="audit-77")

        audit_id = client.write_audit("admin.audit.export", "audit", after_data={"event_count": 1})

        assert audit_id == "audit-77"
        body = session.post.call_args.kwargs["json"]
        assert body["p_action"] == "admin.audit.export"
        assert body["p_before_data"] == {}
        assert body["p_after_data"] == {"event_count": 1}

    def test_context_manager_closes_session(self, client, session):
        with client:
            pass

        session.close.assert_called_once()
