"""
Configuration for the audit export boundary.

Settings come from explicit arguments, then HashiCorp Vault (when
VAULT_ADDR is set or a client is passed), then environment variables.
"""

import os
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from src.utils.vault_client import VaultClient

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 15.0


@dataclass(frozen=True)
class ExportConfig:
    """
    Settings for talking to the Supabase audit RPCs.

    Attributes:
        supabase_url: Project URL without trailing slash
        anon_key: Public anon key sent as the apikey header
        export_dir: Directory for downloaded bundles (None disables writing)
        request_timeout: Timeout in seconds for each RPC call
    """

    supabase_url: str
    anon_key: str
    export_dir: Optional[str] = None
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT


def _env(*names: str) -> str:
    for name in names:
        value = os.getenv(name, "").strip()
        if value:
            return value
    return ""


def _parse_timeout(raw: str) -> float:
    if not raw:
        return DEFAULT_REQUEST_TIMEOUT
    try:
        timeout = float(raw)
    except ValueError:
        raise ValueError(f"AUDIT_REQUEST_TIMEOUT must be a number, got {raw!r}")
    if timeout <= 0:
        raise ValueError(f"AUDIT_REQUEST_TIMEOUT must be positive, got {timeout}")
    return timeout


def _read_vault_credentials(client: VaultClient) -> Dict[str, str]:
    """Read Supabase credentials, or nothing when Vault is unhealthy."""
    status = client.health_check()
    if not status:
        logger.warning(f"Vault unavailable ({status.error}), falling back to environment")
        return {}
    return client.get_supabase_credentials()


def load_export_config(
    supabase_url: Optional[str] = None,
    anon_key: Optional[str] = None,
    vault_client: Optional[VaultClient] = None,
    use_vault: Optional[bool] = None
) -> Optional[ExportConfig]:
    """
    Load the export configuration.

    Args:
        supabase_url: Explicit Supabase URL
        anon_key: Explicit anon key
        vault_client: Vault client to read supabase-credentials from
        use_vault: Force Vault lookup on/off (defaults to VAULT_ADDR presence)

    Returns:
        ExportConfig, or None when URL or key cannot be found

    Raises:
        ValueError: If AUDIT_REQUEST_TIMEOUT is invalid
    """
    url = supabase_url or ""
    key = anon_key or ""

    if use_vault is None:
        use_vault = vault_client is not None or bool(os.getenv("VAULT_ADDR"))

    if use_vault and (not url or not key):
        if vault_client is not None:
            credentials = _read_vault_credentials(vault_client)
        else:
            with VaultClient() as client:
                credentials = _read_vault_credentials(client)
        url = url or credentials.get("url", "")
        key = key or credentials.get("anon_key", "")

    url = (url or _env("SUPABASE_URL", "VITE_SUPABASE_URL")).rstrip("/")
    key = key or _env("SUPABASE_ANON_KEY", "VITE_SUPABASE_ANON_KEY")

    if not url or not key:
        logger.error("Supabase config missing")
        return None

    return ExportConfig(
        supabase_url=url,
        anon_key=key,
        export_dir=_env("AUDIT_EXPORT_DIR") or None,
        request_timeout=_parse_timeout(_env("AUDIT_REQUEST_TIMEOUT")),
    )
