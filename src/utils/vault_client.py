"""
Vault Client Utility for Audit Forensics

Provides a secure interface to HashiCorp Vault for retrieving the Supabase
project credentials used by the audit export boundary.
"""

import os
from typing import Dict, Any, Optional
from dataclasses import dataclass
import hvac
from hvac.exceptions import VaultError, InvalidPath
import logging

logger = logging.getLogger(__name__)

SUPABASE_SECRET_PATH = "supabase-credentials"


@dataclass
class HealthStatus:
    """
    Structured health status for Vault client.

    Attributes:
        healthy: Overall health status (True if healthy)
        authenticated: Whether client is authenticated
        sealed: Whether Vault is sealed
        error: Error message if health check failed
    """

    healthy: bool
    authenticated: bool
    sealed: bool
    error: Optional[str] = None

    def __bool__(self) -> bool:
        return self.healthy


class VaultClient:
    """
    Client for interacting with HashiCorp Vault.

    Retrieves the Supabase URL and anon key required to call the audit
    RPC endpoints.
    """

    def __init__(
        self,
        vault_url: Optional[str] = None,
        vault_token: Optional[str] = None,
        verify_ssl: bool = True,
        mount_point: str = "secret"
    ):
        """
        Initialize Vault client.

        Args:
            vault_url: Vault server URL (defaults to VAULT_ADDR env var)
            vault_token: Vault authentication token (defaults to VAULT_TOKEN env var)
            verify_ssl: Whether to verify SSL certificates
            mount_point: KV secrets engine mount point

        Raises:
            ValueError: If required parameters are missing
            VaultError: If connection to Vault fails
        """
        self.vault_url = vault_url or os.getenv("VAULT_ADDR")
        self.vault_token = vault_token or os.getenv("VAULT_TOKEN")
        self.mount_point = mount_point

        if not self.vault_url:
            raise ValueError("Vault URL must be provided via parameter or VAULT_ADDR environment variable")

        if not self.vault_token:
            raise ValueError("Vault token must be provided via parameter or VAULT_TOKEN environment variable")

        try:
            self.client = hvac.Client(
                url=self.vault_url,
                token=self.vault_token,
                verify=verify_ssl
            )

            if not self.client.is_authenticated():
                raise VaultError("Failed to authenticate with Vault")

            logger.info(f"Successfully connected to Vault at {self.vault_url}")

        except Exception as e:
            logger.error(f"Failed to initialize Vault client: {e}")
            raise VaultError(f"Vault initialization failed: {e}")

    def get_secret(self, path: str) -> Dict[str, Any]:
        """
        Retrieve a secret from Vault.

        Args:
            path: Secret path (e.g., "supabase-credentials")

        Returns:
            Dictionary containing secret data

        Raises:
            InvalidPath: If secret path does not exist
            VaultError: If retrieval fails
        """
        try:
            logger.debug(f"Retrieving secret from path: {self.mount_point}/data/{path}")
            response = self.client.secrets.kv.v2.read_secret_version(
                path=path,
                mount_point=self.mount_point
            )

            if not response or "data" not in response:
                raise InvalidPath(f"No data found at path: {path}")

            secret_data = response["data"].get("data", {})
            logger.info(f"Successfully retrieved secret from {path}")

            return secret_data

        except InvalidPath:
            logger.error(f"Secret not found at path: {path}")
            raise
        except Exception as e:
            logger.error(f"Failed to retrieve secret from {path}: {e}")
            raise VaultError(f"Secret retrieval failed: {e}")

    def get_supabase_credentials(self, path: str = SUPABASE_SECRET_PATH) -> Dict[str, str]:
        """
        Retrieve Supabase project credentials from Vault.

        The secret must contain "url" and "anon_key".

        Args:
            path: Secret path

        Returns:
            Dictionary with url and anon_key

        Raises:
            ValueError: If the secret lacks a required key
            VaultError: If retrieval fails
        """
        secret = self.get_secret(path)

        missing = [key for key in ("url", "anon_key") if not secret.get(key)]
        if missing:
            raise ValueError(f"Supabase secret at {path} is missing keys: {missing}")

        logger.info("Retrieved Supabase credentials")
        return {"url": secret["url"], "anon_key": secret["anon_key"]}

    def health_check(self) -> HealthStatus:
        """
        Check if Vault is accessible and authenticated.

        Returns:
            HealthStatus object with detailed health information.
        """
        try:
            is_authenticated = self.client.is_authenticated()

            if not is_authenticated:
                logger.warning("Vault authentication check failed")
                return HealthStatus(
                    healthy=False,
                    authenticated=False,
                    sealed=True,
                    error="Not authenticated"
                )

            health = self.client.sys.read_health_status(method="GET")
            is_sealed = health.get("sealed", True)
            is_healthy = is_authenticated and not is_sealed

            if not is_healthy:
                logger.warning("Vault is sealed")

            return HealthStatus(
                healthy=is_healthy,
                authenticated=is_authenticated,
                sealed=is_sealed,
                error=None if is_healthy else "Vault is sealed"
            )

        except Exception as e:
            logger.error(f"Vault health check failed: {e}")
            return HealthStatus(
                healthy=False,
                authenticated=False,
                sealed=True,
                error=str(e)
            )

    def close(self):
        """Close the Vault client connection."""
        self.client = None
        logger.info("Vault client connection closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
