"""
HashiCorp Vault client for SQL Server credentials

Reads secrets from a KV v2 mount, so synchronization hosts never need the
database password in their environment.
"""

import logging
import os
import re
from typing import Any, Optional

import requests

from .retry import retry_with_backoff

logger = logging.getLogger(__name__)

SAFE_SECRET_PATH = re.compile(r"[a-zA-Z0-9_-]+(/[a-zA-Z0-9_-]+)*")
DEFAULT_SECRET_PATH = "secret/database/sqlserver"
REQUIRED_CREDENTIAL_FIELDS = ("server", "database", "username", "password")
REQUEST_TIMEOUT_SECONDS = 10


def kv2_data_path(secret_path: str) -> str:
    """
    API path of a KV v2 secret: ``mount/rest`` becomes ``mount/data/rest``.

    Paths that already contain the ``data`` segment are returned unchanged.

    Raises:
        ValueError: For empty paths, ``..`` segments or characters outside
            letters, digits, ``_``, ``-`` and ``/``
    """
    if not isinstance(secret_path, str) or not SAFE_SECRET_PATH.fullmatch(secret_path):
        raise ValueError(
            f"Invalid secret path {secret_path!r}: use letters, digits, '_', '-' "
            "separated by single '/'"
        )

    mount, _, rest = secret_path.partition("/")
    if rest.startswith("data/") or rest == "data":
        return secret_path
    return f"{mount}/data/{rest}" if rest else f"{mount}/data"


class VaultClient:
    """
    Minimal KV v2 reader.

    Args:
        vault_addr: Vault server address (default: VAULT_ADDR)
        vault_token: Token (default: VAULT_TOKEN)
        namespace: Vault Enterprise namespace

    Raises:
        ValueError: If the address or token is missing
    """

    def __init__(
        self,
        vault_addr: Optional[str] = None,
        vault_token: Optional[str] = None,
        namespace: Optional[str] = None,
    ):
        vault_addr = vault_addr or os.getenv("VAULT_ADDR")
        vault_token = vault_token or os.getenv("VAULT_TOKEN")

        if not vault_addr:
            raise ValueError("Vault address not provided: pass vault_addr or set VAULT_ADDR")
        if not vault_token:
            raise ValueError("Vault token not provided: pass vault_token or set VAULT_TOKEN")

        self.vault_addr = vault_addr.rstrip("/")
        self.namespace = namespace
        self.headers = {"X-Vault-Token": vault_token}
        if namespace:
            self.headers["X-Vault-Namespace"] = namespace

    @retry_with_backoff(
        max_retries=2,
        base_delay=0.5,
        retryable_exceptions=(requests.ConnectionError, requests.Timeout),
    )
    def read_secret(self, secret_path: str) -> dict[str, Any]:
        """
        Key/value pairs of the latest version of a secret

        Connection errors and timeouts are retried twice.

        Raises:
            ValueError: If the path is invalid, or the secret is missing or empty
            requests.HTTPError: For other non-2xx responses
        """
        path = kv2_data_path(secret_path)
        response = requests.get(
            f"{self.vault_addr}/v1/{path}",
            headers=self.headers,
            timeout=REQUEST_TIMEOUT_SECONDS,
        )

        if response.status_code == 404:
            raise ValueError(f"Secret not found at {path}")
        response.raise_for_status()

        data = response.json().get("data", {}).get("data") or {}
        if not data:
            raise ValueError(f"Secret at {path} has no data")

        logger.debug(f"Read secret {path} ({len(data)} keys)")
        return data

    def get_sqlserver_credentials(self, secret_path: str = DEFAULT_SECRET_PATH) -> dict[str, Any]:
        """
        SQL Server connection credentials

        The secret must hold server, database, username and password; port
        and driver are optional.

        Raises:
            ValueError: If a required key is missing
        """
        secret = self.read_secret(secret_path)

        missing = [field for field in REQUIRED_CREDENTIAL_FIELDS if field not in secret]
        if missing:
            raise ValueError(f"Secret {secret_path} lacks required keys: {', '.join(missing)}")

        logger.info(f"Loaded SQL Server credentials from Vault path {secret_path}")
        return secret
