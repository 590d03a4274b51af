"""
Connection and pipeline settings.

Settings come from environment variables, or, with ``BULK_SYNC_USE_VAULT``
set, SQL Server credentials are fetched from HashiCorp Vault:

    SQLSERVER_CONNECTION_STRING  raw ODBC connection string (wins over parts)
    SQLSERVER_HOST               server host (default: localhost)
    SQLSERVER_PORT               server port (default: 1433)
    SQLSERVER_DATABASE           database name (default: master)
    SQLSERVER_USER               login (default: sa)
    SQLSERVER_PASSWORD           password
    SQLSERVER_DRIVER             ODBC driver name
    BULK_SYNC_BATCH_SIZE         rows per bulk transfer round trip
    BULK_SYNC_CONNECT_TIMEOUT    login timeout in seconds
    BULK_SYNC_USE_VAULT          fetch credentials from Vault (true/false)
    BULK_SYNC_VAULT_PATH         Vault secret path
"""

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from utils.sql_safety import validate_integer_param
from utils.vault_client import DEFAULT_SECRET_PATH, VaultClient

from .transfer import DEFAULT_BATCH_SIZE

logger = logging.getLogger(__name__)

DEFAULT_DRIVER = "ODBC Driver 18 for SQL Server"
DEFAULT_PORT = 1433
DEFAULT_CONNECT_TIMEOUT = 30

TRUE_VALUES = ("1", "true", "yes", "on")


def _odbc_value(value: str) -> str:
    # Braced values may contain ';'; a literal '}' is doubled
    return "{" + str(value).replace("}", "}}") + "}"


def _int_setting(env: Mapping[str, str], name: str, default: int, min_value: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"Invalid {name}: {raw!r}. Must be an integer.") from None
    validate_integer_param(value, name, min_value=min_value)
    return value


@dataclass
class SyncSettings:
    """Everything needed to connect and size a synchronization run."""

    server: str = "localhost"
    database: str = "master"
    username: str = "sa"
    password: Optional[str] = None
    port: int = DEFAULT_PORT
    driver: str = DEFAULT_DRIVER
    connection_string: Optional[str] = None
    batch_size: int = DEFAULT_BATCH_SIZE
    connect_timeout: int = DEFAULT_CONNECT_TIMEOUT
    trust_server_certificate: bool = True

    def __post_init__(self):
        validate_integer_param(self.batch_size, "batch_size", min_value=1)
        validate_integer_param(self.connect_timeout, "connect_timeout", min_value=0)
        validate_integer_param(self.port, "port", min_value=1)

    def odbc_connection_string(self) -> str:
        """
        ODBC connection string for pyodbc.

        Raises:
            ValueError: If neither a raw connection string nor a password is set
        """
        if self.connection_string:
            return self.connection_string

        if not self.password:
            raise ValueError(
                "SQL Server password not provided. Set SQLSERVER_PASSWORD "
                "or SQLSERVER_CONNECTION_STRING."
            )

        parts = [
            f"DRIVER={_odbc_value(self.driver)}",
            f"SERVER={self.server},{self.port}",
            f"DATABASE={_odbc_value(self.database)}",
            f"UID={_odbc_value(self.username)}",
            f"PWD={_odbc_value(self.password)}",
        ]
        if self.trust_server_certificate:
            parts.append("TrustServerCertificate=yes")
        return ";".join(parts) + ";"

    @classmethod
    def from_env(
        cls,
        env: Optional[Mapping[str, str]] = None,
        vault_client: Optional[VaultClient] = None,
    ) -> "SyncSettings":
        """
        Load settings from environment variables (and Vault when enabled)

        Args:
            env: Variables to read (default: os.environ)
            vault_client: Client to use when Vault is enabled (default: from
                VAULT_ADDR/VAULT_TOKEN)

        Raises:
            ValueError: On malformed numeric settings or incomplete secrets
        """
        env = os.environ if env is None else env

        settings = cls(
            server=env.get("SQLSERVER_HOST", "localhost"),
            database=env.get("SQLSERVER_DATABASE", "master"),
            username=env.get("SQLSERVER_USER", "sa"),
            password=env.get("SQLSERVER_PASSWORD") or None,
            port=_int_setting(env, "SQLSERVER_PORT", DEFAULT_PORT, 1),
            driver=env.get("SQLSERVER_DRIVER", DEFAULT_DRIVER),
            connection_string=env.get("SQLSERVER_CONNECTION_STRING") or None,
            batch_size=_int_setting(env, "BULK_SYNC_BATCH_SIZE", DEFAULT_BATCH_SIZE, 1),
            connect_timeout=_int_setting(
                env, "BULK_SYNC_CONNECT_TIMEOUT", DEFAULT_CONNECT_TIMEOUT, 0
            ),
        )

        if env.get("BULK_SYNC_USE_VAULT", "false").lower() in TRUE_VALUES:
            client = vault_client or VaultClient()
            creds = client.get_sqlserver_credentials(
                env.get("BULK_SYNC_VAULT_PATH", DEFAULT_SECRET_PATH)
            )
            settings.server = creds["server"]
            settings.database = creds["database"]
            settings.username = creds["username"]
            settings.password = creds["password"]
            settings.port = int(creds.get("port", settings.port))
            settings.driver = creds.get("driver", settings.driver)
            logger.info("Using SQL Server credentials from Vault")

        return settings
