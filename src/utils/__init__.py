"""
Utility modules for SQL Server bulk synchronization

Provides:
- vault_client: HashiCorp Vault integration for secrets management
- metrics: Custom metrics publishing to Prometheus
- tracing: OpenTelemetry spans for synchronization phases and statements
- logging: Structured logging setup
- retry: Exponential backoff for connection-level operations
- sql_safety: Identifier validation and quoting
"""

__version__ = "1.0.0"
__all__ = ["vault_client", "metrics", "tracing", "logging", "retry", "sql_safety"]
