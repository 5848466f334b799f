"""
Configuration management.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass
class Config:
    """
    Application configuration.

    Loads from environment variables with sensible defaults.
    """

    # Server
    host: str = field(default_factory=lambda: os.getenv("HOST", "127.0.0.1"))
    port: int = field(default_factory=lambda: int(os.getenv("PORT", "8000")))
    debug: bool = field(default_factory=lambda: os.getenv("DEBUG", "false").lower() == "true")

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    log_format: str = field(default_factory=lambda: os.getenv("LOG_FORMAT", "standard"))

    # Data
    data_dir: str = field(default_factory=lambda: os.getenv("DATA_DIR", "./data"))
    store_path: Optional[str] = field(default_factory=lambda: os.getenv("STORE_PATH"))
    audit_path: Optional[str] = field(default_factory=lambda: os.getenv("AUDIT_PATH"))
    actors_path: Optional[str] = field(default_factory=lambda: os.getenv("ACTORS_PATH"))

    # Provisioning (one-time admin bootstrap)
    bootstrap_token: Optional[str] = field(
        default_factory=lambda: os.getenv("BOOTSTRAP_TOKEN") or None
    )
    bootstrap_token_ttl_hours: int = field(
        default_factory=lambda: int(os.getenv("BOOTSTRAP_TOKEN_TTL_HOURS", "24"))
    )

    # Integrations
    notification_max_retries: int = field(
        default_factory=lambda: int(os.getenv("NOTIFICATION_MAX_RETRIES", "3"))
    )
    payment_webhook_secret: str = field(
        default_factory=lambda: os.getenv("PAYMENT_WEBHOOK_SECRET", "")
    )
    currency: str = field(default_factory=lambda: os.getenv("CURRENCY", "ETB"))

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from environment."""
        return cls()

    def resolve_path(self, explicit: Optional[str], filename: str) -> str:
        """Return the explicit path, or the file under data_dir."""
        if explicit:
            return explicit
        return str(Path(self.data_dir) / filename)

    @property
    def resolved_store_path(self) -> str:
        return self.resolve_path(self.store_path, "registry.json")

    @property
    def resolved_audit_path(self) -> str:
        return self.resolve_path(self.audit_path, "audit_log.json")

    @property
    def resolved_actors_path(self) -> str:
        return self.resolve_path(self.actors_path, "actors.json")

    def to_dict(self) -> dict:
        """Convert config to dictionary (secrets excluded)."""
        return {
            "host": self.host,
            "port": self.port,
            "debug": self.debug,
            "log_level": self.log_level,
            "log_format": self.log_format,
            "data_dir": self.data_dir,
            "store_path": self.resolved_store_path,
            "audit_path": self.resolved_audit_path,
            "actors_path": self.resolved_actors_path,
            "bootstrap_token_configured": self.bootstrap_token is not None,
            "bootstrap_token_ttl_hours": self.bootstrap_token_ttl_hours,
            "notification_max_retries": self.notification_max_retries,
            "currency": self.currency,
        }
