"""Configuration Manager for Secure Credential Handling.

This module loads resource store settings (store type, DuckDB path, FHIR
server URL and OAuth2 client credentials) from the environment or a JSON file.

Security Impact:
    - The client secret is held as SecretStr and never logged
    - Missing credentials are reported by variable name, never by value
    - Configuration is validated before use (fail-fast)

Architecture:
    - Follows Hexagonal Architecture: Infrastructure layer isolated from domain
    - Type-safe configuration using Pydantic models
    - A local ``.env`` file is loaded via python-dotenv before reading the environment
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, SecretStr, ValidationError as PydanticValidationError, field_validator

from medrecords.domain.ports import ConfigurationError

logger = logging.getLogger(__name__)

SUPPORTED_STORE_TYPES = ("fhir", "duckdb", "memory")
DEFAULT_FHIR_BASE_URL = "http://localhost:8103"

ENV_VARIABLES = {
    "store_type": "MR_STORE_TYPE",
    "db_path": "MR_DB_PATH",
    "fhir_base_url": "MR_FHIR_BASE_URL",
    "client_id": "MR_FHIR_CLIENT_ID",
    "client_secret": "MR_FHIR_CLIENT_SECRET",
    "timeout": "MR_FHIR_TIMEOUT",
}

CREDENTIALS_REMEDIATION = (
    "Set MR_FHIR_CLIENT_ID and MR_FHIR_CLIENT_SECRET (environment or .env file) "
    "to the client credentials of a FHIR client application, or set "
    "MR_STORE_TYPE=duckdb or MR_STORE_TYPE=memory to use a local store."
)


class StoreConfig(BaseModel):
    """Resource store configuration with secure credential handling.

    Parameters:
        store_type: Type of store ('fhir', 'duckdb' or 'memory')
        db_path: Path to the DuckDB database file
        fhir_base_url: Base URL of the FHIR server
        client_id: OAuth2 client id
        client_secret: OAuth2 client secret (SecretStr - never logged)
        timeout: HTTP request timeout in seconds
    """

    store_type: str = Field(default="fhir", description="Store type (fhir, duckdb, memory)")
    db_path: Optional[str] = Field(None, description="Path to database file (for DuckDB)")
    fhir_base_url: str = Field(default=DEFAULT_FHIR_BASE_URL, description="FHIR server base URL")
    client_id: Optional[str] = Field(None, description="OAuth2 client id")
    client_secret: Optional[SecretStr] = Field(None, description="OAuth2 client secret (secret)")
    timeout: float = Field(default=30.0, gt=0, description="HTTP timeout in seconds")

    @field_validator("store_type")
    @classmethod
    def validate_store_type(cls, v: str) -> str:
        """Validate store type."""
        if v.lower() not in SUPPORTED_STORE_TYPES:
            raise ValueError(f"Unsupported store type: {v}. Supported: {list(SUPPORTED_STORE_TYPES)}")
        return v.lower()

    @field_validator("db_path")
    @classmethod
    def validate_db_path(cls, v: Optional[str]) -> Optional[str]:
        """Validate that the database directory exists (the file may not yet)."""
        if v is None or v == ":memory:":
            return v
        db_path_obj = Path(v)
        if not db_path_obj.parent.exists():
            raise ValueError(f"Database directory does not exist: {db_path_obj.parent}")
        return str(db_path_obj)

    @field_validator("fhir_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def has_credentials(self) -> bool:
        return bool(self.client_id) and self.client_secret is not None and bool(
            self.client_secret.get_secret_value()
        )

    def require_fhir_credentials(self) -> None:
        """Raise ConfigurationError if FHIR client credentials are missing."""
        if not self.has_credentials:
            raise ConfigurationError(
                "FHIR client credentials are not configured",
                remediation=CREDENTIALS_REMEDIATION,
            )


class ConfigManager:
    """Configuration manager for resource store settings.

    Example Usage:
        ```python
        config = ConfigManager.from_environment()
        store_config = config.get_store_config()

        config = ConfigManager.from_file("config.json")
        store_config = config.get_store_config()
        ```
    """

    def __init__(self, config_data: Dict[str, Any]):
        self._config_data = config_data
        self._store_config: Optional[StoreConfig] = None

    @classmethod
    def from_environment(cls, env_file: Optional[str] = None) -> 'ConfigManager':
        """Load configuration from environment variables.

        Environment Variables:
            - MR_STORE_TYPE: Store type (fhir, duckdb, memory)
            - MR_DB_PATH: Path to DuckDB database file
            - MR_FHIR_BASE_URL: FHIR server base URL
            - MR_FHIR_CLIENT_ID: OAuth2 client id
            - MR_FHIR_CLIENT_SECRET: OAuth2 client secret (secret)
            - MR_FHIR_TIMEOUT: HTTP timeout in seconds

        Parameters:
            env_file: .env file to load first (defaults to ./.env if present)
        """
        env_path = Path(env_file) if env_file else Path.cwd() / ".env"
        if env_path.exists():
            load_dotenv(env_path)
            logger.debug(f"Loaded environment variables from {env_path}")

        store: Dict[str, Any] = {
            "store_type": os.getenv("MR_STORE_TYPE", "fhir"),
            "db_path": os.getenv("MR_DB_PATH"),
            "fhir_base_url": os.getenv("MR_FHIR_BASE_URL", DEFAULT_FHIR_BASE_URL),
            "client_id": os.getenv("MR_FHIR_CLIENT_ID"),
            "client_secret": os.getenv("MR_FHIR_CLIENT_SECRET"),
        }
        if os.getenv("MR_FHIR_TIMEOUT"):
            store["timeout"] = os.getenv("MR_FHIR_TIMEOUT")

        return cls({"store": store})

    @classmethod
    def from_file(cls, config_path: str) -> 'ConfigManager':
        """Load configuration from a JSON file with a ``store`` section.

        Raises:
            FileNotFoundError: If config file doesn't exist
            ConfigurationError: If config file is not valid JSON
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        stat_info = config_file.stat()
        if stat_info.st_mode & 0o077 != 0:
            logger.warning(
                f"Configuration file has overly permissive permissions: {config_path}. "
                "Consider setting to 600 for credential files."
            )

        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                config_data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(
                f"Invalid JSON in configuration file: {str(e)}",
                remediation=f"Fix the syntax of {config_path}",
            ) from e

        return cls(config_data)

    def get_store_config(self) -> StoreConfig:
        """Validated store configuration.

        Raises:
            ConfigurationError: If a value is invalid
        """
        if self._store_config is None:
            store_data = {k: v for k, v in (self._config_data.get("store") or {}).items() if v is not None}
            try:
                self._store_config = StoreConfig(**store_data)
            except PydanticValidationError as e:
                first = e.errors()[0]
                field = ".".join(str(part) for part in first.get("loc", ()))
                raise ConfigurationError(
                    f"Invalid store configuration ({field}): {first.get('msg')}",
                    remediation=f"Check the {ENV_VARIABLES.get(field, field)} setting",
                ) from e
        return self._store_config

    def get(self, key: str, default: Any = None) -> Any:
        """Configuration value by dot-separated key, e.g. ``store.fhir_base_url``."""
        value = self._config_data
        for k in key.split("."):
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default
        return value if value is not None else default
