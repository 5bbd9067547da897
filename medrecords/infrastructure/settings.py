"""Application Settings and Configuration.

This module provides application-wide settings that combine the store
configuration from the configuration manager with import and logging
defaults read from the environment.

Security Impact:
    - Store credentials are managed via StoreConfig (SecretStr)
    - Sensitive values are never exposed by ``describe()``
"""

import os
from typing import Optional

from medrecords import __version__
from medrecords.infrastructure.config_manager import ConfigManager, StoreConfig

# Application metadata
APP_NAME = "medrecords"
APP_VERSION = __version__

# Import pacing: pause after this many rows
DEFAULT_IMPORT_BATCH_SIZE = 100

# Import pacing: pause length in seconds
DEFAULT_IMPORT_PAUSE_SECONDS = 1.0

# Spreadsheet row number of the first data row (row 1 holds the headers)
DEFAULT_IMPORT_FIRST_ROW = 2


class Settings:
    """Application settings loaded from the configuration manager and environment.

    Environment Variables:
        - MR_LOG_LEVEL: Logging level (default INFO)
        - MR_LOG_JSON: Emit JSON log lines (default false)
        - MR_IMPORT_BATCH_SIZE: Rows between pauses (default 100)
        - MR_IMPORT_PAUSE_SECONDS: Pause length (default 1.0)
        - MR_IMPORT_FIRST_ROW: Row number of the first data row (default 2)
        - MR_ERROR_LOG_DIR: Directory for import error logs (default reports)
        - MR_AUDIT_LOG_PATH: JSON-lines file for duplicate override audit entries
    """

    def __init__(self):
        self._store_config: Optional[StoreConfig] = None
        self._config_manager: Optional[ConfigManager] = None

        self.app_name = APP_NAME
        self.log_level = os.getenv("MR_LOG_LEVEL", "INFO")
        self.log_json = os.getenv("MR_LOG_JSON", "false").lower() == "true"

        self.import_batch_size = int(os.getenv("MR_IMPORT_BATCH_SIZE", str(DEFAULT_IMPORT_BATCH_SIZE)))
        self.import_pause_seconds = float(os.getenv("MR_IMPORT_PAUSE_SECONDS", str(DEFAULT_IMPORT_PAUSE_SECONDS)))
        self.import_first_row = int(os.getenv("MR_IMPORT_FIRST_ROW", str(DEFAULT_IMPORT_FIRST_ROW)))

        self.error_log_dir = os.getenv("MR_ERROR_LOG_DIR", "reports")
        self.audit_log_path = os.getenv("MR_AUDIT_LOG_PATH")

    @property
    def config_manager(self) -> ConfigManager:
        if self._config_manager is None:
            self._config_manager = ConfigManager.from_environment()
        return self._config_manager

    @property
    def store_config(self) -> StoreConfig:
        """Store configuration, loaded lazily on first access.

        Raises:
            ConfigurationError: If a store setting is invalid
        """
        if self._store_config is None:
            self._store_config = self.config_manager.get_store_config()
        return self._store_config

    def describe(self) -> dict:
        """Settings summary without secrets."""
        store = self.store_config
        return {
            "version": APP_VERSION,
            "store_type": store.store_type,
            "db_path": store.db_path or ":memory:",
            "fhir_base_url": store.fhir_base_url,
            "fhir_client_id": store.client_id or "(not set)",
            "fhir_client_secret": "(set)" if store.client_secret else "(not set)",
            "log_level": self.log_level,
            "import_batch_size": self.import_batch_size,
            "import_pause_seconds": self.import_pause_seconds,
            "import_first_row": self.import_first_row,
            "error_log_dir": self.error_log_dir,
            "audit_log_path": self.audit_log_path or "(in memory)",
        }


# Global settings instance
settings = Settings()
