"""
CLI context for Legacy Sync.

This module provides the context object that is passed to all CLI commands,
containing configuration and sync state.
"""

from dataclasses import dataclass, field
from pathlib import Path

from pydantic import ValidationError

from legacy_sync.client.exceptions import ConfigurationError
from legacy_sync.config import SyncSettings, load_config_from_yaml
from legacy_sync.migration.state import SyncState
from legacy_sync.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


@dataclass
class SyncContext:
    """
    Context object for CLI commands.

    Without a configuration file, settings are read from ``LEGACY_SYNC_*``
    environment variables (nested keys joined with ``__``).

    Attributes:
        config_path: Path to configuration file
        log_level: Console logging level from --log-level (else logging.level)
        log_file: Optional log file path
    """

    config_path: Path | None = None
    log_level: str | None = None
    log_file: Path | None = None

    # Lazy-loaded attributes
    _config: SyncSettings | None = field(default=None, init=False, repr=False)
    _sync_state: SyncState | None = field(default=None, init=False, repr=False)

    @property
    def config(self) -> SyncSettings:
        """Get or load sync settings.

        Raises:
            ConfigurationError: If the settings are missing or invalid
        """
        if self._config is None:
            try:
                if self.config_path is not None:
                    logger.debug("Loading configuration", config_path=str(self.config_path))
                    self._config = load_config_from_yaml(self.config_path)
                else:
                    logger.debug("Loading configuration from environment")
                    self._config = SyncSettings()
            except (FileNotFoundError, ValueError, ValidationError) as e:
                raise ConfigurationError(str(e)) from e

            # File output follows the loaded settings unless --log-file was given
            logging_config = self._config.logging
            configure_logging(
                level=self.log_level or logging_config.level,
                log_format=logging_config.format,
                log_file=str(self.log_file) if self.log_file else logging_config.file,
                file_level=logging_config.file_level,
            )

        return self._config

    @property
    def sync_state(self) -> SyncState:
        """Get or create the sync state for the configured tenant scope."""
        if self._sync_state is None:
            self._sync_state = SyncState(
                self.config.state, tenant_scope=self.config.sync.tenant_scope
            )
        return self._sync_state
