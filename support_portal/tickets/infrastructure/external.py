"""
Policy Configuration Loader
===========================

YAML policy file with watchdog hot reload.

The manager holds one immutable ``PolicyConfig`` at a time. A reload
parses and validates the whole file first and then swaps the reference, so
readers always see either the old or the new configuration, never a mix.
"""

import threading
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from support_portal.core import ConfigurationException
from support_portal.shared.infrastructure.logging import get_logger
from support_portal.tickets.application.services import IPolicyProvider
from support_portal.tickets.domain.value_objects import PolicyConfig

logger = get_logger(__name__)


class ConfigFileHandler(FileSystemEventHandler):
    """Watchdog event handler for policy file changes."""

    def __init__(self, config_manager: "PolicyConfigManager", config_path: Path):
        self.config_manager = config_manager
        self.config_path = config_path
        super().__init__()

    def _maybe_reload(self, path) -> None:
        if Path(path).resolve() == self.config_path.resolve():
            logger.info("Policy file changed", extra={"path": str(path)})
            self.config_manager.reload()

    def on_modified(self, event):
        if not event.is_directory:
            self._maybe_reload(event.src_path)

    def on_moved(self, event):
        # Editors that save via rename-over
        if not event.is_directory:
            self._maybe_reload(event.dest_path)


class PolicyConfigManager(IPolicyProvider):
    """
    Thread-safe policy configuration manager with hot-reload support.

    Uses watchdog to monitor file changes and reload configuration
    without restarting the service.
    """

    def __init__(self, config: Optional[PolicyConfig] = None):
        self._config: Optional[PolicyConfig] = config
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> PolicyConfig:
        """
        Initial configuration load.

        Raises:
            ConfigurationException: if the file is not valid YAML or fails validation
        """
        self._path = Path(path)
        config = self._load_from_file(self._path)
        with self._lock:
            self._config = config
        return config

    @staticmethod
    def parse(text: str) -> PolicyConfig:
        """Parse policy YAML text."""
        try:
            data = yaml.safe_load(text) or {}
        except yaml.YAMLError as e:
            raise ConfigurationException(f"Policy file is not valid YAML: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationException("Policy file must contain a mapping at the top level")
        try:
            return PolicyConfig(**data)
        except ValidationError as e:
            raise ConfigurationException(
                "Policy file failed validation",
                {"errors": e.errors(include_url=False)}
            ) from e

    def _load_from_file(self, path: Path) -> PolicyConfig:
        if not path.exists():
            logger.warning("Policy file not found, using defaults", extra={"path": str(path)})
            return PolicyConfig()
        return self.parse(path.read_text(encoding="utf-8"))

    def reload(self) -> bool:
        """Reload configuration from file; a failed reload keeps the current one."""
        if self._path is None:
            return False

        try:
            new_config = self._load_from_file(self._path)
        except ConfigurationException as e:
            logger.error(
                "Failed to reload policy file, keeping previous configuration",
                extra={"error": e.message, "details": e.details}
            )
            return False

        with self._lock:
            self._config = new_config
        logger.info("Policy configuration reloaded successfully")
        return True

    def start_watching(self) -> None:
        """
        Start watching the policy file for changes.

        Skips watching when the file does not exist or the platform offers
        no file-system notifications.
        """
        if self._path is None:
            raise RuntimeError("Config not loaded. Call load() first.")

        if not self._path.exists():
            logger.info(
                "Policy file doesn't exist, skipping file watch",
                extra={"path": str(self._path)}
            )
            return

        try:
            self._observer = Observer()
            handler = ConfigFileHandler(self, self._path)
            self._observer.schedule(handler, str(self._path.parent), recursive=False)
            self._observer.start()
            logger.info("Started watching policy file", extra={"path": str(self._path)})
        except OSError as e:
            logger.warning("File watching not available, using static config", extra={"error": str(e)})
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    @property
    def config(self) -> PolicyConfig:
        with self._lock:
            if self._config is None:
                raise RuntimeError("Policy configuration not loaded")
            return self._config

    def get_config(self) -> PolicyConfig:
        return self.config
