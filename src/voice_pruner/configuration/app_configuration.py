from __future__ import annotations
from pathlib import Path
import fcntl
import os
from typing import Any, Dict, List
import yaml

from voice_pruner.permissions.monitoring_policy import DEFAULT_EXEMPTION_ROLE_NAME
from voice_pruner.pruning.prune_engine import DEFAULT_MAX_CONCURRENT_REMOVALS
from voice_pruner.pruning.reconciliation import DEFAULT_QUEUE_SIZE
from voice_pruner.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path(os.getenv("VOICE_PRUNER_CONFIG", "./config/app_config.yml")).resolve()


class AppConfig:
    """File-lock based accessor around the YAML application configuration.

    The class caches the contents of ``./config/app_config.yml`` and exposes
    typed properties with defaults for every setting, so a missing or partial
    file still yields a working configuration.
    """

    def __init__(self, config_path: Path) -> None:
        self.config_path = config_path
        self._data: Dict[str, Any] = {}
        self.reload()

    # --------------------------
    # Private helpers
    # --------------------------
    def load_from_disk(self) -> Dict[str, Any]:
        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    data = yaml.safe_load(f)
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except FileNotFoundError:
            logger.warning("[APP CONFIGURATION] Config file %s not found; using defaults.", self.config_path)
            return {}
        except (OSError, yaml.YAMLError) as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
            return {}

        if data is None:
            return {}
        if not isinstance(data, dict):
            logger.error("[APP CONFIGURATION] Config %s must be a mapping, got %s", self.config_path, type(data).__name__)
            return {}
        return data

    def _section(self, name: str) -> Dict[str, Any]:
        section = self._data.get(name, {})
        return section if isinstance(section, dict) else {}

    def _positive_int(self, section: str, key: str, default: int) -> int:
        value = self._section(section).get(key, default)
        try:
            value = int(value)
        except (TypeError, ValueError):
            logger.warning("[APP CONFIGURATION] %s.%s is not an integer (%r); using %d", section, key, value, default)
            return default
        if value < 1:
            logger.warning("[APP CONFIGURATION] %s.%s must be positive (%d); using %d", section, key, value, default)
            return default
        return value

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Reload configuration from disk and return the loaded mapping."""
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        """Return the current cached configuration mapping (do not mutate)."""
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Safe lookup for top-level configuration keys."""
        return self._data.get(key, default)

    # --------------------------
    # High-level shortcuts
    # --------------------------
    @property
    def exemption_role_name(self) -> str:
        """Name of the role that stops automatic pruning in a guild when the bot holds it."""
        value = self._data.get("exemption_role_name") or DEFAULT_EXEMPTION_ROLE_NAME
        return str(value)

    @property
    def max_concurrent_removals(self) -> int:
        """Upper bound on disconnect calls in flight at once."""
        return self._positive_int("pruning", "max_concurrent_removals", DEFAULT_MAX_CONCURRENT_REMOVALS)

    @property
    def queue_size(self) -> int:
        """Capacity of the gateway event queue feeding the dispatcher."""
        return self._positive_int("dispatcher", "queue_size", DEFAULT_QUEUE_SIZE)

    @property
    def debug_guild_ids(self) -> List[int]:
        """Guilds to register slash commands in directly instead of globally."""
        raw = self._data.get("debug_guild_ids") or []
        if not isinstance(raw, list):
            raw = [raw]
        guild_ids = []
        for value in raw:
            try:
                guild_ids.append(int(value))
            except (TypeError, ValueError):
                logger.warning("[APP CONFIGURATION] Ignoring invalid debug guild id %r", value)
        return guild_ids


# Shared application-wide configuration instance
app_config = AppConfig(CONFIG_PATH)
