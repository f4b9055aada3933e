from __future__ import annotations

import fcntl
import os
from pathlib import Path
from typing import Any, Dict

import yaml

from automod.datatypes.policy_datatypes import AutomodOverrides, Thresholds
from automod.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path(os.getenv("AUTOMOD_CONFIG", "./config/app_config.yml")).resolve()

# Built-in fallbacks used when the YAML file omits a key
BUILTIN_AUTOMOD_DEFAULTS: Dict[str, Any] = {
    "enabled": False,
    "filter_invites": True,
    "filter_links": False,
    "max_mentions": 5,
    "max_caps_percent": 70,
    "min_caps_length": 10,
    "min_account_age_days": 0,
    "spam_threshold": 5,
    "spam_interval_ms": 5000,
}
BUILTIN_THRESHOLDS = Thresholds(mute=3, kick=5, ban=7)
BUILTIN_MUTE_DURATION_MS = 60 * 60 * 1000


class AppConfig:
    """File-lock based accessor around the YAML application configuration.

    The class caches the contents of ``./config/app_config.yml`` and exposes
    the global automod defaults that per-guild overrides are merged onto.
    Uses fcntl file locks for safe concurrent access across processes.
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
            if not isinstance(data, dict):
                logger.warning("[APP CONFIGURATION] Config %s is not a mapping; ignoring it.", self.config_path)
                return {}
            return data
        except FileNotFoundError:
            logger.warning("[APP CONFIGURATION] Config file %s not found; using built-in defaults.", self.config_path)
        except Exception as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
        return {}

    def _section(self, key: str) -> Dict[str, Any]:
        value = self._data.get(key, {})
        return value if isinstance(value, dict) else {}

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Reload configuration from disk and return the loaded mapping.

        Returns an empty dict (and keeps built-in defaults) on error.
        """
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
    # Automod defaults
    # --------------------------
    @property
    def automod_defaults(self) -> AutomodOverrides:
        """Global automod defaults, built-in values filling any key the file omits.

        Values are passed through unvalidated; the guild settings manager
        clamps them when it resolves an effective policy.
        """
        section = self._section("automod")
        values = {key: section.get(key, fallback) for key, fallback in BUILTIN_AUTOMOD_DEFAULTS.items()}
        return AutomodOverrides(
            **values,
            thresholds=self.warning_thresholds,
            mute_duration_ms=self.mute_duration_ms,
        )

    @property
    def warning_thresholds(self) -> Thresholds:
        """Global mute/kick/ban thresholds (``0`` or ``null`` disables a rung)."""
        section = self._section("warnings").get("thresholds")
        if not isinstance(section, dict):
            return BUILTIN_THRESHOLDS
        return Thresholds(
            mute=section.get("mute"),
            kick=section.get("kick"),
            ban=section.get("ban"),
        )

    @property
    def mute_duration_ms(self) -> int:
        return self._section("warnings").get("mute_duration_ms", BUILTIN_MUTE_DURATION_MS)

    @property
    def dm_on_warn(self) -> bool:
        """Whether /warn also sends the warned user a direct message."""
        return bool(self._section("warnings").get("dm_on_warn", True))

    # --------------------------
    # Runtime knobs
    # --------------------------
    @property
    def notice_ttl_seconds(self) -> float:
        """How long the in-channel automod notice stays before deleting itself."""
        return float(self._section("notifications").get("notice_ttl_seconds", 10))

    @property
    def mod_log_channel_name(self) -> str:
        """Name of the channel audit entries are posted to."""
        return str(self._section("notifications").get("mod_log_channel", "mod-logs"))

    @property
    def platform_call_timeout(self) -> float:
        """Seconds an outbound Discord call may take before it is abandoned."""
        return float(self._section("notifications").get("platform_call_timeout", 10))

    @property
    def rate_tracker_cleanup_interval(self) -> float:
        return float(self._section("rate_tracker").get("cleanup_interval_seconds", 60))

    @property
    def rate_tracker_max_idle_ms(self) -> float:
        return float(self._section("rate_tracker").get("max_idle_ms", 60_000))


# Shared application-wide configuration instance
app_config = AppConfig(CONFIG_PATH)
