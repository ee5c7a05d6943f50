"""Preference access on top of :class:`ConfigManager`."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from .config_manager import ConfigManager, get_config_manager
from .logging_utils import get_module_logger

logger = get_module_logger("Preferences")


@dataclass(slots=True)
class PreferenceChange:
    """Keys updated by a preference write."""

    updated: Dict[str, Any]


class ModulePreferences:
    """Cached view of one config file, with write-through to the overrides."""

    def __init__(
        self,
        config_path: Path,
        *,
        config_manager: Optional[ConfigManager] = None,
        on_change: Optional[Callable[[PreferenceChange], None]] = None,
        initial_data: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._config_path = Path(config_path)
        self._manager = config_manager or get_config_manager()
        self._on_change = on_change
        self._cache: Dict[str, Any] = {}
        if initial_data:
            self._cache = dict(initial_data)
        else:
            self.reload()

    @property
    def config_path(self) -> Path:
        return self._config_path

    # ------------------------------------------------------------------
    # Basic accessors

    def snapshot(self) -> Dict[str, Any]:
        return dict(self._cache)

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        return self._cache.get(key, default)

    def reload(self) -> Dict[str, Any]:
        self._cache = self._manager.read_config(self._config_path)
        return self.snapshot()

    async def reload_async(self) -> Dict[str, Any]:
        self._cache = await self._manager.read_config_async(self._config_path)
        return self.snapshot()

    # ------------------------------------------------------------------
    # Mutation helpers

    def write_sync(self, updates: Dict[str, Any]) -> bool:
        if not updates:
            return True
        success = self._manager.write_config(self._config_path, updates)
        if success:
            self._apply_cache_updates(updates)
        return success

    async def write_async(self, updates: Dict[str, Any]) -> bool:
        if not updates:
            return True
        success = await self._manager.write_config_async(self._config_path, updates)
        if success:
            self._apply_cache_updates(updates)
        return success

    def _apply_cache_updates(self, updates: Dict[str, Any]) -> None:
        for key, value in updates.items():
            self._cache[key] = ConfigManager.stringify_value(value)

        if self._on_change:
            try:
                self._on_change(PreferenceChange(updated=dict(updates)))
            except Exception:
                logger.warning("Preference change callback failed", exc_info=True)


__all__ = [
    "ModulePreferences",
    "PreferenceChange",
]
