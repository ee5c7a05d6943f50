"""key = value configuration files with per-user override layering.

The shipped ``config.txt`` is never rewritten. Writes land in an override
file under the user state directory whose values shadow the shipped ones on
the next read.
"""

from __future__ import annotations

import asyncio
import hashlib
import re
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

import aiofiles

from .logging_utils import get_module_logger
from .paths import USER_CONFIG_OVERRIDES_DIR


logger = get_module_logger("ConfigManager")


class ConfigManager:

    def __init__(self, overrides_dir: Optional[Path] = None):
        self.overrides_dir = Path(overrides_dir) if overrides_dir else USER_CONFIG_OVERRIDES_DIR
        self.lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Internal helpers

    @staticmethod
    def stringify_value(value: Any) -> str:
        if isinstance(value, bool):
            return str(value).lower()
        return str(value)

    @staticmethod
    def parse_config_lines(lines: Iterable[str]) -> Dict[str, str]:
        config: Dict[str, str] = {}

        for raw_line in lines:
            line = raw_line.strip()
            if not line or line.startswith('#') or '=' not in line:
                continue

            key, value = line.split('=', 1)
            key = key.strip()
            value = value.split('#', 1)[0].strip()

            if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
                value = value[1:-1]

            config[key] = value

        return config

    def override_path_for(self, config_path: Path) -> Path:
        digest = hashlib.sha1(str(Path(config_path).resolve()).encode('utf-8')).hexdigest()[:10]
        safe_name = re.sub(r'[^a-zA-Z0-9._-]+', '_', config_path.stem or 'config')
        return self.overrides_dir / f"{safe_name}_{digest}{config_path.suffix or '.txt'}"

    def _render(self, values: Dict[str, Any]) -> str:
        return "".join(f"{key} = {self.stringify_value(values[key])}\n" for key in sorted(values))

    # ------------------------------------------------------------------
    # Reading

    def read_config(self, config_path: Path) -> Dict[str, str]:
        """Read ``config_path`` and apply any stored overrides."""
        config: Dict[str, str] = {}
        config_path = Path(config_path)

        if config_path.exists():
            try:
                with open(config_path, 'r', encoding='utf-8') as fh:
                    config = self.parse_config_lines(fh)
            except OSError as exc:
                logger.error("Failed to read config %s: %s", config_path, exc)

        override_path = self.override_path_for(config_path)
        if override_path.exists():
            try:
                with open(override_path, 'r', encoding='utf-8') as fh:
                    config.update(self.parse_config_lines(fh))
            except OSError as exc:
                logger.warning("Failed to read override config %s: %s", override_path, exc)

        return config

    async def read_config_async(self, config_path: Path) -> Dict[str, str]:
        config: Dict[str, str] = {}
        config_path = Path(config_path)

        for path, is_override in ((config_path, False), (self.override_path_for(config_path), True)):
            if not await asyncio.to_thread(path.exists):
                continue
            try:
                async with aiofiles.open(path, 'r', encoding='utf-8') as fh:
                    lines = await fh.readlines()
            except OSError as exc:
                level = logger.warning if is_override else logger.error
                level("Failed to read config %s: %s", path, exc)
                continue
            config.update(self.parse_config_lines(lines))

        return config

    # ------------------------------------------------------------------
    # Writing

    def _load_overrides(self, override_path: Path) -> Dict[str, str]:
        if not override_path.exists():
            return {}
        with open(override_path, 'r', encoding='utf-8') as fh:
            return self.parse_config_lines(fh)

    def write_config(self, config_path: Path, updates: Dict[str, Any]) -> bool:
        """Persist ``updates`` as overrides for ``config_path``."""
        if not updates:
            return True

        override_path = self.override_path_for(Path(config_path))
        try:
            merged: Dict[str, Any] = dict(self._load_overrides(override_path))
            merged.update(updates)
            override_path.parent.mkdir(parents=True, exist_ok=True)
            override_path.write_text(self._render(merged), encoding='utf-8')
        except OSError as exc:
            logger.error("Failed to write config override %s: %s", override_path, exc)
            return False

        logger.debug("Stored %d config override(s) in %s", len(updates), override_path)
        return True

    async def write_config_async(self, config_path: Path, updates: Dict[str, Any]) -> bool:
        if not updates:
            return True

        override_path = self.override_path_for(Path(config_path))
        async with self.lock:
            try:
                merged: Dict[str, Any] = {}
                if await asyncio.to_thread(override_path.exists):
                    async with aiofiles.open(override_path, 'r', encoding='utf-8') as fh:
                        merged.update(self.parse_config_lines(await fh.readlines()))
                merged.update(updates)
                await asyncio.to_thread(override_path.parent.mkdir, parents=True, exist_ok=True)
                async with aiofiles.open(override_path, 'w', encoding='utf-8') as fh:
                    await fh.write(self._render(merged))
            except OSError as exc:
                logger.error("Failed to write config override %s: %s", override_path, exc)
                return False

        logger.debug("Stored %d config override(s) in %s", len(updates), override_path)
        return True

    def clear_overrides(self, config_path: Path) -> None:
        self.override_path_for(Path(config_path)).unlink(missing_ok=True)


_config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager


__all__ = ["ConfigManager", "get_config_manager"]
