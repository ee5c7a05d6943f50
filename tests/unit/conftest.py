"""Unit test fixtures for isolated, fast test execution.

Unit tests never touch the real user state directory or a serial device:
config overrides go to a temporary directory and platforms are fakes.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict

import pytest

from geotracker.core.config_manager import ConfigManager


# =============================================================================
# Isolated Environment Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def overrides_dir(tmp_path: Path) -> Path:
    """Directory that receives config overrides for one test."""
    path = tmp_path / "overrides"
    path.mkdir()
    return path


@pytest.fixture(scope="function")
def config_manager(overrides_dir: Path) -> ConfigManager:
    """ConfigManager writing overrides under ``tmp_path``."""
    return ConfigManager(overrides_dir=overrides_dir)


@pytest.fixture(scope="function")
def write_config(tmp_path: Path) -> Callable[[Dict[str, object]], Path]:
    """Factory writing a key = value config file and returning its path.

    Example:
        def test_reads_port(write_config):
            path = write_config({"serial_port": "/dev/ttyUSB0"})
    """

    def factory(values: Dict[str, object], name: str = "config.txt") -> Path:
        path = tmp_path / name
        lines = ["# test config"]
        lines.extend(f"{key} = {value}" for key, value in values.items())
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return factory
