"""Fixtures for platform adapter tests."""

import pytest

from tests.unit.fakes import FakeSerial, Recorder


@pytest.fixture
def serial_device() -> FakeSerial:
    return FakeSerial()


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()
