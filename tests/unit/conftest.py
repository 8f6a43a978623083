from __future__ import annotations

import pytest

from litemap.drivers.abstract import register_driver, unregister_driver
from tests.unit.fakes import FakeConnection, FakeDriver


@pytest.fixture
def fake_driver():
    driver = FakeDriver()
    register_driver(FakeConnection, driver)
    yield driver
    unregister_driver(FakeConnection)
