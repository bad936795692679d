"""tests/conftest.py: Common fixtures for the Pushbullet Bridge tests."""

from __future__ import annotations

import importlib.util

import pytest

if importlib.util.find_spec("homeassistant") is None:
    raise RuntimeError(
        "The real 'homeassistant' package must be installed for the Pushbullet Bridge "
        "test suite. Run 'pip install homeassistant pytest-homeassistant-custom-component' "
        "before executing pytest."
    )

from tests.helpers import FakeApi, FakeSink  # noqa: E402


@pytest.fixture
def fake_api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def fake_sink() -> FakeSink:
    return FakeSink()
