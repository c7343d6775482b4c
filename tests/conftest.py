from __future__ import annotations

import sys
from pathlib import Path
from unittest.mock import Mock

import pytest
import pytest_asyncio


# Ensure repository root is importable even when pytest runs in importlib mode.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from tests.common import FakeScanner, FakeValve, mock_hass  # noqa: E402


@pytest_asyncio.fixture
async def hass() -> Mock:
    return mock_hass()


@pytest.fixture
def fake_valve() -> FakeValve:
    return FakeValve()


@pytest.fixture
def fake_scanner() -> FakeScanner:
    return FakeScanner()
