from __future__ import annotations

import pytest

from objstore.common.config import Settings
from tests.services.mock_storage import MockStorageGateway


@pytest.fixture()
def settings() -> Settings:
    return Settings()


@pytest.fixture()
def gateway() -> MockStorageGateway:
    return MockStorageGateway()
