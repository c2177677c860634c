from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from redisrouter.config import StoreConfig

if TYPE_CHECKING:
    from pytest_databases.docker.redis import RedisService


@pytest.fixture
def redis_config(docker_available: None, redis_service: RedisService) -> StoreConfig:
    return StoreConfig(name="cache", host=redis_service.host, port=redis_service.port, connect_timeout=5.0)
