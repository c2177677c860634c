"""Integration tests against a real Redis server."""

import dataclasses
import threading
from uuid import uuid4

import pytest
from redis.exceptions import RedisError

from redisrouter import (
    ConnectionError,
    DatasourceRegistry,
    DynamicRouter,
    RedisConnectionFactory,
    RoutingContext,
    StoreConfig,
)

pytestmark = [pytest.mark.redis, pytest.mark.integration, pytest.mark.xdist_group("redis")]


def test_handles_select_their_own_database(redis_config: StoreConfig) -> None:
    """A key written through db3() lives in database 3 and not in database 0."""
    key = f"redisrouter:{uuid4().hex}"

    with DatasourceRegistry([redis_config], context=RoutingContext("integration_select")) as registry:
        cache = registry.lookup("cache")
        db3 = cache.db3()
        try:
            db3.set(key, "three")

            assert db3.get(key) == "three"
            assert cache.db0().get(key) is None
            assert int(db3.client_info()["db"]) == 3
            assert int(cache.db0().client_info()["db"]) == 0
        finally:
            db3.delete(key)


def test_scoped_block_reuses_cached_handle(redis_config: StoreConfig) -> None:
    """use() and the fixed accessor hand out the same live handle."""
    key = f"redisrouter:{uuid4().hex}"

    with DatasourceRegistry([redis_config], context=RoutingContext("integration_use")) as registry:
        cache = registry.lookup("cache")
        with cache.use(5) as handle:
            try:
                handle.incr(key)
                handle.incr(key)

                assert cache.db5() is handle
                assert cache.db5().get(key) == "2"
            finally:
                handle.delete(key)


def test_concurrent_first_access_shares_one_handle(redis_config: StoreConfig) -> None:
    """Threads racing for an unused database end up on one handle."""
    callers = 8
    barrier = threading.Barrier(callers)
    handles = []
    handles_lock = threading.Lock()

    with DatasourceRegistry([redis_config], context=RoutingContext("integration_race")) as registry:
        cache = registry.lookup("cache")

        def worker() -> None:
            barrier.wait()
            handle = cache.db7()
            handle.ping()
            with handles_lock:
                handles.append(handle)

        threads = [threading.Thread(target=worker) for _ in range(callers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(handles) == callers
        assert all(handle is handles[0] for handle in handles)
        assert sorted(cache.handles) == [0, 7]


def test_wrong_password_leaves_no_table_entry(redis_config: StoreConfig) -> None:
    """An authentication failure is a ConnectionError and nothing is cached for the index."""
    factory = RedisConnectionFactory()
    default_handle = factory.build(redis_config, 0)
    bad_config = dataclasses.replace(redis_config, password="not-the-password")
    router = DynamicRouter(
        bad_config, factory, context=RoutingContext("integration_auth"), default_handle=default_handle
    )

    try:
        with pytest.raises(ConnectionError) as exc_info:
            router.get_handle(2)

        assert isinstance(exc_info.value.__cause__, RedisError)
        assert exc_info.value.datasource == "cache"
        assert exc_info.value.index == 2
        assert 2 not in router
        assert dict(router.table) == {0: default_handle}
    finally:
        router.close()


def test_wrong_password_fails_registration(redis_config: StoreConfig) -> None:
    """A datasource that can not authenticate stops the registry from being built."""
    bad_config = dataclasses.replace(redis_config, password="not-the-password")

    with pytest.raises(ConnectionError, match="cache"):
        DatasourceRegistry([bad_config], context=RoutingContext("integration_auth_registry"))
