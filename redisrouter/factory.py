"""Client handle construction for redisrouter datasources."""

import contextlib
from typing import TYPE_CHECKING, Any, Optional, Protocol, runtime_checkable

import redis
from redis.cluster import ClusterNode, RedisCluster
from redis.exceptions import RedisError
from redis.sentinel import Sentinel, SentinelConnectionPool

from redisrouter.config import CLUSTER_INDEX, StoreConfig, Topology
from redisrouter.exceptions import ConnectionError, wrap_connection_errors  # noqa: A004
from redisrouter.utils.logging import get_logger

if TYPE_CHECKING:
    from redis.connection import ConnectionPool

__all__ = ("BlockingSentinelConnectionPool", "ClientHandle", "ConnectionFactoryProtocol", "RedisConnectionFactory")

logger = get_logger("factory")


class BlockingSentinelConnectionPool(SentinelConnectionPool, redis.BlockingConnectionPool):
    """Sentinel-managed pool that blocks for up to ``timeout`` seconds when exhausted.

    The stock sentinel pool raises as soon as ``max_connections`` is reached;
    this one waits like the pools of standalone handles do.
    """


class ClientHandle:
    """A live client bound to exactly one datasource and sub-database.

    Handles are shared by every caller that resolves to the same index.
    Attribute access that the handle does not define falls through to the
    underlying client, so commands are issued on the handle directly::

        handle = registry.lookup("orders").db3()
        handle.set("order:1", "pending")
    """

    __slots__ = ("_closed", "client", "datasource", "index", "pool")

    def __init__(
        self,
        datasource: str,
        index: int,
        client: Any,
        pool: "Optional[ConnectionPool]" = None,
    ) -> None:
        self.datasource = datasource
        self.index = index
        self.client = client
        self.pool = pool
        self._closed = False

    def __getattr__(self, name: str) -> Any:
        if name.startswith("__") or name in ClientHandle.__slots__:
            raise AttributeError(name)
        return getattr(self.client, name)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(datasource={self.datasource!r}, index={self.index!r})"

    @property
    def closed(self) -> bool:
        return self._closed

    def ping(self) -> bool:
        return bool(self.client.ping())

    def close(self) -> None:
        """Release the client and its connection pool. Closing twice is a no-op."""
        if self._closed:
            return
        self._closed = True
        self.client.close()
        if self.pool is not None:
            self.pool.disconnect()


@runtime_checkable
class ConnectionFactoryProtocol(Protocol):
    """Builds one client handle for a datasource and sub-database index."""

    def build(self, config: StoreConfig, key: int) -> ClientHandle:
        """Build a handle for ``config`` with the sub-database overridden to ``key``.

        Raises:
            ConnectionError: If the handle can not be established.
        """
        ...


class RedisConnectionFactory:
    """Connection factory backed by ``redis-py``.

    Standalone and sentinel stores get a blocking connection pool per handle,
    sized from the datasource's pool settings. Cluster stores get a
    :class:`~redis.cluster.RedisCluster` client and only accept index 0.
    """

    __slots__ = ()

    def build(self, config: StoreConfig, key: int) -> ClientHandle:
        self._check_index(config, key)
        logger.debug("Building client for datasource %s database %s", config.name, key)
        with wrap_connection_errors(config.name, key):
            handle = self._create_handle(config, key)
        if config.verify_on_build:
            try:
                with wrap_connection_errors(config.name, key):
                    handle.ping()
            except ConnectionError:
                with contextlib.suppress(RedisError, OSError):
                    handle.close()
                raise
        return handle

    @staticmethod
    def _check_index(config: StoreConfig, key: int) -> None:
        if isinstance(key, bool) or not isinstance(key, int) or key < 0:
            msg = f"Invalid database index {key!r}"
            raise ConnectionError(msg, datasource=config.name, index=key)
        if config.is_cluster and key != CLUSTER_INDEX:
            msg = f"Cluster stores only serve database {CLUSTER_INDEX}"
            raise ConnectionError(msg, datasource=config.name, index=key)

    def _create_handle(self, config: StoreConfig, key: int) -> ClientHandle:
        if config.topology is Topology.CLUSTER:
            return ClientHandle(config.name, key, self._create_cluster_client(config))
        if config.topology is Topology.SENTINEL:
            client = self._create_sentinel_client(config, key)
            return ClientHandle(config.name, key, client, pool=client.connection_pool)
        pool = self._create_pool(config, key)
        return ClientHandle(config.name, key, redis.Redis(connection_pool=pool), pool=pool)

    @staticmethod
    def connection_kwargs(config: StoreConfig, key: int) -> "dict[str, Any]":
        """Return the client keyword arguments for ``config`` bound to database ``key``."""
        kwargs = config.connection_config_dict
        kwargs["db"] = key
        kwargs["decode_responses"] = True
        return kwargs

    def _create_pool(self, config: StoreConfig, key: int) -> "ConnectionPool":
        kwargs = self.connection_kwargs(config, key)
        if config.ssl:
            kwargs["connection_class"] = redis.SSLConnection
        return redis.BlockingConnectionPool(
            max_connections=config.pool.max_active,
            timeout=config.pool.max_wait,
            **kwargs,
        )

    def _create_sentinel_client(self, config: StoreConfig, key: int) -> "redis.Redis":
        kwargs = self.connection_kwargs(config, key)
        kwargs.pop("host", None)
        kwargs.pop("port", None)
        sentinel_kwargs = {
            name: value for name, value in kwargs.items() if name in {"socket_timeout", "socket_connect_timeout"}
        }
        sentinel = Sentinel(list(config.sentinel_nodes), sentinel_kwargs=sentinel_kwargs or None)
        return sentinel.master_for(
            config.sentinel_master,
            connection_pool_class=BlockingSentinelConnectionPool,
            ssl=config.ssl,
            max_connections=config.pool.max_active,
            timeout=config.pool.max_wait,
            **kwargs,
        )

    def _create_cluster_client(self, config: StoreConfig) -> RedisCluster:
        kwargs = self.connection_kwargs(config, CLUSTER_INDEX)
        kwargs.pop("db", None)
        host = kwargs.pop("host")
        port = kwargs.pop("port")
        startup_nodes = [ClusterNode(node_host, node_port) for node_host, node_port in config.cluster_nodes]
        if not startup_nodes:
            startup_nodes = [ClusterNode(host, port)]
        return RedisCluster(
            startup_nodes=startup_nodes,
            ssl=config.ssl,
            max_connections=config.pool.max_active,
            **kwargs,
        )
