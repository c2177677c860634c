"""Datasource configuration for redisrouter."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Final, Optional

from redisrouter.exceptions import ConfigurationError

__all__ = (
    "CLUSTER_INDEX",
    "DEFAULT_PORT",
    "PoolConfig",
    "RoutingMode",
    "StoreConfig",
    "Topology",
)

DEFAULT_HOST: Final[str] = "localhost"
DEFAULT_PORT: Final[int] = 6379
DEFAULT_MAX_ACTIVE: Final[int] = 8
DEFAULT_MAX_IDLE: Final[int] = 8
DEFAULT_MIN_IDLE: Final[int] = 0
CLUSTER_INDEX: Final[int] = 0
"""The only sub-database a cluster-backed store can serve."""
MAX_PORT: Final[int] = 65535


class RoutingMode(str, Enum):
    """Whether a router may serve sub-databases other than its default."""

    STATIC = "static"
    DYNAMIC = "dynamic"

    @classmethod
    def parse(cls, value: Any) -> "RoutingMode":
        if isinstance(value, RoutingMode):
            return value
        if isinstance(value, bool):
            return cls.DYNAMIC if value else cls.STATIC
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            msg = f"Unknown routing mode {value!r}; expected 'static' or 'dynamic'"
            raise ConfigurationError(msg) from exc


class Topology(str, Enum):
    """How the store behind a datasource is deployed."""

    STANDALONE = "standalone"
    SENTINEL = "sentinel"
    CLUSTER = "cluster"


@dataclass(frozen=True)
class PoolConfig:
    """Connection pool limits for every handle of a datasource.

    ``max_active`` caps the connections of one handle's pool and
    ``max_wait`` is the number of seconds a caller blocks waiting for a free
    connection once they are all in use; ``None`` waits forever.

    ``max_idle`` and ``min_idle`` are validated so existing pool settings can
    be carried over, but they do not reach the client: redis-py pools open
    connections on demand and keep every released one, with no idle limits.
    """

    max_active: int = DEFAULT_MAX_ACTIVE
    max_idle: int = DEFAULT_MAX_IDLE
    min_idle: int = DEFAULT_MIN_IDLE
    max_wait: Optional[float] = None

    def __post_init__(self) -> None:
        for attr in ("max_active", "max_idle", "min_idle"):
            if getattr(self, attr) < 0:
                msg = f"Pool setting {attr} must not be negative, got {getattr(self, attr)}"
                raise ConfigurationError(msg)
        if self.max_active == 0:
            msg = "Pool setting max_active must be at least 1"
            raise ConfigurationError(msg)
        if self.max_idle > self.max_active:
            msg = f"Pool setting max_idle ({self.max_idle}) exceeds max_active ({self.max_active})"
            raise ConfigurationError(msg)
        if self.min_idle > self.max_idle:
            msg = f"Pool setting min_idle ({self.min_idle}) exceeds max_idle ({self.max_idle})"
            raise ConfigurationError(msg)
        if self.max_wait is not None and self.max_wait < 0:
            msg = f"Pool setting max_wait must not be negative, got {self.max_wait}"
            raise ConfigurationError(msg)


@dataclass(frozen=True)
class StoreConfig:
    """Immutable connection parameters for one named datasource.

    ``mode`` left as ``None`` resolves to static for cluster stores and to
    dynamic otherwise. Cluster stores only ever serve sub-database 0: their
    ``default_index`` is forced to 0, and asking for dynamic routing on one
    is a configuration error.
    """

    name: str
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    username: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    ssl: bool = False
    timeout: Optional[float] = None
    connect_timeout: Optional[float] = None
    pool: PoolConfig = field(default_factory=PoolConfig)
    mode: Optional[RoutingMode] = None
    default_index: int = 0
    topology: Topology = Topology.STANDALONE
    sentinel_master: Optional[str] = None
    sentinel_nodes: "tuple[tuple[str, int], ...]" = ()
    cluster_nodes: "tuple[tuple[str, int], ...]" = ()
    client_name: Optional[str] = None
    verify_on_build: bool = True

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            msg = "Datasource name can not be blank"
            raise ConfigurationError(msg)
        if not 0 < self.port <= MAX_PORT:
            msg = f"Datasource {self.name!r}: port {self.port} is outside 1-{MAX_PORT}"
            raise ConfigurationError(msg)
        if self.default_index < 0:
            msg = f"Datasource {self.name!r}: default index must not be negative, got {self.default_index}"
            raise ConfigurationError(msg)
        for attr in ("timeout", "connect_timeout"):
            value = getattr(self, attr)
            if value is not None and value <= 0:
                msg = f"Datasource {self.name!r}: {attr} must be positive, got {value}"
                raise ConfigurationError(msg)

        topology = Topology(self.topology)
        object.__setattr__(self, "topology", topology)
        mode = self.mode
        if mode is None:
            mode = RoutingMode.STATIC if topology is Topology.CLUSTER else RoutingMode.DYNAMIC
        object.__setattr__(self, "mode", RoutingMode.parse(mode))

        if topology is Topology.CLUSTER:
            if self.mode is RoutingMode.DYNAMIC:
                msg = f"Datasource {self.name!r}: dynamic mode can not be used with a cluster store"
                raise ConfigurationError(msg)
            # Cluster stores have a single keyspace.
            object.__setattr__(self, "default_index", CLUSTER_INDEX)
        if topology is Topology.SENTINEL and (not self.sentinel_master or not self.sentinel_nodes):
            msg = f"Datasource {self.name!r}: sentinel stores need a master name and at least one sentinel node"
            raise ConfigurationError(msg)

    @property
    def routing_mode(self) -> RoutingMode:
        """The resolved routing mode, never ``None`` after construction."""
        return RoutingMode.parse(self.mode)

    @property
    def is_dynamic(self) -> bool:
        return self.routing_mode is RoutingMode.DYNAMIC

    @property
    def is_cluster(self) -> bool:
        return self.topology is Topology.CLUSTER

    @property
    def connection_config_dict(self) -> "dict[str, Any]":
        """Return the client keyword arguments for the default sub-database.

        Keys left unset are omitted so the client library's own defaults apply.
        """
        config: dict[str, Any] = {
            "host": self.host,
            "port": self.port,
            "db": self.default_index,
            "username": self.username,
            "password": self.password,
            "socket_timeout": self.timeout,
            "socket_connect_timeout": self.connect_timeout,
            "client_name": self.client_name,
        }
        return {key: value for key, value in config.items() if value is not None}
