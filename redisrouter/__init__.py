"""redisrouter: route a unit of work to the right Redis sub-database through one handle."""

from redisrouter import config, context, exceptions, facade, factory, registry, router, utils
from redisrouter.__metadata__ import __version__
from redisrouter.config import PoolConfig, RoutingMode, StoreConfig, Topology
from redisrouter.context import RoutingContext, routing_context
from redisrouter.exceptions import (
    ConfigurationError,
    ConnectionError,  # noqa: A004
    RedisRouterError,
    StaticModeViolationError,
    UnknownDatasourceError,
)
from redisrouter.facade import HelperFacade
from redisrouter.factory import ClientHandle, ConnectionFactoryProtocol, RedisConnectionFactory
from redisrouter.registry import DatasourceRegistry
from redisrouter.router import DynamicRouter
from redisrouter.utils.logging import configure_logging

__all__ = (
    "ClientHandle",
    "ConfigurationError",
    "ConnectionError",
    "ConnectionFactoryProtocol",
    "DatasourceRegistry",
    "DynamicRouter",
    "HelperFacade",
    "PoolConfig",
    "RedisConnectionFactory",
    "RedisRouterError",
    "RoutingContext",
    "RoutingMode",
    "StaticModeViolationError",
    "StoreConfig",
    "Topology",
    "UnknownDatasourceError",
    "__version__",
    "configure_logging",
    "config",
    "context",
    "exceptions",
    "facade",
    "factory",
    "registry",
    "router",
    "routing_context",
    "utils",
)
