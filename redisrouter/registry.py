import atexit
import contextlib
import logging
from collections.abc import Iterator, Mapping, Sequence
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Optional

from typing_extensions import Self

from redisrouter.exceptions import ConfigurationError, UnknownDatasourceError
from redisrouter.facade import HelperFacade
from redisrouter.factory import RedisConnectionFactory
from redisrouter.router import DynamicRouter
from redisrouter.utils.config_normalization import load_store_configs
from redisrouter.utils.logging import get_logger, log_with_context

if TYPE_CHECKING:
    from redisrouter.config import StoreConfig
    from redisrouter.context import RoutingContext
    from redisrouter.factory import ConnectionFactoryProtocol

__all__ = ("DatasourceRegistry",)

logger = get_logger("registry")


class DatasourceRegistry:
    """Name-addressed registry of routers and facades, one pair per datasource.

    The registry is built once from the full list of datasource configs and
    never changes afterwards. Each router builds its default handle while the
    registry is constructed, so an unreachable datasource fails startup
    rather than the first request.
    """

    __slots__ = ("_closed", "_entries", "_primary")

    def __init__(
        self,
        configs: "Sequence[StoreConfig]",
        *,
        factory: "Optional[ConnectionFactoryProtocol]" = None,
        context: "Optional[RoutingContext]" = None,
        primary: Optional[str] = None,
    ) -> None:
        """Build a router and facade for every config.

        Args:
            configs: Datasource configs; names must be unique.
            factory: Builds client handles. Defaults to :class:`RedisConnectionFactory`.
            context: Routing context shared by every router. Defaults to the process-wide one.
            primary: Name of the datasource returned by :attr:`default`; the first config when omitted.

        Raises:
            ConfigurationError: If no config is given, names repeat or ``primary`` is unknown.
            ConnectionError: If a default handle can not be built.
        """
        configs = list(configs)
        if not configs:
            msg = "No datasource configured, the registry needs at least one"
            raise ConfigurationError(msg)
        seen: set[str] = set()
        for config in configs:
            if config.name in seen:
                msg = f"Datasource {config.name!r} is configured more than once"
                raise ConfigurationError(msg)
            seen.add(config.name)
        if primary is not None and primary not in seen:
            msg = f"Primary datasource {primary!r} is not configured"
            raise ConfigurationError(msg)

        factory = factory if factory is not None else RedisConnectionFactory()
        entries: dict[str, tuple[DynamicRouter, HelperFacade]] = {}
        try:
            for config in configs:
                router = DynamicRouter(config, factory, context=context)
                entries[config.name] = (router, HelperFacade(router))
                log_with_context(
                    logger,
                    logging.INFO,
                    "Registered datasource %s (%s mode, default database %s)",
                    config.name,
                    config.routing_mode.value,
                    config.default_index,
                    datasource=config.name,
                    mode=config.routing_mode.value,
                    topology=config.topology.value,
                )
        except Exception:
            for router, _ in entries.values():
                with contextlib.suppress(Exception):
                    router.close()
            raise

        self._entries: Mapping[str, tuple[DynamicRouter, HelperFacade]] = MappingProxyType(entries)
        self._primary = primary if primary is not None else configs[0].name
        self._closed = False
        atexit.register(self._cleanup_handles)

    @classmethod
    def from_settings(
        cls,
        settings: "Mapping[str, Any]",
        *,
        factory: "Optional[ConnectionFactoryProtocol]" = None,
        context: "Optional[RoutingContext]" = None,
    ) -> Self:
        """Build a registry from a parsed settings mapping.

        See :func:`~redisrouter.utils.config_normalization.load_store_configs`
        for the accepted layout.
        """
        configs, primary = load_store_configs(settings)
        return cls(configs, factory=factory, context=context, primary=primary)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(datasources={list(self._entries)!r}, primary={self._primary!r})"

    @property
    def names(self) -> "tuple[str, ...]":
        return tuple(self._entries)

    @property
    def primary(self) -> str:
        return self._primary

    @property
    def default(self) -> HelperFacade:
        """Facade of the primary datasource."""
        return self._entries[self._primary][1]

    def lookup(self, name: str) -> HelperFacade:
        """Return the facade registered under ``name``.

        Raises:
            UnknownDatasourceError: If no datasource of that name was registered.
        """
        return self._entry(name)[1]

    def get_router(self, name: str) -> DynamicRouter:
        """Return the router registered under ``name``.

        Raises:
            UnknownDatasourceError: If no datasource of that name was registered.
        """
        return self._entry(name)[0]

    def _entry(self, name: str) -> "tuple[DynamicRouter, HelperFacade]":
        try:
            return self._entries[name]
        except KeyError:
            raise UnknownDatasourceError(name) from None

    def close(self) -> None:
        """Close every handle of every datasource. Closing twice is a no-op.

        Every router is closed even when one fails; the first failure is
        re-raised afterwards.
        """
        if self._closed:
            return
        self._closed = True
        atexit.unregister(self._cleanup_handles)
        first_error: Optional[BaseException] = None
        for router, _ in self._entries.values():
            try:
                router.close()
            except Exception as exc:  # noqa: BLE001
                if first_error is None:
                    first_error = exc
        if first_error is not None:
            raise first_error

    def _cleanup_handles(self) -> None:
        """Close all open handles at program exit."""
        with contextlib.suppress(Exception):
            self.close()

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
