"""Dynamic routing of sub-database requests to cached client handles."""

import logging
import threading
from types import MappingProxyType
from typing import TYPE_CHECKING, Optional

from redisrouter.config import RoutingMode, StoreConfig
from redisrouter.context import RoutingContext, routing_context
from redisrouter.exceptions import StaticModeViolationError
from redisrouter.utils.logging import get_logger, log_with_context

if TYPE_CHECKING:
    from collections.abc import Mapping

    from redisrouter.factory import ClientHandle, ConnectionFactoryProtocol

__all__ = ("DynamicRouter",)

logger = get_logger("router")


class DynamicRouter:
    """Resolve the client handle for the sub-database declared in the routing context.

    One router serves one datasource. It owns a table of handles keyed by
    sub-database index; the handle for the configured default index is built
    when the router is created and is returned whenever no index is declared.
    Any other index is built on first use and cached for the life of the
    router.

    Table hits never take a lock. Misses are serialised by a single lock and
    re-checked once it is held, so each index is built exactly once however
    many callers race for it. A failed build leaves the table untouched and
    the next request for that index tries again.
    """

    __slots__ = ("_build_lock", "_config", "_context", "_default_handle", "_factory", "_table")

    def __init__(
        self,
        config: StoreConfig,
        factory: "ConnectionFactoryProtocol",
        *,
        context: Optional[RoutingContext] = None,
        default_handle: "Optional[ClientHandle]" = None,
    ) -> None:
        self._config = config
        self._factory = factory
        self._context = context if context is not None else routing_context
        self._build_lock = threading.Lock()
        if default_handle is None:
            default_handle = factory.build(config, config.default_index)
        self._default_handle = default_handle
        self._table: "dict[int, ClientHandle]" = {config.default_index: default_handle}

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(datasource={self.name!r}, mode={self.mode.value!r}, "
            f"indices={sorted(self.table)!r})"
        )

    def __contains__(self, key: object) -> bool:
        return key in self._table

    def __len__(self) -> int:
        return len(self._table)

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def config(self) -> StoreConfig:
        return self._config

    @property
    def context(self) -> RoutingContext:
        return self._context

    @property
    def mode(self) -> RoutingMode:
        return self._config.routing_mode

    @property
    def is_dynamic(self) -> bool:
        return self._config.is_dynamic

    @property
    def default_index(self) -> int:
        return self._config.default_index

    @property
    def default_handle(self) -> "ClientHandle":
        return self._default_handle

    @property
    def table(self) -> "Mapping[int, ClientHandle]":
        """A read-only snapshot of the routing table."""
        return MappingProxyType(dict(self._table))

    def resolve(self) -> "ClientHandle":
        """Return the handle for the index held by the routing context.

        Raises:
            StaticModeViolationError: If the router is static and a non-default index is declared.
            ConnectionError: If a missing handle can not be built.
        """
        return self.get_handle(self._context.get())

    def get_handle(self, key: Optional[int]) -> "ClientHandle":
        """Return the handle for ``key``, building and caching it on first use.

        ``None`` selects the default handle.
        """
        if key is None:
            return self._default_handle
        if not self.is_dynamic and key != self._config.default_index:
            raise StaticModeViolationError(self._config.name, key, self._config.default_index)

        handle = self._table.get(key)
        if handle is not None:
            return handle

        with self._build_lock:
            handle = self._table.get(key)
            if handle is not None:
                return handle
            try:
                handle = self._factory.build(self._config, key)
            except Exception:
                self._log(logging.WARNING, "Failed to build client for datasource %s database %s", key)
                raise
            self._table[key] = handle
            self._log(logging.INFO, "Cached client for datasource %s database %s", key)
            return handle

    def close(self) -> None:
        """Close every cached handle.

        All handles are closed even when one fails; the first failure is
        re-raised afterwards.
        """
        with self._build_lock:
            handles = list(self._table.values())
        first_error: Optional[BaseException] = None
        for handle in handles:
            try:
                handle.close()
            except Exception as exc:  # noqa: BLE001
                self._log(logging.WARNING, "Failed to close client for datasource %s database %s", handle.index)
                if first_error is None:
                    first_error = exc
        if first_error is not None:
            raise first_error

    def _log(self, level: int, message: str, index: int) -> None:
        log_with_context(
            logger,
            level,
            message,
            self.name,
            index,
            lookup_key=self._context.get(),
            datasource=self.name,
            index=index,
        )
