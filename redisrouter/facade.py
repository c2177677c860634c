"""Per-datasource accessor object handing out sub-database handles."""

from collections.abc import Generator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from collections.abc import Mapping

    from redisrouter.factory import ClientHandle
    from redisrouter.router import DynamicRouter

__all__ = ("WELL_KNOWN_INDICES", "HelperFacade")

WELL_KNOWN_INDICES: Final[int] = 16
"""Number of sub-databases with a dedicated accessor (Redis ships with 16)."""


class HelperFacade:
    """Convenience accessors for one datasource.

    Every accessor declares its index in the routing context, resolves it
    through the router and restores the context before returning, so the
    context never outlives the call. Keep the returned handle to run several
    commands against the same sub-database, or use :meth:`use` to scope the
    context over a block.

    Example::

        orders = registry.lookup("orders")
        orders.db3().hset("order:1", mapping={"state": "paid"})
        with orders.use(5) as handle:
            handle.incr("counter")
    """

    __slots__ = ("_router",)

    def __init__(self, router: "DynamicRouter") -> None:
        self._router = router

    def __repr__(self) -> str:
        return f"{type(self).__name__}(datasource={self.name!r})"

    @property
    def name(self) -> str:
        return self._router.name

    @property
    def router(self) -> "DynamicRouter":
        return self._router

    @property
    def handles(self) -> "Mapping[int, ClientHandle]":
        """Handles built so far, keyed by sub-database index."""
        return self._router.table

    def default(self) -> "ClientHandle":
        return self._router.default_handle

    def current(self) -> "ClientHandle":
        """Resolve against whatever index the ambient routing context holds."""
        return self._router.resolve()

    def at_index(self, index: int) -> "ClientHandle":
        """Return the handle for sub-database ``index``.

        Raises:
            StaticModeViolationError: If the datasource is static and ``index`` is not its default.
            ConnectionError: If the handle has to be built and the build fails.
        """
        context = self._router.context
        token = context.set(index)
        try:
            return self._router.resolve()
        finally:
            context.reset(token)

    @contextmanager
    def use(self, index: int) -> "Generator[ClientHandle, None, None]":
        """Declare ``index`` in the routing context for the duration of a block."""
        with self._router.context.scope(index):
            yield self._router.resolve()

    def db0(self) -> "ClientHandle":
        return self.at_index(0)

    def db1(self) -> "ClientHandle":
        return self.at_index(1)

    def db2(self) -> "ClientHandle":
        return self.at_index(2)

    def db3(self) -> "ClientHandle":
        return self.at_index(3)

    def db4(self) -> "ClientHandle":
        return self.at_index(4)

    def db5(self) -> "ClientHandle":
        return self.at_index(5)

    def db6(self) -> "ClientHandle":
        return self.at_index(6)

    def db7(self) -> "ClientHandle":
        return self.at_index(7)

    def db8(self) -> "ClientHandle":
        return self.at_index(8)

    def db9(self) -> "ClientHandle":
        return self.at_index(9)

    def db10(self) -> "ClientHandle":
        return self.at_index(10)

    def db11(self) -> "ClientHandle":
        return self.at_index(11)

    def db12(self) -> "ClientHandle":
        return self.at_index(12)

    def db13(self) -> "ClientHandle":
        return self.at_index(13)

    def db14(self) -> "ClientHandle":
        return self.at_index(14)

    def db15(self) -> "ClientHandle":
        return self.at_index(15)
