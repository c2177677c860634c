"""Call-scoped routing context.

The lookup key a unit of work wants to talk to is carried in a
:class:`contextvars.ContextVar` rather than thread-local state. Every thread
starts with the key unset, and every asyncio task starts from a snapshot of
the context of the code that created it: a child task sees the key its parent
held at creation time, and anything the child sets stays in the child.
"""

from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Optional

__all__ = ("RoutingContext", "routing_context")


class RoutingContext:
    """Slot holding the sub-database index declared by the current unit of work."""

    __slots__ = ("_var",)

    def __init__(self, name: str = "redisrouter_lookup_key") -> None:
        self._var: ContextVar[Optional[int]] = ContextVar(name, default=None)

    @property
    def name(self) -> str:
        return self._var.name

    def set(self, key: int) -> "Token[Optional[int]]":
        """Declare ``key`` as the target sub-database.

        Returns:
            A token that restores the previous value when passed to :meth:`reset`.
        """
        return self._var.set(key)

    def get(self) -> Optional[int]:
        """Return the declared index, or ``None`` when unset."""
        return self._var.get()

    def clear(self) -> None:
        """Reset the slot to unset."""
        self._var.set(None)

    def reset(self, token: "Token[Optional[int]]") -> None:
        """Restore the value that was current before the matching :meth:`set`."""
        self._var.reset(token)

    def is_set(self) -> bool:
        return self._var.get() is not None

    @contextmanager
    def scope(self, key: int) -> Generator[int, None, None]:
        """Declare ``key`` for the duration of a block.

        The previous value, usually unset, is restored on exit even when the
        block raises.
        """
        token = self._var.set(key)
        try:
            yield key
        finally:
            self._var.reset(token)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, key={self.get()!r})"


routing_context = RoutingContext()
"""Process-wide routing context shared by routers that are not given their own."""
