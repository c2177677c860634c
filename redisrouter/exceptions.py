from collections.abc import Generator
from contextlib import contextmanager
from typing import Any, Optional

from redis.exceptions import RedisClusterException, RedisError

__all__ = (
    "ConfigurationError",
    "ConnectionError",
    "RedisRouterError",
    "StaticModeViolationError",
    "UnknownDatasourceError",
    "wrap_connection_errors",
)


class RedisRouterError(Exception):
    """Base exception class from which all redisrouter exceptions inherit."""

    detail: str

    def __init__(self, *args: Any, detail: str = "") -> None:
        """Initialize ``RedisRouterError``.

        Args:
            *args: args are converted to :class:`str` before passing to :class:`Exception`
            detail: detail of the exception.
        """
        str_args = [str(arg) for arg in args if arg]
        if not detail:
            if str_args:
                detail, *str_args = str_args
            elif hasattr(self, "detail"):
                detail = self.detail
        self.detail = detail
        super().__init__(*str_args)

    def __repr__(self) -> str:
        if self.detail:
            return f"{self.__class__.__name__} - {self.detail}"
        return self.__class__.__name__

    def __str__(self) -> str:
        return " ".join((*self.args, self.detail)).strip()


class ConfigurationError(RedisRouterError):
    """Invalid datasource configuration.

    Raised while building configs or the registry; it is fatal at startup.
    """


class ConnectionError(RedisRouterError):  # noqa: A001
    """A client handle could not be established for a datasource and index."""

    datasource: Optional[str]
    index: Optional[int]

    def __init__(self, message: str, datasource: Optional[str] = None, index: Optional[int] = None) -> None:
        detail_message = message
        if datasource is not None:
            detail_message = f"{message} (datasource={datasource!r}, index={index})"
        super().__init__(detail=detail_message)
        self.datasource = datasource
        self.index = index


class StaticModeViolationError(RedisRouterError):
    """A non-default sub-database was requested from a static-mode router."""

    datasource: str
    index: int
    default_index: int

    def __init__(self, datasource: str, index: int, default_index: int) -> None:
        super().__init__(
            detail=(
                f"Datasource {datasource!r} is in static mode and only serves database {default_index}; "
                f"database {index} was requested"
            )
        )
        self.datasource = datasource
        self.index = index
        self.default_index = default_index


class UnknownDatasourceError(RedisRouterError, KeyError):
    """Lookup of a datasource name that was never registered."""

    name: str

    def __init__(self, name: str) -> None:
        super().__init__(detail=f"No datasource registered under the name {name!r}")
        self.name = name


@contextmanager
def wrap_connection_errors(datasource: str, index: int) -> Generator[None, None, None]:
    """Re-raise client library failures as :class:`ConnectionError`.

    Args:
        datasource: Name of the datasource being connected.
        index: Sub-database index being connected.

    Raises:
        ConnectionError: When the wrapped block raises a ``redis`` error or ``OSError``.
    """
    try:
        yield
    except ConnectionError:
        raise
    except (RedisError, RedisClusterException, OSError) as exc:
        msg = f"Could not establish connection: {exc}"
        raise ConnectionError(msg, datasource=datasource, index=index) from exc
