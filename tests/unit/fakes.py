"""In-memory stand-ins for the redis client used across the unit tests."""

from __future__ import annotations

import threading
import time
from typing import Any

from redisrouter.config import StoreConfig
from redisrouter.exceptions import ConnectionError
from redisrouter.factory import ClientHandle


class FakeClient:
    """Mock redis client keeping values in a dict."""

    def __init__(self, index: int) -> None:
        self.index = index
        self.closed = False
        self.store: dict[str, Any] = {}

    def ping(self) -> bool:
        return True

    def get(self, key: str) -> Any:
        return self.store.get(key)

    def set(self, key: str, value: Any) -> bool:
        self.store[key] = value
        return True

    def close(self) -> None:
        self.closed = True


class RecordingFactory:
    """Connection factory that records every build and can be told to fail."""

    def __init__(self, delay: float = 0.0, fail_on: set[int] | None = None) -> None:
        self.calls: list[tuple[str, int]] = []
        self.delay = delay
        self.fail_on: set[int] = fail_on if fail_on is not None else set()
        self._lock = threading.Lock()

    def build(self, config: StoreConfig, key: int) -> ClientHandle:
        with self._lock:
            self.calls.append((config.name, key))
        if self.delay:
            time.sleep(self.delay)
        if key in self.fail_on:
            msg = "server unreachable"
            raise ConnectionError(msg, datasource=config.name, index=key)
        return ClientHandle(config.name, key, FakeClient(key))

    def builds_for(self, key: int, datasource: str | None = None) -> int:
        return sum(1 for name, index in self.calls if index == key and (datasource is None or name == datasource))
