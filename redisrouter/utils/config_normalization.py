"""Configuration normalization helpers.

These helpers turn an already-parsed configuration mapping (read from YAML,
TOML, environment variables or anything else) into validated
:class:`~redisrouter.config.StoreConfig` objects. Keys may be written in
snake_case, camelCase or kebab-case.
"""

import re
from collections.abc import Mapping
from typing import Any, Optional
from urllib.parse import unquote, urlsplit

from redisrouter.config import DEFAULT_PORT, PoolConfig, RoutingMode, StoreConfig, Topology
from redisrouter.exceptions import ConfigurationError

__all__ = (
    "load_store_configs",
    "normalize_key",
    "normalize_mapping",
    "parse_duration",
    "parse_nodes",
    "parse_redis_url",
    "store_config_from_mapping",
)

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")
_DURATION = re.compile(r"^\s*(?P<value>\d+(?:\.\d+)?)\s*(?P<unit>ms|s|m|h)?\s*$", re.IGNORECASE)
_DURATION_FACTORS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}

_KEY_ALIASES = {
    "database": "default_index",
    "db": "default_index",
    "user": "username",
    "max_total": "max_active",
    "command_timeout": "timeout",
}
_STORE_KEYS = frozenset({
    "host",
    "port",
    "username",
    "password",
    "ssl",
    "timeout",
    "connect_timeout",
    "pool",
    "mode",
    "default_index",
    "url",
    "cluster",
    "sentinel",
    "client_name",
    "verify_on_build",
})
_POOL_KEYS = frozenset({"max_active", "max_idle", "min_idle", "max_wait"})


def normalize_key(key: str) -> str:
    """Convert a camelCase or kebab-case key to snake_case and apply aliases.

    Args:
        key: Raw configuration key.

    Returns:
        The canonical snake_case key.
    """
    snake = _CAMEL_BOUNDARY.sub(r"_\1", str(key)).replace("-", "_").lower()
    return _KEY_ALIASES.get(snake, snake)


def normalize_mapping(raw: Any, *, where: str) -> "dict[str, Any]":
    """Copy a mapping with every top-level key normalized.

    Raises:
        ConfigurationError: If ``raw`` is not a mapping or two keys normalize to the same name.
    """
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        msg = f"{where} must be a mapping, got {type(raw).__name__}"
        raise ConfigurationError(msg)
    normalized: dict[str, Any] = {}
    for key, value in raw.items():
        canonical = normalize_key(key)
        if canonical in normalized:
            msg = f"{where} sets {canonical!r} more than once"
            raise ConfigurationError(msg)
        normalized[canonical] = value
    return normalized


def parse_duration(value: Any, *, where: str) -> Optional[float]:
    """Parse a duration into seconds.

    Numbers are taken as seconds; strings may carry an ``ms``, ``s``, ``m`` or
    ``h`` suffix. ``None`` and negative numbers mean "no limit".

    Raises:
        ConfigurationError: If the value can not be parsed.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        msg = f"{where} must be a duration, got {value!r}"
        raise ConfigurationError(msg)
    if isinstance(value, (int, float)):
        return None if value < 0 else float(value)
    match = _DURATION.match(str(value))
    if match is None:
        msg = f"{where} must be a duration such as '500ms' or '5s', got {value!r}"
        raise ConfigurationError(msg)
    unit = (match.group("unit") or "s").lower()
    return float(match.group("value")) * _DURATION_FACTORS[unit]


def parse_nodes(raw: Any, *, where: str) -> "tuple[tuple[str, int], ...]":
    """Parse a node list of ``"host:port"`` strings, pairs or mappings.

    Raises:
        ConfigurationError: If a node can not be parsed.
    """
    if raw is None:
        return ()
    if isinstance(raw, str):
        raw = [part for part in raw.split(",") if part.strip()]
    nodes: list[tuple[str, int]] = []
    for node in raw:
        if isinstance(node, Mapping):
            host, port = node.get("host"), node.get("port", DEFAULT_PORT)
        elif isinstance(node, str):
            host, _, port_text = node.strip().rpartition(":")
            if not host:
                host, port_text = port_text, str(DEFAULT_PORT)
            port = port_text
        else:
            try:
                host, port = node
            except (TypeError, ValueError) as exc:
                msg = f"{where} contains an invalid node {node!r}"
                raise ConfigurationError(msg) from exc
        if not host:
            msg = f"{where} contains a node without a host: {node!r}"
            raise ConfigurationError(msg)
        nodes.append((str(host), _as_int(port, where=where)))
    return tuple(nodes)


def parse_redis_url(url: str, *, where: str) -> "dict[str, Any]":
    """Split a ``redis://`` or ``rediss://`` URL into datasource settings.

    ``rediss`` turns TLS on and a path component selects the default index.

    Raises:
        ConfigurationError: If the URL is not a redis URL.
    """
    parts = urlsplit(url)
    if parts.scheme not in {"redis", "rediss"}:
        msg = f"{where} url must use the redis:// or rediss:// scheme, got {url!r}"
        raise ConfigurationError(msg)
    settings: dict[str, Any] = {"ssl": parts.scheme == "rediss"}
    if parts.hostname:
        settings["host"] = parts.hostname
    try:
        port = parts.port
    except ValueError as exc:
        msg = f"{where} url has an invalid port: {url!r}"
        raise ConfigurationError(msg) from exc
    if port is not None:
        settings["port"] = port
    if parts.username:
        settings["username"] = unquote(parts.username)
    if parts.password:
        settings["password"] = unquote(parts.password)
    path = parts.path.strip("/")
    if path:
        settings["default_index"] = _as_int(path, where=f"{where} url database")
    return settings


def store_config_from_mapping(name: str, raw: Any, *, dynamic_default: bool = True) -> StoreConfig:
    """Build a :class:`StoreConfig` from one ``datasource`` block.

    Settings given explicitly in the block take precedence over those parsed
    from its ``url``. When the block omits ``mode``, ``dynamic_default``
    decides, except that cluster stores are always static.

    Args:
        name: Datasource name.
        raw: The datasource block.
        dynamic_default: Process-wide default routing mode.

    Raises:
        ConfigurationError: If the block is invalid.

    Returns:
        The validated configuration.
    """
    where = f"Datasource {name!r}"
    block = normalize_mapping(raw, where=where)
    unknown = set(block) - _STORE_KEYS
    if unknown:
        msg = f"{where} has unknown settings: {', '.join(sorted(unknown))}"
        raise ConfigurationError(msg)

    settings: dict[str, Any] = {}
    url = block.pop("url", None)
    if url:
        settings.update(parse_redis_url(str(url), where=where))
    settings.update({key: value for key, value in block.items() if value is not None})

    topology = Topology.STANDALONE
    cluster = normalize_mapping(settings.pop("cluster", None), where=f"{where} cluster")
    sentinel = normalize_mapping(settings.pop("sentinel", None), where=f"{where} sentinel")
    if cluster and sentinel:
        msg = f"{where} can not be both a cluster and a sentinel store"
        raise ConfigurationError(msg)
    kwargs: dict[str, Any] = {}
    if cluster:
        topology = Topology.CLUSTER
        kwargs["cluster_nodes"] = parse_nodes(cluster.get("nodes"), where=f"{where} cluster nodes")
    if sentinel:
        topology = Topology.SENTINEL
        kwargs["sentinel_master"] = sentinel.get("master")
        kwargs["sentinel_nodes"] = parse_nodes(sentinel.get("nodes"), where=f"{where} sentinel nodes")

    if "mode" in settings:
        mode: Optional[RoutingMode] = RoutingMode.parse(settings.pop("mode"))
    elif dynamic_default:
        mode = None
    else:
        mode = RoutingMode.STATIC

    for key in ("host", "username", "password", "client_name"):
        if key in settings:
            kwargs[key] = str(settings[key])
    for key in ("port", "default_index"):
        if key in settings:
            kwargs[key] = _as_int(settings[key], where=f"{where} {key}")
    for key in ("ssl", "verify_on_build"):
        if key in settings:
            kwargs[key] = _as_bool(settings[key], where=f"{where} {key}")
    for key in ("timeout", "connect_timeout"):
        if key in settings:
            kwargs[key] = parse_duration(settings[key], where=f"{where} {key}")
    if "pool" in settings:
        kwargs["pool"] = _pool_from_mapping(settings["pool"], where=f"{where} pool")

    return StoreConfig(name=name, mode=mode, topology=topology, **kwargs)


def load_store_configs(settings: Any) -> "tuple[list[StoreConfig], Optional[str]]":
    """Build every datasource declared in a settings mapping.

    The mapping holds a ``datasource`` section with one block per name, an
    optional process-wide ``dynamic_database`` flag (default true) and an
    optional ``primary`` datasource name.

    Raises:
        ConfigurationError: If the settings are invalid or declare no datasource.

    Returns:
        The configs in declaration order and the primary datasource name, if any.
    """
    root = normalize_mapping(settings, where="Settings")
    dynamic_default = _as_bool(root.get("dynamic_database", True), where="Settings dynamic_database")
    datasources = root.get("datasource")
    if datasources is None:
        datasources = root.get("datasources")
    if not isinstance(datasources, Mapping) or not datasources:
        msg = "No datasource configured; expected a non-empty 'datasource' mapping"
        raise ConfigurationError(msg)
    configs = [
        store_config_from_mapping(str(name), block, dynamic_default=dynamic_default)
        for name, block in datasources.items()
    ]
    primary = root.get("primary")
    return configs, (str(primary) if primary is not None else None)


def _pool_from_mapping(raw: Any, *, where: str) -> PoolConfig:
    block = normalize_mapping(raw, where=where)
    unknown = set(block) - _POOL_KEYS
    if unknown:
        msg = f"{where} has unknown settings: {', '.join(sorted(unknown))}"
        raise ConfigurationError(msg)
    kwargs: dict[str, Any] = {}
    for key in ("max_active", "max_idle", "min_idle"):
        if block.get(key) is not None:
            kwargs[key] = _as_int(block[key], where=f"{where} {key}")
    if "max_wait" in block:
        kwargs["max_wait"] = parse_duration(block["max_wait"], where=f"{where} max_wait")
    return PoolConfig(**kwargs)


def _as_int(value: Any, *, where: str) -> int:
    if isinstance(value, bool):
        msg = f"{where} must be an integer, got {value!r}"
        raise ConfigurationError(msg)
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        msg = f"{where} must be an integer, got {value!r}"
        raise ConfigurationError(msg) from exc


def _as_bool(value: Any, *, where: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "on", "1"}:
            return True
        if lowered in {"false", "no", "off", "0"}:
            return False
    msg = f"{where} must be a boolean, got {value!r}"
    raise ConfigurationError(msg)
