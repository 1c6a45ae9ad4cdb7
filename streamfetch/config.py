"""Configuration dataclasses for connection-pooling agents."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, fields, replace
from typing import Any, Mapping


@dataclass(frozen=True)
class ConnectOptions:
    """TLS and socket settings applied when a connection is opened.

    Attributes:
        reject_unauthorized: Whether to fail the TLS handshake when the server
                             certificate does not validate.
        servername: Hostname sent in the TLS SNI extension. None uses the
                    URL host.
        timeout: Connection establishment timeout in seconds. None waits
                 forever.
    """

    reject_unauthorized: bool = True
    servername: str | None = None
    timeout: float | None = 10.0

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("connect.timeout must be > 0")
        if self.servername is not None and not self.servername:
            raise ValueError("connect.servername must not be empty")


@dataclass(frozen=True)
class AgentOptions:
    """Options controlling an Agent's connection pools.

    All durations are in seconds.

    Attributes:
        connections: Maximum simultaneous connections per origin. None means
                     unbounded.
        keep_alive_timeout: Idle time before a pooled socket may be closed.
        keep_alive_max_timeout: Hard cap on keep-alive lifetime.
        keep_alive_timeout_threshold: Grace period added to keep_alive_timeout
                                      before it is enforced.
        pipelining: Maximum in-flight requests per connection. 0 disables
                    keep-alive entirely.
        headers_timeout: Maximum time to wait for response headers.
        body_timeout: Maximum time to wait between body chunks.
        connect: TLS and socket settings.
    """

    connections: int | None = None
    keep_alive_timeout: float = 4.0
    keep_alive_max_timeout: float = 600.0
    keep_alive_timeout_threshold: float = 1.0
    pipelining: int = 1
    headers_timeout: float | None = 300.0
    body_timeout: float | None = 300.0
    connect: ConnectOptions = field(default_factory=ConnectOptions)

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.connections is not None and self.connections < 1:
            raise ValueError("connections must be >= 1")
        if self.keep_alive_timeout <= 0:
            raise ValueError("keep_alive_timeout must be > 0")
        if self.keep_alive_max_timeout <= 0:
            raise ValueError("keep_alive_max_timeout must be > 0")
        if self.keep_alive_timeout_threshold < 0:
            raise ValueError("keep_alive_timeout_threshold must be >= 0")
        if self.pipelining < 0:
            raise ValueError("pipelining must be >= 0")
        if self.headers_timeout is not None and self.headers_timeout <= 0:
            raise ValueError("headers_timeout must be > 0")
        if self.body_timeout is not None and self.body_timeout <= 0:
            raise ValueError("body_timeout must be > 0")
        if not isinstance(self.connect, ConnectOptions):
            raise ValueError("connect must be a ConnectOptions instance")

    @property
    def keep_alive(self) -> bool:
        """Whether idle connections are kept for reuse."""
        return self.pipelining > 0

    @property
    def keepalive_expiry(self) -> float:
        """Effective idle lifetime of a pooled connection."""
        return min(
            self.keep_alive_timeout + self.keep_alive_timeout_threshold,
            self.keep_alive_max_timeout,
        )

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> "AgentOptions":
        """Build options from a mapping.

        Keys may be snake_case field names or their camelCase spelling
        (``keepAliveTimeout``). Connection settings may be given as a nested
        ``connect`` mapping or as dotted keys (``"connect.servername"``).

        Raises:
            ValueError: On unknown keys or invalid values.
        """
        return cls().merged(options)

    def merged(self, options: Mapping[str, Any]) -> "AgentOptions":
        """Return a copy with the given mapping applied on top."""
        agent_fields = {f.name for f in fields(self)}
        top: dict[str, Any] = {}
        connect: dict[str, Any] = {}

        for raw_key, value in options.items():
            prefix, _, rest = raw_key.partition(".")
            key = _snake_case(prefix)
            if rest:
                if key != "connect":
                    raise ValueError(f"Unknown agent option: {raw_key}")
                connect[_snake_case(rest)] = value
            elif key == "connect":
                if isinstance(value, ConnectOptions):
                    top["connect"] = value
                elif isinstance(value, Mapping):
                    connect.update({_snake_case(k): v for k, v in value.items()})
                else:
                    raise ValueError("connect must be a mapping or ConnectOptions")
            elif key in agent_fields:
                top[key] = value
            else:
                raise ValueError(f"Unknown agent option: {raw_key}")

        if connect:
            connect_fields = {f.name for f in fields(ConnectOptions)}
            unknown = sorted(set(connect) - connect_fields)
            if unknown:
                raise ValueError(f"Unknown connect option: {unknown[0]}")
            base = top.get("connect", self.connect)
            top["connect"] = replace(base, **connect)

        return replace(self, **top)


def _snake_case(name: str) -> str:
    """Convert 'keepAliveTimeout' to 'keep_alive_timeout'."""
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()
