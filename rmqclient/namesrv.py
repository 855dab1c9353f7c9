"""Name server address list with round-robin selection."""

from __future__ import annotations

import os
import re
import threading
from dataclasses import dataclass, field
from typing import Iterable, Protocol

DEFAULT_NAMESRV_ADDR = "http://jmenv.tbsite.net:8080/rocketmq/nsaddr"
NAMESRV_ENV = "NAMESRV_ADDR"

_IP_REGEX = re.compile(
    r"^((25[0-5]|2[0-4]\d|((1\d{2})|([1-9]?\d)))\.){3}"
    r"(25[0-5]|2[0-4]\d|((1\d{2})|([1-9]?\d)))"
)


class NamesrvError(ValueError):
    """Raised for missing or malformed name server addresses."""


ERR_NO_NAMESERVER = "nameServerAddrs can't be empty."
ERR_MULTI_IP = "multiple IP addr does not support"
ERR_ILLEGAL_IP = "IP addr error"


class Resolver(Protocol):
    def resolve(self) -> list[str]: ...

    def description(self) -> str: ...


def _strip_scheme(addr: str) -> str:
    if addr.startswith("https"):
        return addr.removeprefix("https://") if hasattr(addr, "removeprefix") else addr
    return addr.removeprefix("http://")


def check_addresses(addrs: Iterable[str]) -> None:
    """Raise :class:`NamesrvError` unless every entry is a single IPv4 address."""
    addr_list = list(addrs)
    if not addr_list:
        raise NamesrvError(ERR_NO_NAMESERVER)
    for addr in addr_list:
        if ";" in addr:
            raise NamesrvError(ERR_MULTI_IP)
        if not _IP_REGEX.match(_strip_scheme(addr)):
            raise NamesrvError(ERR_ILLEGAL_IP)


@dataclass
class PassthroughResolver:
    """Resolves to a fixed list of addresses."""

    addrs: list[str] = field(default_factory=list)

    def resolve(self) -> list[str]:
        return list(self.addrs)

    def description(self) -> str:
        return f"passthrough resolver of {self.addrs}"


@dataclass
class EnvResolver:
    """Resolves from a ``;``-separated environment variable."""

    variable: str = NAMESRV_ENV

    def resolve(self) -> list[str]:
        value = os.environ.get(self.variable, "")
        return [addr.strip() for addr in value.split(";") if addr.strip()]

    def description(self) -> str:
        return f"env resolver of {self.variable}"


class NameServers:
    """Name server addresses, handed out in round-robin order."""

    def __init__(self, resolver: Resolver) -> None:
        addrs = resolver.resolve()
        if not addrs:
            raise NamesrvError(
                "no name server addr found with resolver: " + resolver.description()
            )
        check_addresses(addrs)
        self._resolver = resolver
        self._srvs = list(addrs)
        self._index = 0
        self._lock = threading.Lock()

    @property
    def index(self) -> int:
        """Position of the next address to hand out."""
        return self._index

    def get_name_server_address(self) -> str:
        """Return the next address, without any http(s) scheme."""
        with self._lock:
            if not self._srvs:
                raise NamesrvError(ERR_NO_NAMESERVER)
            addr = self._srvs[self._index % len(self._srvs)]
            self._index = abs(self._index + 1) % len(self._srvs)
        if addr.startswith("https"):
            return addr[len("https://"):] if addr.startswith("https://") else addr
        return addr[len("http://"):] if addr.startswith("http://") else addr

    def size(self) -> int:
        return len(self._srvs)

    def addr_list(self) -> list[str]:
        return list(self._srvs)

    def update_name_server_address(self) -> None:
        """Replace the addresses with what the resolver returns, if it changed."""
        with self._lock:
            srvs = self._resolver.resolve()
            if not srvs:
                return
            if sorted(srvs) == sorted(self._srvs):
                return
            self._srvs = list(srvs)

    def __str__(self) -> str:
        return ";".join(self._srvs)