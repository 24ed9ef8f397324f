"""Parsing of target URLs and the process-wide list of URLs to benchmark."""

from __future__ import annotations

import random
import re
import socket
from dataclasses import dataclass, field
from typing import ClassVar

from apibench.status import ApibError, Status, StatusCode

HTTP = "http"
HTTPS = "https"

_URL_RE = re.compile(r"^([A-Za-z][A-Za-z0-9+.\-]*)://([^/?#]*)(.*)$", re.DOTALL)
_MAX_PORT = 65535


@dataclass(frozen=True)
class Address:
    """A network address with a port; an unspecified family means "no address"."""

    family: int = socket.AF_UNSPEC
    host: str = ""
    port: int = 0

    @property
    def valid(self) -> bool:
        return self.family != socket.AF_UNSPEC

    @property
    def sockaddr(self) -> tuple:
        """Return the address in the form the socket module expects."""
        if self.family == socket.AF_INET6:
            return (self.host, self.port, 0, 0)
        return (self.host, self.port)


def _invalid(message: str) -> ApibError:
    return ApibError(Status(StatusCode.INVALID_URL, message))


def _split_host_port(hostport: str, url_str: str) -> tuple[str, int | None]:
    if hostport.startswith("["):
        end = hostport.find("]")
        if end < 0:
            raise _invalid(url_str)
        host = hostport[1:end]
        rest = hostport[end + 1:]
        if rest and not rest.startswith(":"):
            raise _invalid(url_str)
        port_str = rest[1:] if rest else None
    else:
        if hostport.count(":") > 1:
            raise _invalid(url_str)
        host, colon, port_str = hostport.partition(":")
        if not colon:
            port_str = None
    if not host:
        raise _invalid(url_str)
    if port_str is None:
        return host, None
    if not port_str.isdigit() or not port_str.isascii():
        raise _invalid(url_str)
    port = int(port_str)
    if port > _MAX_PORT:
        raise _invalid(url_str)
    return host, port


def _lookup(host_name: str) -> tuple[Status, tuple[tuple[int, str], ...]]:
    try:
        infos = socket.getaddrinfo(host_name, None, type=socket.SOCK_STREAM)
    except (socket.gaierror, UnicodeError) as e:
        return Status(StatusCode.DNS_ERROR, str(e)), ()
    found: list[tuple[int, str]] = []
    for family, _type, _proto, _canon, sockaddr in infos:
        entry = (family, sockaddr[0])
        if entry not in found:
            found.append(entry)
    return Status(), tuple(found)


@dataclass(frozen=True)
class URLInfo:
    """One parsed target URL together with the addresses its host resolved to."""

    port: int
    is_ssl: bool
    path: str
    path_only: str
    query: str
    host_name: str
    host_header: str
    lookup_status: Status = field(default_factory=Status)
    addresses: tuple[tuple[int, str], ...] = ()

    _urls: ClassVar[list[URLInfo]] = []
    _initialized: ClassVar[bool] = False

    @classmethod
    def parse(cls, url_str: str) -> URLInfo:
        """Parse a URL and resolve its host.

        A failed DNS lookup does not raise; it is recorded in lookup_status.
        """
        if not url_str or any(c.isspace() or ord(c) < 0x21 or ord(c) == 0x7F for c in url_str):
            raise _invalid(url_str)
        match = _URL_RE.match(url_str)
        if match is None:
            raise _invalid(url_str)
        scheme, authority, rest = match.groups()

        if scheme == HTTP:
            is_ssl = False
        elif scheme == HTTPS:
            is_ssl = True
        else:
            raise _invalid("Invalid scheme")

        hostport = authority.rpartition("@")[2]
        host_name, port = _split_host_port(hostport, url_str)
        if port is None:
            port = 443 if is_ssl else 80

        rest, _, fragment = rest.partition("#")
        path_part, _, query = rest.partition("?")
        path_only = path_part or "/"
        path = path_only
        if query:
            path = f"{path}?{query}"
        if fragment:
            path = f"{path}#{fragment}"

        if (is_ssl and port == 443) or (not is_ssl and port == 80):
            host_header = host_name
        else:
            host_header = f"{host_name}:{port}"

        lookup_status, addresses = _lookup(host_name)
        return cls(
            port=port,
            is_ssl=is_ssl,
            path=path,
            path_only=path_only,
            query=query,
            host_name=host_name,
            host_header=host_header,
            lookup_status=lookup_status,
            addresses=addresses,
        )

    @property
    def address_count(self) -> int:
        return len(self.addresses)

    def address(self, sequence: int) -> Address:
        """Pick the address a connection with this sequence number should use."""
        if not self.addresses:
            return Address()
        family, host = self.addresses[sequence % len(self.addresses)]
        return Address(family, host, self.port)

    @classmethod
    def _require_uninitialized(cls) -> None:
        if cls._initialized:
            raise ApibError(Status(StatusCode.INTERNAL_ERROR, "URLs already initialized"))

    @classmethod
    def init_one(cls, url_str: str) -> URLInfo:
        """Make this URL the one and only target of the session."""
        cls._require_uninitialized()
        url = cls.parse(url_str)
        cls._urls.append(url)
        cls._initialized = True
        return url

    @classmethod
    def init_file(cls, file_name: str) -> list[URLInfo]:
        """Read target URLs from a file, one per line."""
        cls._require_uninitialized()
        try:
            with open(file_name, encoding="utf-8") as f:
                lines = [line.rstrip("\r\n") for line in f]
        except (OSError, UnicodeDecodeError) as e:
            raise ApibError(Status(StatusCode.IO_ERROR, str(file_name))) from e
        urls = [cls.parse(line) for line in lines if line]
        cls._urls.extend(urls)
        print(f'Read {len(cls._urls)} URLs from "{file_name}"')
        cls._initialized = True
        return list(cls._urls)

    @classmethod
    def reset(cls) -> None:
        """Forget all URLs set up by init_one or init_file."""
        cls._urls.clear()
        cls._initialized = False

    @classmethod
    def get_next(cls, rand: random.Random | None = None) -> URLInfo | None:
        """Return a randomly chosen URL, or None if none are set up."""
        if not cls._urls:
            return None
        if len(cls._urls) == 1:
            return cls._urls[0]
        chooser = rand if rand is not None else random
        return cls._urls[chooser.randint(0, len(cls._urls) - 1)]

    @staticmethod
    def is_same_server(u1: URLInfo, u2: URLInfo, sequence: int) -> bool:
        """Return whether both URLs use the same address for this connection."""
        return u1.address(sequence) == u2.address(sequence)