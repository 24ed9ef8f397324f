"""Non-blocking client sockets, plain and TLS."""

from __future__ import annotations

import enum
import errno
import socket
import ssl
import struct

from apibench.status import ApibError, Status, StatusCode
from apibench.url import Address


class IOStatus(enum.Enum):
    """Outcome of a non-blocking socket operation."""

    OK = enum.auto()
    NEED_READ = enum.auto()
    NEED_WRITE = enum.auto()
    FEOF = enum.auto()


def _socket_error(e: OSError) -> ApibError:
    return ApibError(Status.from_errno(StatusCode.SOCKET_ERROR, e.errno or errno.EIO))


def _tls_error(e: Exception) -> ApibError:
    return ApibError(Status(StatusCode.TLS_ERROR, str(e)))


class Socket:
    """A non-blocking TCP client socket. It is unusable until connect is called."""

    def __init__(self) -> None:
        self._sock: socket.socket | None = None

    @property
    def fd(self) -> int:
        return self._sock.fileno() if self._sock is not None else -1

    def _require_socket(self) -> socket.socket:
        if self._sock is None:
            raise ApibError(Status.from_errno(StatusCode.SOCKET_ERROR, errno.EBADF))
        return self._sock

    def connect(self, address: Address) -> None:
        """Start a non-blocking connection to the address."""
        if not address.valid:
            raise ApibError(Status.from_errno(StatusCode.SOCKET_ERROR, errno.EAFNOSUPPORT))
        try:
            sock = socket.socket(address.family, socket.SOCK_STREAM)
        except OSError as e:
            raise _socket_error(e) from e
        try:
            # Low latency; we are not sending keystrokes.
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            # No lingering, so tests without keep-alive do not run out of sockets.
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, struct.pack("ii", 0, 0))
            sock.setblocking(False)
            err = sock.connect_ex(address.sockaddr)
            if err not in (0, errno.EINPROGRESS):
                raise OSError(err, "connect failed")
        except OSError as e:
            sock.close()
            raise _socket_error(e) from e
        self._sock = sock

    def write(self, data: bytes) -> tuple[IOStatus, int]:
        """Write what the socket accepts now; return the status and byte count."""
        sock = self._require_socket()
        try:
            return IOStatus.OK, sock.send(data)
        except BlockingIOError:
            return IOStatus.NEED_WRITE, 0
        except OSError as e:
            raise _socket_error(e) from e

    def read(self, count: int) -> tuple[IOStatus, bytes]:
        """Read up to count bytes; an empty OK result means the peer closed."""
        sock = self._require_socket()
        try:
            return IOStatus.OK, sock.recv(count)
        except BlockingIOError:
            return IOStatus.NEED_READ, b""
        except OSError as e:
            raise _socket_error(e) from e

    def close(self) -> IOStatus:
        """Close the socket."""
        sock = self._require_socket()
        self._sock = None
        try:
            sock.close()
        except OSError as e:
            raise _socket_error(e) from e
        return IOStatus.OK


class TLSSocket(Socket):
    """A non-blocking TLS client socket driven through memory buffers."""

    def __init__(self) -> None:
        super().__init__()
        self._ssl: ssl.SSLObject | None = None
        self._incoming = ssl.MemoryBIO()
        self._outgoing = ssl.MemoryBIO()
        self._pending = b""
        self._handshaken = False
        self._shutdown_sent = False

    def connect_tls(self, address: Address, host_name: str, context: ssl.SSLContext) -> None:
        """Connect to the address and prepare a client TLS session for host_name."""
        self.connect(address)
        try:
            self._ssl = context.wrap_bio(
                self._incoming, self._outgoing, server_side=False, server_hostname=host_name
            )
        except (ssl.SSLError, ValueError) as e:
            raise _tls_error(e) from e

    def _require_ssl(self) -> ssl.SSLObject:
        if self._ssl is None:
            raise ApibError(Status(StatusCode.TLS_ERROR, "TLS session not connected"))
        return self._ssl

    def _flush(self) -> None:
        self._pending += self._outgoing.read()
        if not self._pending or self._sock is None:
            return
        try:
            sent = self._sock.send(self._pending)
        except BlockingIOError:
            return
        except OSError as e:
            raise _socket_error(e) from e
        self._pending = self._pending[sent:]

    def _fill(self) -> None:
        if self._sock is None or self._incoming.eof:
            return
        while True:
            try:
                chunk = self._sock.recv(65536)
            except BlockingIOError:
                return
            except OSError as e:
                raise _socket_error(e) from e
            if not chunk:
                self._incoming.write_eof()
                return
            self._incoming.write(chunk)

    def _handshake(self, obj: ssl.SSLObject) -> None:
        if not self._handshaken:
            obj.do_handshake()
            self._handshaken = True

    def write(self, data: bytes) -> tuple[IOStatus, int]:
        obj = self._require_ssl()
        self._flush()
        self._fill()
        try:
            self._handshake(obj)
            written = obj.write(data)
        except ssl.SSLWantReadError:
            self._flush()
            return IOStatus.NEED_READ, 0
        except ssl.SSLWantWriteError:
            self._flush()
            return IOStatus.NEED_WRITE, 0
        except ssl.SSLError as e:
            raise _tls_error(e) from e
        self._flush()
        return IOStatus.OK, written

    def read(self, count: int) -> tuple[IOStatus, bytes]:
        obj = self._require_ssl()
        self._flush()
        self._fill()
        try:
            self._handshake(obj)
            data = obj.read(count)
        except ssl.SSLWantReadError:
            self._flush()
            return IOStatus.NEED_READ, b""
        except ssl.SSLWantWriteError:
            self._flush()
            return IOStatus.NEED_WRITE, b""
        except ssl.SSLZeroReturnError:
            return IOStatus.FEOF, b""
        except (ssl.SSLEOFError, ssl.SSLSyscallError) as e:
            # After our own shutdown, an abrupt end is expected.
            if self._shutdown_sent:
                return IOStatus.FEOF, b""
            raise _tls_error(e) from e
        except ssl.SSLError as e:
            raise _tls_error(e) from e
        self._flush()
        return IOStatus.OK, data

    def close(self) -> IOStatus:
        obj = self._require_ssl()
        self._shutdown_sent = True
        self._flush()
        self._fill()
        try:
            obj.unwrap()
        except ssl.SSLWantReadError:
            self._flush()
            return IOStatus.NEED_READ
        except ssl.SSLWantWriteError:
            self._flush()
            return IOStatus.NEED_WRITE
        except (ssl.SSLZeroReturnError, ssl.SSLEOFError, ssl.SSLSyscallError):
            return IOStatus.FEOF
        except ssl.SSLError as e:
            raise _tls_error(e) from e
        self._flush()
        super().close()
        return IOStatus.OK