"""Result codes and errors shared by the benchmark modules."""

from __future__ import annotations

import enum
import os
from dataclasses import dataclass

_MAX_MESSAGE_LEN = 63


class StatusCode(enum.Enum):
    """Category of a failure, or OK."""

    OK = enum.auto()
    SOCKET_ERROR = enum.auto()
    TLS_ERROR = enum.auto()
    DNS_ERROR = enum.auto()
    INVALID_URL = enum.auto()
    IO_ERROR = enum.auto()
    INTERNAL_ERROR = enum.auto()


_CODE_STRINGS = {
    StatusCode.OK: "ok",
    StatusCode.SOCKET_ERROR: "Socket error",
    StatusCode.TLS_ERROR: "TLS error",
    StatusCode.DNS_ERROR: "DNS error",
    StatusCode.INVALID_URL: "Invalid URL",
    StatusCode.IO_ERROR: "I/O error",
    StatusCode.INTERNAL_ERROR: "Internal error",
}


@dataclass(frozen=True)
class Status:
    """A status code with an optional human-readable message."""

    code: StatusCode = StatusCode.OK
    message: str = ""

    @classmethod
    def from_errno(cls, code: StatusCode, errnum: int) -> Status:
        """Build a status whose message describes the OS error number."""
        return cls(code, os.strerror(errnum)[:_MAX_MESSAGE_LEN])

    @property
    def ok(self) -> bool:
        return self.code is StatusCode.OK

    def code_string(self) -> str:
        """Return the short description of the status code."""
        return _CODE_STRINGS.get(self.code, "Unknown error")

    def __str__(self) -> str:
        if self.message:
            return f"{self.code_string()}: {self.message}"
        return self.code_string()


class ApibError(Exception):
    """Raised when an operation fails; carries the failing Status."""

    def __init__(self, status: Status) -> None:
        super().__init__(str(status))
        self.status = status

    @property
    def code(self) -> StatusCode:
        return self.status.code