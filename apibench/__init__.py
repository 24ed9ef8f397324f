"""Building blocks for benchmarking HTTP APIs: URLs, sockets, CPU sampling and reports."""

__version__ = "0.1.0"

__all__ = ["cpu", "reporting", "sockets", "status", "timeutil", "url", "util"]