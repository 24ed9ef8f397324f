"""Local CPU and memory measurement."""

from __future__ import annotations

import os
import time
from dataclasses import dataclass

import psutil


def cpu_count() -> int:
    """Return the number of CPUs, or 1 if it cannot be determined."""
    count = psutil.cpu_count() or os.cpu_count()
    return count if count and count > 0 else 1


def cpu_available() -> bool:
    """Return whether CPU usage can be measured on this platform."""
    try:
        psutil.cpu_times()
    except (OSError, RuntimeError, NotImplementedError):
        return False
    return True


def _read_times() -> tuple[float, float]:
    times = psutil.cpu_times()
    non_idle = times.user + getattr(times, "nice", 0.0) + times.system
    idle = times.idle + getattr(times, "iowait", 0.0)
    return idle, non_idle


@dataclass
class CPUUsage:
    """A snapshot of cumulative idle and busy CPU time across all CPUs."""

    idle: float = 0.0
    non_idle: float = 0.0
    timestamp: int = 0

    @classmethod
    def current(cls) -> CPUUsage:
        """Take a snapshot of the current CPU counters."""
        idle, non_idle = _read_times()
        return cls(idle=idle, non_idle=non_idle, timestamp=time.time_ns())

    def interval(self) -> float:
        """Return the busy ratio (0 to 1) since this snapshot, then advance it.

        Busy time counts user, nice and system time across all CPUs.
        """
        now = CPUUsage.current()
        idle_delta = now.idle - self.idle
        busy_delta = now.non_idle - self.non_idle
        total = idle_delta + busy_delta
        self.idle = now.idle
        self.non_idle = now.non_idle
        self.timestamp = now.timestamp
        if total <= 0.0:
            return 0.0
        return min(1.0, max(0.0, busy_delta / total))


def memory_usage() -> float:
    """Return the fraction of RAM in use, or a negative number if unknown."""
    try:
        mem = psutil.virtual_memory()
    except (OSError, RuntimeError, NotImplementedError):
        return -1.0
    if mem.total <= 0:
        return -1.0
    return (mem.total - mem.available) / mem.total