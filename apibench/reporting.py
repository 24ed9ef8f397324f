"""Collection and presentation of benchmark results."""

from __future__ import annotations

import math
import re
import socket
import sys
import threading
from dataclasses import dataclass, field
from typing import Iterable, Protocol, TextIO

from apibench.cpu import CPUUsage, cpu_available, memory_usage
from apibench.timeutil import get_time, milliseconds, seconds

_CPU_COMMAND = b"cpu\n"
_MEM_COMMAND = b"mem\n"
_MONITOR_READ_SIZE = 64
_MEGABYTE = 1048576.0
_NUMBER_RE = re.compile(r"\s*[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")

_HEADER = (
    "Name,Throughput,Avg. Latency,Threads,Connections,Duration,"
    "Completed,Successful,Errors,Sockets,"
    "Min. latency,Max. latency,50% Latency,90% Latency,"
    "98% Latency,99% Latency,Latency Std Dev,Avg Client CPU,"
    "Avg Server CPU,Avg Server 2 CPU,"
    "Client Mem Usage,Server Mem,Server 2 Mem,"
    "Avg. Send Bandwidth,Avg. Recv. Bandwidth\n"
)


@dataclass
class Counters:
    """Per-thread counters, swapped out of each I/O thread when reporting."""

    successful_requests: int = 0
    failed_requests: int = 0
    bytes_read: int = 0
    bytes_written: int = 0
    latencies: list[int] = field(default_factory=list)


class CounterSource(Protocol):
    """Anything that hands over its counters and starts a fresh set."""

    def exchange_counters(self) -> Counters: ...


@dataclass
class BenchmarkResults:
    """Totals for a whole run. Times in seconds, latencies in milliseconds."""

    completed_requests: int = 0
    successful_requests: int = 0
    unsuccessful_requests: int = 0
    socket_errors: int = 0
    connections_opened: int = 0
    total_bytes_sent: int = 0
    total_bytes_received: int = 0
    elapsed_time: float = 0.0
    average_latency: float = 0.0
    latency_std_dev: float = 0.0
    latencies: list[float] = field(default_factory=lambda: [0.0] * 101)
    average_throughput: float = 0.0
    average_send_bandwidth: float = 0.0
    average_receive_bandwidth: float = 0.0


@dataclass
class BenchmarkIntervalResults:
    """Results for one reporting interval."""

    successful_requests: int = 0
    elapsed_time: float = 0.0
    interval_time: float = 0.0
    average_throughput: float = 0.0


def _ratio(a: float, b: float) -> float:
    """Divide the way IEEE floating point does, without raising on zero."""
    if b != 0:
        return a / b
    if a == 0 or math.isnan(a):
        return math.nan
    return math.copysign(math.inf, a) * math.copysign(1.0, b)


def _parse_leading_float(text: str) -> float:
    match = _NUMBER_RE.match(text)
    return float(match.group(0)) if match else 0.0


class _Monitor:
    """A connection to a remote monitoring server that reports CPU and memory."""

    def __init__(self, host: str) -> None:
        self.host = host
        self.sock: socket.socket | None = None
        self.samples: list[float] = []
        self.mem = 0.0

    @property
    def connected(self) -> bool:
        return self.sock is not None

    def connect(self) -> None:
        host_name, colon, port_str = self.host.partition(":")
        if not colon or not port_str:
            print(f'Invalid monitor host "{self.host}"', file=sys.stderr)
            return
        try:
            port = int(port_str)
        except ValueError:
            print(f'Invalid monitor host and port "{self.host}"', file=sys.stderr)
            return
        try:
            infos = socket.getaddrinfo(host_name, port, socket.AF_INET, socket.SOCK_STREAM)
        except (socket.gaierror, UnicodeError) as e:
            print(f"Cannot look up remote monitoring host: {e}", file=sys.stderr)
            return
        family, _type, _proto, _canon, sockaddr = infos[0]
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            sock.connect(sockaddr)
        except OSError as e:
            print(
                f"Connection error: {e.errno}\n"
                f'Cannot connect to remote monitoring host "{host_name} on port {port}',
                file=sys.stderr,
            )
            sock.close()
            return
        self.sock = sock

    def stat(self, command: bytes) -> float:
        if self.sock is None:
            return 0.0
        try:
            self.sock.sendall(command)
        except OSError as e:
            print(f"Error writing to monitoring server: {e.errno}", file=sys.stderr)
            self.close()
            return 0.0
        try:
            data = self.sock.recv(_MONITOR_READ_SIZE)
        except OSError as e:
            print(f"Error reading from monitoring server: {e.errno}", file=sys.stderr)
            self.close()
            return 0.0
        if not data:
            print("Error reading from monitoring server: 0", file=sys.stderr)
            self.close()
            return 0.0
        return _parse_leading_float(data.decode("ascii", errors="replace"))

    def close(self) -> None:
        if self.sock is not None:
            self.sock.close()
            self.sock = None


def _latency_percent(latencies: list[int], percent: int) -> int:
    if not latencies:
        return 0
    if percent == 100:
        return latencies[-1]
    return latencies[int((len(latencies) / 100.0) * percent)]


def _average_latency(latencies: list[int]) -> int:
    if not latencies:
        return 0
    return sum(latencies) // len(latencies)


def _latency_std_dev(latencies: list[int]) -> float:
    if not latencies:
        return 0.0
    avg = int(milliseconds(_average_latency(latencies)))
    differences = sum((milliseconds(lat) - avg) ** 2 for lat in latencies)
    return math.sqrt(differences / len(latencies))


def _average(samples: list[float]) -> float:
    return sum(samples) / len(samples) if samples else 0.0


def _maximum(samples: list[float]) -> float:
    return max(samples) if samples else 0.0


class Reporter:
    """Accumulates counters from I/O threads and produces benchmark reports."""

    def __init__(self, monitor_host: str = "", monitor2_host: str = "") -> None:
        self._lock = threading.Lock()
        self.cpu_available = cpu_available()
        self._monitor = _Monitor(monitor_host)
        self._monitor2 = _Monitor(monitor2_host)
        self._reporting = False
        self._socket_errors = 0
        self._connections_opened = 0
        self._successful = 0
        self._unsuccessful = 0
        self._start_time = 0
        self._stop_time = 0
        self._interval_start = 0
        self._accumulated: list[Counters] = []
        self._client_samples: list[float] = []
        self._client_mem = 0.0
        self._cpu_usage = CPUUsage()
        self._bytes_sent = 0
        self._bytes_received = 0

    def _monitors(self) -> tuple[_Monitor, _Monitor]:
        return self._monitor, self._monitor2

    def record_socket_error(self) -> None:
        """Count a socket error, if a run is being reported."""
        if not self._reporting:
            return
        with self._lock:
            self._socket_errors += 1

    def record_connection_open(self) -> None:
        """Count a newly opened connection, if a run is being reported."""
        if not self._reporting:
            return
        with self._lock:
            self._connections_opened += 1

    def record_byte_counts(self, sent: int, received: int) -> None:
        """Add to the totals of bytes sent and received."""
        with self._lock:
            self._bytes_sent += sent
            self._bytes_received += received

    def _absorb(self, threads: Iterable[CounterSource]) -> tuple[int, int]:
        successes = failures = 0
        for thread in threads:
            c = thread.exchange_counters()
            self._bytes_received += c.bytes_read
            self._bytes_sent += c.bytes_written
            successes += c.successful_requests
            failures += c.failed_requests
            self._accumulated.append(c)
        return successes, failures

    def record_start(self, start_reporting: bool, threads: Iterable[CounterSource]) -> None:
        """Zero all counters and begin a run."""
        with self._lock:
            self._successful = 0
            self._unsuccessful = 0
            self._socket_errors = 0
            self._connections_opened = 0
            self._bytes_sent = 0
            self._bytes_received = 0
            self._accumulated.clear()

            # Threads may already have counted work during warm-up.
            for thread in threads:
                thread.exchange_counters()

            self._reporting = start_reporting
            self._cpu_usage = CPUUsage.current()

            for monitor in self._monitors():
                if not monitor.host:
                    continue
                if monitor.connected:
                    monitor.stat(_CPU_COMMAND)
                else:
                    monitor.connect()

            self._start_time = get_time()
            self._interval_start = self._start_time
            self._client_samples.clear()
            for monitor in self._monitors():
                monitor.samples.clear()

    def record_stop(self, threads: Iterable[CounterSource]) -> None:
        """End a run, collecting the final counters from every thread."""
        self.sample_cpu()
        self._client_mem = memory_usage()
        for monitor in self._monitors():
            if monitor.connected:
                monitor.mem = monitor.stat(_MEM_COMMAND)

        self._reporting = False
        with self._lock:
            successes, failures = self._absorb(threads)
            self._successful += successes
            self._unsuccessful += failures
        self._stop_time = get_time()

    def report_interval_results(
        self, threads: Iterable[CounterSource]
    ) -> BenchmarkIntervalResults:
        """Collect results since the last interval; may be called while running."""
        now = get_time()
        with self._lock:
            successes, failures = self._absorb(threads)
            self._successful += successes
            self._unsuccessful += failures

        interval_time = seconds(now - self._interval_start)
        result = BenchmarkIntervalResults(
            successful_requests=successes,
            interval_time=interval_time,
            elapsed_time=seconds(now - self._start_time),
            average_throughput=_ratio(float(successes), interval_time),
        )
        self._interval_start = now
        return result

    def sample_cpu(self) -> None:
        """Take a CPU sample locally and from any connected monitors."""
        for monitor in self._monitors():
            if monitor.connected:
                monitor.samples.append(monitor.stat(_CPU_COMMAND))
        self._client_samples.append(self._cpu_usage.interval())

    def report_interval(
        self,
        out: TextIO,
        threads: Iterable[CounterSource],
        total_duration: int,
        warmup: bool,
    ) -> None:
        """Sample CPU, collect interval results and print a progress line."""
        remote_cpu = 0.0
        if self._monitor.connected:
            remote_cpu = self._monitor.stat(_CPU_COMMAND)
            self._monitor.samples.append(remote_cpu)
        if self._monitor2.connected:
            self._monitor2.samples.append(self._monitor2.stat(_CPU_COMMAND))
        cpu = self._cpu_usage.interval()
        self._client_samples.append(cpu)

        r = self.report_interval_results(threads)
        warm = "Warming up: " if warmup else ""
        line = "%s(%.0f / %i) %.3f" % (warm, r.elapsed_time, total_duration, r.average_throughput)
        if cpu > 0.0:
            line += " %.0f%% cpu" % (cpu * 100.0)
        if remote_cpu > 0.0:
            line += " %.0f%% remote cpu" % (remote_cpu * 100.0)
        out.write(line + "\n")

    def report_results(self) -> BenchmarkResults:
        """Compute totals for the run; call after record_stop."""
        with self._lock:
            all_latencies = sorted(
                lat for counters in self._accumulated for lat in counters.latencies
            )
            completed = self._successful + self._unsuccessful
            elapsed = seconds(self._stop_time - self._start_time)
            return BenchmarkResults(
                completed_requests=completed,
                successful_requests=self._successful,
                unsuccessful_requests=self._unsuccessful,
                socket_errors=self._socket_errors,
                connections_opened=self._connections_opened,
                total_bytes_sent=self._bytes_sent,
                total_bytes_received=self._bytes_received,
                elapsed_time=elapsed,
                average_latency=milliseconds(_average_latency(all_latencies)),
                latency_std_dev=_latency_std_dev(all_latencies),
                latencies=[
                    milliseconds(_latency_percent(all_latencies, p)) for p in range(101)
                ],
                average_throughput=_ratio(float(completed), elapsed),
                average_send_bandwidth=_ratio(self._bytes_sent * 8.0 / _MEGABYTE, elapsed),
                average_receive_bandwidth=_ratio(
                    self._bytes_received * 8.0 / _MEGABYTE, elapsed
                ),
            )

    def print_full_results(self, out: TextIO) -> None:
        """Print a human-readable report of the whole run."""
        r = self.report_results()
        lines = [
            "Duration:             %.3f seconds" % r.elapsed_time,
            "Attempted requests:   %i" % r.completed_requests,
            "Successful requests:  %i" % r.successful_requests,
            "Non-200 results:      %i" % r.unsuccessful_requests,
            "Connections opened:   %i" % r.connections_opened,
            "Socket errors:        %i" % r.socket_errors,
            "",
            "Throughput:           %.3f requests/second" % r.average_throughput,
            "Average latency:      %.3f milliseconds" % r.average_latency,
            "Minimum latency:      %.3f milliseconds" % r.latencies[0],
            "Maximum latency:      %.3f milliseconds" % r.latencies[100],
            "Latency std. dev:     %.3f milliseconds" % r.latency_std_dev,
            "50%% latency:          %.3f milliseconds" % r.latencies[50],
            "90%% latency:          %.3f milliseconds" % r.latencies[90],
            "98%% latency:          %.3f milliseconds" % r.latencies[98],
            "99%% latency:          %.3f milliseconds" % r.latencies[99],
            "",
        ]
        if self._client_samples:
            lines.append("Client CPU average:   %.0f%%" % (_average(self._client_samples) * 100.0))
            lines.append("Client CPU max:       %.0f%%" % (_maximum(self._client_samples) * 100.0))
        lines.append("Client memory usage:  %.0f%%" % (self._client_mem * 100.0))
        if self._monitor.samples:
            m = self._monitor
            lines.append("Remote CPU average:   %.0f%%" % (_average(m.samples) * 100.0))
            lines.append("Remote CPU max:       %.0f%%" % (_maximum(m.samples) * 100.0))
            lines.append("Remote memory usage:  %.0f%%" % (m.mem * 100.0))
        if self._monitor2.samples:
            m = self._monitor2
            lines.append("Remote 2 CPU average:   %.0f%%" % (_average(m.samples) * 100.0))
            lines.append("Remote 2 CPU max:       %.0f%%" % (_maximum(m.samples) * 100.0))
            lines.append("Remote 2 memory usage:  %.0f%%" % (m.mem * 100.0))
        lines += [
            "",
            "Total bytes sent:     %.2f megabytes" % (r.total_bytes_sent / _MEGABYTE),
            "Total bytes received: %.2f megabytes" % (r.total_bytes_received / _MEGABYTE),
            "Send bandwidth:       %.2f megabits / second" % r.average_send_bandwidth,
            "Receive bandwidth:    %.2f megabits / second" % r.average_receive_bandwidth,
        ]
        out.write("\n".join(lines) + "\n")

    def print_short_results(
        self, out: TextIO, run_name: str, num_threads: int, connections: int
    ) -> None:
        """Print one CSV line; columns match print_reporting_header."""
        r = self.report_results()
        out.write(
            "%s,%.3f,%.3f,%i,%i,%.3f,%i,%i,%i,%i,%.3f,%.3f,%.3f,%.3f,%.3f,%.3f,"
            "%.3f,%.0f,%.0f,%.0f,%.0f,%.0f,%.0f,%.2f,%.2f\n"
            % (
                run_name,
                r.average_throughput,
                r.average_latency,
                num_threads,
                connections,
                r.elapsed_time,
                r.completed_requests,
                r.successful_requests,
                r.socket_errors,
                r.connections_opened,
                r.latencies[0],
                r.latencies[100],
                r.latencies[50],
                r.latencies[90],
                r.latencies[98],
                r.latencies[99],
                r.latency_std_dev,
                _average(self._client_samples) * 100.0,
                _average(self._monitor.samples) * 100.0,
                _average(self._monitor2.samples) * 100.0,
                self._client_mem * 100.0,
                self._monitor.mem * 100.0,
                self._monitor2.mem * 100.0,
                r.average_send_bandwidth,
                r.average_receive_bandwidth,
            )
        )

    def end_reporting(self) -> None:
        """Close any connections to monitoring servers."""
        for monitor in self._monitors():
            monitor.close()


def print_reporting_header(out: TextIO) -> None:
    """Print the CSV header for the short result format."""
    out.write(_HEADER)