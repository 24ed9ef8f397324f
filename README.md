# apibench

Building blocks for benchmarking HTTP APIs: parsing and resolving target
URLs, non-blocking plain and TLS client sockets, sampling local CPU and
memory use, and turning request counts, latencies and byte counts into a
report.

## Installation

```
pip install .
```

## Modules

### `apibench.url`

- `URLInfo.parse(url_str)` parses an `http` or `https` URL into `host_name`,
  `port` (80 or 443 when none is given), `path` (path plus query and
  fragment), `path_only`, `query` and `host_header` (the host name, with
  `:port` added when the port is not the scheme's default). A malformed URL
  or another scheme raises `ApibError` with `StatusCode.INVALID_URL`.
  The host is resolved at once; a failed lookup does not raise but is kept
  in `lookup_status`, and the URL then has no addresses.
- `URLInfo.address(sequence)` picks one of the resolved addresses by
  connection sequence number, so connections spread over all of a host's
  addresses. It returns an `Address` whose `valid` is false when there are
  none. `address_count` gives the number resolved.
- `URLInfo.init_one(url_str)` sets a single target URL for the process;
  `URLInfo.init_file(file_name)` reads one URL per line, skipping blank
  lines, and raises `ApibError` with `StatusCode.IO_ERROR` if the file cannot
  be read. Calling either a second time without `URLInfo.reset()` raises
  `ApibError` with `StatusCode.INTERNAL_ERROR`.
- `URLInfo.get_next(rand)` returns a randomly chosen target (using the given
  `random.Random`, or the `random` module when `rand` is `None`), or `None`
  if no URLs are set up.
- `URLInfo.is_same_server(u1, u2, sequence)` tells whether two URLs use the
  same address for a given connection.

### `apibench.sockets`

`Socket` and `TLSSocket` are non-blocking client connections.
`Socket.connect(address)` starts connecting to an `Address`;
`TLSSocket.connect_tls(address, host_name, context)` does the same and sets
up a client TLS session from an `ssl.SSLContext`. `write(data)` returns an
`(IOStatus, bytes_written)` pair and `read(count)` an `(IOStatus, data)`
pair. `IOStatus.NEED_READ` and `IOStatus.NEED_WRITE` mean the call should be
repeated once the socket is readable or writable; `IOStatus.FEOF` means a TLS
peer has shut down. On a plain socket an empty `OK` read means the peer
closed. `close()` on a TLS socket may likewise need repeating. Failures raise
`ApibError` with `StatusCode.SOCKET_ERROR` or `StatusCode.TLS_ERROR`.

### `apibench.cpu`

`CPUUsage.current()` takes a snapshot of cumulative CPU time and
`CPUUsage.interval()` returns the busy fraction (0 to 1) since the snapshot,
then moves the snapshot forward. `memory_usage()` returns the fraction of RAM
in use, or a negative number if unknown. `cpu_count()` and `cpu_available()`
describe the host.

### `apibench.reporting`

`Reporter(monitor_host, monitor2_host)` gathers results for a run. Worker
threads are any objects with an `exchange_counters()` method that returns
their `Counters` (successful and failed requests, bytes read and written,
latencies in nanoseconds) and starts a fresh set.

- `record_start(start_reporting, threads)` zeroes everything and starts
  timing; `record_stop(threads)` collects the final counters.
- `record_connection_open()`, `record_socket_error()` and
  `record_byte_counts(sent, received)` count events during a run.
- `report_interval_results(threads)` returns `BenchmarkIntervalResults` for
  the time since the last call; `report_interval(out, threads,
  total_duration, warmup)` prints it as a progress line with CPU use, and
  `sample_cpu()` takes a CPU sample when no progress line is printed.
- `report_results()` returns `BenchmarkResults`: counts, elapsed seconds,
  throughput, average latency, standard deviation and the 0–100th latency
  percentiles in milliseconds, and send and receive bandwidth in megabits
  per second.
- `print_full_results(out)` prints a readable report;
  `print_short_results(out, run_name, num_threads, connections)` prints one
  CSV line whose columns are written by `print_reporting_header(out)`.
- `end_reporting()` closes monitor connections.

A monitor host is given as `host:port`. The reporter connects to it over
TCP, sends the text commands `cpu` and `mem`, and reads back a number for
the remote CPU and memory use. An empty string means no monitor.

### `apibench.status` and `apibench.util`

`Status` pairs a `StatusCode` with a message; `ApibError` is the exception
raised on failure and carries it as `status`. `timeutil` gives wall-clock
time in nanoseconds (`get_time`) and converts it with `seconds` and
`milliseconds`. `util.eqcase` compares strings ignoring case.

## Example

```python
import sys

from apibench.reporting import Counters, Reporter, print_reporting_header
from apibench.url import URLInfo


class Worker:
    def __init__(self):
        self.counters = Counters()

    def exchange_counters(self):
        current, self.counters = self.counters, Counters()
        return current


URLInfo.init_one("http://localhost:8080/hello")
target = URLInfo.get_next(None)
print(target.host_header, target.path)

worker = Worker()
reporter = Reporter("", "")
reporter.record_start(True, [worker])
worker.counters.successful_requests += 1
worker.counters.latencies.append(12_000_000)
reporter.record_stop([worker])

print_reporting_header(sys.stdout)
reporter.print_short_results(sys.stdout, "run-1", 1, 1)
reporter.end_reporting()
```

## What it does not do

The package provides the parts a benchmark is built from, not a finished
tool. It has no command-line program, no worker threads that send HTTP
requests and parse responses, no monitoring server for `Reporter` to talk
to, and no HTTP test server. These are left to the code that uses it.

## Tests

```
pip install ".[test]"
pytest
```