"""
Result sinks.

A sink receives every ``SessionResult`` after the aggregator has folded it
in, then a snapshot of the aggregate. Sinks only read what they are given.
"""

from pathlib import Path
from typing import List, Optional, TextIO

from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeElapsedColumn

from .config import SimulationConfig
from .log import console as default_console
from .models import SessionResult
from .stats import AggregateStatsView

URL_WIDTH = 100
SEPARATOR = "-" * 66


class Sink:
    """Base sink; every hook is optional."""

    def consume(self, result: SessionResult) -> None:
        pass

    def snapshot(self, view: AggregateStatsView) -> None:
        pass

    def message(self, text: str) -> None:
        pass

    def close(self) -> None:
        pass


class CompositeSink(Sink):
    """Fans every call out to several sinks, in order."""

    def __init__(self, *sinks: Sink):
        self.sinks: List[Sink] = list(sinks)

    def consume(self, result: SessionResult) -> None:
        for sink in self.sinks:
            sink.consume(result)

    def snapshot(self, view: AggregateStatsView) -> None:
        for sink in self.sinks:
            sink.snapshot(view)

    def message(self, text: str) -> None:
        for sink in self.sinks:
            sink.message(text)

    def close(self) -> None:
        for sink in self.sinks:
            sink.close()


def _truncate(text: str, width: int) -> str:
    return text if len(text) <= width else text[: width - 3] + "..."


def format_session_block(result: SessionResult) -> str:
    """Render one session as a plain-text log block."""
    lines = [f"--- User {result.user_id} ---", f"URL: {result.url}"]
    if result.error is not None:
        lines.append(f"ERROR: {result.error_message}")
    lines.append(f"Load Time: {result.load_time / 1000:.3f}s")

    measured = [r for r in result.requests if r.resource_type != "document" and r.measured]
    unmeasured = sum(1 for r in result.requests if not r.measured)
    heading = "Requests captured before failure" if result.error is not None else "Internal Requests"
    suffix = f", {unmeasured} unmeasured" if unmeasured else ""
    lines.append(f"{heading} ({len(measured)}{suffix}):")
    for record in sorted(measured, key=lambda r: r.duration, reverse=True):
        lines.append(f"  - [{record.duration / 1000:.3f}s] {_truncate(record.url, URL_WIDTH)}")
    return "\n".join(lines) + "\n\n"


def format_summary_block(view: AggregateStatsView) -> str:
    """Render the end-of-run summary as plain text."""
    o = view.overall
    lines = [
        "",
        "--- Simulation Summary ---",
        "",
        f"Sessions:          {o.sessions} (OK: {o.success_count}, Errors: {o.error_count})",
        f"Success Rate:      {o.success_rate:.2f}%",
        f"Total Requests:    {o.total_requests}",
        f"Avg Requests/User: {o.avg_requests_per_user:.2f}",
        f"Avg Load Time:     {o.avg_time_in_seconds:.2f}s",
        "",
        f"Top {len(view.top_slowest_requests)} Slowest Requests:",
        SEPARATOR,
    ]
    for record in view.top_slowest_requests:
        lines.append(f"{record.duration:>8.0f} ms | {record.resource_type:<10} | {_truncate(record.url, URL_WIDTH)}")
    lines += [
        SEPARATOR,
        "",
        f"Top {len(view.top_domains_by_avg_latency)} Slowest Domains (by average resource load time):",
        SEPARATOR,
    ]
    for item in view.top_domains_by_avg_latency:
        lines.append(f"{f'{item.avg_time:.0f} ms':<10} | {item.domain} ({item.count} requests)")
    lines += [
        SEPARATOR,
        "",
        f"Top {len(view.top_domains_by_access)} Most Accessed Domains:",
        SEPARATOR,
    ]
    for access in view.top_domains_by_access:
        lines.append(f"{access.count:<10} | {access.domain}")
    lines += [SEPARATOR, "", "Resource Types:"]
    for resource_type, count in sorted(view.resource_types.items(), key=lambda item: item[1], reverse=True):
        lines.append(f"  {resource_type:<12} {count}")
    return "\n".join(lines) + "\n"


class LogFileSink(Sink):
    """Plain-text log: one block per session, a summary block at the end."""

    def __init__(self, path: str, append: bool = False):
        self.path = Path(path)
        self._stream: Optional[TextIO] = self.path.open("a" if append else "w", encoding="utf-8")

    def _write(self, text: str) -> None:
        if self._stream is None:
            return
        self._stream.write(text)
        self._stream.flush()

    def consume(self, result: SessionResult) -> None:
        self._write(format_session_block(result))

    def snapshot(self, view: AggregateStatsView) -> None:
        if view.final:
            self._write(format_summary_block(view))

    def close(self) -> None:
        if self._stream is not None:
            self._stream.close()
            self._stream = None


class ProgressSink(Sink):
    """Progress bar for file output mode."""

    def __init__(self, total: int, console: Optional[Console] = None):
        self.progress = Progress(
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TextColumn("[green]{task.fields[ok]} ok[/green] [red]{task.fields[errors]} errors[/red]"),
            TimeElapsedColumn(),
            console=console or default_console,
        )
        self.task = self.progress.add_task("Sessions", total=total, ok=0, errors=0)
        self.ok = 0
        self.errors = 0
        self.progress.start()

    def consume(self, result: SessionResult) -> None:
        if result.ok:
            self.ok += 1
        else:
            self.errors += 1
        self.progress.update(self.task, advance=1, ok=self.ok, errors=self.errors)

    def close(self) -> None:
        self.progress.stop()


def create_sink(config: SimulationConfig, console: Optional[Console] = None) -> Sink:
    """Build the sink for ``config.output_mode``."""
    if config.output_mode == "dashboard":
        from .dashboard import DashboardSink
        return DashboardSink(config, console=console)
    return CompositeSink(
        LogFileSink(config.log_file, append=config.append_log),
        ProgressSink(config.total_users, console=console),
    )
