"""Live terminal dashboard built on rich."""

from collections import deque
from typing import Deque, Iterable, Optional

from rich.align import Align
from rich.console import Console, Group
from rich.layout import Layout
from rich.live import Live
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .config import SimulationConfig
from .log import console as default_console
from .models import SessionResult
from .sinks import Sink
from .stats import AggregateStatsView, OverallStats

SPARK_CHARS = "▁▂▃▄▅▆▇█"
CHART_POINTS = 50
EVENT_LOG_LINES = 12
DOMAIN_WIDTH = 23
URL_WIDTH = 50


def sparkline(values: Iterable[float]) -> str:
    """Scale ``values`` onto block characters, tallest value = full block."""
    values = list(values)
    if not values:
        return ""
    peak = max(values)
    if peak <= 0:
        return SPARK_CHARS[0] * len(values)
    top = len(SPARK_CHARS) - 1
    return "".join(SPARK_CHARS[min(top, int(v / peak * top))] for v in values)


class DashboardSink(Sink):
    """
    Full-screen view of a running simulation.

    Panels: response-time sparkline for the last 50 sessions, running stats,
    event log, slowest domains, configuration and run status.
    """

    def __init__(self, config: SimulationConfig, console: Optional[Console] = None):
        self.config = config
        self.load_times: Deque[float] = deque(maxlen=CHART_POINTS)
        self.events: Deque[str] = deque(maxlen=EVENT_LOG_LINES)
        self.view: Optional[AggregateStatsView] = None
        self.complete = False

        self.layout = Layout()
        self.layout.split_column(
            Layout(name="header", size=3),
            Layout(name="top", ratio=5),
            Layout(name="middle", ratio=5),
            Layout(name="bottom", size=8),
        )
        self.layout["top"].split_row(Layout(name="chart", ratio=2), Layout(name="stats", ratio=1))
        self.layout["middle"].split_row(Layout(name="events", ratio=2), Layout(name="domains", ratio=1))
        self.layout["bottom"].split_row(Layout(name="config", ratio=2), Layout(name="status", ratio=1))
        self._render()

        self.live = Live(self.layout, console=console or default_console, refresh_per_second=4, screen=False)
        self.live.start()

    # =========================================================================
    # Sink hooks
    # =========================================================================

    def consume(self, result: SessionResult) -> None:
        if result.error is not None:
            self.events.append(f"[red]ERROR[/red] | User {result.user_id}: {escape((result.error_message or '')[:60])}")
            self.load_times.append(0)
        else:
            self.events.append(f"[green]OK[/green]    | User {result.user_id} finished in {result.load_time / 1000:.2f}s.")
            self.load_times.append(result.load_time / 1000)

    def snapshot(self, view: AggregateStatsView) -> None:
        self.view = view
        if view.final and not self.complete:
            self.complete = True
            self.events.append("[blue]INFO  | Simulation complete.[/blue]")
        self._refresh()

    def message(self, text: str) -> None:
        self.events.append(f"[blue]INFO  | {escape(text)}[/blue]")
        self._refresh()

    def close(self) -> None:
        self._refresh()
        self.live.stop()

    # =========================================================================
    # Rendering
    # =========================================================================

    def _refresh(self) -> None:
        self._render()
        self.live.update(self.layout)

    def _render(self) -> None:
        self.layout["header"].update(
            Panel(Align.center(Text("GhostSurfer - Load Simulation Dashboard", style="bold white")), style="on blue")
        )
        self.layout["chart"].update(self._chart_panel())
        self.layout["stats"].update(self._stats_table())
        self.layout["events"].update(Panel("\n".join(self.events), title="Event Log", border_style="green"))
        self.layout["domains"].update(self._domains_table())
        self.layout["config"].update(self._config_table())
        self.layout["status"].update(self._status_panel())

    def _chart_panel(self) -> Panel:
        points = list(self.load_times)
        if points:
            body = Group(
                Text(sparkline(points), style="cyan"),
                Text(f"last {points[-1]:.2f}s  max {max(points):.2f}s  points {len(points)}", style="dim"),
            )
        else:
            body = Text("Waiting for the first session...", style="dim")
        return Panel(body, title=f"Response Times (s) (last {CHART_POINTS})", border_style="cyan")

    def _stats_table(self) -> Table:
        o = self.view.overall if self.view else OverallStats(0, 0, 0, 0.0, 0.0)
        table = Table(title="📊 Request Stats", expand=True)
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="green")
        table.add_row("Successes", f"[green]{o.success_count:,}[/green]")
        table.add_row("Errors", f"[red]{o.error_count:,}[/red]")
        table.add_row("Success Rate", f"{o.success_rate:.1f}%")
        table.add_row("Total Reqs", f"{o.total_requests:,}")
        table.add_row("Avg Reqs/User", f"{o.avg_requests_per_user:.2f}")
        table.add_row("Avg Time/User", f"{o.avg_time_in_seconds:.2f} s")
        return table

    def _domains_table(self) -> Table:
        table = Table(title="🐢 Slowest Domains (Avg ms)", expand=True)
        table.add_column("Domain", style="cyan")
        table.add_column("Avg (ms)", style="yellow", justify="right")
        if self.view:
            for item in self.view.top_domains_by_avg_latency:
                table.add_row(escape(item.domain[:DOMAIN_WIDTH]), f"{item.avg_time:.0f} ms")
        return table

    def _config_table(self) -> Table:
        c = self.config
        url = c.url if len(c.url) <= URL_WIDTH else c.url[: URL_WIDTH - 3] + "..."
        table = Table(title="Configuration", expand=True, show_header=False)
        table.add_column("Setting", style="cyan", width=15)
        table.add_column("Value")
        table.add_row("URL", escape(url))
        table.add_row("Total Users", str(c.total_users))
        table.add_row("Concurrency", str(c.concurrency))
        table.add_row("Wait (ms)", str(c.wait_ms))
        table.add_row("Provider", c.provider)
        return table

    def _status_panel(self) -> Panel:
        if self.complete:
            body = Text("Complete!", style="bold green")
        else:
            done = self.view.overall.sessions if self.view else 0
            body = Text(f"Executing... {done}/{self.config.total_users}", style="bold yellow")
        return Panel(Align.center(body, vertical="middle"), title="Status", border_style="cyan")
