#!/usr/bin/env python3
"""
👻 GhostSurfer
==============
Simulated browsing sessions against a target URL with per-request timing.

Every option can also come from the environment (TARGET_URL, TOTAL_USERS,
CONCURRENCY, WAIT_MS, PAGE_LOAD_TIMEOUT_MS, EXCLUDE_RESOURCE_TYPES, TOP_N,
LOG_FILE, OUTPUT_MODE, PROVIDER, ...). Flags win over the environment.

Usage:
    ghostsurfer --url https://example.com/ --users 20 --concurrency 5
    ghostsurfer --url https://example.com/ --output dashboard
    ghostsurfer --url https://example.com/ --provider http --report json
"""

import argparse
import asyncio
import json
import sys
from typing import List, Optional

from rich.markup import escape
from rich.panel import Panel

from .config import OUTPUT_MODES, PROVIDERS, SimulationConfig
from .errors import ProviderLaunchError
from .log import console, setup_logging
from .simulation import run_simulation
from .stats import AggregateStatsView


def _csv_set(value: str):
    return frozenset(part.strip() for part in value.split(",") if part.strip())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ghostsurfer",
        description="👻 Simulated browsing load with per-request timing",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--url", "-u", help="Target URL")
    parser.add_argument("--users", "-n", type=int, dest="total_users", help="Total simulated users")
    parser.add_argument("--concurrency", "-c", type=int, help="Sessions in flight at once")
    parser.add_argument("--wait-ms", "-w", type=int, help="Extra dwell time after load, in ms")
    parser.add_argument("--timeout-ms", "-t", type=int, dest="page_load_timeout_ms", help="Hard page load timeout, in ms")
    parser.add_argument("--idle-timeout-ms", type=int, dest="network_idle_timeout_ms",
                        help="Soft budget for network idle, in ms")
    parser.add_argument("--exclude-types", type=_csv_set, dest="exclude_resource_types",
                        help="Comma-separated resource types left out of latency views")
    parser.add_argument("--exclude-domains", type=_csv_set, dest="excluded_domains",
                        help="Comma-separated domains left out of latency views")
    parser.add_argument("--exclude-from-access-counts", action="store_const", const=True, default=None,
                        help="Also drop excluded resource types from domain access counts")
    parser.add_argument("--min-duration-ms", type=int, dest="min_duration_for_slowest_ms",
                        help="Ignore faster requests in slowest rankings")
    parser.add_argument("--top-n", type=int, help="Rows in top-N reports")
    parser.add_argument("--max-retained", type=int, dest="max_retained_requests",
                        help="Requests kept for slowest ranking (0 = all)")
    parser.add_argument("--log-file", "-o", help="Log file for file output mode")
    parser.add_argument("--append", action="store_const", const=True, default=None, dest="append_log",
                        help="Append to the log file instead of truncating it")
    parser.add_argument("--output", choices=OUTPUT_MODES, dest="output_mode")
    parser.add_argument("--provider", choices=PROVIDERS, help="browser (playwright) or http (aiohttp emulation)")
    parser.add_argument("--headed", action="store_const", const=False, default=None, dest="headless",
                        help="Show the browser window")
    parser.add_argument("--report", choices=["console", "json"], default="console", help="Final report format")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return parser


def config_from_args(args: argparse.Namespace, environ=None) -> SimulationConfig:
    overrides = {
        name: getattr(args, name)
        for name in (
            "url", "total_users", "concurrency", "wait_ms", "page_load_timeout_ms",
            "network_idle_timeout_ms", "exclude_resource_types", "excluded_domains",
            "exclude_from_access_counts", "min_duration_for_slowest_ms", "top_n",
            "max_retained_requests", "log_file", "append_log", "output_mode", "provider", "headless",
        )
    }
    return SimulationConfig.from_env(environ, **overrides)


def print_console_report(view: AggregateStatsView, config: SimulationConfig) -> None:
    o = view.overall
    slowest = "\n".join(
        f"  {r.duration:>8.0f}ms  [dim]{r.resource_type:<10}[/dim] {escape(r.url[:80])}" for r in view.top_slowest_requests
    ) or "  No measured requests"
    domains = "\n".join(
        f"  {d.avg_time:>8.0f}ms  {escape(d.domain)} ({d.count})" for d in view.top_domains_by_avg_latency
    ) or "  No measured domains"
    accessed = "\n".join(
        f"  {d.count:>8,}   {escape(d.domain)}" for d in view.top_domains_by_access
    ) or "  No resolved domains"
    passed = o.error_count == 0

    console.print("\n")
    console.print(Panel(
        f"""[bold]Run Summary[/bold]

[cyan]Sessions:[/cyan]          {o.sessions:,}
[green]Successful:[/green]        {o.success_count:,} ({o.success_rate:.1f}%)
[red]Errors:[/red]            {o.error_count:,} ({o.error_rate:.1f}%)
[cyan]Total Requests:[/cyan]    {o.total_requests:,}
[cyan]Avg Requests/User:[/cyan] {o.avg_requests_per_user:.2f}
[cyan]Avg Load Time:[/cyan]     {o.avg_time_in_seconds:.2f}s

[bold]Top {len(view.top_slowest_requests)} Slowest Requests:[/bold]
{slowest}

[bold]Top {len(view.top_domains_by_avg_latency)} Slowest Domains (avg):[/bold]
{domains}

[bold]Top {len(view.top_domains_by_access)} Most Accessed Domains:[/bold]
{accessed}
""",
        title="📊 Final Results",
        border_style="green" if passed else "yellow",
    ))
    if config.output_mode == "file":
        console.print(f"[dim]Log saved to {config.log_file}[/dim]")


async def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.report == "json":
        # stdout carries only the JSON document.
        console.file = sys.stderr
    try:
        return await _main(args)
    finally:
        console.file = None


async def _main(args: argparse.Namespace) -> int:
    setup_logging(args.verbose)
    config = config_from_args(args)

    if config.output_mode != "dashboard":
        console.print(Panel(
            f"[bold blue]Simulated Browsing Run[/bold blue]\n"
            f"Target: {escape(config.url)}\n"
            f"Users: {config.total_users:,} | Concurrency: {config.concurrency} | "
            f"Output: {config.output_mode} | Provider: {config.provider}",
            title="🚀 Starting",
        ))

    try:
        view = await run_simulation(config)
    except ProviderLaunchError as e:
        console.print(Panel(f"[red]{escape(str(e))}[/red]", title="Fatal", border_style="red"))
        return 1

    if args.report == "json":
        print(json.dumps(view.to_dict(), indent=2))
    else:
        print_console_report(view, config)
    return 0


def run() -> None:
    try:
        code = asyncio.run(main())
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted.[/yellow]")
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    run()
