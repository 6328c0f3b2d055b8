"""
Simulation configuration.

A single frozen ``SimulationConfig`` is built once (environment, then CLI
overrides) and passed explicitly to every component that needs it.
"""

import dataclasses
import logging
import os
from dataclasses import dataclass, field
from typing import Any, FrozenSet, Mapping, Optional

logger = logging.getLogger(__name__)

OUTPUT_MODES = ("file", "dashboard")
PROVIDERS = ("browser", "http")

DEFAULT_EXCLUDE_RESOURCE_TYPES = frozenset({"xhr", "fetch", "other"})


@dataclass(frozen=True)
class SimulationConfig:
    """Options recognized by a run. See ``from_env`` for the variable names."""
    url: str = "https://example.com/"
    total_users: int = 5
    concurrency: int = 5
    wait_ms: int = 2000
    page_load_timeout_ms: int = 60000
    network_idle_timeout_ms: int = 15000
    drain_ms: int = 500

    # Resource types such as background data calls that stay out of
    # latency and slowest-request views.
    exclude_resource_types: FrozenSet[str] = DEFAULT_EXCLUDE_RESOURCE_TYPES
    excluded_domains: FrozenSet[str] = field(default_factory=frozenset)
    exclude_from_access_counts: bool = False
    min_duration_for_slowest_ms: int = 0
    top_n: int = 10
    max_retained_requests: int = 10000

    log_file: str = "ghostsurfer-log.txt"
    append_log: bool = False
    output_mode: str = "file"
    provider: str = "browser"
    headless: bool = True

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides: Any) -> "SimulationConfig":
        """
        Build a config from environment variables, then apply ``overrides``.

        Unset variables keep their defaults and None overrides are ignored.
        Unparseable or out-of-range values are logged and replaced by the
        default instead of failing.
        """
        env = os.environ if environ is None else environ
        d = cls()

        top_n_raw = env.get("TOP_N") or env.get("TOP_SLOWEST_DOMAINS")
        config = cls(
            url=env.get("TARGET_URL") or d.url,
            total_users=_parse_int("TOTAL_USERS", env.get("TOTAL_USERS"), d.total_users, minimum=1),
            concurrency=_parse_int("CONCURRENCY", env.get("CONCURRENCY"), d.concurrency, minimum=1),
            wait_ms=_parse_int("WAIT_MS", env.get("WAIT_MS"), d.wait_ms, minimum=0),
            page_load_timeout_ms=_parse_int(
                "PAGE_LOAD_TIMEOUT_MS", env.get("PAGE_LOAD_TIMEOUT_MS"), d.page_load_timeout_ms, minimum=1
            ),
            network_idle_timeout_ms=_parse_int(
                "NETWORK_IDLE_TIMEOUT_MS", env.get("NETWORK_IDLE_TIMEOUT_MS"), d.network_idle_timeout_ms, minimum=0
            ),
            drain_ms=_parse_int("DRAIN_MS", env.get("DRAIN_MS"), d.drain_ms, minimum=0),
            exclude_resource_types=_parse_set(env.get("EXCLUDE_RESOURCE_TYPES"), d.exclude_resource_types),
            excluded_domains=_parse_set(env.get("EXCLUDED_DOMAINS"), d.excluded_domains),
            exclude_from_access_counts=_parse_bool(
                env.get("EXCLUDE_FROM_ACCESS_COUNTS"), d.exclude_from_access_counts
            ),
            min_duration_for_slowest_ms=_parse_int(
                "MIN_DURATION_FOR_SLOWEST_MS", env.get("MIN_DURATION_FOR_SLOWEST_MS"),
                d.min_duration_for_slowest_ms, minimum=0,
            ),
            top_n=_parse_int("TOP_N", top_n_raw, d.top_n, minimum=1),
            max_retained_requests=_parse_int(
                "MAX_RETAINED_REQUESTS", env.get("MAX_RETAINED_REQUESTS"), d.max_retained_requests, minimum=0
            ),
            log_file=env.get("LOG_FILE") or d.log_file,
            append_log=_parse_bool(env.get("APPEND_LOG"), d.append_log),
            output_mode=_parse_choice("OUTPUT_MODE", env.get("OUTPUT_MODE"), OUTPUT_MODES, d.output_mode),
            provider=_parse_choice("PROVIDER", env.get("PROVIDER"), PROVIDERS, d.provider),
            headless=_parse_bool(env.get("HEADLESS"), d.headless),
        )
        changes = {k: v for k, v in overrides.items() if v is not None}
        if changes:
            config = dataclasses.replace(config, **changes)
        return config.checked()

    def checked(self) -> "SimulationConfig":
        """Replace invalid values with defaults, warning about each one."""
        d = SimulationConfig()
        fixes = {}
        for name, minimum in (
            ("total_users", 1),
            ("concurrency", 1),
            ("wait_ms", 0),
            ("page_load_timeout_ms", 1),
            ("network_idle_timeout_ms", 0),
            ("drain_ms", 0),
            ("top_n", 1),
            ("max_retained_requests", 0),
        ):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < minimum:
                logger.warning("Invalid %s=%r, using default %r", name, value, getattr(d, name))
                fixes[name] = getattr(d, name)
        if self.output_mode not in OUTPUT_MODES:
            logger.warning("Unknown output mode %r, using %r", self.output_mode, d.output_mode)
            fixes["output_mode"] = d.output_mode
        if self.provider not in PROVIDERS:
            logger.warning("Unknown provider %r, using %r", self.provider, d.provider)
            fixes["provider"] = d.provider
        # Hostnames compare lower-cased.
        domains = frozenset(name.strip().lower() for name in self.excluded_domains if name.strip())
        if domains != self.excluded_domains:
            fixes["excluded_domains"] = domains

        config = dataclasses.replace(self, **fixes) if fixes else self
        if config.concurrency > config.total_users:
            logger.warning(
                "Concurrency %d exceeds total users %d; only %d sessions can run at once",
                config.concurrency, config.total_users, config.total_users,
            )
        return config


def _parse_int(name: str, raw: Optional[str], default, minimum: int = 0):
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw.strip(), 10)
    except ValueError:
        logger.warning("Invalid %s=%r, using default %r", name, raw, default)
        return default
    if value < minimum:
        logger.warning("Out-of-range %s=%d, using default %r", name, value, default)
        return default
    return value


def _parse_bool(raw: Optional[str], default: bool) -> bool:
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    return default


def _parse_set(raw: Optional[str], default: FrozenSet[str]) -> FrozenSet[str]:
    if raw is None:
        return default
    return frozenset(part.strip() for part in raw.split(",") if part.strip())


def _parse_choice(name: str, raw: Optional[str], choices, default: str) -> str:
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value not in choices:
        logger.warning("Unknown %s=%r, using %r", name, raw, default)
        return default
    return value
