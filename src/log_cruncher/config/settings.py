"""
Settings for the log store, filters, reports and enrichment.

Supports loading from:
1. YAML config files (config.yaml), optionally SOPS-encrypted
2. Environment variables (fallback)
"""

import logging
import os
import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

from .constants import (
    ARTICLE_PATH_PATTERN,
    DEFAULT_DISPLAY_WIDTH,
    DEFAULT_PER_DAY_K,
    DEFAULT_TOP_N,
    DEFAULT_WINDOW_DAYS,
    FEED_PATH_SUFFIXES,
    JUNK_STATUSES,
    PEERINGDB_AS_SET_URL,
    PROBE_PATH_PREFIXES,
    PROBE_PATH_SUFFIXES,
    PROBE_USER_AGENTS,
    SPAMHAUS_ASN_DROP_URL,
    SPOOFED_USER_AGENT_PATTERNS,
)

logger = logging.getLogger(__name__)

ENV_PREFIX = "LOG_CRUNCHER_"


def _env(key: str, default: str) -> str:
    return os.environ.get(f"{ENV_PREFIX}{key}", default)


def _env_int(key: str, default: int) -> int:
    """Read an int env var, keeping the default when unset or malformed."""
    try:
        return int(_env(key, str(default)))
    except ValueError:
        return default


def _env_list(key: str, default: list) -> list[str]:
    """Parse a comma-separated env var; unset means default."""
    raw = os.environ.get(f"{ENV_PREFIX}{key}")
    if raw is None:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


# =============================================================================
# Filter Settings
# =============================================================================


@dataclass
class FilterSettings:
    """
    Deny-lists and patterns used by the filter pipeline and error reports.

    None of these lists are exhaustive. They catch traffic identifiable by a
    cheap pattern match and nothing more.
    """

    probe_user_agents: list[str] = field(
        default_factory=lambda: list(PROBE_USER_AGENTS)
    )
    junk_statuses: list[int] = field(default_factory=lambda: list(JUNK_STATUSES))
    spoofed_user_agent_patterns: list[str] = field(
        default_factory=lambda: list(SPOOFED_USER_AGENT_PATTERNS)
    )
    article_path_pattern: str = ARTICLE_PATH_PATTERN
    feed_path_suffixes: list[str] = field(
        default_factory=lambda: list(FEED_PATH_SUFFIXES)
    )
    probe_path_prefixes: list[str] = field(
        default_factory=lambda: list(PROBE_PATH_PREFIXES)
    )
    probe_path_suffixes: list[str] = field(
        default_factory=lambda: list(PROBE_PATH_SUFFIXES)
    )

    def validate(self) -> list[str]:
        """Return one message per invalid deny-list or pattern."""
        errors = []

        for pattern in [self.article_path_pattern, *self.spoofed_user_agent_patterns]:
            try:
                re.compile(pattern)
            except re.error as e:
                errors.append(f"invalid regular expression {pattern!r}: {e}")

        for status in self.junk_statuses:
            if not isinstance(status, int) or not 100 <= status <= 599:
                errors.append(f"junk_statuses must be HTTP status codes, got {status!r}")

        if not self.probe_path_prefixes and not self.probe_path_suffixes:
            errors.append("at least one probe path prefix or suffix is required")

        return errors

    def to_dict(self) -> dict:
        """Plain-data form, as written back to YAML."""
        return {
            "probe_user_agents": list(self.probe_user_agents),
            "junk_statuses": list(self.junk_statuses),
            "spoofed_user_agent_patterns": list(self.spoofed_user_agent_patterns),
            "article_path_pattern": self.article_path_pattern,
            "feed_path_suffixes": list(self.feed_path_suffixes),
            "probe_path_prefixes": list(self.probe_path_prefixes),
            "probe_path_suffixes": list(self.probe_path_suffixes),
        }

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> "FilterSettings":
        """Build from the `filters` YAML section; missing keys keep defaults."""
        return cls(
            probe_user_agents=config.get("probe_user_agents", list(PROBE_USER_AGENTS)),
            junk_statuses=[
                int(s) for s in config.get("junk_statuses", JUNK_STATUSES)
            ],
            spoofed_user_agent_patterns=config.get(
                "spoofed_user_agent_patterns", list(SPOOFED_USER_AGENT_PATTERNS)
            ),
            article_path_pattern=config.get(
                "article_path_pattern", ARTICLE_PATH_PATTERN
            ),
            feed_path_suffixes=config.get(
                "feed_path_suffixes", list(FEED_PATH_SUFFIXES)
            ),
            probe_path_prefixes=config.get(
                "probe_path_prefixes", list(PROBE_PATH_PREFIXES)
            ),
            probe_path_suffixes=config.get(
                "probe_path_suffixes", list(PROBE_PATH_SUFFIXES)
            ),
        )

    @classmethod
    def from_env(cls) -> "FilterSettings":
        """Build from LOG_CRUNCHER_* variables."""
        statuses = []
        for value in _env_list("JUNK_STATUSES", JUNK_STATUSES):
            try:
                statuses.append(int(value))
            except ValueError:
                logger.warning(f"Ignoring non-numeric junk status: {value!r}")

        return cls(
            probe_user_agents=_env_list("PROBE_USER_AGENTS", PROBE_USER_AGENTS),
            junk_statuses=statuses,
            spoofed_user_agent_patterns=_env_list(
                "SPOOFED_USER_AGENT_PATTERNS", SPOOFED_USER_AGENT_PATTERNS
            ),
            article_path_pattern=_env("ARTICLE_PATH_PATTERN", ARTICLE_PATH_PATTERN),
            feed_path_suffixes=_env_list("FEED_PATH_SUFFIXES", FEED_PATH_SUFFIXES),
            probe_path_prefixes=_env_list("PROBE_PATH_PREFIXES", PROBE_PATH_PREFIXES),
            probe_path_suffixes=_env_list("PROBE_PATH_SUFFIXES", PROBE_PATH_SUFFIXES),
        )


# =============================================================================
# Report Settings
# =============================================================================


@dataclass
class ReportSettings:
    """Defaults for report parameters."""

    window_days: int = DEFAULT_WINDOW_DAYS
    top_n: int = DEFAULT_TOP_N
    per_day_k: int = DEFAULT_PER_DAY_K
    display_width: int = DEFAULT_DISPLAY_WIDTH

    def validate(self) -> list[str]:
        """Reject negative sizes and windows."""
        errors = []
        if self.window_days < 0:
            errors.append(f"window_days must be >= 0, got {self.window_days}")
        if self.top_n < 0:
            errors.append(f"top_n must be >= 0, got {self.top_n}")
        if self.per_day_k < 0:
            errors.append(f"per_day_k must be >= 0, got {self.per_day_k}")
        if self.display_width < 4:
            errors.append(f"display_width must be >= 4, got {self.display_width}")
        return errors

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> "ReportSettings":
        """Build from the `reports` YAML section."""
        return cls(
            window_days=config.get("window_days", DEFAULT_WINDOW_DAYS),
            top_n=config.get("top_n", DEFAULT_TOP_N),
            per_day_k=config.get("per_day_k", DEFAULT_PER_DAY_K),
            display_width=config.get("display_width", DEFAULT_DISPLAY_WIDTH),
        )

    @classmethod
    def from_env(cls) -> "ReportSettings":
        return cls(
            window_days=_env_int("WINDOW_DAYS", DEFAULT_WINDOW_DAYS),
            top_n=_env_int("TOP_N", DEFAULT_TOP_N),
            per_day_k=_env_int("PER_DAY_K", DEFAULT_PER_DAY_K),
            display_width=_env_int("DISPLAY_WIDTH", DEFAULT_DISPLAY_WIDTH),
        )


# =============================================================================
# Enrichment Settings
# =============================================================================


@dataclass
class EnrichmentSettings:
    """HTTP endpoints and limits for ASN name lookups."""

    peeringdb_url: str = PEERINGDB_AS_SET_URL
    spamhaus_url: str = SPAMHAUS_ASN_DROP_URL
    timeout_seconds: float = 10.0
    max_retries: int = 2

    def validate(self) -> list[str]:
        """Endpoints must be http(s) URLs and limits positive."""
        errors = []
        if "{asn}" not in self.peeringdb_url:
            errors.append("peeringdb_url must contain an {asn} placeholder")
        if self.timeout_seconds <= 0:
            errors.append(
                f"timeout_seconds must be > 0, got {self.timeout_seconds}"
            )
        if self.max_retries < 0:
            errors.append(f"max_retries must be >= 0, got {self.max_retries}")
        return errors

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> "EnrichmentSettings":
        """Build from the `enrichment` YAML section."""
        return cls(
            peeringdb_url=config.get("peeringdb_url", PEERINGDB_AS_SET_URL),
            spamhaus_url=config.get("spamhaus_url", SPAMHAUS_ASN_DROP_URL),
            timeout_seconds=float(config.get("timeout_seconds", 10.0)),
            max_retries=int(config.get("max_retries", 2)),
        )

    @classmethod
    def from_env(cls) -> "EnrichmentSettings":
        try:
            timeout = float(_env("HTTP_TIMEOUT", "10.0"))
        except ValueError:
            timeout = 10.0
        return cls(
            peeringdb_url=_env("PEERINGDB_URL", PEERINGDB_AS_SET_URL),
            spamhaus_url=_env("SPAMHAUS_URL", SPAMHAUS_ASN_DROP_URL),
            timeout_seconds=timeout,
            max_retries=_env_int("HTTP_MAX_RETRIES", 2),
        )


# =============================================================================
# Main Settings
# =============================================================================

DEFAULT_DB_PATH = "data/access-logs.db"


@dataclass
class Settings:
    """Application settings for the SQLite-backed log store."""

    # Where the log store lives
    storage_backend: str = "sqlite"
    sqlite_db_path: str = DEFAULT_DB_PATH

    # Time zone used to derive calendar dates from request timestamps
    timezone: str = "UTC"

    # Referers on these domains are self-referencing traffic
    site_domains: list[str] = field(default_factory=list)

    filters: FilterSettings = field(default_factory=FilterSettings)
    reports: ReportSettings = field(default_factory=ReportSettings)
    enrichment: EnrichmentSettings = field(default_factory=EnrichmentSettings)

    def validate(self) -> list[str]:
        """Collect errors from this object and every nested section."""
        errors = []

        if self.storage_backend != "sqlite":
            errors.append(f"storage.backend must be 'sqlite', got {self.storage_backend!r}")

        if not self.sqlite_db_path:
            errors.append("storage.sqlite_db_path is required")

        from dateutil import tz

        if tz.gettz(self.timezone) is None:
            errors.append(f"Unknown time zone: {self.timezone!r}")

        # Nested sections report with their own prefixes
        errors.extend(self.filters.validate())
        errors.extend(self.reports.validate())
        errors.extend(self.enrichment.validate())

        return errors

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> "Settings":
        """Build from a parsed settings document."""
        storage = config.get("storage", {}) or {}
        site = config.get("site", {}) or {}

        return cls(
            storage_backend=storage.get("backend", "sqlite"),
            sqlite_db_path=storage.get("sqlite_db_path", DEFAULT_DB_PATH),
            timezone=storage.get("timezone", "UTC"),
            site_domains=list(site.get("domains", [])),
            filters=FilterSettings.from_dict(config.get("filters", {}) or {}),
            reports=ReportSettings.from_dict(config.get("reports", {}) or {}),
            enrichment=EnrichmentSettings.from_dict(
                config.get("enrichment", {}) or {}
            ),
        )

    @classmethod
    def from_env(cls) -> "Settings":
        """Build from the environment alone (no settings file)."""
        return cls(
            storage_backend="sqlite",
            sqlite_db_path=_env("DB_PATH", DEFAULT_DB_PATH),
            timezone=_env("TIMEZONE", "UTC"),
            site_domains=_env_list("SITE_DOMAINS", []),
            filters=FilterSettings.from_env(),
            reports=ReportSettings.from_env(),
            enrichment=EnrichmentSettings.from_env(),
        )


# Read from the working directory when no path is given
DEFAULT_CONFIG_PATH = Path("config.yaml")


@lru_cache
def get_settings(config_path: Optional[str] = None) -> Settings:
    """
    Load settings once per config path.

    A readable YAML file (SOPS-encrypted or plain) wins; when it is absent or
    cannot be loaded, LOG_CRUNCHER_* environment variables are used instead.
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    if path.exists():
        try:
            from .sops_loader import load_yaml_config

            config = load_yaml_config(path)
            return Settings.from_dict(config)
        except Exception as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            logger.warning("Falling back to environment variables")

    return Settings.from_env()


def clear_settings_cache() -> None:
    """Forget the cached settings so the next call reloads them."""
    get_settings.cache_clear()
