"""Configuration module."""

from .constants import (
    DEFAULT_PER_DAY_K,
    DEFAULT_TOP_N,
    DEFAULT_WINDOW_DAYS,
    REPORT_NAMES,
    VIEW_NAMES,
)
from .settings import (
    EnrichmentSettings,
    FilterSettings,
    ReportSettings,
    Settings,
    clear_settings_cache,
    get_settings,
)
from .sops_loader import decrypt_sops_file, load_yaml_config

__all__ = [
    # Defaults
    "DEFAULT_WINDOW_DAYS",
    "DEFAULT_TOP_N",
    "DEFAULT_PER_DAY_K",
    "REPORT_NAMES",
    "VIEW_NAMES",
    # Settings
    "Settings",
    "FilterSettings",
    "ReportSettings",
    "EnrichmentSettings",
    "get_settings",
    "clear_settings_cache",
    # Config loading
    "load_yaml_config",
    "decrypt_sops_file",
]
