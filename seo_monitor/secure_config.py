"""
Secure Configuration Management

Provides centralized, validated configuration for the monitor.
Environment variables (optionally from a .env file) hold credentials; the
monitor definition (metric keys, threshold rules, cadences, sources) lives in
a JSON file whose scalar settings can be overridden from the environment.

Usage:
    from seo_monitor.secure_config import get_config

    config = get_config()
    monitor = config.get_monitor_config()
    print(monitor.poll_interval_ms)

Security Features:
    - Strict validation of all configuration values
    - Fail-fast on missing/invalid configuration
    - Placeholder detection (e.g., "your_webhook_here")
    - HTTPS enforcement for URLs

Raises:
    ConfigurationError: If configuration is missing or invalid
"""

import json
import os
import re
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from seo_monitor.domain.metrics import ThresholdRule
from seo_monitor.domain.reports import PERIODS
from seo_monitor.utils.datetime_utils import ms_to_timedelta

DEFAULT_CONFIG_PATH = Path("config/monitor.json")

PLACEHOLDERS = ("your_", "example", "placeholder", "xxx", "replace_me", "changeme")

# Environment variable -> MonitorConfig field for scalar overrides
ENV_OVERRIDES = {
    "SEO_POLL_INTERVAL_MS": "poll_interval_ms",
    "SEO_REPORT_INTERVAL_MS": "report_interval_ms",
    "SEO_DEDUP_WINDOW_MS": "dedup_window_ms",
    "SEO_RETENTION_COUNT": "retention_count",
    "SEO_ALERT_RETENTION_MS": "alert_retention_ms",
    "SEO_FETCH_TIMEOUT_MS": "fetch_timeout_ms",
    "SEO_STALE_AFTER_CYCLES": "stale_after_cycles",
}


class ConfigurationError(Exception):
    """Raised when configuration is missing or invalid."""

    pass


def _contains_placeholder(value: str) -> bool:
    lowered = value.lower()
    return any(placeholder in lowered for placeholder in PLACEHOLDERS)


@dataclass(frozen=True)
class MonitorConfig:
    """
    Validated monitor definition.

    Durations are in milliseconds, matching the configuration file; the
    ``*_interval`` / ``*_window`` properties return timedeltas.
    """

    metric_keys: frozenset[str]
    threshold_rules: tuple[ThresholdRule, ...] = ()
    poll_interval_ms: int = 300_000  # 5 minutes
    report_interval_ms: int = 86_400_000  # daily
    dedup_window_ms: int = 300_000
    retention_count: int = 200
    alert_retention_ms: int = 86_400_000
    fetch_timeout_ms: int = 30_000
    stale_after_cycles: int = 3
    alert_history_limit: int = 200
    report_history_limit: int = 50
    retention_window_ms: int | None = None
    maintenance_interval_ms: int = 60_000
    report_dir: str = ".tmp/seo_monitor/reports"
    report_kinds: tuple[str, ...] = ()
    sources: tuple[dict[str, Any], ...] = ()
    email_recipients: tuple[str, ...] = ()
    site_url: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Validate configuration after initialization."""
        self._validate()

    def _validate(self):
        """
        Validate monitor configuration.

        Raises:
            ConfigurationError: If configuration is invalid
        """
        if not self.metric_keys:
            raise ConfigurationError("metric_keys must list at least one metric")

        for name in (
            "poll_interval_ms",
            "report_interval_ms",
            "dedup_window_ms",
            "alert_retention_ms",
            "fetch_timeout_ms",
            "maintenance_interval_ms",
        ):
            value = getattr(self, name)
            if not isinstance(value, int) or value <= 0:
                raise ConfigurationError(f"{name} must be a positive integer (milliseconds), got {value!r}")

        if self.fetch_timeout_ms > self.poll_interval_ms:
            raise ConfigurationError(
                f"fetch_timeout_ms ({self.fetch_timeout_ms}) must not exceed poll_interval_ms ({self.poll_interval_ms})"
            )

        if self.retention_count < 2:
            raise ConfigurationError(f"retention_count must be at least 2, got {self.retention_count}")
        if self.retention_window_ms is not None and self.retention_window_ms <= 0:
            raise ConfigurationError(f"retention_window_ms must be positive, got {self.retention_window_ms}")
        if self.stale_after_cycles < 1:
            raise ConfigurationError(f"stale_after_cycles must be at least 1, got {self.stale_after_cycles}")
        if self.alert_history_limit < 1 or self.report_history_limit < 1:
            raise ConfigurationError("alert_history_limit and report_history_limit must be positive")

        bad_kinds = [kind for kind in self.report_kinds if kind not in PERIODS]
        if bad_kinds:
            raise ConfigurationError(f"report_kinds must be drawn from {sorted(PERIODS)}, got {bad_kinds}")
        if len(set(self.report_kinds)) != len(self.report_kinds):
            raise ConfigurationError(f"report_kinds contains duplicates: {list(self.report_kinds)}")

        unknown = sorted({rule.metric_key for rule in self.threshold_rules} - self.metric_keys)
        if unknown:
            raise ConfigurationError(f"threshold_rules reference untracked metric keys: {', '.join(unknown)}")

        if self.site_url and not self.site_url.startswith("https://"):
            raise ConfigurationError(f"site_url must use HTTPS: {self.site_url}")

    @property
    def poll_interval(self) -> timedelta:
        return ms_to_timedelta(self.poll_interval_ms)

    @property
    def report_interval(self) -> timedelta:
        return ms_to_timedelta(self.report_interval_ms)

    @property
    def dedup_window(self) -> timedelta:
        return ms_to_timedelta(self.dedup_window_ms)

    @property
    def alert_retention(self) -> timedelta:
        return ms_to_timedelta(self.alert_retention_ms)

    @property
    def retention_window(self) -> timedelta | None:
        return None if self.retention_window_ms is None else ms_to_timedelta(self.retention_window_ms)

    @property
    def fetch_timeout_seconds(self) -> float:
        return self.fetch_timeout_ms / 1000

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MonitorConfig":
        """
        Build a MonitorConfig from a parsed configuration file.

        Raises:
            ConfigurationError: If a field has the wrong shape or a rule is invalid
        """
        data = dict(data)
        try:
            rules = tuple(ThresholdRule.from_dict(rule) for rule in data.pop("threshold_rules", []))
        except (ValueError, TypeError, AttributeError) as e:
            raise ConfigurationError(f"Invalid threshold rule: {e}") from e

        keys = data.pop("metric_keys", [])
        if not isinstance(keys, list | tuple | set | frozenset):
            raise ConfigurationError("metric_keys must be a list of strings")

        known = set(cls.__dataclass_fields__) - {"metric_keys", "threshold_rules", "extra"}
        kwargs = {name: data.pop(name) for name in list(data) if name in known}
        kwargs["sources"] = tuple(kwargs.get("sources", ()))
        kwargs["email_recipients"] = tuple(kwargs.get("email_recipients", ()))
        kinds = kwargs.get("report_kinds", ())
        kwargs["report_kinds"] = (kinds,) if isinstance(kinds, str) else tuple(kinds)

        try:
            return cls(metric_keys=frozenset(keys), threshold_rules=rules, extra=data, **kwargs)
        except TypeError as e:
            raise ConfigurationError(f"Invalid monitor configuration: {e}") from e


@dataclass
class SlackConfig:
    """
    Validated Slack incoming-webhook configuration.
    """

    webhook_url: str

    def __post_init__(self):
        """Validate configuration after initialization."""
        self._validate()

    def _validate(self):
        if not self.webhook_url:
            raise ConfigurationError("SLACK_WEBHOOK_URL is required")

        if not self.webhook_url.startswith("https://"):
            raise ConfigurationError("SLACK_WEBHOOK_URL must use HTTPS")

        if _contains_placeholder(self.webhook_url):
            raise ConfigurationError("SLACK_WEBHOOK_URL contains a placeholder value")


@dataclass
class EmailConfig:
    """
    Validated email configuration (SMTP with STARTTLS).
    """

    sender_email: str
    sender_password: str
    smtp_server: str = "smtp.gmail.com"
    smtp_port: int = 587

    def __post_init__(self):
        """Validate configuration after initialization."""
        self._validate()

    def _validate(self):
        """
        Validate email configuration.

        Raises:
            ConfigurationError: If configuration is invalid
        """
        if not self.sender_email:
            raise ConfigurationError("EMAIL_SENDER is required")

        email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"
        if not re.match(email_pattern, self.sender_email):
            raise ConfigurationError(f"EMAIL_SENDER must be a valid email address: {self.sender_email}")

        if not self.sender_password:
            raise ConfigurationError("EMAIL_PASSWORD is required")

        if len(self.sender_password) < 8:
            raise ConfigurationError("EMAIL_PASSWORD appears invalid (too short)")

        if _contains_placeholder(self.sender_password) or "password" in self.sender_password.lower():
            raise ConfigurationError("EMAIL_PASSWORD contains a placeholder value")

        if not 0 < self.smtp_port < 65536:
            raise ConfigurationError(f"SMTP_PORT out of range: {self.smtp_port}")


@dataclass
class PageSpeedConfig:
    """
    PageSpeed Insights configuration. The API key is optional (keyless use is
    rate limited by Google).
    """

    api_key: str | None = None
    strategy: str = "mobile"

    def __post_init__(self):
        """Validate configuration after initialization."""
        if self.strategy not in ("mobile", "desktop"):
            raise ConfigurationError(f"PAGESPEED_STRATEGY must be 'mobile' or 'desktop': {self.strategy}")
        if self.api_key is not None and _contains_placeholder(self.api_key):
            raise ConfigurationError("PAGESPEED_API_KEY contains a placeholder value")


class SecureConfig:
    """
    Centralized secure configuration manager.

    Loads and validates all application configuration from environment variables
    and the monitor definition file. Fails fast on configuration issues.
    """

    def __init__(self):
        """Initialize configuration (loads .env file)."""
        load_dotenv()

    def get_optional_env(self, name: str, default: str | None = None) -> str | None:
        value = os.getenv(name)
        return value if value else default

    def get_monitor_config(self, path: str | Path | None = None) -> MonitorConfig:
        """
        Load, override and validate the monitor definition.

        Args:
            path: Config file (default: SEO_MONITOR_CONFIG or config/monitor.json)

        Returns:
            MonitorConfig: Validated configuration

        Raises:
            ConfigurationError: If the file is missing, unreadable or invalid
        """
        config_path = Path(path or os.getenv("SEO_MONITOR_CONFIG") or DEFAULT_CONFIG_PATH)
        if not config_path.exists():
            raise ConfigurationError(f"Monitor configuration file not found: {config_path}")

        try:
            with open(config_path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {config_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"{config_path} must contain a JSON object")

        for env_name, field_name in ENV_OVERRIDES.items():
            raw = os.getenv(env_name)
            if raw is None or raw == "":
                continue
            try:
                data[field_name] = int(raw)
            except ValueError as e:
                raise ConfigurationError(f"{env_name} must be an integer, got {raw!r}") from e

        if os.getenv("SEO_SITE_URL"):
            data["site_url"] = os.getenv("SEO_SITE_URL")

        return MonitorConfig.from_dict(data)

    def get_slack_config(self) -> SlackConfig:
        """
        Get validated Slack configuration.

        Raises:
            ConfigurationError: If configuration is missing or invalid
        """
        return SlackConfig(webhook_url=os.getenv("SLACK_WEBHOOK_URL") or "")

    def get_email_config(self) -> EmailConfig:
        """
        Get validated email configuration.

        Raises:
            ConfigurationError: If configuration is missing or invalid
        """
        port = os.getenv("SMTP_PORT", "587")
        try:
            smtp_port = int(port)
        except ValueError as e:
            raise ConfigurationError(f"SMTP_PORT must be an integer, got {port!r}") from e

        return EmailConfig(
            sender_email=os.getenv("EMAIL_SENDER") or "",
            sender_password=os.getenv("EMAIL_PASSWORD") or "",
            smtp_server=os.getenv("SMTP_SERVER", "smtp.gmail.com"),
            smtp_port=smtp_port,
        )

    def get_pagespeed_config(self) -> PageSpeedConfig:
        """
        Get validated PageSpeed Insights configuration.

        Raises:
            ConfigurationError: If configuration is invalid
        """
        return PageSpeedConfig(
            api_key=os.getenv("PAGESPEED_API_KEY") or None,
            strategy=os.getenv("PAGESPEED_STRATEGY", "mobile"),
        )


_config_instance = None


def get_config() -> SecureConfig:
    """
    Get the global configuration instance (singleton pattern).

    Returns:
        SecureConfig: The configuration manager
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = SecureConfig()
    return _config_instance


def validate_config_on_startup(required_services: list[str]) -> None:
    """
    Validate required configuration at application startup.

    Args:
        required_services: Services to validate ('monitor', 'slack', 'email', 'pagespeed')

    Raises:
        ConfigurationError: If any required configuration is missing or invalid
        ValueError: If a service name is unknown

    Example:
        validate_config_on_startup(["monitor", "slack"])
    """
    config = get_config()

    for service in required_services:
        if service == "monitor":
            config.get_monitor_config()
        elif service == "slack":
            config.get_slack_config()
        elif service == "email":
            config.get_email_config()
        elif service == "pagespeed":
            config.get_pagespeed_config()
        else:
            raise ValueError(f"Unknown service: {service}")
