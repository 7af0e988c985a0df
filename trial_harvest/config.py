"""
Harvest Configuration Module
============================

Loads harvest settings from a YAML file. The file defines which site is
scraped, how requests are retried, how wide the two worker pools are and
where results are written.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any

import yaml

from trial_harvest.errors import ConfigError

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (X11; Ubuntu; Linux x86_64; rv:94.0) Gecko/20100101 Firefox/94.0"
)


@dataclass
class SiteConfig:
    """Endpoints and static headers for the results site."""

    domain: str = "https://www.apps.akc.org"
    search_url: str = "https://webapps.akc.org/event-search/api/search/events"
    event_path: str = (
        "/apps/events/search/index_results.cfm?action=plan"
        "&event_number={event_number}&get_event_by_number=yes&NEW_END_DATE1="
    )
    user_agent: str = DEFAULT_USER_AGENT
    csrf_token: str = "token"
    competition_type: str = "AG"
    competition_label: str = "Agility (AG)"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> SiteConfig:
        """Create from dictionary, using defaults for missing values."""
        if data is None:
            return cls()
        defaults = cls()
        return cls(
            domain=data.get("domain", defaults.domain).rstrip("/"),
            search_url=data.get("search_url", defaults.search_url),
            event_path=data.get("event_path", defaults.event_path),
            user_agent=data.get("user_agent", defaults.user_agent),
            csrf_token=data.get("csrf_token", defaults.csrf_token),
            competition_type=data.get("competition_type", defaults.competition_type),
            competition_label=data.get("competition_label", defaults.competition_label),
        )

    def event_url(self, event_number: str) -> str:
        """Build the event detail URL for an event number."""
        return f"{self.domain}{self.event_path.format(event_number=event_number)}"


@dataclass
class HttpConfig:
    """Timeouts and retry policy for outbound requests."""

    request_timeout: float = 30.0
    max_attempts: int = 3
    retry_delay: float = 2.0

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> HttpConfig:
        """Create from dictionary, using defaults for missing values."""
        if data is None:
            return cls()
        return cls(
            request_timeout=float(data.get("request_timeout", 30.0)),
            max_attempts=int(data.get("max_attempts", 3)),
            retry_delay=float(data.get("retry_delay", 2.0)),
        )


@dataclass
class ConcurrencyConfig:
    """
    Worker pool sizes.

    The worst case number of simultaneous requests is
    ``event_concurrency * placement_concurrency`` and must stay at or below
    ``max_in_flight``.
    """

    event_concurrency: int = 10
    placement_concurrency: int = 10
    max_in_flight: int = 100

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ConcurrencyConfig:
        """Create from dictionary, using defaults for missing values."""
        if data is None:
            return cls()
        return cls(
            event_concurrency=int(data.get("event_concurrency", 10)),
            placement_concurrency=int(data.get("placement_concurrency", 10)),
            max_in_flight=int(data.get("max_in_flight", 100)),
        )

    def validate(self) -> None:
        """Raise ConfigError if the pool sizes are unsafe."""
        check_concurrency(self.event_concurrency, self.placement_concurrency, self.max_in_flight)


@dataclass
class HarvestSettings:
    """What to harvest and where to put it."""

    start_date: date = date(2021, 1, 1)
    window_months: int = 1
    output_dir: str = "~/.trial_harvest/outputs"
    save_raw_html: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> HarvestSettings:
        """Create from dictionary, using defaults for missing values."""
        if data is None:
            return cls()
        start = data.get("start_date", date(2021, 1, 1))
        if isinstance(start, str):
            start = date.fromisoformat(start)
        return cls(
            start_date=start,
            window_months=int(data.get("window_months", 1)),
            output_dir=data.get("output_dir", "~/.trial_harvest/outputs"),
            save_raw_html=bool(data.get("save_raw_html", True)),
        )


@dataclass
class HarvestConfig:
    """Top level configuration."""

    site: SiteConfig = field(default_factory=SiteConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    concurrency: ConcurrencyConfig = field(default_factory=ConcurrencyConfig)
    harvest: HarvestSettings = field(default_factory=HarvestSettings)
    database_url: str | None = None
    config_path: Path | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> HarvestConfig:
        """Create from dictionary."""
        data = data or {}
        return cls(
            site=SiteConfig.from_dict(data.get("site")),
            http=HttpConfig.from_dict(data.get("http")),
            concurrency=ConcurrencyConfig.from_dict(data.get("concurrency")),
            harvest=HarvestSettings.from_dict(data.get("harvest")),
            database_url=data.get("database_url"),
        )

    @classmethod
    def load(cls, config_path: Path | str) -> HarvestConfig:
        """
        Load configuration from a YAML file.

        Args:
            config_path: Path to the harvest.yaml file

        Returns:
            Parsed configuration
        """
        config_path = Path(config_path).expanduser().resolve()
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path) as f:
            data = yaml.safe_load(f)

        if data is not None and not isinstance(data, dict):
            raise ConfigError(f"Expected a mapping at the top of {config_path}")

        config = cls.from_dict(data)
        config.config_path = config_path
        return config

    @property
    def output_path(self) -> Path:
        return Path(self.harvest.output_dir).expanduser()

    def validate(self) -> None:
        """Validate the whole configuration."""
        self.concurrency.validate()
        if self.http.max_attempts < 1:
            raise ConfigError(f"max_attempts must be >= 1, got {self.http.max_attempts}")
        if self.http.retry_delay < 0:
            raise ConfigError(f"retry_delay must be >= 0, got {self.http.retry_delay}")
        if self.harvest.window_months < 1:
            raise ConfigError(f"window_months must be >= 1, got {self.harvest.window_months}")


def check_concurrency(event_concurrency: int, placement_concurrency: int, max_in_flight: int) -> None:
    """
    Check the pool sizes against the in-flight ceiling.

    Raises:
        ConfigError: If either pool is smaller than 1 or their product
            exceeds ``max_in_flight``.
    """
    if event_concurrency < 1 or placement_concurrency < 1:
        raise ConfigError(
            f"Concurrency limits must be >= 1 "
            f"(event={event_concurrency}, placement={placement_concurrency})"
        )
    product = event_concurrency * placement_concurrency
    if product > max_in_flight:
        raise ConfigError(
            f"event_concurrency x placement_concurrency = {product} exceeds "
            f"max_in_flight={max_in_flight}"
        )


# Global config instance
_default_config: HarvestConfig | None = None


def get_default_config() -> HarvestConfig:
    """
    Get the default configuration instance.

    Loads configuration from the path specified in HARVEST_CONFIG_PATH
    environment variable, or falls back to config/harvest.yaml.

    Returns:
        The global HarvestConfig instance
    """
    global _default_config

    if _default_config is None:
        config_path = os.environ.get("HARVEST_CONFIG_PATH")
        if config_path:
            path = Path(config_path)
        else:
            project_root = Path(__file__).parent.parent
            path = project_root / "config" / "harvest.yaml"

        if path.exists():
            _default_config = HarvestConfig.load(path)
        else:
            _default_config = HarvestConfig()

    return _default_config


def reset_default_config() -> None:
    """Reset the default config (useful for testing)."""
    global _default_config
    _default_config = None
