"""Config loading utilities for the watcher, dashboard and command layer."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

DEFAULT_CONFIG_PATH = "config/settings.yaml"


@dataclass
class MarketplaceConfig:
    name: str = "binance-p2p"
    base_url: str = "https://p2p.binance.com"
    search_path: str = "/bapi/c2c/v2/friendly/c2c/adv/search"
    page_size: int = 5
    timeout_seconds: Optional[float] = 10.0


@dataclass
class DefaultsConfig:
    asset: str = "USDT"
    fiat: str = "MMK"


@dataclass
class WatchConfig:
    period_seconds: float = 60.0


@dataclass
class DashboardConfig:
    host: str = "0.0.0.0"
    port: int = 8000
    enable: bool = True


@dataclass
class AppConfig:
    marketplace: MarketplaceConfig = field(default_factory=MarketplaceConfig)
    defaults: DefaultsConfig = field(default_factory=DefaultsConfig)
    watch: WatchConfig = field(default_factory=WatchConfig)
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)
    branding: str = ""


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise ValueError(f"config section {name!r} must be a mapping")
    return value


def config_from_dict(raw: Dict[str, Any]) -> AppConfig:
    marketplace = _section(raw, "marketplace")
    defaults = _section(raw, "defaults")
    watch = _section(raw, "watch")
    dashboard = _section(raw, "dashboard")

    page_size = int(marketplace.get("page_size", MarketplaceConfig.page_size))
    if page_size <= 0:
        raise ValueError("marketplace.page_size must be positive")
    timeout = marketplace.get("timeout_seconds", MarketplaceConfig.timeout_seconds)

    return AppConfig(
        marketplace=MarketplaceConfig(
            name=marketplace.get("name", MarketplaceConfig.name),
            base_url=marketplace.get("base_url", MarketplaceConfig.base_url),
            search_path=marketplace.get("search_path", MarketplaceConfig.search_path),
            page_size=page_size,
            timeout_seconds=None if timeout is None else float(timeout),
        ),
        defaults=DefaultsConfig(
            asset=str(defaults.get("asset", DefaultsConfig.asset)).upper(),
            fiat=str(defaults.get("fiat", DefaultsConfig.fiat)).upper(),
        ),
        watch=WatchConfig(period_seconds=float(watch.get("period_seconds", WatchConfig.period_seconds))),
        dashboard=DashboardConfig(
            host=dashboard.get("host", DashboardConfig.host),
            port=int(dashboard.get("port", DashboardConfig.port)),
            enable=bool(dashboard.get("enable", DashboardConfig.enable)),
        ),
        branding=str(raw.get("branding", "")),
    )


def load_config(path: str | Path | None = None) -> AppConfig:
    """Load YAML config, falling back to defaults when the file is missing.

    ``CONFIG_PATH`` in the environment is used when ``path`` is not given.
    """

    resolved = Path(path or env_or_default("CONFIG_PATH", DEFAULT_CONFIG_PATH)).expanduser()
    if not resolved.exists():
        logging.getLogger(__name__).warning("Config file %s not found, using defaults", resolved)
        return AppConfig()
    with resolved.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    return config_from_dict(raw)


def env_or_default(key: str, default: str) -> str:
    return os.getenv(key, default)


__all__ = [
    "AppConfig",
    "DashboardConfig",
    "DefaultsConfig",
    "MarketplaceConfig",
    "WatchConfig",
    "config_from_dict",
    "load_config",
]
