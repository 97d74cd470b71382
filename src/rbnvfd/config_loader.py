#!/usr/bin/env python3
"""
Centralized configuration for rbnvfd.

Upper-case JSON keys map onto small dataclasses; anything missing falls back
to a default. RBNVFD_CALLSIGN and RBNVFD_RADIO_BACKEND override the file.
Feed and store constants that are not user-tunable also live here.
"""
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .logging_setup import get_logger
from .models import MergePolicy
from .radio import RadioBackend

logger = get_logger(__name__)

# ── Protocol constants ────────────────────────────────────────────────

RBN_HOST = "rbn.telegraphy.de"         # Reverse Beacon Network telnet feed
RBN_PORT = 7000

COMMAND_QUEUE_SIZE = 16                # Consumer -> client, blocks when full
EVENT_QUEUE_SIZE = 256                 # Client -> consumer, blocks when full
IDLE_POLL_SECONDS = 0.1                # Client idle wait with no socket open

RETENTION_SECONDS = 30 * 60            # Hard ceiling for resident spots

RIGCTLD_PORT = 4532                    # Hamlib rigctld default

WEB_HOST = "127.0.0.1"
WEB_PORT = 2982


@dataclass
class RbnConfig:
    """Spotting network connection configuration."""

    host: str = RBN_HOST
    port: int = RBN_PORT
    auto_connect: bool = False


@dataclass
class FilterConfig:
    """Display filter and aggregation configuration."""

    min_snr: int = 0
    max_age_minutes: int = 10
    merge_policy: MergePolicy = MergePolicy.LATEST
    purge_interval_seconds: int = 60


@dataclass
class RadioConfig:
    """Rig control configuration."""

    backend: RadioBackend = RadioBackend.DISABLED
    rigctld_host: str = "127.0.0.1"
    rigctld_port: int = RIGCTLD_PORT
    omnirig_rig: int = 1


@dataclass
class WebConfig:
    """HTTP/SSE display API configuration."""

    enabled: bool = True
    host: str = WEB_HOST
    port: int = WEB_PORT


@dataclass
class Config:
    """Main rbnvfd configuration."""

    # Identity
    call_sign: str = ""

    rbn: RbnConfig = field(default_factory=RbnConfig)
    filters: FilterConfig = field(default_factory=FilterConfig)
    radio: RadioConfig = field(default_factory=RadioConfig)
    web: WebConfig = field(default_factory=WebConfig)

    @classmethod
    def load(cls, path: str | Path | None = None) -> "Config":
        """
        Load configuration from file.

        Args:
            path: Path to config file. If None, uses environment-based default.

        Returns:
            Config instance with loaded values.
        """
        if path is None:
            path = cls._get_default_path()

        path = Path(path)

        if not path.exists():
            logger.warning("Config file not found: %s, using defaults", path)
            return cls._from_dict({})

        with open(path, encoding="utf-8") as f:
            data = json.load(f)

        logger.info("Loaded config from %s", path)
        return cls._from_dict(data)

    @staticmethod
    def _get_default_path() -> Path:
        """Get default config path based on environment."""
        explicit = os.getenv("RBNVFD_CONFIG")
        if explicit:
            return Path(explicit)
        if os.getenv("RBNVFD_ENV") == "dev":
            logger.debug("DEV environment detected")
            return Path("/etc/rbnvfd/config.dev.json")
        return Path("/etc/rbnvfd/config.json")

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> "Config":
        """Create Config from dictionary (JSON data).

        Unknown keys are ignored. Invalid MERGE_POLICY or RADIO_BACKEND
        values raise ValueError.
        """
        rbn = RbnConfig(
            host=data.get("RBN_HOST", RBN_HOST),
            port=int(data.get("RBN_PORT", RBN_PORT)),
            auto_connect=bool(data.get("AUTO_CONNECT", False)),
        )

        filters = FilterConfig(
            min_snr=int(data.get("MIN_SNR", 0)),
            max_age_minutes=int(data.get("MAX_AGE_MINUTES", 10)),
            merge_policy=MergePolicy(str(data.get("MERGE_POLICY", "latest")).lower()),
            purge_interval_seconds=int(data.get("PURGE_INTERVAL_SECONDS", 60)),
        )

        # Radio backend: env var override → config file → default "disabled"
        backend = os.getenv("RBNVFD_RADIO_BACKEND", data.get("RADIO_BACKEND", "disabled"))

        radio = RadioConfig(
            backend=RadioBackend(str(backend).lower()),
            rigctld_host=data.get("RIGCTLD_HOST", "127.0.0.1"),
            rigctld_port=int(data.get("RIGCTLD_PORT", RIGCTLD_PORT)),
            omnirig_rig=int(data.get("OMNIRIG_RIG", 1)),
        )

        web = WebConfig(
            enabled=bool(data.get("WEB_ENABLED", True)),
            host=data.get("WEB_HOST", WEB_HOST),
            port=int(data.get("WEB_PORT", WEB_PORT)),
        )

        call_sign = os.getenv("RBNVFD_CALLSIGN", data.get("CALL_SIGN", ""))

        return cls(
            call_sign=call_sign.strip().upper(),
            rbn=rbn,
            filters=filters,
            radio=radio,
            web=web,
        )

    def to_dict(self) -> dict[str, Any]:
        """Export config to dictionary for saving."""
        return {
            "CALL_SIGN": self.call_sign,
            "RBN_HOST": self.rbn.host,
            "RBN_PORT": self.rbn.port,
            "AUTO_CONNECT": self.rbn.auto_connect,
            "MIN_SNR": self.filters.min_snr,
            "MAX_AGE_MINUTES": self.filters.max_age_minutes,
            "MERGE_POLICY": self.filters.merge_policy.value,
            "PURGE_INTERVAL_SECONDS": self.filters.purge_interval_seconds,
            "RADIO_BACKEND": self.radio.backend.value,
            "RIGCTLD_HOST": self.radio.rigctld_host,
            "RIGCTLD_PORT": self.radio.rigctld_port,
            "OMNIRIG_RIG": self.radio.omnirig_rig,
            "WEB_ENABLED": self.web.enabled,
            "WEB_HOST": self.web.host,
            "WEB_PORT": self.web.port,
        }

    def save(self, path: str | Path) -> None:
        """Save config to file."""
        path = Path(path)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)
        logger.info("Saved config to %s", path)

