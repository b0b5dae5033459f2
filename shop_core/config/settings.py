# =============================================================================
# shop_core/config/settings.py
# Runtime settings for the offline sync layer
# =============================================================================
"""
Settings are read from Streamlit secrets first, then overridden by
environment variables.

Expected secrets.toml format:
    [supabase]
    url = "https://your-project.supabase.co"
    key = "your-anon-key"

    [sync]
    mode = "offline_tolerant"      # or "remote_authoritative"
    db_path = "local_data/oficina.db"
    remote_timeout = 10
    pending_poll_interval = 30
"""

from __future__ import annotations
import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

import streamlit as st

from shop_core.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path("local_data") / "oficina.db"

VALID_MODES = ("remote_authoritative", "offline_tolerant")

# env var -> settings field
ENV_OVERRIDES = {
    "SUPABASE_URL": "supabase_url",
    "SUPABASE_KEY": "supabase_key",
    "SHOP_DB_PATH": "db_path",
    "SHOP_SYNC_MODE": "mode",
    "SHOP_REMOTE_TIMEOUT": "remote_timeout",
    "SHOP_PENDING_POLL_INTERVAL": "pending_poll_interval",
    "SHOP_LOG_LEVEL": "log_level",
}


@dataclass
class SyncSettings:
    """Configuration shared by the store, monitor, synchronizer and caches."""
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    db_path: Path = field(default_factory=lambda: DEFAULT_DB_PATH)
    mode: str = "offline_tolerant"
    remote_timeout: float = 10.0          # Upper bound for one remote call
    pending_poll_interval: float = 30.0   # Pending-count refresh period
    check_interval_online: float = 30.0   # Seconds between probes when online
    check_interval_offline: float = 10.0  # Seconds between probes when offline
    connection_timeout: float = 5.0       # TCP probe timeout
    log_level: str = "INFO"

    @property
    def has_remote(self) -> bool:
        """Whether Supabase credentials are configured."""
        return bool(self.supabase_url and self.supabase_key)

    def validate(self) -> SyncSettings:
        """Check values and normalise types. Returns self."""
        if self.mode not in VALID_MODES:
            raise ConfigurationError(
                f"Unknown sync mode '{self.mode}'",
                config_key="mode",
                expected_type=" | ".join(VALID_MODES),
            )

        for name in (
            "remote_timeout",
            "pending_poll_interval",
            "check_interval_online",
            "check_interval_offline",
            "connection_timeout",
        ):
            value = getattr(self, name)
            try:
                value = float(value)
            except (TypeError, ValueError):
                raise ConfigurationError(
                    f"Setting '{name}' must be a number, got {value!r}",
                    config_key=name,
                    expected_type="float",
                ) from None
            if value <= 0:
                raise ConfigurationError(
                    f"Setting '{name}' must be positive",
                    config_key=name,
                    expected_type="float > 0",
                )
            setattr(self, name, value)

        self.db_path = Path(self.db_path)
        return self


def _read_secrets() -> Dict[str, Any]:
    """Flatten the [supabase] and [sync] secret sections into settings fields."""
    values: Dict[str, Any] = {}
    try:
        if "supabase" in st.secrets:
            section = st.secrets["supabase"]
            if "url" in section:
                values["supabase_url"] = section["url"]
            if "key" in section:
                values["supabase_key"] = section["key"]
        if "sync" in st.secrets:
            values.update(dict(st.secrets["sync"]))
    except Exception as e:
        # No secrets.toml (tests, CLI) - environment only
        logger.debug(f"Streamlit secrets not available: {e}")
    return values


def load_settings(**overrides: Any) -> SyncSettings:
    """
    Build SyncSettings from secrets, environment and explicit overrides.

    Precedence: overrides > environment > secrets > defaults.
    """
    known = {f.name for f in fields(SyncSettings)}
    values = {k: v for k, v in _read_secrets().items() if k in known}

    for env_name, field_name in ENV_OVERRIDES.items():
        env_value = os.getenv(env_name)
        if env_value:
            values[field_name] = env_value

    values.update({k: v for k, v in overrides.items() if v is not None})

    unknown = set(values) - known
    if unknown:
        raise ConfigurationError(
            f"Unknown settings: {', '.join(sorted(unknown))}",
            config_key=sorted(unknown)[0],
        )

    return replace(SyncSettings(), **values).validate()
