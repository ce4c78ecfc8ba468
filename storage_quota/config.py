"""
Environment configuration
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from storage_quota.models import QuotaMonitorConfig


# Load .env once, globally
load_dotenv()


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None or value.strip() == '':
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {value!r}") from None


@dataclass(frozen=True)
class Settings:
    data_dir: Path = Path('data')
    emails_path: Optional[Path] = None
    monitor: QuotaMonitorConfig = QuotaMonitorConfig()


def load_monitor_config() -> QuotaMonitorConfig:
    defaults = QuotaMonitorConfig()
    return QuotaMonitorConfig(
        warning_threshold=_env_float('QUOTA_WARNING_THRESHOLD', defaults.warning_threshold),
        critical_threshold=_env_float('QUOTA_CRITICAL_THRESHOLD', defaults.critical_threshold),
        check_interval_ms=int(_env_float('QUOTA_CHECK_INTERVAL_MS', defaults.check_interval_ms))
    )


def load_settings() -> Settings:
    emails_path = os.getenv('STORAGE_QUOTA_EMAILS_PATH')
    return Settings(
        data_dir=Path(os.getenv('STORAGE_QUOTA_DATA_DIR', 'data')),
        emails_path=Path(emails_path) if emails_path else None,
        monitor=load_monitor_config()
    )
