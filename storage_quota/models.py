"""
Shared data models for Storage Quota
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Dict, List, Optional


class ThresholdStatus(str, Enum):
    """Usage band of the storage quota"""
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"


class AgeBucket(str, Enum):
    """Fixed age ranges for the age breakdown, youngest first"""
    UNDER_1_YEAR = "< 1 year"
    ONE_TO_TWO_YEARS = "1-2 years"
    TWO_TO_THREE_YEARS = "2-3 years"
    OVER_3_YEARS = "> 3 years"


class SizeBucket(str, Enum):
    """Fixed size ranges for the size breakdown, smallest first"""
    UNDER_1MB = "< 1MB"
    ONE_TO_FIVE_MB = "1-5MB"
    FIVE_TO_TEN_MB = "5-10MB"
    OVER_10MB = "> 10MB"


class CleanupPhase(str, Enum):
    COUNTING = "counting"
    DELETING = "deleting"
    COMPLETE = "complete"


# === Quota ===

@dataclass(frozen=True)
class StorageEstimate:
    """Platform-reported storage usage, in bytes"""
    usage: int = 0
    quota: int = 0


@dataclass(frozen=True)
class QuotaState:
    """Result of one quota poll"""
    usage: int
    quota: int
    percentage: float
    status: ThresholdStatus
    last_checked: int  # epoch ms

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['status'] = self.status.value
        return data


@dataclass(frozen=True)
class QuotaMonitorConfig:
    """Thresholds (percent) and polling interval for the quota monitor"""
    warning_threshold: float = 80
    critical_threshold: float = 90
    check_interval_ms: int = 5 * 60 * 1000

    def __post_init__(self):
        for name in ('warning_threshold', 'critical_threshold'):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise ValueError(f"{name} must be between 0 and 100, got {value}")
        if self.warning_threshold > self.critical_threshold:
            raise ValueError(
                f"warning_threshold ({self.warning_threshold}) must not exceed "
                f"critical_threshold ({self.critical_threshold})"
            )
        if self.check_interval_ms <= 0:
            raise ValueError(f"check_interval_ms must be positive, got {self.check_interval_ms}")


# === Breakdown ===

@dataclass
class AccountBreakdown:
    account_id: str
    email_count: int = 0
    estimated_size: int = 0


@dataclass
class AgeBucketBreakdown:
    bucket: AgeBucket
    email_count: int = 0
    estimated_size: int = 0
    oldest_timestamp: Optional[int] = None
    newest_timestamp: Optional[int] = None


@dataclass
class SizeBucketBreakdown:
    bucket: SizeBucket
    email_count: int = 0
    total_size: int = 0


@dataclass
class StorageReport:
    """Per-account, per-age and per-size breakdown plus grand totals"""
    by_account: List[AccountBreakdown] = field(default_factory=list)
    by_age: List[AgeBucketBreakdown] = field(default_factory=list)
    by_size: List[SizeBucketBreakdown] = field(default_factory=list)
    total_emails: int = 0
    total_estimated_size: int = 0

    def to_dict(self) -> Dict:
        data = asdict(self)
        for entry in data['by_age']:
            entry['bucket'] = entry['bucket'].value
        for entry in data['by_size']:
            entry['bucket'] = entry['bucket'].value
        return data


# === Cleanup ===

@dataclass(frozen=True)
class CleanupCriteria:
    """Optional filters selecting documents for removal, AND-combined"""
    account_ids: Optional[List[str]] = None
    older_than_days: Optional[float] = None
    min_size_bytes: Optional[int] = None


@dataclass
class CleanupEstimate:
    email_count: int = 0
    estimated_freed_bytes: int = 0
    affected_accounts: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass(frozen=True)
class CleanupProgress:
    phase: CleanupPhase
    current: int
    total: int
    deleted_count: int
    freed_bytes: int

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['phase'] = self.phase.value
        return data


@dataclass
class CleanupResult:
    freed_bytes: int = 0
    deleted_count: int = 0
    accounts_affected: List[str] = field(default_factory=list)
    duration_ms: int = 0

    def to_dict(self) -> Dict:
        return asdict(self)
