"""
Storage Quota - storage usage monitoring and cleanup for a local email store
"""

from storage_quota.breakdown import StorageBreakdown
from storage_quota.cleanup import CleanupExecutor
from storage_quota.models import (
    CleanupCriteria,
    CleanupPhase,
    CleanupProgress,
    CleanupResult,
    QuotaMonitorConfig,
    QuotaState,
    ThresholdStatus,
)
from storage_quota.monitor import QuotaMonitor
from storage_quota.sizing import format_bytes

__all__ = [
    'CleanupCriteria',
    'CleanupExecutor',
    'CleanupPhase',
    'CleanupProgress',
    'CleanupResult',
    'QuotaMonitor',
    'QuotaMonitorConfig',
    'QuotaState',
    'StorageBreakdown',
    'ThresholdStatus',
    'format_bytes',
]
