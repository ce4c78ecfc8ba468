"""
Storage Service - composition root for quota monitoring and cleanup
Owns one monitor, one breakdown and one cleanup executor over the same store
"""

import logging
from typing import Callable, Optional

from storage_quota.breakdown import StorageBreakdown
from storage_quota.cleanup import CleanupExecutor, ProgressCallback
from storage_quota.config import Settings
from storage_quota.models import (
    CleanupCriteria,
    CleanupEstimate,
    CleanupResult,
    QuotaMonitorConfig,
    QuotaState,
    StorageReport,
)
from storage_quota.monitor import QuotaMonitor
from storage_quota.providers import DiskUsageEstimateProvider, StorageEstimateProvider
from storage_quota.store import DocumentStore, InMemoryDocumentStore
from storage_quota.utils import now_ms


logger = logging.getLogger(__name__)


class StorageService:
    """Facade over QuotaMonitor, StorageBreakdown and CleanupExecutor"""

    def __init__(
        self,
        store: Optional[DocumentStore] = None,
        provider: Optional[StorageEstimateProvider] = None,
        monitor_config: Optional[QuotaMonitorConfig] = None,
        clock: Callable[[], int] = now_ms
    ):
        self.store = store
        self.monitor = QuotaMonitor(provider, monitor_config, clock=clock)
        self.breakdown = StorageBreakdown(store, clock=clock)
        self.cleaner = CleanupExecutor(store, clock=clock)

        # Progress callback for cleanup runs
        self.progress_callback: Optional[ProgressCallback] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> 'StorageService':
        """Build the service from environment settings"""
        settings.data_dir.mkdir(parents=True, exist_ok=True)

        if settings.emails_path is not None:
            store = InMemoryDocumentStore.from_json_file(settings.emails_path)
        else:
            logger.info("No STORAGE_QUOTA_EMAILS_PATH set, starting with an empty email store")
            store = InMemoryDocumentStore()

        return cls(
            store=store,
            provider=DiskUsageEstimateProvider(settings.data_dir),
            monitor_config=settings.monitor
        )

    def set_progress_callback(self, callback: Optional[ProgressCallback]) -> None:
        """Set callback for cleanup progress updates"""
        self.progress_callback = callback

    # === Quota (delegates to QuotaMonitor) ===

    async def check_quota(self) -> QuotaState:
        return await self.monitor.check_storage_quota()

    def get_quota_state(self) -> Optional[QuotaState]:
        return self.monitor.get_current_state()

    def subscribe(self, listener: Callable[[QuotaState], None]) -> Callable[[], None]:
        return self.monitor.subscribe(listener)

    def update_monitor_config(self, **changes) -> QuotaMonitorConfig:
        return self.monitor.update_config(**changes)

    # === Breakdown (delegates to StorageBreakdown) ===

    async def get_breakdown(self) -> StorageReport:
        return await self.breakdown.get_storage_breakdown()

    async def estimate_cleanup(self, criteria: CleanupCriteria) -> CleanupEstimate:
        return await self.breakdown.estimate_storage_reduction(criteria)

    # === Cleanup (delegates to CleanupExecutor) ===

    async def cleanup(self, criteria: CleanupCriteria) -> CleanupResult:
        result = await self.cleaner.execute_cleanup(criteria, self.progress_callback)
        await self._refresh_quota_after_cleanup(result)
        return result

    async def cleanup_by_age(self, older_than_days: float, account_id: Optional[str] = None) -> CleanupResult:
        result = await self.cleaner.cleanup_by_age(older_than_days, account_id, self.progress_callback)
        await self._refresh_quota_after_cleanup(result)
        return result

    async def cleanup_by_size(self, min_size_bytes: int, account_id: Optional[str] = None) -> CleanupResult:
        result = await self.cleaner.cleanup_by_size(min_size_bytes, account_id, self.progress_callback)
        await self._refresh_quota_after_cleanup(result)
        return result

    async def cleanup_by_account(self, account_id: str) -> CleanupResult:
        result = await self.cleaner.cleanup_by_account(account_id, self.progress_callback)
        await self._refresh_quota_after_cleanup(result)
        return result

    async def _refresh_quota_after_cleanup(self, result: CleanupResult) -> None:
        """Re-poll the quota so subscribers see the freed space"""
        if result.deleted_count == 0 or not self.monitor.is_storage_api_available():
            return
        try:
            await self.monitor.check_storage_quota()
        except Exception as error:
            logger.warning(f"Could not refresh storage quota after cleanup: {error}")

    # === Lifecycle ===

    def dispose(self) -> None:
        """Stop background monitoring and release subscribers"""
        self.monitor.dispose()
        self.progress_callback = None

    async def aclose(self) -> None:
        """Dispose and wait for the monitoring task to wind down"""
        await self.monitor.aclose()
        self.progress_callback = None
