"""
Shared test fixtures for Storage Quota tests
"""

import pytest
from typing import Iterable, List, Optional, Set

from storage_quota.models import QuotaMonitorConfig, StorageEstimate
from storage_quota.sizing import KB
from storage_quota.store import InMemoryDocumentStore, StoredEmail
from storage_quota.utils import DAY_MS, YEAR_MS


# Fixed "now" so age buckets and cutoffs are deterministic
NOW_MS = 1_700_000_000_000


def fixed_clock() -> int:
    return NOW_MS


# === Mock Estimate Providers ===

class MockEstimateProvider:
    """Returns queued estimates in order, repeating the last one"""

    def __init__(self, *estimates: StorageEstimate):
        self._estimates = list(estimates) or [StorageEstimate()]
        self.calls = 0

    def set(self, usage: int, quota: int) -> None:
        self._estimates = [StorageEstimate(usage=usage, quota=quota)]

    async def estimate(self) -> StorageEstimate:
        self.calls += 1
        if len(self._estimates) > 1:
            return self._estimates.pop(0)
        return self._estimates[0]


class FlakyEstimateProvider(MockEstimateProvider):
    """Raises on selected call numbers (1-based)"""

    def __init__(self, fail_on_calls: Set[int], usage: int = 100, quota: int = 1000):
        super().__init__(StorageEstimate(usage=usage, quota=quota))
        self._fail_on_calls = fail_on_calls

    async def estimate(self) -> StorageEstimate:
        result = await super().estimate()
        if self.calls in self._fail_on_calls:
            raise OSError(f"estimate failed on call {self.calls}")
        return result


# === Mock Document Store ===

class FailingRemoveStore(InMemoryDocumentStore):
    """In-memory store whose removal fails for selected email ids"""

    def __init__(self, emails: Iterable[StoredEmail] = (), fail_ids: Optional[Set[str]] = None):
        super().__init__(emails)
        self.fail_ids = fail_ids or set()
        self.removed: List[str] = []

    async def remove(self, email_id: str) -> None:
        if email_id in self.fail_ids:
            raise IOError(f"Could not remove {email_id}")
        await super().remove(email_id)
        self.removed.append(email_id)


class RecordingStore(InMemoryDocumentStore):
    """In-memory store that records every selector it is queried with"""

    def __init__(self):
        super().__init__()
        self.selectors = []

    async def find(self, selector=()):
        self.selectors.append(selector)
        return await super().find(selector)


# === Helpers to create email data ===

def days_ago(days: float) -> int:
    return int(NOW_MS - days * DAY_MS)


def years_ago(years: float) -> int:
    return int(NOW_MS - years * YEAR_MS)


def add_email(
    store: InMemoryDocumentStore,
    email_id: str,
    account_id: str = 'account-a',
    timestamp: int = NOW_MS,
    text: str = 'test content',
    html: str = 'test content',
    attachment_sizes: Iterable[int] = ()
) -> StoredEmail:
    """Helper to add one email with sensible defaults"""
    return store.add(
        email_id=email_id,
        account_id=account_id,
        timestamp=timestamp,
        text=text,
        html=html,
        attachment_sizes=attachment_sizes
    )


# === Fixtures ===

@pytest.fixture
def sample_store() -> InMemoryDocumentStore:
    """Two accounts, emails spread across all age buckets and several sizes"""
    store = InMemoryDocumentStore()

    # Small emails (floored to 50KB)
    add_email(store, 'a-new', 'account-a', days_ago(10))
    add_email(store, 'a-1y', 'account-a', years_ago(1.5))
    add_email(store, 'b-2y', 'account-b', years_ago(2.5))
    add_email(store, 'b-4y', 'account-b', years_ago(4))

    # Large emails
    add_email(store, 'a-big', 'account-a', days_ago(30), attachment_sizes=[3 * 1024 * KB])
    add_email(store, 'b-huge', 'account-b', years_ago(3.5), attachment_sizes=[8 * 1024 * KB, 4 * 1024 * KB])
    add_email(store, 'a-mid', 'account-a', years_ago(1.2), text='x' * 100 * KB)

    return store


@pytest.fixture
def empty_store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def default_monitor_config() -> QuotaMonitorConfig:
    return QuotaMonitorConfig()


@pytest.fixture
def fast_monitor_config() -> QuotaMonitorConfig:
    """Monitor config that polls every 20ms"""
    return QuotaMonitorConfig(check_interval_ms=20)
