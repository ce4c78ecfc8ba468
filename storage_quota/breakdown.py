"""
Storage Breakdown - aggregates estimated email sizes by account, age and size
"""

import asyncio
import logging
from typing import Callable, Dict, List, Optional

from storage_quota.models import (
    AccountBreakdown,
    AgeBucket,
    AgeBucketBreakdown,
    CleanupCriteria,
    CleanupEstimate,
    SizeBucket,
    SizeBucketBreakdown,
    StorageReport,
)
from storage_quota.sizing import MB, estimate_size, format_bytes, raw_size
from storage_quota.store import DocumentStore, In, LessThan, Selector
from storage_quota.utils import YEAR_MS, cutoff_ms, now_ms


logger = logging.getLogger(__name__)


def age_bucket_for(age_ms: int) -> AgeBucket:
    if age_ms < YEAR_MS:
        return AgeBucket.UNDER_1_YEAR
    if age_ms < 2 * YEAR_MS:
        return AgeBucket.ONE_TO_TWO_YEARS
    if age_ms < 3 * YEAR_MS:
        return AgeBucket.TWO_TO_THREE_YEARS
    return AgeBucket.OVER_3_YEARS


def size_bucket_for(size: int) -> SizeBucket:
    if size < MB:
        return SizeBucket.UNDER_1MB
    if size < 5 * MB:
        return SizeBucket.ONE_TO_FIVE_MB
    if size < 10 * MB:
        return SizeBucket.FIVE_TO_TEN_MB
    return SizeBucket.OVER_10MB


def criteria_selector(criteria: CleanupCriteria, now: int) -> Selector:
    """Store-level part of the criteria; min_size_bytes is filtered client-side"""
    predicates = []
    if criteria.account_ids:
        predicates.append(In('account_id', criteria.account_ids))
    if criteria.older_than_days is not None:
        predicates.append(LessThan('timestamp', cutoff_ms(criteria.older_than_days, now)))
    return tuple(predicates)


def passes_size_filter(document, min_size_bytes: Optional[int]) -> bool:
    """Size is derived, not indexed, so it is tested on the raw size after the query"""
    if min_size_bytes is None:
        return True
    return raw_size(document) >= min_size_bytes


class StorageBreakdown:
    """Scans the email store and reports where the storage goes"""

    def __init__(self, store: Optional[DocumentStore], clock: Callable[[], int] = now_ms):
        self.store = store
        self.clock = clock

    # === Breakdowns ===

    async def get_storage_breakdown_by_account(self) -> List[AccountBreakdown]:
        """Email count and estimated size per account, largest first"""
        if self.store is None:
            logger.debug("No email store, account breakdown is empty")
            return []

        emails = await self.store.find()
        accounts: Dict[str, AccountBreakdown] = {}

        for email in emails:
            entry = accounts.get(email.account_id)
            if entry is None:
                entry = accounts[email.account_id] = AccountBreakdown(account_id=email.account_id)
            entry.email_count += 1
            entry.estimated_size += estimate_size(email)

        return sorted(accounts.values(), key=lambda entry: entry.estimated_size, reverse=True)

    async def get_storage_breakdown_by_age(self) -> List[AgeBucketBreakdown]:
        """Email count, estimated size and timestamp range per age bucket, empty buckets omitted"""
        if self.store is None:
            logger.debug("No email store, age breakdown is empty")
            return []

        emails = await self.store.find()
        now = self.clock()
        buckets = {bucket: AgeBucketBreakdown(bucket=bucket) for bucket in AgeBucket}

        for email in emails:
            entry = buckets[age_bucket_for(now - email.timestamp)]
            entry.email_count += 1
            entry.estimated_size += estimate_size(email)
            if entry.oldest_timestamp is None or email.timestamp < entry.oldest_timestamp:
                entry.oldest_timestamp = email.timestamp
            if entry.newest_timestamp is None or email.timestamp > entry.newest_timestamp:
                entry.newest_timestamp = email.timestamp

        return [entry for entry in buckets.values() if entry.email_count > 0]

    async def get_storage_breakdown_by_size(self) -> List[SizeBucketBreakdown]:
        """Email count and total estimated size per size bucket, empty buckets omitted"""
        if self.store is None:
            logger.debug("No email store, size breakdown is empty")
            return []

        emails = await self.store.find()
        buckets = {bucket: SizeBucketBreakdown(bucket=bucket) for bucket in SizeBucket}

        for email in emails:
            size = estimate_size(email)
            entry = buckets[size_bucket_for(size)]
            entry.email_count += 1
            entry.total_size += size

        return [entry for entry in buckets.values() if entry.email_count > 0]

    async def get_storage_breakdown(self) -> StorageReport:
        """All three breakdowns plus totals taken from the account breakdown"""
        by_account, by_age, by_size = await asyncio.gather(
            self.get_storage_breakdown_by_account(),
            self.get_storage_breakdown_by_age(),
            self.get_storage_breakdown_by_size()
        )

        result = StorageReport(
            by_account=by_account,
            by_age=by_age,
            by_size=by_size,
            total_emails=sum(entry.email_count for entry in by_account),
            total_estimated_size=sum(entry.estimated_size for entry in by_account)
        )
        logger.debug(
            f"Storage breakdown: {result.total_emails} emails, "
            f"{format_bytes(result.total_estimated_size)} across {len(by_account)} accounts"
        )
        return result

    # === Cleanup Preview ===

    async def estimate_storage_reduction(self, criteria: CleanupCriteria) -> CleanupEstimate:
        """Preview what a cleanup with `criteria` would remove, without removing anything"""
        if self.store is None:
            return CleanupEstimate()

        emails = await self.store.find(criteria_selector(criteria, self.clock()))

        estimate = CleanupEstimate()
        affected = {}
        for email in emails:
            if not passes_size_filter(email, criteria.min_size_bytes):
                continue
            estimate.email_count += 1
            estimate.estimated_freed_bytes += estimate_size(email)
            affected[email.account_id] = None

        estimate.affected_accounts = list(affected)
        logger.debug(
            f"Cleanup estimate: {estimate.email_count} emails, "
            f"{format_bytes(estimate.estimated_freed_bytes)} from {len(affected)} accounts"
        )
        return estimate

    format_bytes = staticmethod(format_bytes)
