"""
Cleanup Executor - bulk removal of stored emails with streamed progress
"""

import inspect
import logging
import time
from typing import Awaitable, Callable, Optional, Union

from storage_quota.breakdown import criteria_selector, passes_size_filter
from storage_quota.models import CleanupCriteria, CleanupPhase, CleanupProgress, CleanupResult
from storage_quota.sizing import estimate_size, format_bytes, raw_size
from storage_quota.store import DocumentStore, EmailDocument, Equals, LessThan, Selector
from storage_quota.utils import cutoff_ms, now_ms


logger = logging.getLogger(__name__)

ProgressCallback = Callable[[CleanupProgress], Union[None, Awaitable[None]]]


class CleanupExecutor:
    """Removes emails matching cleanup criteria, one at a time"""

    def __init__(self, store: Optional[DocumentStore], clock: Callable[[], int] = now_ms):
        self.store = store
        self.clock = clock

    # === Entry Points ===

    async def cleanup_by_age(
        self,
        older_than_days: float,
        account_id: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None
    ) -> CleanupResult:
        """Remove emails older than `older_than_days`, optionally for one account"""
        selector = [LessThan('timestamp', cutoff_ms(older_than_days, self.clock()))]
        if account_id:
            selector.append(Equals('account_id', account_id))

        return await self._run(
            f"older than {older_than_days} days",
            tuple(selector),
            size_of=estimate_size,
            on_progress=on_progress
        )

    async def cleanup_by_size(
        self,
        min_size_bytes: int,
        account_id: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None
    ) -> CleanupResult:
        """Remove emails whose raw size is at least `min_size_bytes`; freed bytes are raw too"""
        selector = (Equals('account_id', account_id),) if account_id else ()

        return await self._run(
            f"of at least {min_size_bytes} bytes",
            selector,
            keep=lambda email: raw_size(email) >= min_size_bytes,
            size_of=raw_size,
            on_progress=on_progress
        )

    async def cleanup_by_account(
        self,
        account_id: str,
        on_progress: Optional[ProgressCallback] = None
    ) -> CleanupResult:
        """Remove every email of one account"""
        result = await self._run(
            f"for account {account_id}",
            (Equals('account_id', account_id),),
            size_of=estimate_size,
            on_progress=on_progress
        )
        result.accounts_affected = [account_id] if result.deleted_count > 0 else []
        return result

    async def execute_cleanup(
        self,
        criteria: CleanupCriteria,
        on_progress: Optional[ProgressCallback] = None
    ) -> CleanupResult:
        """Remove emails matching all of the given criteria"""
        min_size_bytes = criteria.min_size_bytes

        return await self._run(
            f"matching {criteria}",
            criteria_selector(criteria, self.clock()),
            keep=lambda email: passes_size_filter(email, min_size_bytes),
            size_of=estimate_size,
            on_progress=on_progress
        )

    # === Execution ===

    async def _run(
        self,
        description: str,
        selector: Selector,
        size_of: Callable[[EmailDocument], int],
        keep: Optional[Callable[[EmailDocument], bool]] = None,
        on_progress: Optional[ProgressCallback] = None
    ) -> CleanupResult:
        """Count, then delete sequentially reporting after every removal, then complete"""
        started = time.monotonic()

        if self.store is None:
            logger.warning(f"No email store, skipping cleanup {description}")
            return CleanupResult(duration_ms=self._elapsed_ms(started))

        await self._report_progress(on_progress, CleanupPhase.COUNTING, 0, 0, 0, 0)

        emails = await self.store.find(selector)
        if keep is not None:
            emails = [email for email in emails if keep(email)]
        total = len(emails)
        logger.info(f"Starting cleanup {description}: {total} emails")

        deleted_count = 0
        freed_bytes = 0
        accounts_affected = {}

        for email in emails:
            size = size_of(email)
            try:
                await email.remove()
            except Exception as error:
                logger.error(
                    f"Cleanup {description} aborted after {deleted_count}/{total} emails "
                    f"({format_bytes(freed_bytes)} freed): {error}"
                )
                raise

            deleted_count += 1
            freed_bytes += size
            accounts_affected[email.account_id] = None
            logger.debug(f"Removed email from {email.account_id} ({size} bytes)")

            await self._report_progress(
                on_progress, CleanupPhase.DELETING, deleted_count, total, deleted_count, freed_bytes
            )

        result = CleanupResult(
            freed_bytes=freed_bytes,
            deleted_count=deleted_count,
            accounts_affected=list(accounts_affected),
            duration_ms=self._elapsed_ms(started)
        )

        await self._report_progress(
            on_progress, CleanupPhase.COMPLETE, total, total, deleted_count, freed_bytes
        )
        logger.info(
            f"Cleanup {description} complete: {deleted_count} emails, "
            f"{format_bytes(freed_bytes)} freed in {result.duration_ms} ms"
        )

        return result

    # === Progress ===

    @staticmethod
    async def _report_progress(
        on_progress: Optional[ProgressCallback],
        phase: CleanupPhase,
        current: int,
        total: int,
        deleted_count: int,
        freed_bytes: int
    ) -> None:
        """Invoke the callback inline; awaitable results are awaited before continuing"""
        if on_progress is None:
            return
        outcome = on_progress(CleanupProgress(
            phase=phase,
            current=current,
            total=total,
            deleted_count=deleted_count,
            freed_bytes=freed_bytes
        ))
        if inspect.isawaitable(outcome):
            await outcome

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.monotonic() - started) * 1000)
