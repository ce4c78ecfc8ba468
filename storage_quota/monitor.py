"""
Quota Monitor - polls storage usage and classifies it into threshold bands
"""

import asyncio
import dataclasses
import logging
import math
from contextlib import suppress
from typing import Callable, List, Optional

from storage_quota.models import QuotaMonitorConfig, QuotaState, StorageEstimate, ThresholdStatus
from storage_quota.providers import StorageEstimateProvider
from storage_quota.utils import now_ms


logger = logging.getLogger(__name__)

QuotaListener = Callable[[QuotaState], None]


class QuotaMonitor:
    """Polls a StorageEstimateProvider and broadcasts QuotaState to subscribers"""

    def __init__(
        self,
        provider: Optional[StorageEstimateProvider] = None,
        config: Optional[QuotaMonitorConfig] = None,
        clock: Callable[[], int] = now_ms
    ):
        self.provider = provider
        self.config = config or QuotaMonitorConfig()
        self.clock = clock

        self._current_state: Optional[QuotaState] = None
        self._listeners: List[QuotaListener] = []
        self._poll_task: Optional[asyncio.Task] = None

    # === Polling ===

    async def check_storage_quota(self) -> QuotaState:
        """Poll the provider, store the new state and notify subscribers"""
        if not self.is_storage_api_available():
            logger.debug("No storage estimate provider, reporting zero usage")
            state = QuotaState(
                usage=0,
                quota=0,
                percentage=0,
                status=ThresholdStatus.NORMAL,
                last_checked=self.clock()
            )
            self._current_state = state
            return state

        estimate = await self.provider.estimate() or StorageEstimate()
        usage = estimate.usage or 0
        quota = estimate.quota or 0
        percentage = self.get_usage_percentage(usage, quota)
        status = self.get_threshold_status(percentage)

        previous = self._current_state
        if previous is not None and previous.status != status:
            logger.info(f"Storage quota status changed: {previous.status.value} -> {status.value} ({percentage}%)")

        state = QuotaState(
            usage=usage,
            quota=quota,
            percentage=percentage,
            status=status,
            last_checked=self.clock()
        )
        self._current_state = state
        self._notify_listeners(state)
        return state

    def get_usage_percentage(self, usage: Optional[int] = None, quota: Optional[int] = None) -> float:
        """Usage as a percentage of quota, rounded to 2 decimals, 0 when quota is 0"""
        current = self._current_state
        if usage is None:
            usage = current.usage if current else 0
        if quota is None:
            quota = current.quota if current else 0

        if quota <= 0:
            return 0

        percentage = usage * 100 / quota
        # Round half up
        rounded = math.floor(percentage * 100 + 0.5) / 100
        return min(max(rounded, 0.0), 100.0)

    def get_threshold_status(self, percentage: Optional[float] = None) -> ThresholdStatus:
        if percentage is None:
            percentage = self._current_state.percentage if self._current_state else 0

        if percentage >= self.config.critical_threshold:
            return ThresholdStatus.CRITICAL
        if percentage >= self.config.warning_threshold:
            return ThresholdStatus.WARNING
        return ThresholdStatus.NORMAL

    def get_current_state(self) -> Optional[QuotaState]:
        """Last polled state without polling again, None if never checked"""
        return self._current_state

    def is_storage_api_available(self) -> bool:
        return self.provider is not None and callable(getattr(self.provider, 'estimate', None))

    # === Scheduling ===

    @property
    def is_monitoring(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    async def start_monitoring(self, interval_ms: Optional[int] = None) -> QuotaState:
        """
        Check once now, then keep checking every interval.

        Replaces any schedule that is already running. The immediate check
        raises on provider failure; scheduled checks log and carry on.
        """
        self.stop_monitoring()

        interval_ms = interval_ms if interval_ms is not None else self.config.check_interval_ms
        if interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive, got {interval_ms}")

        self._schedule(interval_ms)
        logger.info(f"Started storage quota monitoring every {interval_ms} ms")

        return await self.check_storage_quota()

    def stop_monitoring(self) -> None:
        """Cancel the schedule, safe to call when not monitoring"""
        if self._poll_task is None:
            return
        self._poll_task.cancel()
        self._poll_task = None
        logger.info("Stopped storage quota monitoring")

    async def aclose(self) -> None:
        """Dispose and wait for the cancelled schedule to finish"""
        task = self._poll_task
        self.dispose()
        if task is not None:
            with suppress(asyncio.CancelledError):
                await task

    def _schedule(self, interval_ms: int) -> None:
        self._poll_task = asyncio.create_task(self._poll_forever(interval_ms / 1000))

    async def _poll_forever(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await self.check_storage_quota()
            except Exception as error:
                logger.error(f"Scheduled storage quota check failed, retrying next interval: {error}")

    # === Subscriptions ===

    def subscribe(self, listener: QuotaListener) -> Callable[[], None]:
        """
        Register a listener for state updates and return its unsubscribe function.

        A listener added after a check receives the current state right away.
        """
        if listener not in self._listeners:
            self._listeners.append(listener)

        if self._current_state is not None:
            try:
                listener(self._current_state)
            except Exception:
                logger.exception("Error in quota state listener")

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify_listeners(self, state: QuotaState) -> None:
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("Error in quota state listener")

    # === Configuration ===

    def update_config(self, **changes) -> QuotaMonitorConfig:
        """
        Merge new thresholds/interval into the config.

        The current state is re-classified against the new thresholds without
        polling; subscribers hear about it only if the status changed. A running
        schedule picks up a new interval from its next tick.
        """
        previous_interval = self.config.check_interval_ms
        self.config = dataclasses.replace(self.config, **changes)

        if self.is_monitoring and self.config.check_interval_ms != previous_interval:
            self._poll_task.cancel()
            self._schedule(self.config.check_interval_ms)
            logger.info(f"Rescheduled storage quota monitoring every {self.config.check_interval_ms} ms")

        current = self._current_state
        if current is not None:
            new_status = self.get_threshold_status(current.percentage)
            if new_status != current.status:
                logger.info(f"Storage quota status re-classified: {current.status.value} -> {new_status.value}")
                self._current_state = dataclasses.replace(current, status=new_status)
                self._notify_listeners(self._current_state)

        return self.config

    def dispose(self) -> None:
        """Stop monitoring and drop all subscribers and state"""
        self.stop_monitoring()
        self._listeners.clear()
        self._current_state = None
