"""
Storage estimate providers - platform-reported usage and quota
"""

import asyncio
import logging
import shutil
from pathlib import Path
from typing import Protocol, Union

from storage_quota.models import StorageEstimate


logger = logging.getLogger(__name__)


class StorageEstimateProvider(Protocol):
    async def estimate(self) -> StorageEstimate:
        ...


class DiskUsageEstimateProvider:
    """Reports used/total bytes of the filesystem holding `path`"""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    async def estimate(self) -> StorageEstimate:
        usage = await asyncio.to_thread(shutil.disk_usage, self.path)
        logger.debug(f"Disk usage for {self.path}: {usage.used}/{usage.total} bytes")
        return StorageEstimate(usage=usage.used, quota=usage.total)


class StaticEstimateProvider:
    """Fixed usage/quota, updated by assigning `usage` and `quota`"""

    def __init__(self, usage: int = 0, quota: int = 0):
        self.usage = usage
        self.quota = quota

    async def estimate(self) -> StorageEstimate:
        return StorageEstimate(usage=self.usage, quota=self.quota)
