# phishing_detector/services/statistics.py
import asyncio
import logging
from dataclasses import asdict, dataclass
from typing import Dict

from .storage import KeyValueStore, StorageError

logger = logging.getLogger(__name__)

STATS_KEY = "stats"


@dataclass
class Statistics:
    sites_blocked: int = 0
    threats_detected: int = 0
    alerts_shown: int = 0


class StatisticsService:
    """
    Persisted detection counters. Counters only ever go up; there is no
    reset here, clearing them is a manual storage operation.
    """

    def __init__(self, storage: KeyValueStore):
        self.storage = storage
        self.stats = Statistics()
        self._write_lock = asyncio.Lock()

    async def load(self) -> bool:
        try:
            stored = await asyncio.to_thread(self.storage.get, [STATS_KEY])
        except StorageError as e:
            logger.error(f"Error loading statistics: {e}")
            return False

        data = stored.get(STATS_KEY) or {}
        self.stats = Statistics(
            sites_blocked=int(data.get('sites_blocked', 0)),
            threats_detected=int(data.get('threats_detected', 0)),
            alerts_shown=int(data.get('alerts_shown', 0)),
        )
        return True

    async def increment(self, sites_blocked: int = 0, threats_detected: int = 0,
                        alerts_shown: int = 0) -> Statistics:
        if min(sites_blocked, threats_detected, alerts_shown) < 0:
            raise ValueError("Statistics counters cannot be decremented")

        async with self._write_lock:
            self.stats.sites_blocked += sites_blocked
            self.stats.threats_detected += threats_detected
            self.stats.alerts_shown += alerts_shown

            try:
                await asyncio.to_thread(self.storage.set, {STATS_KEY: asdict(self.stats)})
            except StorageError as e:
                logger.error(f"Error updating detection stats: {e}")

            return Statistics(**asdict(self.stats))

    def snapshot(self) -> Dict[str, int]:
        return asdict(self.stats)
