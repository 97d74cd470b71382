"""Thread-safe store of aggregated spots.

One lock guards the whole map. Every operation holds it for its full
duration, readers included. Operations never raise: if the lock cannot be
taken within LOCK_TIMEOUT seconds, mutations are skipped and reads come back
empty.
"""

import math
import threading
import time
from contextlib import contextmanager
from dataclasses import replace
from typing import Callable, Iterator

from .config_loader import RETENTION_SECONDS
from .logging_setup import get_logger
from .models import AggregatedSpot, MergePolicy, RawSpot, spot_key

logger = get_logger(__name__)

LOCK_TIMEOUT = 2.0


class SpotStore:
    """Aggregated spots keyed by (callsign, frequency rounded to kHz).

    All spots are stored, filtering happens at retrieval. A single instance
    is shared between the feed consumer and any number of readers.
    """

    def __init__(
        self,
        min_snr: int = 0,
        max_age_minutes: float = 10,
        merge_policy: MergePolicy = MergePolicy.LATEST,
        clock: Callable[[], float] = time.monotonic,
        lock_timeout: float = LOCK_TIMEOUT,
    ):
        self.min_snr = min_snr
        self.max_age_minutes = max_age_minutes
        self.merge_policy = merge_policy
        self._clock = clock
        self._lock_timeout = lock_timeout
        self._lock = threading.Lock()
        self._spots: dict[tuple[str, int], AggregatedSpot] = {}

    @contextmanager
    def _locked(self, operation: str) -> Iterator[dict | None]:
        """Yield the spot map while holding the lock, or None if unavailable."""
        if not self._lock.acquire(timeout=self._lock_timeout):
            logger.warning("Spot store busy, %s skipped", operation)
            yield None
            return
        try:
            yield self._spots
        finally:
            self._lock.release()

    def now(self) -> float:
        return self._clock()

    def insert_or_merge(self, raw: RawSpot) -> None:
        """Add a new spot or merge it into the existing record for its key."""
        if not math.isfinite(raw.frequency_khz):
            logger.warning("Ignoring spot of %s with frequency %r", raw.callsign, raw.frequency_khz)
            return
        key = spot_key(raw.callsign, raw.frequency_khz)
        with self._locked("insert") as spots:
            if spots is None:
                return
            now = self._clock()
            existing = spots.get(key)
            if existing is not None:
                existing.update(raw, now, self.merge_policy)
            else:
                spots[key] = AggregatedSpot.from_raw(raw, now)

    def purge(self) -> int:
        """Remove spots older than the retention ceiling (hard memory limit).

        Returns the number of removed spots.
        """
        with self._locked("purge") as spots:
            if spots is None:
                return 0
            cutoff = self._clock() - RETENTION_SECONDS
            stale = [key for key, spot in spots.items() if spot.last_spotted < cutoff]
            for key in stale:
                del spots[key]
        if stale:
            logger.debug("🧹 Purged %d stale spots", len(stale))
        return len(stale)

    def query_filtered(
        self, min_snr: int | None = None, max_age: float | None = None
    ) -> list[AggregatedSpot]:
        """Spots with SNR >= min_snr heard within max_age seconds, by frequency.

        Omitted arguments fall back to the store's configured filter.
        """
        if min_snr is None:
            min_snr = self.min_snr
        if max_age is None:
            max_age = self.max_age_minutes * 60

        with self._locked("filtered query") as spots:
            if spots is None:
                return []
            cutoff = self._clock() - max_age
            result = [
                replace(spot)
                for spot in spots.values()
                if spot.highest_snr >= min_snr and spot.last_spotted >= cutoff
            ]
            result.sort(key=lambda s: s.frequency_khz)
            return result

    def query_all_by_frequency(self) -> list[AggregatedSpot]:
        """All spots sorted by frequency, no filtering."""
        with self._locked("frequency query") as spots:
            if spots is None:
                return []
            result = [replace(spot) for spot in spots.values()]
            result.sort(key=lambda s: s.frequency_khz)
            return result

    def query_all_by_recency(self) -> list[AggregatedSpot]:
        """All spots, most recently heard first."""
        with self._locked("recency query") as spots:
            if spots is None:
                return []
            result = [replace(spot) for spot in spots.values()]
            result.sort(key=lambda s: s.last_spotted, reverse=True)
            return result

    def count(self) -> int:
        with self._locked("count") as spots:
            return len(spots) if spots is not None else 0

    def clear(self) -> None:
        with self._locked("clear") as spots:
            if spots is not None:
                spots.clear()
