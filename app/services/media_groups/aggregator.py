"""
In-memory cache of Telegram album (media group) photos.

Telegram delivers an album as separate messages sharing a media_group_id.
Every photo is appended here as it arrives; a request that replies to one
photo of the album waits a short settle delay and then snapshots the batch.
A periodic sweep drops batches whose oldest photo is past the TTL.
"""
import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from app.core.config import settings
from app.utils.metrics import media_groups_cached, media_groups_evicted_total

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachedImage:
    file_id: str
    received_at: float


class MediaGroupAggregator:
    """
    batch_id -> photos in arrival order. One lock guards the whole table;
    snapshot() hands out copies, never the cached list itself.
    """

    def __init__(
        self,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.media_group_ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._batches: dict[str, list[CachedImage]] = {}

    def append(self, batch_id: str, file_id: str) -> None:
        """Add a photo to its batch. No dedup: a repeated file_id is stored again."""
        if not batch_id or not file_id:
            return
        with self._lock:
            self._batches.setdefault(batch_id, []).append(CachedImage(file_id, self._clock()))
            media_groups_cached.set(len(self._batches))

    def snapshot(self, batch_id: str) -> list[str]:
        """File ids of the batch in arrival order; [] for unknown or evicted batches."""
        with self._lock:
            return [image.file_id for image in self._batches.get(batch_id, ())]

    def sweep(self, now: float | None = None) -> int:
        """Drop batches whose oldest entry is older than the TTL. Returns the number dropped."""
        if now is None:
            now = self._clock()
        with self._lock:
            expired = [
                batch_id
                for batch_id, images in self._batches.items()
                if not images or now - images[0].received_at > self.ttl_seconds
            ]
            for batch_id in expired:
                del self._batches[batch_id]
            media_groups_cached.set(len(self._batches))
        if expired:
            media_groups_evicted_total.inc(len(expired))
            logger.info("media_groups_swept", extra={"dropped": len(expired)})
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._batches)

    async def collect(self, batch_id: str, settle_seconds: float | None = None) -> list[str]:
        """Wait for late album messages, then snapshot. Photos arriving after this are missed."""
        delay = settings.media_group_settle_seconds if settle_seconds is None else settle_seconds
        if delay > 0:
            await asyncio.sleep(delay)
        return self.snapshot(batch_id)

    async def run_sweeper(
        self,
        stop_event: asyncio.Event,
        interval_seconds: float | None = None,
    ) -> None:
        """Sweep every interval until stop_event is set."""
        interval = interval_seconds if interval_seconds is not None else settings.media_group_sweep_interval_seconds
        logger.info("media_group_sweeper_started")
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
            if stop_event.is_set():
                break
            try:
                self.sweep()
            except Exception:
                logger.exception("media_group_sweep_failed")
        logger.info("media_group_sweeper_stopped")


media_groups = MediaGroupAggregator()
