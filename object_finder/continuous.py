"""
Continuous identification over a live frame source.

The matcher runs one asyncio task that wakes up at a fixed cadence,
samples the current frame, re-scans the whole catalog and reports the
single best object for that tick. Nothing carries over between ticks.

State machine:

    STOPPED --start()--> RUNNING --stop()--> STOPPED

stop() is cooperative: it sets a flag, cancels a pending wake-up, lets
an in-flight tick finish, then releases the source. No tick runs after
stop() returns.
"""

import os
import enum
import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Union

import numpy as np

from .catalog import Catalog
from .embedding import EmbeddingExtractor
from .errors import CatalogEmpty, FrameInvalid, ModelUnavailable, SourceUnavailable
from .preprocessing import is_frame_ready
from .scoring import MatchCandidate, cosine_similarity, is_scorable

logger = logging.getLogger(__name__)

LIVE_FLOOR = float(os.environ.get("LIVE_MATCH_FLOOR", "0.4"))

# Roughly one display frame at 60 Hz.
TICK_INTERVAL = float(os.environ.get("LIVE_TICK_INTERVAL", "0.016"))


class LoopState(enum.Enum):
    STOPPED = "stopped"
    RUNNING = "running"


@dataclass(frozen=True)
class LiveMatch:
    """Best object above the floor for one tick."""

    candidate: MatchCandidate


@dataclass(frozen=True)
class Scanning:
    """Nothing cleared the floor; highest score seen this tick."""

    highest_score: float


TickReport = Union[LiveMatch, Scanning]


class ContinuousMatcher:
    """Polls a frame source and reports the current best match per tick."""

    def __init__(self,
                 extractor: EmbeddingExtractor,
                 floor: float = LIVE_FLOOR,
                 interval: float = TICK_INTERVAL,
                 on_report: Optional[Callable[[TickReport], None]] = None,
                 on_stop: Optional[Callable[[], None]] = None):
        """
        Args:
            extractor: Shared embedding extractor.
            floor: Minimum score (exclusive) for a tick to report a match.
            interval: Seconds to sleep between ticks.
            on_report: Called with each tick's LiveMatch or Scanning.
            on_stop: Called once after teardown, e.g. to clear a result panel.
        """
        self.extractor = extractor
        self.floor = floor
        self.interval = interval
        self.on_report = on_report
        self.on_stop = on_stop

        self.state = LoopState.STOPPED
        self.ticks = 0
        self.skipped_ticks = 0
        self.last_report: Optional[TickReport] = None
        self.last_error: Optional[BaseException] = None

        self._source = None
        self._catalog: Optional[Catalog] = None
        self._task: Optional[asyncio.Task] = None
        self._stop_requested = False
        self._in_tick = False
        self._starting = False

    @property
    def running(self) -> bool:
        return self.state is LoopState.RUNNING

    async def start(self, source, catalog: Catalog) -> None:
        """
        Acquire the source and begin ticking.

        Raises:
            CatalogEmpty: The catalog has no objects; nothing is acquired.
            SourceUnavailable: The source could not be opened; state stays STOPPED.
        """
        if self.running or self._starting:
            logger.warning("Live matcher already running, ignoring start()")
            return
        if not catalog:
            raise CatalogEmpty("Cannot start live matching against an empty catalog")

        # Held across the acquire await so an overlapping start() is rejected.
        self._starting = True
        try:
            await asyncio.to_thread(source.acquire)
        except SourceUnavailable as e:
            logger.error(f"Live matching not started: {e}")
            raise
        finally:
            self._starting = False

        self._source = source
        self._catalog = catalog
        self._stop_requested = False
        self.ticks = 0
        self.skipped_ticks = 0
        self.last_report = None
        self.last_error = None
        self.state = LoopState.RUNNING
        self._task = asyncio.create_task(self._run())
        logger.info(f"Live matching started against {len(catalog)} objects")

    def update_catalog(self, catalog: Catalog) -> None:
        """Swap the snapshot; takes effect at the next tick."""
        self._catalog = catalog

    async def stop(self) -> None:
        """Stop ticking and release the source. Safe to call at any time."""
        task = self._task
        if task is None and not self.running:
            return

        self._stop_requested = True
        if task is not None:
            # A sleeping loop is cancelled; a tick in flight runs to completion.
            if not self._in_tick and not task.done():
                task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        self._teardown()

    def _teardown(self) -> None:
        source, self._source = self._source, None
        self._task = None
        if self.state is LoopState.STOPPED and source is None:
            return

        if source is not None:
            source.release()
        self.state = LoopState.STOPPED
        self.last_report = None
        logger.info(f"Live matching stopped after {self.ticks} ticks")
        if self.on_stop:
            self.on_stop()

    async def _run(self) -> None:
        try:
            while not self._stop_requested:
                self._in_tick = True
                try:
                    await self._tick()
                finally:
                    self._in_tick = False

                if self._stop_requested:
                    break
                await asyncio.sleep(self.interval)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("Live matching loop failed")
            self.last_error = e
            self._teardown()

    async def _tick(self) -> None:
        catalog = self._catalog
        frame = await asyncio.to_thread(self._source.read)

        if not is_frame_ready(frame):
            self.skipped_ticks += 1
            logger.debug("Frame source not ready, skipping tick")
            return

        try:
            vector = await asyncio.to_thread(self.extractor.extract, frame)
        except (FrameInvalid, ModelUnavailable) as e:
            self.skipped_ticks += 1
            logger.debug(f"Skipping tick: {e}")
            return

        report = self.best_match(vector, catalog)
        del vector

        self.ticks += 1
        self.last_report = report
        if isinstance(report, LiveMatch):
            logger.debug(f"Tick {self.ticks}: {report.candidate.name} ({report.candidate.score:.3f})")
        else:
            logger.debug(f"Tick {self.ticks}: scanning ({report.highest_score:.3f})")

        if self.on_report:
            self.on_report(report)

    def best_match(self, vector: np.ndarray, catalog: Catalog) -> TickReport:
        """
        Scan the catalog once and keep only the single best object.

        The running best starts at the floor, so an object is reported only
        if one of its vectors scores strictly above it.
        """
        best_score = self.floor
        best = None
        highest: Optional[float] = None

        for obj in catalog:
            for reference in obj.features:
                similarity = cosine_similarity(vector, reference)
                if not is_scorable(similarity):
                    continue
                if highest is None or similarity > highest:
                    highest = similarity
                if similarity > best_score:
                    best_score = similarity
                    best = obj

        if best is not None and best.id is not None:
            return LiveMatch(MatchCandidate(
                id=best.id,
                name=best.name,
                description=best.description,
                score=best_score,
            ))
        return Scanning(highest if highest is not None else 0.0)
