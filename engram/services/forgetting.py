"""
Forgetting Manager - evicts stale and superseded memories.

A candidate is forgotten when it is unimportant, not pinned, and either
superseded or untouched for longer than the TTL. Each eviction deletes the
memory, its sources and its edges in one repository transaction.
"""

import asyncio
from datetime import datetime

from engram.config import ForgettingConfig
from engram.core.storage.base import Repository
from engram.models.lifecycle import ForgettingReport
from engram.models.memory import Memory, MemoryState
from engram.utils.exceptions import ForgettingError, StoreError
from engram.utils.logger import get_logger

logger = get_logger(__name__)


class ForgettingManager:
    """
    Periodic memory eviction.

    Runs on demand through ``run_once`` or on an interval through the
    background worker.
    """

    def __init__(self, repository: Repository, config: ForgettingConfig | None = None):
        """
        Initialize forgetting manager.

        Args:
            repository: Persistence layer
            config: Thresholds and TTL
        """
        self.repository = repository
        self.config = config or ForgettingConfig()

        self._worker_task: asyncio.Task | None = None
        self._run_lock = asyncio.Lock()

    async def get_candidates(self, cutoff: datetime) -> list[Memory]:
        """Non-pinned memories that are superseded or last touched at/before ``cutoff``."""
        return await self.repository.get_forgetting_candidates(cutoff)

    def should_forget(self, memory: Memory, cutoff: datetime) -> bool:
        """
        Forgetting rule for a single candidate.

        Args:
            memory: Candidate memory
            cutoff: Reference instant for TTL evaluation

        Returns:
            True if the memory should be deleted
        """
        if memory.pinned:
            return False
        if memory.importance >= self.config.importance_threshold:
            return False
        if memory.state == MemoryState.SUPERSEDED:
            return True
        return memory.is_expired(cutoff, self.config.ttl_days)

    async def run_once(self, cutoff: datetime | None = None) -> ForgettingReport:
        """
        Run one forgetting cycle.

        Args:
            cutoff: Reference instant; defaults to now

        Returns:
            ForgettingReport with evaluated/forgotten counts

        Raises:
            ForgettingError: If storage fails mid-batch; ``context`` carries the
                counts committed so far
        """
        cutoff = cutoff or datetime.now()

        async with self._run_lock:
            try:
                candidates = await self.get_candidates(cutoff)
            except StoreError as e:
                logger.error(
                    "Failed to load forgetting candidates: {}",
                    e,
                    extra={"operation": "forgetting", "error": str(e)},
                )
                raise ForgettingError(
                    f"Failed to load forgetting candidates: {e}",
                    {"evaluated": 0, "forgotten": 0},
                ) from e

            evaluated = 0
            forgotten_ids: list[str] = []

            for memory in candidates:
                evaluated += 1
                if not self.should_forget(memory, cutoff):
                    continue

                try:
                    deleted = await self.repository.forget_memory(
                        memory.id,
                        still_eligible=lambda current: self.should_forget(current, cutoff),
                    )
                except StoreError as e:
                    logger.error(
                        "Forgetting aborted at {}: {}",
                        memory.id,
                        e,
                        extra={
                            "memory_id": memory.id,
                            "evaluated": evaluated,
                            "forgotten": len(forgotten_ids),
                            "error": str(e),
                        },
                    )
                    raise ForgettingError(
                        f"Failed to forget memory {memory.id}: {e}",
                        {
                            "evaluated": evaluated,
                            "forgotten": len(forgotten_ids),
                            "forgotten_ids": forgotten_ids,
                            "memory_id": memory.id,
                        },
                    ) from e

                # Removed concurrently, or pinned/touched since selection
                if deleted:
                    forgotten_ids.append(memory.id)

            report = ForgettingReport(
                evaluated=evaluated,
                forgotten=len(forgotten_ids),
                forgotten_ids=forgotten_ids,
            )

        logger.info(
            f"Forgetting cycle complete: {report.forgotten}/{report.evaluated} forgotten",
            extra={"operation": "forgetting", "cutoff": cutoff.isoformat()},
        )
        return report

    def start_background_worker(self, interval_seconds: float | None = None):
        """
        Start background forgetting worker.

        Args:
            interval_seconds: Seconds between cycles (default: config interval_hours)
        """
        if interval_seconds is None:
            interval_seconds = self.config.interval_hours * 3600
        if self._worker_task is None or self._worker_task.done():
            self._worker_task = asyncio.create_task(self._forgetting_worker(interval_seconds))

    def stop_background_worker(self):
        """Stop background forgetting worker."""
        if self._worker_task and not self._worker_task.done():
            self._worker_task.cancel()

    @property
    def worker_running(self) -> bool:
        return self._worker_task is not None and not self._worker_task.done()

    async def _forgetting_worker(self, interval_seconds: float):
        """
        Background worker that periodically runs forgetting cycles.

        Args:
            interval_seconds: Seconds between runs
        """
        while True:
            try:
                logger.info("Starting periodic forgetting cycle")
                await self.run_once()
            except asyncio.CancelledError:
                logger.info("Background forgetting worker stopped")
                break
            except Exception as e:
                logger.error(f"Error in forgetting worker: {e}")

            try:
                await asyncio.sleep(interval_seconds)
            except asyncio.CancelledError:
                logger.info("Background forgetting worker stopped")
                break
