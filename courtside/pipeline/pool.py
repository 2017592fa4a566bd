"""In-process worker pool for recordings."""
import asyncio
import logging
from typing import Optional

from courtside.pipeline.orchestrator import RecordingOrchestrator

logger = logging.getLogger(__name__)


class RecordingWorkerPool:
    """Bounded pool of asyncio workers feeding recordings to the orchestrator.

    A recording id is queued at most once at a time; the orchestrator's
    lease keeps ownership single across processes. A periodic scan picks
    up new and stranded non-terminal recordings.
    """

    def __init__(self, orchestrator: RecordingOrchestrator, concurrency: int = 4, rescan_interval: float = 30.0):
        self.orchestrator = orchestrator
        self.concurrency = max(1, concurrency)
        self.check_interval = rescan_interval
        self.running = False
        self._queue: asyncio.Queue[int] = asyncio.Queue()
        self._in_flight: set[int] = set()
        self._tasks: list[asyncio.Task] = []
        self._scanner: Optional[asyncio.Task] = None

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def submit(self, recording_id: int) -> bool:
        """Queue a recording unless it is already queued or running."""
        if recording_id in self._in_flight:
            return False
        self._in_flight.add(recording_id)
        self._queue.put_nowait(recording_id)
        return True

    async def start(self):
        """Start workers and the rescan loop; resumes stranded recordings immediately."""
        if self.running:
            return
        self.running = True
        self.orchestrator.dispatcher = self
        self._tasks = [asyncio.create_task(self._worker(i)) for i in range(self.concurrency)]
        self._scanner = asyncio.create_task(self._scan_loop())
        logger.info(f"RecordingWorkerPool started with {self.concurrency} workers")

    async def stop(self):
        self.running = False
        tasks = list(self._tasks)
        if self._scanner is not None:
            tasks.append(self._scanner)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks = []
        self._scanner = None
        if self.orchestrator.dispatcher is self:
            self.orchestrator.dispatcher = None
        logger.info("RecordingWorkerPool stopped")

    async def scan(self) -> int:
        """Queue every non-terminal recording not already in flight."""
        queued = 0
        for recording_id in await self.orchestrator.resume_ids():
            if self.submit(recording_id):
                queued += 1
        if queued:
            logger.info(f"Queued {queued} recording(s) for processing")
        return queued

    async def _scan_loop(self):
        while self.running:
            try:
                await self.scan()
            except Exception as e:
                logger.error(f"Recording scan failed: {e}")
            await asyncio.sleep(self.check_interval)

    async def _worker(self, index: int):
        while self.running:
            recording_id = await self._queue.get()
            try:
                await self.orchestrator.process(recording_id)
            except Exception:
                logger.exception(f"worker {index}: recording {recording_id} crashed")
            finally:
                self._in_flight.discard(recording_id)
                self._queue.task_done()
