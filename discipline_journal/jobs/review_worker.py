"""复盘队列：平仓命令只负责投递执行 ID，后台 worker 逐个调用 AIReviewService

- publish 同步、非阻塞（put_nowait），队列满时丢弃并记录日志，不影响平仓结果
- worker 内的任何异常只记录日志，不会终止循环
"""
import asyncio
import logging
from typing import Optional

from discipline_journal.core.config import settings

logger = logging.getLogger(__name__)


class ReviewQueue:
    def __init__(self, reviewer=None, maxsize: Optional[int] = None):
        self._reviewer = reviewer
        self._maxsize = maxsize if maxsize is not None else settings.REVIEW_QUEUE_MAXSIZE
        self._queue: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None
        self.processed = 0
        self.failed = 0

    @property
    def queue(self) -> asyncio.Queue:
        if self._queue is None:
            self._queue = asyncio.Queue(maxsize=self._maxsize)
        return self._queue

    @property
    def reviewer(self):
        if self._reviewer is None:
            from discipline_journal.services.ai_review_service import AIReviewService
            self._reviewer = AIReviewService()
        return self._reviewer

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def pending(self) -> int:
        return self.queue.qsize()

    def publish(self, execution_id: int) -> bool:
        try:
            self.queue.put_nowait(execution_id)
        except asyncio.QueueFull:
            logger.error(f"Review queue full, dropping review request for execution {execution_id}")
            return False
        logger.debug(f"Review request queued for execution {execution_id}")
        return True

    async def _handle(self, execution_id: int) -> None:
        try:
            await self.reviewer.review_execution(execution_id)
            self.processed += 1
        except Exception:
            self.failed += 1
            logger.exception(f"Trade review failed for execution {execution_id}")

    async def _run(self) -> None:
        logger.info("Review worker started")
        while True:
            execution_id = await self.queue.get()
            try:
                await self._handle(execution_id)
            finally:
                self.queue.task_done()

    async def run_pending(self) -> int:
        """在当前协程内处理所有已排队的请求（worker 未启动时使用）"""
        handled = 0
        while not self.queue.empty():
            execution_id = self.queue.get_nowait()
            try:
                await self._handle(execution_id)
            finally:
                self.queue.task_done()
            handled += 1
        return handled

    def start(self) -> None:
        if self.running:
            logger.warning("Review worker already running")
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        remaining = self._queue.qsize() if self._queue is not None else 0
        if remaining:
            logger.warning(f"Review worker stopped with {remaining} pending request(s)")
        logger.info("Review worker stopped")


# 全局复盘队列
review_queue = ReviewQueue()
