"""
Local answer cache with detached, per-question sync to the server log.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Awaitable, Callable, Dict, Mapping, Optional

from quiz_client.logger import setup_logger
from quiz_client.models import Answer
from quiz_client.utils.exceptions import QuizClientError, SyncFailed

logger = setup_logger(__name__)

SyncFunc = Callable[[Answer, int], Awaitable[object]]


class AnswerStore:
    """
    Question → answer map for the active attempt.

    ``set`` updates the map synchronously and queues a sync call. Syncs for
    one question run one after another; a write that arrives while an older
    one is still queued makes the older one skip its request, so at most one
    request per question is in flight and the last one sent carries the
    latest value. Different questions sync independently.

    The local map is what gets submitted. A failed sync is logged and left
    alone; the answer still goes out with the submission.
    """

    def __init__(self, sync: SyncFunc) -> None:
        """
        Args:
            sync: Coroutine function sending one answer to the server.
                Called with the answer and the seconds spent on the question.
        """
        self._sync = sync
        self._answers: Dict[str, Answer] = {}
        self._versions: Dict[str, int] = {}
        self._tails: Dict[str, asyncio.Task] = {}
        self._pending: set[asyncio.Task] = set()
        self._unsynced: set[str] = set()
        self._closed = False

    def set(self, question_id: str, value: str | bool, time_spent: int = 0) -> Answer:
        """Store the answer locally and schedule its sync. Does not block."""
        answer = Answer(
            question_id=question_id,
            value=value,
            local_timestamp=datetime.now(timezone.utc),
        )
        self._answers[question_id] = answer
        self._unsynced.add(question_id)

        if self._closed:
            return answer

        version = self._versions.get(question_id, 0) + 1
        self._versions[question_id] = version
        previous = self._tails.get(question_id)

        task = asyncio.get_running_loop().create_task(
            self._sync_in_order(answer, time_spent, version, previous)
        )
        self._tails[question_id] = task
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return answer

    def get(self, question_id: str) -> Optional[str | bool]:
        answer = self._answers.get(question_id)
        return answer.value if answer is not None else None

    def has(self, question_id: str) -> bool:
        return question_id in self._answers

    def snapshot(self) -> Mapping[str, Answer]:
        """Read-only copy of every answer as of now."""
        return MappingProxyType(dict(self._answers))

    def all_synced(self) -> bool:
        """True when the server has acknowledged every local value."""
        return not self._pending and not self._unsynced

    @property
    def in_flight(self) -> int:
        return len(self._pending)

    def __len__(self) -> int:
        return len(self._answers)

    async def drain(self) -> None:
        """Wait for every queued sync to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def close(self) -> None:
        """Drop all queued syncs. Local values stay readable."""
        self._closed = True
        for task in list(self._pending):
            task.cancel()
        self._tails.clear()

    async def _sync_in_order(
        self,
        answer: Answer,
        time_spent: int,
        version: int,
        previous: Optional[asyncio.Task],
    ) -> None:
        if previous is not None and not previous.done():
            await asyncio.wait([previous])

        question_id = answer.question_id
        if self._versions.get(question_id) != version:
            # A newer value for this question is queued behind us
            return

        try:
            await self._sync(answer, time_spent)
        except QuizClientError as e:
            error = SyncFailed(f"Answer sync failed for question {question_id}: {e}")
            logger.warning(f"⚠️ {error}")
            return

        if self._versions.get(question_id) == version:
            self._unsynced.discard(question_id)
        logger.debug(f"💾 Synced answer for question {question_id}")
