"""
Attempt lifecycle controller.

Owns the countdown, the answer store and the flag tracker for one attempt
and drives it through Idle → Starting → Active → Submitting → Submitted.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Dict, List, Optional

from quiz_client.backend.client import LearningApiClient
from quiz_client.config import Settings, settings as default_settings
from quiz_client.logger import setup_logger
from quiz_client.models import (
    Answer,
    Assessment,
    AttemptStatus,
    NavigatorEntry,
    OptionView,
    Question,
    QuestionType,
    QuestionView,
    Result,
    SessionView,
    SubmitTrigger,
)
from quiz_client.results import compose_result
from quiz_client.session.answers import AnswerStore
from quiz_client.session.flags import FlagTracker
from quiz_client.timer import CountdownTimer
from quiz_client.utils.exceptions import (
    ApiError,
    InvalidAnswerError,
    InvalidStateError,
    NavigationError,
    ResultUnavailable,
    StartFailed,
    SubmitFailed,
)
from quiz_client.utils.helpers import backoff_delay, format_time

logger = setup_logger(__name__)

_TRUE_FALSE_STRINGS = {"true": True, "false": False}


class AttemptController:
    """
    State machine for a single learner's quiz attempt.

    Every status change goes through ``_transition``, a synchronous
    compare-and-set. On one event loop nothing can interleave between the
    check and the write, so when a manual submit and the timer expiry race,
    exactly one of them sees ACTIVE and proceeds.
    """

    def __init__(
        self,
        client: LearningApiClient,
        config: Optional[Settings] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._config = config or default_settings
        self._clock = clock

        self._status = AttemptStatus.IDLE
        # Bumped whenever the attempt is released; stale callbacks compare against it
        self._token = 0

        self.attempt_id: Optional[str] = None
        self.assessment: Optional[Assessment] = None
        self.started_at: Optional[float] = None
        self.result: Optional[Result] = None
        self.last_error: Optional[str] = None

        self._deadline: Optional[float] = None
        self._timer = self._new_timer()
        self._answers: Optional[AnswerStore] = None
        self._flags = FlagTracker()

        self._index = 0
        self._entered_at: Optional[float] = None
        self._time_on_question: Dict[str, float] = {}

        self._auto_submit_task: Optional[asyncio.Task] = None
        self._background: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------
    @property
    def status(self) -> AttemptStatus:
        return self._status

    @property
    def timer(self) -> CountdownTimer:
        return self._timer

    @property
    def answers(self) -> Optional[AnswerStore]:
        return self._answers

    @property
    def flags(self) -> FlagTracker:
        return self._flags

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def current_question(self) -> Optional[Question]:
        if self.assessment is None or not self.assessment.questions:
            return None
        return self.assessment.questions[self._index]

    def remaining(self) -> Optional[float]:
        """Seconds left on the clock, or None when the assessment is untimed."""
        if self._deadline is None:
            return None
        return self._timer.remaining()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def start(self, assessment_id: str) -> Assessment:
        """
        Create an attempt on the server and begin it.

        Raises:
            InvalidStateError: Not idle.
            StartFailed: The backend refused or could not be reached.
        """
        if not self._transition(AttemptStatus.IDLE, AttemptStatus.STARTING):
            raise InvalidStateError(f"Cannot start while {self._status.value}")

        logger.info(f"🚀 Starting attempt for assessment {assessment_id}")
        token = self._token
        self.last_error = None
        try:
            data = await self._client.create_attempt(assessment_id)
            attempt_id = str(data["attemptId"])
            assessment = Assessment.model_validate(data["quiz"])
        except ApiError as e:
            existing = e.data.get("attemptId") if isinstance(e.data, dict) else None
            self._abort_start(token, e.message)
            logger.error(f"❌ Could not start attempt: {e.message}")
            raise StartFailed(e.message, existing_attempt_id=existing) from e
        except (KeyError, ValueError) as e:
            self._abort_start(token, "Malformed attempt response")
            logger.error(f"❌ Malformed attempt response: {e}")
            raise StartFailed("Malformed attempt response") from e

        if token != self._token:
            # Left, and maybe restarted, while the request was in flight
            logger.warning(f"⚠️ Discarding attempt {attempt_id}: session left while starting")
            raise StartFailed("Session closed while starting")

        self._token += 1
        self.attempt_id = attempt_id
        self.assessment = assessment.presented(seed=attempt_id)
        self.started_at = self._clock()
        self.result = None
        self._answers = AnswerStore(self._make_sync(attempt_id))
        self._flags = FlagTracker()
        self._index = 0
        self._entered_at = self.started_at
        self._time_on_question = {}

        limit = self.assessment.settings.time_limit_seconds
        self._deadline = self.started_at + limit if limit else None

        self._status = AttemptStatus.ACTIVE
        self._arm_timer()
        logger.info(
            f"✅ Attempt {attempt_id} active: {len(self.assessment.questions)} questions, "
            f"time limit {format_time(limit) if limit else 'none'}"
        )
        return self.assessment

    async def submit(self, trigger: SubmitTrigger = SubmitTrigger.MANUAL) -> Optional[Result]:
        """
        Submit the attempt for grading.

        Only the first call while ACTIVE does anything; every other call
        returns None. A failed manual submit returns to ACTIVE and raises
        SubmitFailed. A failed timer-triggered submit keeps retrying.
        """
        if not self._transition(AttemptStatus.ACTIVE, AttemptStatus.SUBMITTING):
            logger.info(f"↩️  Ignoring {trigger.value} submit while {self._status.value}")
            return None

        self._timer.cancel()
        self._leave_question()
        token = self._token
        attempt_id = self.attempt_id
        assessment = self.assessment
        payload = self.submission_payload()

        logger.info(
            f"📤 Submitting attempt {attempt_id} ({trigger.value}, "
            f"{len(payload)} answered)"
        )

        retries = 0
        while True:
            try:
                data = await self._send_submission(attempt_id, payload)
                result = compose_result(data, assessment=assessment, attempt_id=attempt_id)
                break
            except ApiError as e:
                error, reason = e, e.message
            except Exception as e:
                # Unreadable grading response or an unexpected client failure
                logger.exception(f"💥 Unexpected error submitting attempt {attempt_id}")
                error, reason = e, str(e) or type(e).__name__

            message = f"Submission failed: {reason}"

            if trigger is SubmitTrigger.MANUAL:
                if token != self._token:
                    logger.warning(f"⚠️ {message} (attempt {attempt_id} already left)")
                    return None
                logger.error(f"❌ {message}")
                self.last_error = message
                self._status = AttemptStatus.ACTIVE
                self._entered_at = self._clock()
                self._arm_timer()
                raise SubmitFailed(message) from error

            # Time is up: the learner cannot act any more, so keep trying
            if token == self._token:
                self.last_error = message
            retries += 1
            limit = self._config.auto_submit_max_retries
            if limit is not None and retries > limit:
                logger.error(
                    f"🔥 Giving up on automatic submission of {attempt_id} "
                    f"after {retries - 1} retries"
                )
                return None

            delay = backoff_delay(
                retries,
                self._config.auto_submit_backoff_base,
                self._config.auto_submit_backoff_max,
            )
            logger.warning(
                f"⚠️ Automatic submission failed ({reason}); retry {retries} in {delay:.1f}s"
            )
            await asyncio.sleep(delay)

        if token != self._token:
            logger.info(f"🏁 Attempt {attempt_id} submitted after the session was left")
            return result

        self.result = result
        self.last_error = None
        self._status = AttemptStatus.SUBMITTED
        if self._answers is not None:
            self._answers.close()
        self._flags.clear()
        return result

    def submission_payload(self) -> List[Dict[str, Any]]:
        """Answers as they will be sent on submit, built from the store snapshot."""
        if self._answers is None:
            return []
        return [
            {"questionId": answer.question_id, "answer": answer.wire_value()}
            for answer in self._answers.snapshot().values()
        ]

    async def view_result(self, attempt_id: str) -> Result:
        """Fetch the graded result of any past attempt."""
        try:
            data = await self._client.get_attempt_result(attempt_id)
        except ApiError as e:
            raise ResultUnavailable(e.message) from e
        assessment = self.assessment if attempt_id == self.attempt_id else None
        return compose_result(data, assessment=assessment, attempt_id=attempt_id)

    def leave(self) -> None:
        """
        Navigate away from the assessment and release the attempt.

        A timer-triggered submission already running keeps going in the
        background so the attempt still gets closed on the server.
        """
        if self._auto_submit_task is not None and not self._auto_submit_task.done():
            self._background.add(self._auto_submit_task)
            self._auto_submit_task.add_done_callback(self._background.discard)
        self._auto_submit_task = None

        if self._status is not AttemptStatus.IDLE:
            logger.info(f"👋 Leaving attempt {self.attempt_id} ({self._status.value})")

        self._token += 1
        self._timer.cancel()
        self._timer = self._new_timer()
        if self._answers is not None:
            self._answers.close()
        self._answers = None
        self._flags.clear()

        self._status = AttemptStatus.IDLE
        self.attempt_id = None
        self.assessment = None
        self.started_at = None
        self.result = None
        self.last_error = None
        self._deadline = None
        self._index = 0
        self._entered_at = None
        self._time_on_question = {}

    async def aclose(self) -> None:
        """Tear down: release the attempt and stop every background task."""
        pending = [t for t in self._background if not t.done()]
        if self._auto_submit_task is not None and not self._auto_submit_task.done():
            pending.append(self._auto_submit_task)
        self.leave()
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._background.clear()

    # ------------------------------------------------------------------
    # Learner interaction
    # ------------------------------------------------------------------
    def answer(self, question_id: str, value: str | bool) -> Answer:
        """Record an answer locally; the server copy is synced in the background."""
        self._require_active("answer")
        question = self._question(question_id)
        value = self._validate(question, value)
        return self._answers.set(question_id, value, time_spent=self._seconds_on(question_id))

    def flag(self, question_id: str) -> None:
        self._require_active("flag")
        self._flags.flag(self._question(question_id).id)

    def unflag(self, question_id: str) -> None:
        self._require_active("unflag")
        self._flags.unflag(self._question(question_id).id)

    def toggle_flag(self, question_id: str) -> bool:
        self._require_active("flag")
        return self._flags.toggle(self._question(question_id).id)

    def is_flagged(self, question_id: str) -> bool:
        return self._flags.is_flagged(question_id)

    def go_to(self, index: int) -> Question:
        """Move the current-question cursor."""
        if self.assessment is None:
            raise InvalidStateError("No assessment loaded")
        count = len(self.assessment.questions)
        if not 0 <= index < count:
            raise NavigationError(f"Question index {index} out of range (0-{count - 1})")
        if index != self._index:
            self._leave_question()
            self._index = index
            if self._status is AttemptStatus.ACTIVE:
                self._entered_at = self._clock()
        return self.assessment.questions[index]

    def next(self) -> Question:
        return self.go_to(self._index + 1)

    def previous(self) -> Question:
        return self.go_to(self._index - 1)

    def view(self) -> SessionView:
        """Snapshot of everything the UI renders."""
        remaining = self.remaining()
        if self.assessment is None:
            return SessionView(
                status=self._status,
                last_error=self.last_error,
                result=self.result,
            )

        question = self.current_question
        current_answer = None
        navigator = []
        for i, q in enumerate(self.assessment.questions):
            answered = self._answers is not None and self._answers.has(q.id)
            navigator.append(
                NavigatorEntry(
                    index=i,
                    question_id=q.id,
                    answered=answered,
                    flagged=self._flags.is_flagged(q.id),
                )
            )
        if question is not None and self._answers is not None:
            current_answer = self._answers.get(question.id)

        return SessionView(
            status=self._status,
            attempt_id=self.attempt_id,
            assessment_id=self.assessment.id,
            title=self.assessment.title,
            current_index=self._index,
            question_count=len(self.assessment.questions),
            current_question=_question_view(question) if question is not None else None,
            current_answer=current_answer,
            navigator=navigator,
            remaining_seconds=remaining,
            remaining_display=format_time(remaining) if remaining is not None else None,
            all_synced=self._answers.all_synced() if self._answers is not None else True,
            last_error=self.last_error,
            result=self.result,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _transition(self, expected: AttemptStatus, new: AttemptStatus) -> bool:
        if self._status is not expected:
            return False
        self._status = new
        logger.debug(f"Status {expected.value} -> {new.value}")
        return True

    def _abort_start(self, token: int, message: str) -> None:
        # A start that was left in flight must not touch the next one's state
        if token != self._token:
            return
        self._status = AttemptStatus.IDLE
        self.last_error = message

    def _new_timer(self) -> CountdownTimer:
        return CountdownTimer(tick_interval=self._config.timer_tick_seconds, clock=self._clock)

    def _arm_timer(self) -> None:
        if self._deadline is None:
            return
        token = self._token
        self._timer.cancel()
        self._timer.arm(
            max(0.0, self._deadline - self._clock()),
            lambda: self._on_timer_expired(token),
        )

    def _on_timer_expired(self, token: int) -> None:
        if token != self._token or self._status is not AttemptStatus.ACTIVE:
            logger.debug("Stale timer expiry ignored")
            return
        logger.warning(f"⌛ Time is up for attempt {self.attempt_id}; submitting automatically")
        self._auto_submit_task = asyncio.get_running_loop().create_task(
            self.submit(SubmitTrigger.TIMER_EXPIRY)
        )

    async def _send_submission(
        self, attempt_id: str, payload: List[Dict[str, Any]]
    ) -> Dict[str, Any]:
        try:
            return await self._client.submit_attempt(attempt_id, payload)
        except ApiError as e:
            if not e.already_submitted:
                raise
            # An earlier request went through but its response never arrived
            logger.info(f"ℹ️  Attempt {attempt_id} already closed server-side; fetching results")
            return await self._client.get_attempt_result(attempt_id)

    def _make_sync(self, attempt_id: str):
        async def sync(answer: Answer, time_spent: int) -> None:
            await self._client.sync_answer(
                attempt_id, answer.question_id, answer.wire_value(), time_spent
            )

        return sync

    def _require_active(self, action: str) -> None:
        if self._status is not AttemptStatus.ACTIVE:
            raise InvalidStateError(f"Cannot {action} while {self._status.value}")

    def _question(self, question_id: str) -> Question:
        question = self.assessment.question(question_id) if self.assessment else None
        if question is None:
            raise InvalidAnswerError(f"Unknown question {question_id}")
        return question

    def _validate(self, question: Question, value: str | bool) -> str | bool:
        if question.type is QuestionType.TRUE_FALSE:
            if isinstance(value, bool):
                return value
            parsed = _TRUE_FALSE_STRINGS.get(str(value).strip().lower())
            if parsed is None:
                raise InvalidAnswerError(f"Question {question.id} expects true or false")
            return parsed

        if isinstance(value, bool):
            raise InvalidAnswerError(f"Question {question.id} expects text")

        if question.type is QuestionType.SINGLE_CHOICE:
            for option in question.options:
                if value == option.text or (option.id is not None and value == option.id):
                    # The grader matches on option text
                    return option.text
            raise InvalidAnswerError(f"'{value}' is not an option of question {question.id}")

        return value

    def _leave_question(self) -> None:
        question = self.current_question
        if question is None or self._entered_at is None:
            return
        spent = max(0.0, self._clock() - self._entered_at)
        self._time_on_question[question.id] = self._time_on_question.get(question.id, 0.0) + spent
        self._entered_at = None

    def _seconds_on(self, question_id: str) -> int:
        total = self._time_on_question.get(question_id, 0.0)
        question = self.current_question
        if question is not None and question.id == question_id and self._entered_at is not None:
            total += max(0.0, self._clock() - self._entered_at)
        return int(total)


def _question_view(question: Question) -> QuestionView:
    return QuestionView(
        id=question.id,
        prompt=question.prompt,
        type=question.type,
        options=[OptionView(text=o.text, id=o.id) for o in question.options],
        points=question.points,
    )
