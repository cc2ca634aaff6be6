import asyncio
import copy
import json
import time

import httpx
import pytest

from quiz_client.backend.client import LearningApiClient
from quiz_client.config import Settings
from quiz_client.session.controller import AttemptController

BASE_URL = "http://backend.test/api"


QUIZ = {
    "_id": "quiz-1",
    "title": "Geography basics",
    "description": "Capitals and facts",
    "course": "course-1",
    "totalPoints": 3,
    "settings": {
        "timeLimit": 1,
        "attempts": 3,
        "passingScore": 70,
        "shuffleQuestions": False,
        "shuffleOptions": False,
        "showResults": "immediately",
        "showCorrectAnswers": True,
    },
    "questions": [
        {
            "_id": "q1",
            "question": "Capital of France?",
            "type": "multiple-choice",
            "options": [
                {"text": "Paris", "isCorrect": True},
                {"text": "Berlin", "isCorrect": False},
            ],
            "points": 1,
        },
        {
            "_id": "q2",
            "question": "The Nile is in Africa.",
            "type": "true-false",
            "correctAnswer": "true",
            "options": [],
            "points": 1,
        },
        {
            "_id": "q3",
            "question": "Name the language this client is written in.",
            "type": "short-answer",
            "correctAnswer": "python",
            "options": [],
            "points": 1,
            "explanation": "Look at the file extensions.",
        },
    ],
}


class FakeClock:
    """Wall clock the tests move by hand."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeBackend:
    """
    In-memory stand-in for the learning platform's quiz endpoints.

    Knobs:
        start_error: (status, message, data) returned by attempt creation.
        submit_failures: number of submit calls answered with a 500.
        lose_next_submit_response: close the attempt but answer with a 502.
        garble_next_submit_response: close the attempt but answer with an
            unreadable grading payload.
        start_gate: when set, attempt creation waits for this event.
        submit_gate: when set, submit requests wait for this event.
        sync_gates: question id -> event each sync for it waits on.
        sync_failures: question ids whose syncs answer with a 500.
    """

    def __init__(self, quiz: dict) -> None:
        self.quiz = quiz
        self.requests: list[tuple[str, str, object]] = []
        self.queries: list[dict[str, str]] = []
        self.start_error = None
        self.submit_failures = 0
        self.lose_next_submit_response = False
        self.garble_next_submit_response = False
        self.start_gate: asyncio.Event | None = None
        self.submit_gate: asyncio.Event | None = None
        self.sync_gates: dict[str, asyncio.Event] = {}
        self.sync_failures: set[str] = set()
        self.enrollments: list[dict] = []
        self.quizzes: list[dict] = []
        self.attempt_pages: dict = {"attempts": [], "pagination": {}}
        self._next_attempt = 0
        self.submitted: dict[str, dict] = {}
        self.server_answers: dict[str, dict[str, object]] = {}

    # --------------------------------------------------------------
    # Inspection helpers
    # --------------------------------------------------------------
    def bodies(self, method: str, suffix: str) -> list:
        return [
            body
            for m, path, body in self.requests
            if m == method and path.endswith(suffix)
        ]

    @property
    def submit_calls(self) -> list:
        return self.bodies("POST", "/submit")

    @property
    def sync_calls(self) -> list:
        return self.bodies("PUT", "/answer")

    # --------------------------------------------------------------
    # Transport handler
    # --------------------------------------------------------------
    async def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        path = request.url.path[len("/api"):]
        self.requests.append((request.method, path, body))
        self.queries.append(dict(request.url.params))
        parts = path.strip("/").split("/")

        if request.method == "POST" and parts[0] == "quizzes" and parts[-1] == "attempt":
            return await self._start(parts[1])
        if request.method == "PUT" and parts[-1] == "answer":
            return await self._sync(parts[2], body)
        if request.method == "POST" and parts[-1] == "submit":
            return await self._submit(parts[2], body)
        if request.method == "GET" and parts[-1] == "results":
            return self._results(parts[2])
        if request.method == "GET" and path == "/enrollments":
            return _ok({"enrollments": self.enrollments})
        if request.method == "GET" and path == "/quizzes":
            return _ok({"quizzes": self.quizzes})
        if request.method == "GET" and parts[:2] == ["quizzes", "course"]:
            return _ok({"quizzes": [q for q in self.quizzes if q.get("course") == parts[2]]})
        if request.method == "GET" and path == "/quizzes/student/attempts":
            return _ok(self.attempt_pages)
        return _fail(404, "Not found")

    async def _start(self, quiz_id: str) -> httpx.Response:
        if self.start_gate is not None:
            await self.start_gate.wait()
        if self.start_error is not None:
            status, message, data = self.start_error
            return _fail(status, message, data)
        self._next_attempt += 1
        attempt_id = f"attempt-{self._next_attempt}"
        self.server_answers[attempt_id] = {}
        quiz = copy.deepcopy(self.quiz)
        for q in quiz["questions"]:
            q.pop("correctAnswer", None)
            q["options"] = [{"text": o["text"]} for o in q["options"]]
        return _ok({"quiz": quiz, "attemptId": attempt_id})

    async def _sync(self, attempt_id: str, body: dict) -> httpx.Response:
        question_id = body["questionId"]
        gate = self.sync_gates.get(question_id)
        if gate is not None:
            await gate.wait()
        if question_id in self.sync_failures:
            return _fail(500, "Server error while saving answer")
        if attempt_id in self.submitted:
            return _fail(400, "This attempt has already been submitted")
        self.server_answers.setdefault(attempt_id, {})[question_id] = body["answer"]
        return _ok({"isCorrect": None})

    async def _submit(self, attempt_id: str, body: dict) -> httpx.Response:
        if self.submit_gate is not None:
            await self.submit_gate.wait()
        if attempt_id in self.submitted:
            return _fail(400, "This attempt has already been submitted")
        if self.submit_failures > 0:
            self.submit_failures -= 1
            return _fail(500, "Server error while submitting quiz")

        self.submitted[attempt_id] = self._grade(attempt_id, body["answers"])
        if self.lose_next_submit_response:
            self.lose_next_submit_response = False
            return _fail(502, "Bad gateway")
        if self.garble_next_submit_response:
            self.garble_next_submit_response = False
            return _ok({"attempt": {"_id": attempt_id}, "results": {"answers": [{"isCorrect": "maybe"}]}})
        return _ok(self.submitted[attempt_id])

    def _results(self, attempt_id: str) -> httpx.Response:
        graded = self.submitted.get(attempt_id)
        if graded is None:
            return _fail(403, "Results are not available yet")
        answers = [
            dict(a, questionId=qid, totalPoints=1)
            for qid, a in zip(graded["_question_ids"], graded["results"]["answers"])
        ]
        return _ok(
            {
                "attempt": dict(graded["attempt"], attemptNumber=1, status="submitted"),
                "quiz": {"_id": self.quiz["_id"], "title": self.quiz["title"], "totalPoints": 3},
                "summary": {
                    "totalQuestions": 3,
                    "answeredQuestions": len(answers),
                    "correctAnswers": sum(1 for a in answers if a["isCorrect"]),
                    "pointsEarned": graded["attempt"]["score"],
                    "totalPoints": 3,
                },
                "answers": answers,
            }
        )

    def _grade(self, attempt_id: str, answers: list[dict]) -> dict:
        by_id = {q["_id"]: q for q in self.quiz["questions"]}
        graded = []
        question_ids = []
        for entry in answers:
            question = by_id[entry["questionId"]]
            if question["type"] == "multiple-choice":
                correct = next(o["text"] for o in question["options"] if o["isCorrect"])
            else:
                correct = question["correctAnswer"]
            is_correct = str(entry["answer"]).strip().lower() == correct.lower()
            question_ids.append(question["_id"])
            graded.append(
                {
                    "question": question["question"],
                    "yourAnswer": entry["answer"],
                    "correctAnswer": correct,
                    "isCorrect": is_correct,
                    "pointsEarned": 1 if is_correct else 0,
                    "explanation": question.get("explanation"),
                }
            )
        score = sum(a["pointsEarned"] for a in graded)
        percentage = round(score / 3 * 100)
        return {
            "attempt": {
                "_id": attempt_id,
                "score": score,
                "percentage": percentage,
                "isPassed": percentage >= self.quiz["settings"]["passingScore"],
                "timeSpent": 40,
            },
            "results": {
                "score": score,
                "percentage": percentage,
                "isPassed": percentage >= self.quiz["settings"]["passingScore"],
                "totalQuestions": 3,
                "answeredQuestions": len(graded),
                "correctAnswers": sum(1 for a in graded if a["isCorrect"]),
                "answers": graded,
            },
            "_question_ids": question_ids,
        }


def _ok(data: dict) -> httpx.Response:
    return httpx.Response(200, json={"success": True, "message": "ok", "data": data})


def _fail(status: int, message: str, data: object = None) -> httpx.Response:
    body = {"success": False, "message": message}
    if data is not None:
        body["data"] = data
    return httpx.Response(status, json=body)


async def _wait_for(predicate, timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def quiz() -> dict:
    return copy.deepcopy(QUIZ)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend(quiz) -> FakeBackend:
    return FakeBackend(quiz)


@pytest.fixture
def config() -> Settings:
    return Settings(
        timer_tick_seconds=0.005,
        auto_submit_backoff_base=0.01,
        auto_submit_backoff_max=0.02,
        auto_submit_max_retries=None,
    )


@pytest.fixture
async def client(backend):
    api = LearningApiClient(
        base_url=BASE_URL,
        token="learner-token",
        transport=httpx.MockTransport(backend.handler),
    )
    yield api
    await api.aclose()


@pytest.fixture
async def controller(client, config, clock):
    ctrl = AttemptController(client, config=config, clock=clock)
    yield ctrl
    await ctrl.aclose()


@pytest.fixture
def wait_for():
    return _wait_for
