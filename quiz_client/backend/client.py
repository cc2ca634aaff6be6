from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from quiz_client.config import settings
from quiz_client.logger import setup_logger
from quiz_client.utils.exceptions import ApiError
from quiz_client.utils.helpers import format_json

logger = setup_logger(__name__)


class LearningApiClient:
    """
    Async client for the learning platform REST backend.

    Every endpoint answers with an envelope ``{success, message, data}``;
    the client unwraps ``data`` and turns transport failures, non-2xx
    responses and ``success: false`` bodies into ``ApiError``.

    Covers the three collaborators the session engine needs:
    - Attempt creation
    - Per-question answer sync
    - Submission / grading (and the results read path)
    plus the catalog listings used to pick an assessment.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": "quiz-client/0.3",
        }
        token = token if token is not None else settings.api_token
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout or settings.http_timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    # ------------------------------------------------------------------
    # Session collaborators
    # ------------------------------------------------------------------
    async def create_attempt(self, assessment_id: str) -> Dict[str, Any]:
        """
        Start an attempt.

        Returns:
            ``{"quiz": {...}, "attemptId": "..."}``
        """
        return await self._request("POST", f"/quizzes/{assessment_id}/attempt")

    async def sync_answer(
        self,
        attempt_id: str,
        question_id: str,
        answer: Any,
        time_spent: int,
    ) -> Dict[str, Any]:
        """Record one answer in the server's per-question log (overwrites)."""
        return await self._request(
            "PUT",
            f"/quizzes/attempts/{attempt_id}/answer",
            json={"questionId": question_id, "answer": answer, "timeSpent": time_spent},
        )

    async def submit_attempt(
        self, attempt_id: str, answers: List[Dict[str, Any]]
    ) -> Dict[str, Any]:
        """
        Close the attempt server-side and get it graded.

        Returns:
            ``{"attempt": {...}, "results": {...} | None}``
        """
        logger.debug(f"Submission payload for {attempt_id}:\n{format_json({'answers': answers})}")
        return await self._request(
            "POST",
            f"/quizzes/attempts/{attempt_id}/submit",
            json={"answers": answers},
        )

    async def get_attempt_result(self, attempt_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/quizzes/attempts/{attempt_id}/results")

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------
    async def list_enrollments(self) -> List[Dict[str, Any]]:
        data = await self._request("GET", "/enrollments")
        return data.get("enrollments") or []

    async def list_assessments(self, course_id: Optional[str] = None) -> List[Dict[str, Any]]:
        path = f"/quizzes/course/{course_id}" if course_id else "/quizzes"
        data = await self._request("GET", path)
        return data.get("quizzes") or []

    async def list_attempts(
        self,
        page: int = 1,
        limit: int = 10,
        course_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {"page": page, "limit": limit}
        if course_id:
            params["course"] = course_id
        if status:
            params["status"] = status
        return await self._request("GET", "/quizzes/student/attempts", params=params)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, path, json=json, params=params)
        except httpx.TimeoutException as e:
            raise ApiError(f"{method} {path} timed out") from e
        except httpx.HTTPError as e:
            raise ApiError(f"{method} {path} failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        message = body.get("message") or f"HTTP {response.status_code}"
        data = body.get("data")

        if response.is_error:
            logger.debug(f"{method} {path} -> {response.status_code}: {message}")
            raise ApiError(message, status_code=response.status_code, data=data)

        if body.get("success") is False:
            raise ApiError(message, status_code=response.status_code, data=data)

        return data if isinstance(data, dict) else {}
