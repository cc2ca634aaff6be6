"""
Read-only listings: the learner's courses, available assessments and past
attempts. Entry point for picking what to start.
"""

from __future__ import annotations

from typing import List, Optional

from quiz_client.backend.client import LearningApiClient
from quiz_client.logger import setup_logger
from quiz_client.models import Assessment, AttemptPage, Course

logger = setup_logger(__name__)

MAX_PAGE_SIZE = 100


class SessionCatalog:
    def __init__(self, client: LearningApiClient) -> None:
        self._client = client

    async def list_courses(self) -> List[Course]:
        """Courses the learner is actively enrolled in, without duplicates."""
        enrollments = await self._client.list_enrollments()
        courses: List[Course] = []
        seen: set[str] = set()
        for enrollment in enrollments:
            if enrollment.get("status") != "active":
                continue
            course = enrollment.get("course")
            if not isinstance(course, dict) or course.get("_id") in seen:
                continue
            seen.add(course["_id"])
            courses.append(Course.model_validate(course))
        logger.debug(f"📚 {len(courses)} active courses")
        return courses

    async def list_assessments(
        self, course_id: Optional[str] = None, search: str = ""
    ) -> List[Assessment]:
        """
        Assessments for one course (or all), filtered by a case-insensitive
        search over title and description.
        """
        raw = await self._client.list_assessments(course_id)
        assessments = [Assessment.model_validate(item) for item in raw]

        term = search.strip().lower()
        if term:
            assessments = [
                a
                for a in assessments
                if term in a.title.lower() or term in (a.description or "").lower()
            ]
        return assessments

    async def list_attempts(
        self,
        page: int = 1,
        limit: int = 10,
        course_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> AttemptPage:
        """The learner's past attempts, newest first, one page at a time."""
        page = max(1, page)
        limit = min(MAX_PAGE_SIZE, max(1, limit))
        data = await self._client.list_attempts(
            page=page, limit=limit, course_id=course_id, status=status
        )
        return AttemptPage.model_validate(
            {
                "attempts": data.get("attempts") or [],
                "pagination": data.get("pagination") or {"currentPage": page},
            }
        )
