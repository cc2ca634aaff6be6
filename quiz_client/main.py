from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse

from quiz_client import __version__
from quiz_client.backend.client import LearningApiClient
from quiz_client.catalog import SessionCatalog
from quiz_client.config import settings
from quiz_client.logger import setup_logger
from quiz_client.models import (
    Assessment,
    AttemptPage,
    AttemptStatus,
    Course,
    GoToRequest,
    AnswerRequest,
    HealthResponse,
    Result,
    SessionView,
    StartRequest,
)
from quiz_client.session.controller import AttemptController
from quiz_client.utils.exceptions import (
    ApiError,
    InvalidAnswerError,
    InvalidStateError,
    NavigationError,
    QuizClientError,
    ResultUnavailable,
    StartFailed,
    SubmitFailed,
)

logger = setup_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle manager: startup and shutdown."""
    logger.info("🚀 Starting quiz client service")
    logger.info(f"   Config: backend={settings.api_base_url}")
    client = LearningApiClient()
    app.state.client = client
    app.state.controller = AttemptController(client)
    app.state.catalog = SessionCatalog(client)
    yield
    logger.info("🛑 Shutting down service")
    await app.state.controller.aclose()
    await client.aclose()


app = FastAPI(title="Quiz Client", version=__version__, lifespan=lifespan)


def get_controller(request: Request) -> AttemptController:
    return request.app.state.controller


def get_catalog(request: Request) -> SessionCatalog:
    return request.app.state.catalog


@app.get("/health", response_model=HealthResponse)
async def health_check(controller: AttemptController = Depends(get_controller)):
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        backend_url=settings.api_base_url,
        session_status=controller.status,
    )


# ----------------------------------------------------------------------
# Catalog
# ----------------------------------------------------------------------
@app.get("/courses", response_model=List[Course])
async def list_courses(catalog: SessionCatalog = Depends(get_catalog)):
    return await catalog.list_courses()


@app.get("/assessments", response_model=List[Assessment])
async def list_assessments(
    course_id: Optional[str] = None,
    search: str = "",
    catalog: SessionCatalog = Depends(get_catalog),
):
    return await catalog.list_assessments(course_id=course_id, search=search)


@app.get("/attempts", response_model=AttemptPage)
async def list_attempts(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    course_id: Optional[str] = None,
    status: Optional[str] = None,
    catalog: SessionCatalog = Depends(get_catalog),
):
    return await catalog.list_attempts(page=page, limit=limit, course_id=course_id, status=status)


@app.get("/attempts/{attempt_id}/result", response_model=Result)
async def attempt_result(attempt_id: str, controller: AttemptController = Depends(get_controller)):
    return await controller.view_result(attempt_id)


# ----------------------------------------------------------------------
# Active session
# ----------------------------------------------------------------------
@app.post("/session/start", response_model=SessionView)
async def start_session(
    request: StartRequest, controller: AttemptController = Depends(get_controller)
):
    """
    Start an attempt.

    A finished attempt still on screen is released first, so the learner can
    go straight from a result to the next assessment.
    """
    if controller.status is AttemptStatus.SUBMITTED:
        controller.leave()
    await controller.start(request.assessment_id)
    return controller.view()


@app.get("/session", response_model=SessionView)
async def get_session(controller: AttemptController = Depends(get_controller)):
    return controller.view()


@app.post("/session/answer", response_model=SessionView)
async def answer_question(
    request: AnswerRequest, controller: AttemptController = Depends(get_controller)
):
    controller.answer(request.question_id, request.value)
    return controller.view()


@app.post("/session/flag/{question_id}", response_model=SessionView)
async def toggle_flag(question_id: str, controller: AttemptController = Depends(get_controller)):
    controller.toggle_flag(question_id)
    return controller.view()


@app.post("/session/goto", response_model=SessionView)
async def go_to_question(
    request: GoToRequest, controller: AttemptController = Depends(get_controller)
):
    controller.go_to(request.index)
    return controller.view()


@app.post("/session/submit", response_model=SessionView)
async def submit_session(controller: AttemptController = Depends(get_controller)):
    await controller.submit()
    return controller.view()


@app.delete("/session", response_model=SessionView)
async def leave_session(controller: AttemptController = Depends(get_controller)):
    controller.leave()
    return controller.view()


# ----------------------------------------------------------------------
# Error handling
# ----------------------------------------------------------------------
_STATUS_CODES = {
    InvalidStateError: 409,
    InvalidAnswerError: 400,
    NavigationError: 400,
    StartFailed: 409,
    SubmitFailed: 502,
    ResultUnavailable: 404,
    ApiError: 502,
}


@app.exception_handler(QuizClientError)
async def quiz_exception_handler(request: Request, exc: QuizClientError):
    """Handle quiz client errors."""
    status_code = next(
        (code for kind, code in _STATUS_CODES.items() if isinstance(exc, kind)), 400
    )
    logger.error(f"🔥 Application Error: {exc}")
    content = {"detail": str(exc)}
    if isinstance(exc, StartFailed) and exc.existing_attempt_id:
        content["existing_attempt_id"] = exc.existing_attempt_id
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(f"🔥 Unexpected Error: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})
