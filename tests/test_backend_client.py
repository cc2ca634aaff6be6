import httpx
import pytest

from quiz_client.backend.client import LearningApiClient
from quiz_client.utils.exceptions import ApiError


async def test_requests_carry_token_and_unwrap_envelope():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("authorization")
        seen["url"] = str(request.url)
        return httpx.Response(
            200, json={"success": True, "data": {"quiz": {"_id": "quiz-1"}, "attemptId": "a1"}}
        )

    client = LearningApiClient(
        base_url="http://backend.test/api/", token="abc", transport=httpx.MockTransport(handler)
    )
    data = await client.create_attempt("quiz-1")
    await client.aclose()

    assert data["attemptId"] == "a1"
    assert seen["auth"] == "Bearer abc"
    assert seen["url"] == "http://backend.test/api/quizzes/quiz-1/attempt"


async def test_error_status_becomes_api_error():
    def handler(request):
        return httpx.Response(
            400, json={"success": False, "message": "This attempt has already been submitted"}
        )

    client = LearningApiClient(base_url="http://backend.test/api", transport=httpx.MockTransport(handler))
    with pytest.raises(ApiError) as excinfo:
        await client.submit_attempt("a1", [])
    await client.aclose()

    assert excinfo.value.status_code == 400
    assert excinfo.value.already_submitted


async def test_unsuccessful_body_and_transport_errors():
    def unsuccessful(request):
        return httpx.Response(200, json={"success": False, "message": "Quiz not found"})

    def broken(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = LearningApiClient(base_url="http://backend.test/api", transport=httpx.MockTransport(unsuccessful))
    with pytest.raises(ApiError, match="Quiz not found"):
        await client.list_assessments()
    await client.aclose()

    client = LearningApiClient(base_url="http://backend.test/api", transport=httpx.MockTransport(broken))
    with pytest.raises(ApiError) as excinfo:
        await client.sync_answer("a1", "q1", "Paris", 3)
    await client.aclose()
    assert excinfo.value.status_code is None
    assert not excinfo.value.already_submitted


async def test_non_json_error_body():
    def handler(request):
        return httpx.Response(503, text="Service Unavailable")

    client = LearningApiClient(base_url="http://backend.test/api", transport=httpx.MockTransport(handler))
    with pytest.raises(ApiError, match="HTTP 503"):
        await client.get_attempt_result("a1")
    await client.aclose()
