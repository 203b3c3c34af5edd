import json
import time

import httpx
import pytest

from attendance_engine.exceptions import ResponseValidationError, ResponseValidationErrorType
from attendance_engine.services.query_client import QueryAnsweringClient


class FakeSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def make_client(handler, sleep=None, **kwargs):
    return QueryAnsweringClient(
        "https://answers.example.test/",
        api_key="key-123",
        transport=httpx.MockTransport(handler),
        sleep=sleep or FakeSleep(),
        **kwargs,
    )


async def test_posts_question_and_draft():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"answer": "Rephrased", "confidence": 0.9})

    client = make_client(handler)
    result = await client.answer("Who was absent today?", {"answer": "Draft", "confidence": 0.7})

    assert result == {"answer": "Rephrased", "confidence": 0.9}
    request = requests[0]
    assert str(request.url) == "https://answers.example.test/answer"
    assert request.headers["Authorization"] == "Bearer key-123"
    assert json.loads(request.content) == {
        "query": "Who was absent today?",
        "draft": {"answer": "Draft", "confidence": 0.7},
    }


async def test_rate_limit_is_retried():
    responses = [
        httpx.Response(429),
        httpx.Response(200, json={"answer": "ok", "confidence": 1}),
    ]
    sleep = FakeSleep()
    client = make_client(lambda request: responses.pop(0), sleep=sleep)

    assert (await client.answer("q", {}))["answer"] == "ok"
    assert len(sleep.delays) == 1


async def test_server_errors_become_api_error():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(502, text="bad gateway")

    client = make_client(handler, attempts=3)

    with pytest.raises(ResponseValidationError) as exc_info:
        await client.answer("q", {})

    assert exc_info.value.error_type == ResponseValidationErrorType.API_ERROR
    assert "502" in exc_info.value.message
    assert len(calls) == 3


async def test_timeouts_become_timeout_error():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    client = make_client(handler, attempts=2)

    with pytest.raises(ResponseValidationError) as exc_info:
        await client.answer("q", {})

    assert exc_info.value.error_type == ResponseValidationErrorType.TIMEOUT


async def test_expired_deadline_is_a_timeout():
    client = make_client(lambda request: httpx.Response(200, json={}))

    with pytest.raises(ResponseValidationError) as exc_info:
        await client.answer("q", {}, deadline=time.monotonic() - 1)

    assert exc_info.value.error_type == ResponseValidationErrorType.TIMEOUT


async def test_invalid_json_is_a_parsing_error():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, text="<html>not json</html>")

    client = make_client(handler)

    with pytest.raises(ResponseValidationError) as exc_info:
        await client.answer("q", {})

    assert exc_info.value.error_type == ResponseValidationErrorType.PARSING_ERROR
    assert len(calls) == 1
