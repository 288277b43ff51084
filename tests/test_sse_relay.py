import asyncio
import json

import httpx
import pytest

from models.stream_models import ChatMessage, SessionContext, StreamRequest
from services.streaming.cancellation import CancelToken
from services.streaming.errors import (
    AUTH_FAILED_MESSAGE,
    RATE_LIMITED_MESSAGE,
    TIMEOUT_MESSAGE,
    UNAVAILABLE_MESSAGE,
)
from services.streaming.sse_codec import DONE, decode
from services.streaming.sse_relay import MOCK_CHUNKS, SSERelay
from services.streaming.upstream_client import UpstreamChatClient
from utils.settings import Settings

UPSTREAM_URL = "https://upstream.test/v1/embed/chat/completions"


def live_settings(**overrides):
    values = {"thesys_api_key": "test-key", "upstream_url": UPSTREAM_URL}
    values.update(overrides)
    return Settings(**values)


def make_request(**overrides):
    values = {
        "messages": (ChatMessage(role="user", content="hello"),),
        "model": "c1/test-model",
        "language": "en",
    }
    values.update(overrides)
    return StreamRequest(**values)


def delta_frame(text):
    return f"data: {json.dumps({'choices': [{'delta': {'content': text}}]})}\n\n"


def upstream_body(*deltas, done=True):
    body = "".join(delta_frame(text) for text in deltas)
    if done:
        body += "data: [DONE]\n\n"
    return body.encode("utf-8")


class Recorder:
    def __init__(self):
        self.sleeps = []

    async def sleep(self, delay):
        self.sleeps.append(delay)


def build_relay(handler, settings=None, recorder=None):
    settings = settings or live_settings()
    recorder = recorder or Recorder()
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    upstream = UpstreamChatClient(http, settings, sleep=recorder.sleep)
    return SSERelay(settings, upstream), recorder


async def collect(relay, request, token=None):
    raw = b"".join([frame async for frame in relay.stream(request, token)])
    frames, carry = decode(raw)
    assert carry == b""
    return [frame if frame == DONE else json.loads(frame) for frame in frames]


@pytest.mark.asyncio
async def test_mock_mode_is_deterministic_and_spaced():
    recorder = Recorder()
    relay = SSERelay(Settings(thesys_api_key=None), sleep=recorder.sleep)

    first = await collect(relay, make_request())
    second = await collect(relay, make_request())

    assert first == second
    assert first == [{"chunk": chunk} for chunk in MOCK_CHUNKS] + [DONE]
    assert first.count(DONE) == 1
    assert not any(isinstance(frame, dict) and "error" in frame for frame in first)
    assert recorder.sleeps == [0.1] * (2 * len(MOCK_CHUNKS))


@pytest.mark.asyncio
async def test_force_mock_skips_network_even_with_key():
    def handler(request):
        raise AssertionError("mock mode must not call upstream")

    settings = live_settings(force_mock=True)
    relay, _ = build_relay(handler, settings=settings)
    frames = await collect(relay, make_request())
    assert frames[-1] == DONE
    assert "".join(frame["chunk"] for frame in frames[:-1]).startswith('{"type":"card"')


@pytest.mark.asyncio
async def test_live_stream_relays_deltas_in_order():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, content=upstream_body("<ui>", "card", "</ui>"))

    relay, recorder = build_relay(handler)
    frames = await collect(relay, make_request())

    assert frames == [{"chunk": "<ui>"}, {"chunk": "card"}, {"chunk": "</ui>"}, DONE]
    assert recorder.sleeps == []
    body = json.loads(seen[0].content)
    assert body["stream"] is True
    assert body["model"] == "c1/test-model"
    assert body["messages"][0]["role"] == "system"
    assert body["messages"][1] == {"role": "user", "content": "hello"}
    assert seen[0].headers["authorization"] == "Bearer test-key"


@pytest.mark.asyncio
async def test_frames_split_across_network_chunks():
    payload = upstream_body("alpha", "beta")

    async def pieces():
        for index in range(0, len(payload), 7):
            yield payload[index:index + 7]

    def handler(request):
        return httpx.Response(200, content=pieces())

    relay, _ = build_relay(handler)
    assert await collect(relay, make_request()) == [{"chunk": "alpha"}, {"chunk": "beta"}, DONE]


@pytest.mark.asyncio
async def test_malformed_frame_is_skipped():
    body = delta_frame("one") + "data: {not json\n\n" + delta_frame("two") + "data: [DONE]\n\n"

    def handler(request):
        return httpx.Response(200, content=body.encode())

    relay, _ = build_relay(handler)
    assert await collect(relay, make_request()) == [{"chunk": "one"}, {"chunk": "two"}, DONE]


@pytest.mark.asyncio
async def test_stream_end_without_done_still_terminates():
    def handler(request):
        return httpx.Response(200, content=upstream_body("only", done=False))

    relay, _ = build_relay(handler)
    assert await collect(relay, make_request()) == [{"chunk": "only"}, DONE]


@pytest.mark.asyncio
async def test_frames_after_upstream_done_are_not_forwarded():
    def handler(request):
        return httpx.Response(200, content=upstream_body("kept") + delta_frame("late").encode())

    relay, _ = build_relay(handler)
    assert await collect(relay, make_request()) == [{"chunk": "kept"}, DONE]


@pytest.mark.asyncio
async def test_503_once_then_success_retries_after_three_seconds():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        if len(bodies) == 1:
            return httpx.Response(503, json={"error": "cold start"})
        return httpx.Response(200, content=upstream_body("a", "b"))

    context = SessionContext(session_id="s-1", previous_state={"type": "card"}, message_id="m-1")
    relay, recorder = build_relay(handler)
    frames = await collect(relay, make_request(session_context=context))

    assert frames == [{"chunk": "a"}, {"chunk": "b"}, DONE]
    assert recorder.sleeps == [3.0]
    assert len(bodies) == 2
    assert bodies[0] == bodies[1]
    assert "Previous state" in bodies[1]["messages"][0]["content"]


@pytest.mark.asyncio
async def test_503_twice_ends_with_single_error_frame():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503)

    relay, recorder = build_relay(handler)
    frames = await collect(relay, make_request())

    assert frames == [{"error": UNAVAILABLE_MESSAGE}, DONE]
    assert len(calls) == 2
    assert recorder.sleeps == [3.0]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status, message",
    [(429, RATE_LIMITED_MESSAGE), (401, AUTH_FAILED_MESSAGE), (403, AUTH_FAILED_MESSAGE)],
)
async def test_non_retryable_statuses_fail_without_retry(status, message):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(status)

    relay, recorder = build_relay(handler)
    assert await collect(relay, make_request()) == [{"error": message}, DONE]
    assert len(calls) == 1
    assert recorder.sleeps == []


@pytest.mark.asyncio
async def test_other_client_error_uses_upstream_detail():
    def handler(request):
        return httpx.Response(400, json={"error": {"message": "model not found"}})

    relay, _ = build_relay(handler)
    assert await collect(relay, make_request()) == [{"error": "model not found"}, DONE]


@pytest.mark.asyncio
async def test_network_failure_becomes_error_frame():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    relay, _ = build_relay(handler)
    frames = await collect(relay, make_request())
    assert frames == [{"error": "Failed to reach upstream API: connection refused"}, DONE]


@pytest.mark.asyncio
async def test_deadline_aborts_upstream_and_reports_timeout():
    async def handler(request):
        await asyncio.sleep(10)
        return httpx.Response(200, content=upstream_body("never"))

    token = CancelToken()
    relay, _ = build_relay(handler, settings=live_settings(request_timeout=0.05))
    frames = await collect(relay, make_request(), token)

    assert frames == [{"error": TIMEOUT_MESSAGE}, DONE]
    assert token.reason == "timeout"


@pytest.mark.asyncio
async def test_closing_the_stream_cancels_the_upstream_task():
    release = asyncio.Event()

    async def body():
        yield delta_frame("first").encode()
        await release.wait()
        yield delta_frame("second").encode()

    def handler(request):
        return httpx.Response(200, content=body())

    token = CancelToken()
    relay, _ = build_relay(handler)
    stream = relay.stream(make_request(), token)
    first = await stream.__anext__()
    await stream.aclose()
    for _ in range(5):
        await asyncio.sleep(0)

    assert json.loads(decode(first)[0][0]) == {"chunk": "first"}
    assert token.reason == "closed"
    assert all(task.done() for task in token._tasks)


@pytest.mark.asyncio
async def test_arabic_request_uses_arabic_system_prompt():
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(200, content=upstream_body("x"))

    relay, _ = build_relay(handler)
    await collect(relay, make_request(language="ar"))
    assert "واجهة" in seen[0]["messages"][0]["content"]
