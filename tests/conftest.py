import json
from typing import Callable, List, Optional, Sequence

import httpx
import pytest
from fastapi.testclient import TestClient

from config import Settings
from main import app, get_settings, get_transcoder
from transcoder import Transcoder

UPSTREAM_BASE = "https://nim.test/v1"
UPSTREAM_CHAT_URL = f"{UPSTREAM_BASE}/chat/completions"


class UpstreamRecorder:
    """MockTransport handler that records every request it answers."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.handler = handler
        self.calls: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        return self.handler(request)

    @property
    def last_json(self):
        return json.loads(self.calls[-1].content)


class ChunkStream(httpx.AsyncByteStream):
    """Upstream event stream yielding fixed chunks, optionally failing afterwards."""

    def __init__(self, chunks: Sequence[bytes], error: Optional[Exception] = None):
        self.chunks = list(chunks)
        self.error = error
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error

    async def aclose(self) -> None:
        self.closed = True


def completion_body(content: str = "hi", usage=None) -> dict:
    body = {
        "id": "nim-123",
        "object": "chat.completion",
        "model": "meta/llama-3.1-70b-instruct",
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
    }
    if usage is not None:
        body["usage"] = usage
    return body


def make_settings(api_key: Optional[str] = "test-key") -> Settings:
    return Settings(_env_file=None, NIM_API_KEY=api_key, NIM_API_BASE=UPSTREAM_BASE)


@pytest.fixture
def make_transcoder():
    def _make(handler=None, api_key: Optional[str] = "test-key"):
        recorder = UpstreamRecorder(handler or (lambda request: httpx.Response(200, json=completion_body())))
        transcoder = Transcoder(make_settings(api_key), transport=httpx.MockTransport(recorder))
        return transcoder, recorder

    return _make


@pytest.fixture
def proxy_client(make_transcoder):
    """Returns a factory building a TestClient whose upstream is answered by `handler`."""

    def _make(handler=None, api_key: Optional[str] = "test-key"):
        transcoder, recorder = make_transcoder(handler, api_key)
        app.dependency_overrides[get_settings] = lambda: transcoder.settings
        app.dependency_overrides[get_transcoder] = lambda: transcoder
        return TestClient(app), recorder

    yield _make
    app.dependency_overrides.clear()
