import json
from typing import Callable

import httpx
import pytest

from config import ServerConfig
from morph_client import MorphClient

TARGET_SOURCE = "def greet():\n    return 'hi'\n"


class RecordingUpstream:
    """httpx.MockTransport handler that remembers every request it sees."""

    def __init__(self, responder: Callable[[httpx.Request], httpx.Response]) -> None:
        self.responder = responder
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)

    @property
    def payloads(self) -> list[dict]:
        return [json.loads(request.content) for request in self.requests]


def completion_body(content, model="morph/morph-v2", usage=None) -> dict:
    body = {
        "id": "chatcmpl-1",
        "model": model,
        "choices": [
            {
                "index": 0,
                "finish_reason": "stop",
                "message": {"role": "assistant", "content": content},
            }
        ],
    }
    if usage is not None:
        body["usage"] = usage
    return body


async def byte_chunks(*parts: bytes):
    for part in parts:
        yield part


def failing_responder(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected upstream call to {request.url}")


@pytest.fixture
def config() -> ServerConfig:
    return ServerConfig(
        port=3333,
        api_key="test-key",
        base_url="https://morph.test/api/v1",
        model="morph/morph-v2",
    )


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "example.py").write_text(TARGET_SOURCE, encoding="utf-8")
    return tmp_path


@pytest.fixture
def edit_payload() -> dict:
    return {
        "target_file": "example.py",
        "instructions": "Make greet return a louder greeting.",
        "editSnippet": "def greet():\n    return 'HI'",
    }


def make_client(config: ServerConfig, upstream: RecordingUpstream) -> MorphClient:
    return MorphClient(config, httpx.AsyncClient(transport=httpx.MockTransport(upstream)))
