import asyncio

import httpx
import pytest

from conftest import RecordingUpstream, byte_chunks, completion_body, make_client
from edit_handler import SYSTEM_PROMPT
from errors import UpstreamError
from models import CompletionRequest, Message


def _request(stream: bool = False) -> CompletionRequest:
    return CompletionRequest(
        model="morph/morph-v2",
        messages=(
            Message(role="system", content=SYSTEM_PROMPT),
            Message(role="user", content="<code>\nx = 1\n</code>\n<update>\nbump\n\nx = 2\n</update>"),
        ),
        stream=stream,
    )


async def _collect(chunks) -> list[bytes]:
    return [chunk async for chunk in chunks]


def test_complete_posts_to_chat_completions_with_bearer_token(config):
    upstream = RecordingUpstream(lambda request: httpx.Response(200, json=completion_body("x = 2")))
    client = make_client(config, upstream)

    completion = asyncio.run(client.complete(_request()))

    assert completion.first_content() == "x = 2"
    assert completion.model == "morph/morph-v2"
    (sent,) = upstream.requests
    assert sent.method == "POST"
    assert str(sent.url) == "https://morph.test/api/v1/chat/completions"
    assert sent.headers["Authorization"] == "Bearer test-key"
    assert sent.headers["Content-Type"] == "application/json"
    assert "HTTP-Referer" not in sent.headers
    assert "X-Title" not in sent.headers
    assert upstream.payloads[0] == {
        "model": "morph/morph-v2",
        "messages": [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": "<code>\nx = 1\n</code>\n<update>\nbump\n\nx = 2\n</update>"},
        ],
        "stream": False,
    }


def test_identification_headers_are_sent_when_configured(config):
    config = config.model_copy(update={"referrer": "https://my.app", "title": "My App"})
    upstream = RecordingUpstream(lambda request: httpx.Response(200, json=completion_body("ok")))

    asyncio.run(make_client(config, upstream).complete(_request()))

    sent = upstream.requests[0]
    assert sent.headers["HTTP-Referer"] == "https://my.app"
    assert sent.headers["X-Title"] == "My App"


def test_complete_maps_error_status_to_upstream_error(config):
    upstream = RecordingUpstream(lambda request: httpx.Response(429, text="slow down"))

    with pytest.raises(UpstreamError) as excinfo:
        asyncio.run(make_client(config, upstream).complete(_request()))

    assert excinfo.value.status == 429
    assert excinfo.value.body == "slow down"
    assert "Morph API error (429): slow down" in excinfo.value.message
    assert len(upstream.requests) == 1


def test_complete_maps_transport_failure_to_upstream_error(config):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(UpstreamError) as excinfo:
        asyncio.run(make_client(config, RecordingUpstream(refuse)).complete(_request()))

    assert excinfo.value.status is None


def test_complete_rejects_non_json_body(config):
    upstream = RecordingUpstream(lambda request: httpx.Response(200, text="<html>oops</html>"))

    with pytest.raises(UpstreamError, match="unreadable completion"):
        asyncio.run(make_client(config, upstream).complete(_request()))


def test_stream_forces_stream_flag_and_yields_chunks_in_order(config):
    upstream = RecordingUpstream(
        lambda request: httpx.Response(200, content=byte_chunks(b"A", b"B", b"C"))
    )
    client = make_client(config, upstream)

    async def run():
        return await _collect(await client.stream(_request(stream=False)))

    assert asyncio.run(run()) == [b"A", b"B", b"C"]
    assert upstream.payloads[0]["stream"] is True


def test_stream_error_status_raises_before_any_chunk(config):
    upstream = RecordingUpstream(lambda request: httpx.Response(401, text="bad key"))
    client = make_client(config, upstream)

    with pytest.raises(UpstreamError) as excinfo:
        asyncio.run(client.stream(_request(stream=True)))

    assert excinfo.value.status == 401
    assert excinfo.value.body == "bad key"


@pytest.mark.parametrize(
    "base_url, expected",
    [
        ("https://morph.test/api/v1", "https://morph.test/api/v1/chat/completions"),
        ("https://morph.test/api/v1/", "https://morph.test/api/v1/chat/completions"),
    ],
)
def test_endpoint_joins_normalized_base_url(config, base_url, expected):
    config = config.model_copy(update={"base_url": base_url})
    upstream = RecordingUpstream(lambda request: httpx.Response(200, json=completion_body("ok")))
    client = make_client(config, upstream)

    asyncio.run(client.complete(_request()))

    assert client.endpoint == expected
    assert str(upstream.requests[0].url) == expected
