"""Stand-in for the fast-apply service, for local runs and tests.

"Applies" an edit by answering with the original <code> section unchanged.
"""

import asyncio
import json
import os
import re
import uuid

from fastapi import FastAPI, Header
from fastapi.responses import JSONResponse, StreamingResponse

from models import CompletionRequest

app = FastAPI()

MOCK_PORT = int(os.getenv("MOCK_PORT", "8081"))
MOCK_MODEL = "morph/mock"

_CODE_RE = re.compile(r"<code>\n(.*)\n</code>", re.DOTALL)


def estimate_tokens(text: str) -> int:
    """Approximate token count using word splitting."""
    return len(text.split())


def apply_edit(request: CompletionRequest) -> str:
    """Return the file content embedded in the user message."""
    for message in reversed(request.messages):
        if message.role == "user":
            match = _CODE_RE.search(message.content)
            return match.group(1) if match else ""
    return ""


async def char_stream(text: str, req_id: str):
    """Generate SSE chunks for streaming response, one character at a time."""
    for char in text:
        chunk = {
            "id": req_id,
            "object": "chat.completion.chunk",
            "model": MOCK_MODEL,
            "choices": [
                {
                    "index": 0,
                    "delta": {"content": char},
                    "finish_reason": None,
                }
            ],
        }
        yield f"data: {json.dumps(chunk)}\n\n"
        await asyncio.sleep(0)  # yield to event loop
    yield "data: [DONE]\n\n"


@app.post("/chat/completions")
async def chat_completions(
    request: CompletionRequest,
    authorization: str | None = Header(None),
):
    """Mock completion endpoint; supports streaming when stream=True."""
    if not authorization or not authorization.startswith("Bearer "):
        return JSONResponse(status_code=401, content={"error": {"message": "Missing API key"}})

    req_id = f"chatcmpl-{uuid.uuid4().hex}"
    text = apply_edit(request) + "\n"

    if request.stream:
        return StreamingResponse(char_stream(text, req_id), media_type="text/event-stream")

    prompt_tokens = sum(estimate_tokens(m.content) for m in request.messages)
    completion_tokens = estimate_tokens(text)
    return {
        "id": req_id,
        "object": "chat.completion",
        "model": MOCK_MODEL,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": text},
                "finish_reason": "stop",
            }
        ],
        "usage": {
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "total_tokens": prompt_tokens + completion_tokens,
        },
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=MOCK_PORT)
