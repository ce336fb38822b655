import asyncio
import logging
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from config import ServerConfig
from errors import EditValidationError, EmptyCompletionError, FileAccessError
from models import CompletionRequest, EditFileRequest, EditFileResponse, Message
from morph_client import MorphClient

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("target_file", "instructions", "editSnippet")

SYSTEM_PROMPT = (
    "You are Morph fast apply. Carefully update the provided code according to the "
    "instructions and edit snippet. Return ONLY the full updated file contents with "
    "no commentary."
)


def parse_edit_request(payload: Any) -> EditFileRequest:
    """Decode a raw JSON payload into a typed request, or raise EditValidationError."""
    if not isinstance(payload, dict):
        raise EditValidationError("payload", "Invalid payload. Expected object.")

    try:
        return EditFileRequest.model_validate(payload)
    except ValidationError as exc:
        failed = {str(err["loc"][0]) for err in exc.errors() if err["loc"]}
        for field in REQUIRED_FIELDS:
            if field in failed:
                raise EditValidationError(field) from None
        field = next(iter(sorted(failed)), "payload")
        raise EditValidationError(field) from None


def build_user_content(file_content: str, request: EditFileRequest) -> str:
    return (
        f"<code>\n{file_content}\n</code>\n"
        f"<update>\n{request.instructions}\n\n{request.edit_snippet}\n</update>"
    )


def build_completion_request(
    config: ServerConfig, file_content: str, request: EditFileRequest, stream: bool
) -> CompletionRequest:
    return CompletionRequest(
        model=config.model,
        messages=(
            Message(role="system", content=SYSTEM_PROMPT),
            Message(role="user", content=build_user_content(file_content, request)),
        ),
        stream=stream,
    )


async def read_target_file(target_path: str) -> str:
    """Read the target file relative to the working directory, off the event loop."""
    resolved = Path.cwd() / target_path
    logger.debug("Reading target file: %s", resolved)
    try:
        return await asyncio.to_thread(resolved.read_text, encoding="utf-8")
    except FileNotFoundError:
        raise FileAccessError(target_path, f"File not found: {target_path}") from None
    except PermissionError:
        raise FileAccessError(target_path, f"Permission denied: {target_path}") from None
    except (OSError, UnicodeDecodeError) as e:
        raise FileAccessError(target_path, f"Could not read {target_path}: {e}") from e


async def handle_edit_request(
    config: ServerConfig, client: MorphClient, payload: Any
) -> EditFileResponse:
    """Buffered edit: wait for the full completion and return the updated file."""
    request = parse_edit_request(payload)
    file_content = await read_target_file(request.target_file)
    completion = await client.complete(
        build_completion_request(config, file_content, request, stream=False)
    )

    updated_code = (completion.first_content() or "").rstrip()
    if not updated_code:
        raise EmptyCompletionError()

    return EditFileResponse(
        updatedCode=updated_code,
        model=completion.model or config.model,
        usage=completion.usage,
    )


async def handle_edit_stream(
    config: ServerConfig, client: MorphClient, payload: Any
) -> AsyncIterator[bytes]:
    """Streamed edit: return the upstream body as an unmodified byte iterator."""
    request = parse_edit_request(payload)
    file_content = await read_target_file(request.target_file)
    return await client.stream(
        build_completion_request(config, file_content, request, stream=True)
    )
