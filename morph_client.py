import json
import logging
from collections.abc import AsyncIterator

import httpx
from pydantic import ValidationError

from config import ServerConfig
from errors import UpstreamError
from models import CompletionRequest, CompletionResponse

logger = logging.getLogger(__name__)


class MorphClient:
    """Translates completion requests into calls against the fast-apply endpoint.

    Stateless per config; the underlying httpx.AsyncClient is owned by the
    application and shared across requests.
    """

    def __init__(self, config: ServerConfig, client: httpx.AsyncClient) -> None:
        self.config = config
        self._client = client

    @property
    def endpoint(self) -> str:
        base = self.config.base_url
        return f"{base}chat/completions" if base.endswith("/") else f"{base}/chat/completions"

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.api_key}",
        }
        if self.config.referrer:
            headers["HTTP-Referer"] = self.config.referrer
        if self.config.title:
            headers["X-Title"] = self.config.title
        return headers

    def _build_request(self, request: CompletionRequest) -> httpx.Request:
        logger.debug(
            "Sending request to Morph API url=%s model=%s stream=%s",
            self.endpoint,
            request.model,
            request.stream,
        )
        return self._client.build_request(
            "POST",
            self.endpoint,
            json=request.model_dump(),
            headers=self._headers(),
            timeout=self.config.timeout,
        )

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """Issue a buffered call and return the decoded completion."""
        try:
            response = await self._client.send(self._build_request(request))
        except httpx.HTTPError as e:
            raise UpstreamError(f"Morph API request failed: {e}") from e

        if not response.is_success:
            raise UpstreamError(
                f"Morph API error ({response.status_code}): {response.text}",
                status=response.status_code,
                body=response.text,
            )

        try:
            return CompletionResponse.model_validate(response.json())
        except (json.JSONDecodeError, ValidationError) as e:
            raise UpstreamError(
                f"Morph API returned an unreadable completion: {e}",
                status=response.status_code,
                body=response.text,
            ) from e

    async def stream(self, request: CompletionRequest) -> AsyncIterator[bytes]:
        """Open a streamed call and return its body as a lazy byte iterator.

        Upstream failures raise before the iterator is returned, so nothing
        has been yielded yet when UpstreamError reaches the caller.
        """
        outgoing = request.model_copy(update={"stream": True})
        try:
            response = await self._client.send(self._build_request(outgoing), stream=True)
        except httpx.HTTPError as e:
            raise UpstreamError(f"Morph API stream request failed: {e}") from e

        if not response.is_success:
            try:
                body = (await response.aread()).decode("utf-8", errors="replace")
            finally:
                await response.aclose()
            raise UpstreamError(
                f"Morph API stream error ({response.status_code}): {body}",
                status=response.status_code,
                body=body,
            )

        logger.debug("Streaming response from Morph API")
        return _iter_body(response)


async def _iter_body(response: httpx.Response) -> AsyncIterator[bytes]:
    try:
        async for chunk in response.aiter_raw():
            if chunk:
                yield chunk
    except httpx.HTTPError as e:
        raise UpstreamError(f"Morph API stream interrupted: {e}") from e
    finally:
        await response.aclose()
