"""HTTP client for the rulebook parse and content generation services.

Both services are opaque collaborators: the parse service persists the
extracted text itself, the generate service persists the content. This
client only reports whether the call worked. A non-2xx answer comes back
as an unsuccessful response whose error names the HTTP status; transport
failures and unreadable bodies raise ``ContentServiceError``.
"""

from __future__ import annotations

from typing import TypeVar

import httpx
from pydantic import BaseModel, ValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_fixed

from ..config import settings
from ..errors import ContentServiceError
from ..logging import logger
from ..models.schemas import GenerateRequest, GenerateResponse, ParseRequest, ParseResponse

PARSE_PATH = "/api/admin/rulebook/parse"
GENERATE_PATH = "/api/admin/rulebook/generate-content"

_pipeline = settings.pipeline_config

ResponseT = TypeVar("ResponseT", bound=BaseModel)


def _truncate_body(body: str | None, limit: int = 500) -> str | None:
    if not body:
        return None
    if len(body) <= limit:
        return body
    return f"{body[:limit]}..."


class ContentServiceClient:
    def __init__(self, base_url: str | None = None, api_key: str | None = None) -> None:
        headers = {"User-Agent": "vecna-pipeline/1.0"}
        key = api_key if api_key is not None else settings.api_key
        if key:
            headers["X-API-Key"] = key
        else:
            logger.warning("content_api_key_missing", message="API_KEY not configured; calls are unauthenticated.")
        self.client = httpx.Client(
            base_url=base_url or settings.content_api_url,
            headers=headers,
        )

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> ContentServiceClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # Only connection failures are retried: the request never reached the
    # service, so repeating it cannot double-run a parse or generation.
    @retry(
        retry=retry_if_exception_type(httpx.ConnectError),
        stop=stop_after_attempt(_pipeline.transport_retry_attempts + 1),
        wait=wait_fixed(_pipeline.transport_retry_wait_seconds),
        reraise=True,
    )
    def _post(self, path: str, payload: dict, timeout: float) -> httpx.Response:
        return self.client.post(path, json=payload, timeout=timeout)

    def _call(self, path: str, payload: dict, timeout: float, model: type[ResponseT]) -> ResponseT:
        try:
            response = self._post(path, payload, timeout)
        except httpx.TimeoutException as exc:
            raise ContentServiceError(f"Request to {path} timed out after {timeout}s") from exc
        except httpx.HTTPError as exc:
            raise ContentServiceError(f"Request to {path} failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if response.is_error:
            logger.warning(
                "content_api_error_response",
                path=path,
                status_code=response.status_code,
                body=_truncate_body(response.text),
            )
            status = f"HTTP {response.status_code}"
            body = {**body, "success": False}
            body["error"] = f"{status}: {body['error']}" if body.get("error") else status

        try:
            return model.model_validate(body)
        except ValidationError as exc:
            raise ContentServiceError(
                f"Malformed response from {path}: {exc.errors()[0]['msg']}",
                status_code=response.status_code,
                body=_truncate_body(response.text),
            ) from exc

    def parse(self, game_id: int, url: str) -> ParseResponse:
        request = ParseRequest(game_id=game_id, url=url)
        return self._call(
            PARSE_PATH,
            request.model_dump(by_alias=True),
            timeout=_pipeline.parse_timeout_seconds,
            model=ParseResponse,
        )

    def generate(self, request: GenerateRequest) -> GenerateResponse:
        return self._call(
            GENERATE_PATH,
            request.model_dump(by_alias=True, exclude_none=True),
            timeout=_pipeline.generate_timeout_seconds,
            model=GenerateResponse,
        )
