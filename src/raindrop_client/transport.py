"""Request construction and response decoding shared by the OAuth and REST calls.

Every call is one round trip: ``build_request`` -> ``client.send(stream=True)``
-> ``parse_response``. Transport errors raised by httpx are not wrapped.
"""
import json
import logging
from typing import Any, Mapping, Optional, Type, TypeVar
from urllib.parse import unquote

import httpx
from pydantic import BaseModel, ValidationError

from .config import DEFAULT_TIMEOUT
from .errors import RequestBuildError, ResponseDecodeError, StatusCodeError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def new_http_client(timeout: float = DEFAULT_TIMEOUT) -> httpx.AsyncClient:
    """Pooled transport: up to 10 idle connections kept for 30s, no compression."""
    return httpx.AsyncClient(
        timeout=timeout,
        limits=httpx.Limits(max_keepalive_connections=10, keepalive_expiry=30.0),
        headers={"Accept-Encoding": "identity"},
    )


def join_url(base: str, *segments: Any) -> str:
    """
    Join path segments onto a host and percent-decode the result once.

    Segments that must stay encoded after this pass have to be escaped twice
    by the caller.
    """
    parts = [str(segment).strip("/") for segment in segments]
    path = "/".join(part for part in parts if part)
    return unquote(f"{base.rstrip('/')}/{path}")


def encode_body(body: Any) -> bytes:
    if body is None:
        return b""
    try:
        if isinstance(body, BaseModel):
            payload = body.model_dump(mode="json", by_alias=True, exclude_none=True)
        else:
            payload = body
        return json.dumps(payload).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise RequestBuildError(f"Can't encode request body: {e}") from e


def build_request(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    body: Any = None,
    token: Optional[str] = None,
    params: Optional[Mapping[str, Any]] = None,
    timeout: Optional[float] = None,
) -> httpx.Request:
    """
    Build a ready-to-send request.

    ``Content-Type: application/json`` is always set; the bearer header only
    when ``token`` is non-empty. ``timeout`` replaces the transport timeout
    for this request alone.
    """
    headers = {"Content-Type": "application/json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"

    content = encode_body(body)

    extra = {}
    if timeout is not None:
        extra["timeout"] = timeout

    try:
        request = client.build_request(
            method, url, content=content, headers=headers, params=params, **extra
        )
    except (httpx.InvalidURL, TypeError, ValueError) as e:
        raise RequestBuildError(f"Can't build request for {url!r}: {e}") from e

    if request.url.scheme not in ("http", "https") or not request.url.host:
        raise RequestBuildError(f"Can't build request for {url!r}: not an absolute http(s) URL")
    return request


def _describe(response: httpx.Response) -> str:
    try:
        request = response.request
    except RuntimeError:
        return "<detached response>"
    return f"{request.method} {request.url}"


async def parse_response(response: httpx.Response, expected_status: int, model: Type[M]) -> M:
    """
    Decode a streamed response into ``model`` and close it.

    HTTP 400 is decoded like the expected status because the API reports
    ``result: false`` with it. Any other status raises ``StatusCodeError``
    before the body is read.
    """
    try:
        if response.status_code not in (expected_status, 400):
            logger.warning("Can't parse response of %s: status %d", _describe(response), response.status_code)
            raise StatusCodeError(response.status_code, expected_status)

        try:
            body = await response.aread()
        except (httpx.HTTPError, httpx.StreamError) as e:
            raise ResponseDecodeError(f"Can't read response body: {e}", response.status_code) from e

        logger.debug("%s -> %d (%d bytes)", _describe(response), response.status_code, len(body))
        try:
            return model.model_validate_json(body)
        except ValidationError as e:
            raise ResponseDecodeError(f"Invalid JSON response from API: {e}", response.status_code) from e
    finally:
        await response.aclose()


async def fetch(
    client: httpx.AsyncClient,
    request: httpx.Request,
    model: Type[M],
    expected_status: int = 200,
) -> M:
    """Send ``request`` once and decode the reply."""
    logger.debug("%s %s", request.method, request.url)
    response = await client.send(request, stream=True)
    return await parse_response(response, expected_status, model)
