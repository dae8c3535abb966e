import json
import logging
import urllib.parse
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Mapping, Optional, Sequence, Tuple, Union

import httpx

from .errors import SoundCloudError
from .refresh import RefreshContext, with_token_refresh
from .retry import DEFAULT_RETRY_POLICY, RetryPolicy, retry_async

logger = logging.getLogger(__name__)

SOUNDCLOUD_API_BASE_URL = "https://api.soundcloud.com"

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
JSON_CONTENT_TYPE = "application/json"

DEFAULT_TIMEOUT = 30.0


@dataclass(frozen=True)
class FormBody:
    """Form-encoded request body, sent verbatim in the given order."""

    fields: Union[Mapping[str, Any], Sequence[Tuple[str, Any]]]

    def encode(self) -> str:
        return urllib.parse.urlencode(self.fields)


@dataclass(frozen=True)
class MultipartBody:
    """Multipart form data; httpx picks the content type and boundary.

    ``files`` follows httpx's ``files=`` argument. Without any file parts
    httpx falls back to a url-encoded form.
    """

    data: Mapping[str, Any] = field(default_factory=dict)
    files: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RequestOptions:
    path: str
    method: str = "GET"
    token: Optional[str] = None
    body: Any = None
    content_type: Optional[str] = None

    @property
    def url(self) -> str:
        if self.path.startswith(("http://", "https://")):
            return self.path
        return f"{SOUNDCLOUD_API_BASE_URL}{self.path}"


def build_request(client: httpx.AsyncClient, options: RequestOptions) -> httpx.Request:
    """Translate RequestOptions into an httpx request (headers + encoded body)."""

    headers: Dict[str, str] = {"Accept": JSON_CONTENT_TYPE}
    if options.token:
        headers["Authorization"] = f"OAuth {options.token}"

    kwargs: Dict[str, Any] = {}
    body = options.body
    if isinstance(body, FormBody):
        headers["Content-Type"] = FORM_CONTENT_TYPE
        kwargs["content"] = body.encode()
    elif isinstance(body, MultipartBody):
        kwargs["data"] = dict(body.data)
        kwargs["files"] = dict(body.files)
    elif options.content_type:
        headers["Content-Type"] = options.content_type
        if body is not None:
            kwargs["content"] = json.dumps(body)
    elif body is not None:
        headers["Content-Type"] = JSON_CONTENT_TYPE
        kwargs["content"] = json.dumps(body)

    return client.build_request(options.method.upper(), options.url, headers=headers, **kwargs)


def interpret_response(response: httpx.Response) -> Any:
    """Map a response onto a result: redirect target, None, parsed JSON, or SoundCloudError."""

    status = response.status_code

    if 300 <= status < 400:
        location = response.headers.get("location")
        if location:
            return location
        raise SoundCloudError.from_response(response)

    if not response.is_success:
        raise SoundCloudError.from_response(response)

    if status == 204 or response.headers.get("content-length") == "0" or not response.content:
        return None

    try:
        return response.json()
    except ValueError as e:
        raise RuntimeError(f"SoundCloud API response was not JSON (status {status}): {response.text[:200]}") from e


async def execute_once(client: httpx.AsyncClient, options: RequestOptions) -> Any:
    """Perform exactly one HTTP round trip. Transport errors propagate unchanged."""

    request = build_request(client, options)
    logger.debug("%s %s", request.method, request.url)
    response = await client.send(request, follow_redirects=False)
    logger.debug("%s %s -> %s", request.method, request.url, response.status_code)
    return interpret_response(response)


@asynccontextmanager
async def _client_scope(http_client: Optional[httpx.AsyncClient]) -> AsyncIterator[httpx.AsyncClient]:
    if http_client is not None:
        yield http_client
        return
    async with httpx.AsyncClient(timeout=DEFAULT_TIMEOUT, follow_redirects=False) as client:
        yield client


async def sc_fetch(
    options: RequestOptions,
    refresh: Optional[RefreshContext] = None,
    *,
    retry: Optional[RetryPolicy] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> Any:
    """Execute one logical request with retries and (optionally) 401 token refresh.

    Returns the parsed JSON body, ``None`` for empty responses, or the
    ``Location`` value for redirects. Raises SoundCloudError on failure.
    """

    policy = retry or (refresh.retry if refresh is not None else DEFAULT_RETRY_POLICY)

    async with _client_scope(http_client) as client:

        async def attempt(opts: RequestOptions) -> Any:
            return await retry_async(lambda: execute_once(client, opts), policy)

        return await with_token_refresh(options, attempt, refresh)


async def sc_fetch_url(
    url: str,
    token: Optional[str] = None,
    retry: Optional[RetryPolicy] = None,
    *,
    http_client: Optional[httpx.AsyncClient] = None,
) -> Any:
    """GET an absolute URL (e.g. a ``next_href`` continuation) with retries, no refresh."""

    options = RequestOptions(path=url, method="GET", token=token)
    return await sc_fetch(options, retry=retry or DEFAULT_RETRY_POLICY, http_client=http_client)
