"""Outbound HTTP execution.

The executor never lets an outbound failure escape as an exception:

- any HTTP status, 4xx and 5xx included, is a completed call;
- transport failures (DNS, refused connections, timeouts, malformed URLs)
  become a Response with status 0, a synthetic status text and the error
  message as body.

Only caller errors, such as an unsupported method, raise InvalidRequestError.
"""

import json
import logging
import time
from typing import Any, Self

import httpx
from reqsync_models import BODY_METHODS, SUPPORTED_METHODS, BodyType, ResolvedRequest, Response, serialize_body

from .constants import TRANSPORT_ERROR_STATUS, TransportErrorText
from .exceptions import InvalidRequestError

logger = logging.getLogger(__name__)


def prepare_request(request: ResolvedRequest) -> dict[str, Any]:
    """Turn a resolved request into keyword arguments for httpx.AsyncClient.build_request()."""
    if request.method not in SUPPORTED_METHODS:
        raise InvalidRequestError(f"Unsupported HTTP method: {request.method}")

    request_kwargs: dict[str, Any] = {
        "method": str(request.method),
        "url": request.url,
        "headers": request.headers,
    }

    if request.method not in BODY_METHODS:
        return request_kwargs

    match request.body_type:
        case BodyType.JSON:
            raw_body = request.body or "{}"
            try:
                request_kwargs["json"] = json.loads(raw_body)
            except json.JSONDecodeError as e:
                # malformed JSON goes out exactly as typed
                logger.debug(f"Body is not valid JSON ({e}), sending it raw")
                request_kwargs["content"] = raw_body
        case BodyType.TEXT:
            if request.body:
                request_kwargs["content"] = request.body

    return request_kwargs


def parse_body(text: str) -> Any:
    """Structured value when the text is JSON, the text itself otherwise."""
    if not text.strip():
        return text
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


def normalize_response(response: httpx.Response, elapsed_ms: int) -> Response:
    # multi_items() keeps repeated headers in order, so the last one wins
    headers = {name.lower(): value for name, value in response.headers.multi_items()}
    body = parse_body(response.text)
    return Response(
        status=response.status_code,
        status_text=response.reason_phrase,
        headers=headers,
        body=body,
        elapsed_ms=elapsed_ms,
        size=len(serialize_body(body).encode("utf-8")),
    )


def transport_failure(error: Exception, elapsed_ms: int) -> Response:
    match error:
        case httpx.TimeoutException():
            status_text = TransportErrorText.TIMEOUT
        case httpx.ConnectError():
            status_text = TransportErrorText.CONNECTION
        case _:
            status_text = TransportErrorText.GENERIC

    message = str(error) or type(error).__name__
    return Response(
        status=TRANSPORT_ERROR_STATUS,
        status_text=str(status_text),
        headers={},
        body=message,
        elapsed_ms=elapsed_ms,
        size=len(message.encode("utf-8")),
    )


def _elapsed_ms(started: float) -> int:
    return max(0, round((time.perf_counter() - started) * 1000))


class RequestExecutor:
    """Owns the outbound HTTP client and executes resolved requests."""

    def __init__(
        self,
        timeout: float | None = 30.0,
        follow_redirects: bool = True,
        verify: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.timeout = timeout
        self.follow_redirects = follow_redirects
        self.verify = verify
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def start(self) -> None:
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            follow_redirects=self.follow_redirects,
            verify=self.verify,
            transport=self._transport,
        )

    async def stop(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("Executor not started. Call start() first.")
        return self._client

    async def execute(self, request: ResolvedRequest) -> Response:
        """Perform the call and normalize its outcome."""
        request_kwargs = prepare_request(request)
        client = self._get_client()
        logger.info(f"Executing {request_kwargs['method']} {request.url}")

        started = time.perf_counter()
        try:
            outgoing = client.build_request(**request_kwargs)
            response = await client.send(outgoing, stream=True)
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            # ValueError covers header values httpx cannot encode
            failure = transport_failure(e, _elapsed_ms(started))
            logger.warning(f"{request_kwargs['method']} {request.url} failed: {failure.body}")
            return failure

        # elapsed covers issuance up to status line and headers
        elapsed_ms = _elapsed_ms(started)
        try:
            await response.aread()
        except httpx.HTTPError as e:
            failure = transport_failure(e, elapsed_ms)
            logger.warning(f"{request_kwargs['method']} {request.url} failed while reading body: {failure.body}")
            return failure
        finally:
            await response.aclose()

        result = normalize_response(response, elapsed_ms)
        logger.info(f"{request_kwargs['method']} {request.url} -> {result.status} in {result.elapsed_ms}ms")
        return result
