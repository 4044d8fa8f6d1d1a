import asyncio
import json

import httpx
import pytest
from reqsync.exceptions import InvalidRequestError
from reqsync.executor import RequestExecutor, parse_body, prepare_request
from reqsync_models import BodyType, ResolvedRequest


def resolved(method: str = "GET", url: str = "http://api.test/items", **kwargs) -> ResolvedRequest:
    return ResolvedRequest(method=method, url=url, **kwargs)


async def execute(handler, request: ResolvedRequest, **kwargs):
    async with RequestExecutor(transport=httpx.MockTransport(handler), **kwargs) as executor:
        return await executor.execute(request)


class SlowBody(httpx.AsyncByteStream):
    """Body whose first chunk arrives well after the headers."""

    def __init__(self, delay: float):
        self.delay = delay

    async def __aiter__(self):
        await asyncio.sleep(self.delay)
        yield b'{"done": true}'


class TestPrepareRequest:
    def test_get_sends_no_body(self):
        kwargs = prepare_request(resolved("GET", body='{"a": 1}'))
        assert "json" not in kwargs
        assert "content" not in kwargs

    def test_valid_json_body_is_parsed(self):
        kwargs = prepare_request(resolved("POST", body='{"a": 1}'))
        assert kwargs["json"] == {"a": 1}

    def test_empty_json_body_sends_empty_object(self):
        kwargs = prepare_request(resolved("PUT", body=""))
        assert kwargs["json"] == {}

    def test_malformed_json_body_is_sent_raw(self):
        kwargs = prepare_request(resolved("PATCH", body='{"a": '))
        assert kwargs["content"] == '{"a": '
        assert "json" not in kwargs

    def test_text_body(self):
        kwargs = prepare_request(resolved("POST", body="{{not json}}", body_type=BodyType.TEXT))
        assert kwargs["content"] == "{{not json}}"

    def test_unsupported_method(self):
        request = ResolvedRequest.model_construct(method="TRACE", url="http://api.test", headers={}, body=None, body_type=BodyType.JSON)
        with pytest.raises(InvalidRequestError, match="TRACE"):
            prepare_request(request)


class TestParseBody:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ('{"a": [1, 2]}', {"a": [1, 2]}),
            ("[true, null]", [True, None]),
            ("plain text", "plain text"),
            ("", ""),
            ("  ", "  "),
        ],
    )
    def test_parse(self, text, expected):
        assert parse_body(text) == expected


class TestExecute:
    @pytest.mark.asyncio
    async def test_json_response(self):
        response = await execute(lambda r: httpx.Response(200, json={"id": 7, "name": "ä"}), resolved())

        assert response.status == 200
        assert response.status_text == "OK"
        assert response.body == {"id": 7, "name": "ä"}
        assert response.size == len('{"id":7,"name":"ä"}'.encode("utf-8"))
        assert response.elapsed_ms >= 0

    @pytest.mark.asyncio
    async def test_error_status_is_a_completed_call(self):
        response = await execute(lambda r: httpx.Response(404, text="missing"), resolved())

        assert response.status == 404
        assert response.status_text == "Not Found"
        assert response.body == "missing"
        assert not response.is_transport_error

    @pytest.mark.asyncio
    async def test_elapsed_stops_at_headers(self):
        response = await execute(lambda r: httpx.Response(200, stream=SlowBody(0.5)), resolved())

        assert response.body == {"done": True}
        assert response.elapsed_ms < 400

    @pytest.mark.asyncio
    async def test_empty_body(self):
        response = await execute(lambda r: httpx.Response(204), resolved("DELETE"))
        assert response.body == ""
        assert response.size == 0

    @pytest.mark.asyncio
    async def test_headers_lower_case_last_wins(self):
        def handler(request):
            return httpx.Response(200, headers=[("X-Trace", "first"), ("x-trace", "second"), ("Content-Type", "text/plain")], text="ok")

        response = await execute(handler, resolved())
        assert response.headers["x-trace"] == "second"
        assert response.headers["content-type"] == "text/plain"
        assert all(name == name.lower() for name in response.headers)

    @pytest.mark.asyncio
    async def test_outgoing_request(self, recorder):
        request = resolved("POST", url="http://api.test/users?page=2", headers={"X-Api-Key": "k"}, body='{"name": "bob"}')
        await execute(recorder, request)

        sent = recorder.last
        assert sent.method == "POST"
        assert str(sent.url) == "http://api.test/users?page=2"
        assert sent.headers["x-api-key"] == "k"
        assert json.loads(sent.content) == {"name": "bob"}

    @pytest.mark.asyncio
    async def test_malformed_json_goes_out_unchanged(self, recorder):
        await execute(recorder, resolved("POST", body="{'single': quotes}"))
        assert recorder.last.content == b"{'single': quotes}"

    @pytest.mark.asyncio
    async def test_connection_failure(self):
        def handler(request):
            raise httpx.ConnectError("Name or service not known", request=request)

        response = await execute(handler, resolved(url="http://unreachable.invalid"))

        assert response.status == 0
        assert response.is_transport_error
        assert response.status_text == "Connection Error"
        assert response.body == "Name or service not known"
        assert response.headers == {}
        assert response.size == len("Name or service not known")

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        response = await execute(handler, resolved(), timeout=0.5)
        assert response.status == 0
        assert response.status_text == "Timeout"

    @pytest.mark.asyncio
    async def test_other_transport_error(self):
        def handler(request):
            raise httpx.RemoteProtocolError("peer closed connection", request=request)

        response = await execute(handler, resolved())
        assert response.status == 0
        assert response.status_text == "Error"
        assert response.body == "peer closed connection"

    @pytest.mark.asyncio
    async def test_not_started(self):
        executor = RequestExecutor()
        with pytest.raises(RuntimeError, match="not started"):
            await executor.execute(resolved())
