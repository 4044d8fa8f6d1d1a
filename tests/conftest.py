import json
from collections.abc import Callable

import httpx
import pytest
from reqsync.store import MemoryStore


class Recorder:
    """httpx handler that remembers every request and answers with a canned response."""

    def __init__(self, respond: Callable[[httpx.Request], httpx.Response] | None = None):
        self.requests: list[httpx.Request] = []
        self.respond = respond or (lambda request: httpx.Response(200, json={"ok": True}))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.respond(request)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def last_json(self):
        return json.loads(self.last.content)


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def transport(recorder):
    return httpx.MockTransport(recorder)


@pytest.fixture
def memory_store():
    return MemoryStore()
