"""Application service tying the store, resolver, executor, assertions and history together."""

import logging
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel, Field
from reqsync_models import (
    AssertionReport,
    CollectionExport,
    Environment,
    HistoryEntry,
    RequestDefinition,
    ResolvedRequest,
    Response,
)
from reqsync_templates import build_lookup, find_placeholders, walk

from . import assertions
from .collab import CollaborationManager, Relay
from .exceptions import ExecutionInProgress
from .executor import RequestExecutor
from .history import HistoryRecorder
from .settings import Settings
from .store import DocumentStore, JsonFileStore, StoreData

logger = logging.getLogger(__name__)


class ExecutionOutcome(BaseModel):
    response: Response
    report: AssertionReport
    history_id: str | None = Field(default=None, description="History entry written for this execution, if any.")


def append_params(url: str, params: list[tuple[str, str]]) -> str:
    if not params:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{urlencode(params)}"


def resolve_request(definition: RequestDefinition, environment: Environment | None = None) -> ResolvedRequest:
    """Substitute environment variables and drop disabled rows.

    URL, header names and values, query parameters and body all go through the
    same substitution.
    """
    lookup = build_lookup(environment.variables if environment else None)

    headers = {}
    for header in definition.headers:
        if header.enabled and header.key:
            headers[walk(header.key, lookup)] = walk(header.value, lookup)

    params = [(walk(p.key, lookup), walk(p.value, lookup)) for p in definition.params if p.enabled and p.key]

    url = append_params(walk(definition.url, lookup), params)
    body = walk(definition.body, lookup)

    texts = [url, body, *headers.keys(), *headers.values()]
    unresolved = sorted({name for text in texts for name in find_placeholders(text)})
    if unresolved:
        logger.warning(f"Request {definition.id} has unresolved placeholders: {', '.join(unresolved)}")

    return ResolvedRequest(
        method=definition.method,
        url=url,
        headers=headers,
        body=body,
        body_type=definition.body_type,
    )


class Playground:
    """Everything a server front end needs, with one start/stop lifecycle."""

    def __init__(
        self,
        store: DocumentStore,
        executor: RequestExecutor,
        relay: Relay,
        history_limit: int = 50,
    ):
        self.store = store
        self.executor = executor
        self.relay = relay
        self.collab = CollaborationManager(relay)
        self.history = HistoryRecorder(store)
        self.history_limit = history_limit
        self._in_flight: set[str] = set()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: DocumentStore | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "Playground":
        return cls(
            store=store or JsonFileStore(settings.data_file),
            executor=RequestExecutor(
                timeout=settings.request_timeout,
                follow_redirects=settings.follow_redirects,
                verify=settings.verify_ssl,
                transport=transport,
            ),
            relay=Relay(outbox_size=settings.outbox_size),
            history_limit=settings.history_limit,
        )

    async def start(self) -> None:
        await self.store.load()
        await self.executor.start()
        await self.relay.start()

    async def stop(self) -> None:
        await self.relay.stop()
        await self.executor.stop()

    async def execute_request(self, request_id: str, environment_id: str | None = None) -> ExecutionOutcome:
        """Execute a stored request definition and record it in history."""
        definition = await self.store.get_request(request_id)
        return await self.execute_definition(definition, environment_id, record=True)

    async def execute_definition(
        self,
        definition: RequestDefinition,
        environment_id: str | None = None,
        record: bool = False,
    ) -> ExecutionOutcome:
        if definition.id in self._in_flight:
            raise ExecutionInProgress(definition.id)

        self._in_flight.add(definition.id)
        try:
            environment = await self.store.get_environment(environment_id) if environment_id else None
            resolved = resolve_request(definition, environment)
            response = await self.executor.execute(resolved)
            report = assertions.run(definition.tests, response)
            entry = await self.history.record(definition, resolved.url, response) if record else None
        finally:
            self._in_flight.discard(definition.id)

        return ExecutionOutcome(response=response, report=report, history_id=entry.id if entry else None)

    async def run_tests(self, request_id: str, response: Response) -> AssertionReport:
        """Score an already captured response against the stored assertions."""
        definition = await self.store.get_request(request_id)
        return assertions.run(definition.tests, response)

    async def export_collection(self, collection_id: str) -> CollectionExport:
        collection = await self.store.get_collection(collection_id)
        requests = await self.store.list_requests(collection_id)
        return CollectionExport(collection=collection, requests=requests)

    async def list_history(self, request_id: str) -> list[HistoryEntry]:
        return await self.store.list_history(request_id, limit=self.history_limit)

    async def snapshot(self) -> StoreData:
        return await self.store.snapshot()
