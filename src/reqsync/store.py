"""Document store for collections, request definitions, environments and history.

`DocumentStore` implements every operation on a `StoreData` document;
subclasses decide how the document is loaded, refreshed and persisted.
Mutations are serialized by one lock and applied to a copy of the document,
which replaces the live one only after it has been persisted.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError
from reqsync_models import Collection, Environment, HistoryEntry, KeyValue, RequestDefinition, RequestDraft
from reqsync_models.types import utcnow

from .exceptions import ResourceNotFound, StoreError

logger = logging.getLogger(__name__)


class StoreData(BaseModel):
    """Serialized form of the whole store."""

    collections: list[Collection] = Field(default_factory=list)
    requests: list[RequestDefinition] = Field(default_factory=list)
    environments: list[Environment] = Field(default_factory=list)
    history: list[HistoryEntry] = Field(default_factory=list)


def _find(items: list, kind: str, resource_id: str):
    for item in items:
        if item.id == resource_id:
            return item
    raise ResourceNotFound(kind, resource_id)


def _replace(items: list, updated: Collection | RequestDefinition | Environment) -> None:
    for index, item in enumerate(items):
        if item.id == updated.id:
            items[index] = updated
            return


class DocumentStore(ABC):
    def __init__(self):
        self._data = StoreData()
        self._lock = asyncio.Lock()

    @abstractmethod
    async def load(self) -> None:
        """Populate the in-memory data set from the backing medium."""

    @abstractmethod
    async def _refresh(self, force: bool = False) -> StoreData:
        """Return the current document, reloading it if the backing medium changed.

        Called with the lock held. `force` is set before a mutation.
        """

    @abstractmethod
    async def _persist(self, data: StoreData) -> None:
        """Write `data` to the backing medium."""

    async def _view(self) -> StoreData:
        async with self._lock:
            return await self._refresh()

    async def _mutate(self, change: Callable[[StoreData], Any]) -> Any:
        """Apply `change` to a copy of the document and adopt it once persisted.

        If `change` or the write raises, the live document is left untouched.
        """
        async with self._lock:
            data = (await self._refresh(force=True)).model_copy(deep=True)
            result = change(data)
            await self._persist(data)
            self._data = data
        return result

    async def snapshot(self) -> StoreData:
        return (await self._view()).model_copy(deep=True)

    # collections

    async def list_collections(self) -> list[Collection]:
        return list((await self._view()).collections)

    async def get_collection(self, collection_id: str) -> Collection:
        return _find((await self._view()).collections, "collection", collection_id)

    async def create_collection(self, name: str) -> Collection:
        collection = Collection(name=name)
        await self._mutate(lambda data: data.collections.append(collection))
        logger.info(f"Created collection {collection.id} '{collection.name}'")
        return collection

    async def update_collection(self, collection_id: str, name: str) -> Collection:
        def rename(data: StoreData) -> Collection:
            current = _find(data.collections, "collection", collection_id)
            updated = Collection.model_validate({**current.model_dump(), "name": name, "updated_at": utcnow()})
            _replace(data.collections, updated)
            return updated

        return await self._mutate(rename)

    async def delete_collection(self, collection_id: str) -> None:
        """Delete the collection together with every request it owns."""

        def drop(data: StoreData) -> int:
            _find(data.collections, "collection", collection_id)
            data.collections = [c for c in data.collections if c.id != collection_id]
            before = len(data.requests)
            data.requests = [r for r in data.requests if r.collection_id != collection_id]
            return before - len(data.requests)

        removed = await self._mutate(drop)
        logger.info(f"Deleted collection {collection_id} and {removed} request(s)")

    # requests

    async def list_requests(self, collection_id: str) -> list[RequestDefinition]:
        data = await self._view()
        _find(data.collections, "collection", collection_id)
        return [r for r in data.requests if r.collection_id == collection_id]

    async def get_request(self, request_id: str) -> RequestDefinition:
        return _find((await self._view()).requests, "request", request_id)

    async def create_request(self, draft: RequestDraft) -> RequestDefinition:
        request = RequestDefinition.model_validate(draft.model_dump())

        def add(data: StoreData) -> None:
            _find(data.collections, "collection", draft.collection_id)
            data.requests.append(request)

        await self._mutate(add)
        logger.info(f"Created request {request.id} in collection {request.collection_id}")
        return request

    async def update_request(self, request_id: str, draft: RequestDraft) -> RequestDefinition:
        def rewrite(data: StoreData) -> RequestDefinition:
            current = _find(data.requests, "request", request_id)
            _find(data.collections, "collection", draft.collection_id)
            updated = RequestDefinition.model_validate(
                {**draft.model_dump(), "id": current.id, "created_at": current.created_at, "updated_at": utcnow()}
            )
            _replace(data.requests, updated)
            return updated

        return await self._mutate(rewrite)

    async def delete_request(self, request_id: str) -> None:
        def drop(data: StoreData) -> None:
            _find(data.requests, "request", request_id)
            data.requests = [r for r in data.requests if r.id != request_id]

        await self._mutate(drop)

    # environments

    async def list_environments(self) -> list[Environment]:
        return list((await self._view()).environments)

    async def get_environment(self, environment_id: str) -> Environment:
        return _find((await self._view()).environments, "environment", environment_id)

    async def create_environment(self, name: str, variables: list[KeyValue] | None = None) -> Environment:
        environment = Environment(name=name, variables=variables or [])
        await self._mutate(lambda data: data.environments.append(environment))
        logger.info(f"Created environment {environment.id} '{environment.name}'")
        return environment

    async def update_environment(self, environment_id: str, name: str, variables: list[KeyValue]) -> Environment:
        def rewrite(data: StoreData) -> Environment:
            current = _find(data.environments, "environment", environment_id)
            updated = Environment.model_validate(
                {
                    **current.model_dump(),
                    "name": name,
                    "variables": [v.model_dump() for v in variables],
                    "updated_at": utcnow(),
                }
            )
            _replace(data.environments, updated)
            return updated

        return await self._mutate(rewrite)

    async def delete_environment(self, environment_id: str) -> None:
        def drop(data: StoreData) -> None:
            _find(data.environments, "environment", environment_id)
            data.environments = [e for e in data.environments if e.id != environment_id]

        await self._mutate(drop)

    # history

    async def append_history(self, entry: HistoryEntry) -> HistoryEntry:
        await self._mutate(lambda data: data.history.append(entry))
        return entry

    async def list_history(self, request_id: str, limit: int = 50) -> list[HistoryEntry]:
        """Entries for one request, newest first."""
        entries = [e for e in reversed((await self._view()).history) if e.request_id == request_id]
        entries.sort(key=lambda e: e.created_at, reverse=True)
        return entries[:limit]


class MemoryStore(DocumentStore):
    """Store that lives only as long as the process."""

    def __init__(self, data: StoreData | None = None):
        super().__init__()
        if data is not None:
            self._data = data

    async def load(self) -> None:
        pass

    async def _refresh(self, force: bool = False) -> StoreData:
        return self._data

    async def _persist(self, data: StoreData) -> None:
        pass


class JsonFileStore(DocumentStore):
    """Store backed by a single pretty-printed JSON document.

    Several processes may share the file: every mutation re-reads it first,
    and reads pick up the file again whenever its modification stamp moved.
    """

    def __init__(self, path: Path):
        super().__init__()
        self.path = path
        self._stamp: tuple[int, int] | None = None

    async def load(self) -> None:
        async with self._lock:
            if not self.path.exists():
                logger.info(f"No data file at {self.path}, starting empty")
                self._data = StoreData()
                await self._persist(self._data)
                return
            await self._read()

        logger.info(
            f"Loaded {self.path}: {len(self._data.collections)} collection(s), "
            f"{len(self._data.requests)} request(s), {len(self._data.environments)} environment(s)"
        )

    async def _refresh(self, force: bool = False) -> StoreData:
        stamp = await asyncio.to_thread(self._stat)
        if stamp is not None and (force or stamp != self._stamp):
            await self._read()
        return self._data

    async def _read(self) -> None:
        try:
            stamp = await asyncio.to_thread(self._stat)
            raw = await asyncio.to_thread(self.path.read_text, encoding="utf-8")
            self._data = StoreData.model_validate_json(raw)
        except (OSError, ValidationError) as e:
            raise StoreError(f"Cannot load data file {self.path}: {e}") from e
        self._stamp = stamp

    async def _persist(self, data: StoreData) -> None:
        payload = data.model_dump_json(indent=2)
        try:
            await asyncio.to_thread(self._write, payload)
        except OSError as e:
            raise StoreError(f"Cannot write data file {self.path}: {e}") from e
        self._stamp = await asyncio.to_thread(self._stat)

    def _stat(self) -> tuple[int, int] | None:
        try:
            stat = self.path.stat()
        except FileNotFoundError:
            return None
        return stat.st_mtime_ns, stat.st_size

    def _write(self, payload: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        partial = self.path.with_name(f"{self.path.name}.tmp")
        partial.write_text(payload, encoding="utf-8")
        partial.replace(self.path)
