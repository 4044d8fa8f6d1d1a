import logging

from reqsync_models import HistoryEntry, RequestDefinition, Response, serialize_body

from .store import DocumentStore

logger = logging.getLogger(__name__)


class HistoryRecorder:
    """Appends a summary of every finished execution to the store's history log."""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def record(self, definition: RequestDefinition, url: str, response: Response) -> HistoryEntry:
        entry = HistoryEntry(
            request_id=definition.id,
            method=str(definition.method),
            url=url,
            status=response.status,
            response_time=response.elapsed_ms,
            response_body=serialize_body(response.body),
            response_headers=response.headers,
        )
        await self.store.append_history(entry)
        logger.debug(f"Recorded history entry {entry.id} for request {definition.id}")
        return entry
