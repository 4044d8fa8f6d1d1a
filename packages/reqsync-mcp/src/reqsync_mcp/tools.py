"""Tool implementations, independent of the MCP transport.

Lookups of unknown ids surface as ToolError so the client sees a tool failure
instead of a protocol error.
"""

from http import HTTPMethod

from mcp.server.fastmcp.exceptions import ToolError
from reqsync.exceptions import ReqsyncError
from reqsync.service import ExecutionOutcome, Playground
from reqsync_models import Collection, CollectionExport, Environment, KeyValue, RequestDefinition, RequestDraft


async def list_collections(playground: Playground) -> list[Collection]:
    return await playground.store.list_collections()


async def create_collection(playground: Playground, name: str) -> Collection:
    try:
        return await playground.store.create_collection(name)
    except ValueError as e:
        raise ToolError(str(e)) from None


async def list_requests(playground: Playground, collection_id: str) -> list[RequestDefinition]:
    try:
        return await playground.store.list_requests(collection_id)
    except ReqsyncError as e:
        raise ToolError(str(e)) from None


async def create_request(
    playground: Playground,
    collection_id: str,
    name: str,
    method: HTTPMethod,
    url: str,
    headers: list[KeyValue] | None = None,
    body: str = "",
) -> RequestDefinition:
    draft = RequestDraft(
        collection_id=collection_id,
        name=name,
        method=method,
        url=url,
        headers=headers or [],
        body=body,
    )
    try:
        return await playground.store.create_request(draft)
    except ReqsyncError as e:
        raise ToolError(str(e)) from None


async def execute_request(playground: Playground, request_id: str, environment_id: str | None = None) -> ExecutionOutcome:
    try:
        return await playground.execute_request(request_id, environment_id)
    except ReqsyncError as e:
        raise ToolError(str(e)) from None


async def list_environments(playground: Playground) -> list[Environment]:
    return await playground.store.list_environments()


async def create_environment(playground: Playground, name: str, variables: list[KeyValue] | None = None) -> Environment:
    try:
        return await playground.store.create_environment(name, variables)
    except ValueError as e:
        raise ToolError(str(e)) from None


async def export_collection(playground: Playground, collection_id: str) -> CollectionExport:
    try:
        return await playground.export_collection(collection_id)
    except ReqsyncError as e:
        raise ToolError(str(e)) from None
