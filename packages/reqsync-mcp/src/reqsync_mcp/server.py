import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from http import HTTPMethod

from mcp.server.fastmcp import Context, FastMCP
from mcp.types import ToolAnnotations
from reqsync.service import ExecutionOutcome, Playground
from reqsync.settings import Settings
from reqsync.utils import configure_logging
from reqsync_models import Collection, CollectionExport, Environment, KeyValue, RequestDefinition

from . import tools

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncIterator[Playground]:
    playground = Playground.from_settings(Settings())
    await playground.start()
    try:
        yield playground
    finally:
        await playground.stop()


def playground_of(ctx: Context) -> Playground:
    return ctx.request_context.lifespan_context


mcp = FastMCP("reqsync", lifespan=lifespan)

READ_ONLY = ToolAnnotations(readOnlyHint=True, openWorldHint=False)
WRITE = ToolAnnotations(readOnlyHint=False, destructiveHint=False, openWorldHint=False)


@mcp.tool(title="List collections", description="List all API request collections", annotations=READ_ONLY, structured_output=True)
async def list_collections(ctx: Context) -> list[Collection]:
    return await tools.list_collections(playground_of(ctx))


@mcp.tool(title="Create collection", description="Create a new API request collection", annotations=WRITE, structured_output=True)
async def create_collection(ctx: Context, name: str) -> Collection:
    """Create a collection.

    Args:
        name: Collection name
    """
    return await tools.create_collection(playground_of(ctx), name)


@mcp.tool(title="List requests", description="List all requests in a collection", annotations=READ_ONLY, structured_output=True)
async def list_requests(ctx: Context, collection_id: str) -> list[RequestDefinition]:
    return await tools.list_requests(playground_of(ctx), collection_id)


@mcp.tool(title="Create request", description="Create a new API request in a collection", annotations=WRITE, structured_output=True)
async def create_request(
    ctx: Context,
    collection_id: str,
    name: str,
    method: HTTPMethod,
    url: str,
    headers: list[KeyValue] | None = None,
    body: str = "",
) -> RequestDefinition:
    """Create a request definition.

    Args:
        collection_id: Owning collection
        name: Request name
        method: HTTP method
        url: Request URL, may contain {{variable}} placeholders
        headers: Request headers
        body: Request body (JSON string)
    """
    return await tools.create_request(playground_of(ctx), collection_id, name, method, url, headers, body)


@mcp.tool(
    title="Execute request",
    description="Execute an API request and get the response with its assertion results",
    annotations=ToolAnnotations(readOnlyHint=False, destructiveHint=False, openWorldHint=True),
    structured_output=True,
)
async def execute_request(ctx: Context, request_id: str, environment_id: str | None = None) -> ExecutionOutcome:
    """Execute a stored request and record it in history.

    Args:
        request_id: Request ID to execute
        environment_id: Environment whose variables fill the placeholders
    """
    return await tools.execute_request(playground_of(ctx), request_id, environment_id)


@mcp.tool(title="List environments", description="List all environment configurations", annotations=READ_ONLY, structured_output=True)
async def list_environments(ctx: Context) -> list[Environment]:
    return await tools.list_environments(playground_of(ctx))


@mcp.tool(title="Create environment", description="Create a new environment with variables", annotations=WRITE, structured_output=True)
async def create_environment(ctx: Context, name: str, variables: list[KeyValue] | None = None) -> Environment:
    return await tools.create_environment(playground_of(ctx), name, variables)


@mcp.tool(title="Export collection", description="Export a collection with its requests as JSON", annotations=READ_ONLY, structured_output=True)
async def export_collection(ctx: Context, collection_id: str) -> CollectionExport:
    return await tools.export_collection(playground_of(ctx), collection_id)


@mcp.resource("reqsync://collections", name="Collections", description="All API request collections", mime_type="application/json")
async def collections_resource() -> str:
    return (await playground_of(mcp.get_context()).snapshot()).model_dump_json(include={"collections"}, indent=2)


@mcp.resource("reqsync://environments", name="Environments", description="All environment configurations", mime_type="application/json")
async def environments_resource() -> str:
    return (await playground_of(mcp.get_context()).snapshot()).model_dump_json(include={"environments"}, indent=2)


@mcp.resource("reqsync://data", name="Complete Database", description="Full data export", mime_type="application/json")
async def data_resource() -> str:
    return (await playground_of(mcp.get_context()).snapshot()).model_dump_json(indent=2)


def main() -> None:
    configure_logging(Settings().log_level)
    logger.info("Starting reqsync MCP server on stdio")
    mcp.run(transport="stdio")
