"""HTTP and WebSocket front end."""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Annotated, Any

import httpx
from fastapi import APIRouter, Depends, FastAPI, Request, WebSocket, WebSocketDisconnect, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError
from reqsync_models import (
    AssertionReport,
    Collection,
    CollectionExport,
    Environment,
    HistoryEntry,
    KeyValue,
    RequestDefinition,
    RequestDraft,
    Response,
)
from reqsync_models.types import NonBlankStr

from .collab import client_message_adapter
from .collab.messages import ErrorMessage
from .exceptions import ExecutionInProgress, InvalidRequestError, ResourceNotFound
from .service import ExecutionOutcome, Playground
from .settings import Settings
from .store import DocumentStore

logger = logging.getLogger(__name__)


class CollectionBody(BaseModel):
    name: NonBlankStr


class EnvironmentBody(BaseModel):
    name: NonBlankStr
    variables: list[KeyValue] = Field(default_factory=list)


class InlineExecution(BaseModel):
    """A request definition that may not be saved yet."""

    request: RequestDefinition
    environment_id: str | None = Field(default=None)


class WebSocketConnection:
    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self.connection_id = uuid.uuid4().hex

    async def send_json(self, message: dict[str, Any]) -> None:
        await self.websocket.send_json(message)


def get_playground(request: Request) -> Playground:
    return request.app.state.playground


PlaygroundDep = Annotated[Playground, Depends(get_playground)]

router = APIRouter(prefix="/api")


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


# collections


@router.get("/collections")
async def list_collections(playground: PlaygroundDep) -> list[Collection]:
    return await playground.store.list_collections()


@router.post("/collections", status_code=status.HTTP_201_CREATED)
async def create_collection(body: CollectionBody, playground: PlaygroundDep) -> Collection:
    return await playground.store.create_collection(body.name)


@router.put("/collections/{collection_id}")
async def update_collection(collection_id: str, body: CollectionBody, playground: PlaygroundDep) -> Collection:
    return await playground.store.update_collection(collection_id, body.name)


@router.delete("/collections/{collection_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_collection(collection_id: str, playground: PlaygroundDep) -> None:
    await playground.store.delete_collection(collection_id)


@router.get("/collections/{collection_id}/requests")
async def list_requests(collection_id: str, playground: PlaygroundDep) -> list[RequestDefinition]:
    return await playground.store.list_requests(collection_id)


@router.get("/collections/{collection_id}/export")
async def export_collection(collection_id: str, playground: PlaygroundDep) -> CollectionExport:
    return await playground.export_collection(collection_id)


# requests


@router.post("/requests", status_code=status.HTTP_201_CREATED)
async def create_request(draft: RequestDraft, playground: PlaygroundDep) -> RequestDefinition:
    return await playground.store.create_request(draft)


@router.get("/requests/{request_id}")
async def get_request(request_id: str, playground: PlaygroundDep) -> RequestDefinition:
    return await playground.store.get_request(request_id)


@router.put("/requests/{request_id}")
async def update_request(request_id: str, draft: RequestDraft, playground: PlaygroundDep) -> RequestDefinition:
    return await playground.store.update_request(request_id, draft)


@router.delete("/requests/{request_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_request(request_id: str, playground: PlaygroundDep) -> None:
    await playground.store.delete_request(request_id)


@router.post("/requests/{request_id}/execute")
async def execute_request(request_id: str, playground: PlaygroundDep, environment_id: str | None = None) -> ExecutionOutcome:
    return await playground.execute_request(request_id, environment_id)


@router.post("/execute")
async def execute_inline(body: InlineExecution, playground: PlaygroundDep) -> ExecutionOutcome:
    return await playground.execute_definition(body.request, body.environment_id)


@router.post("/requests/{request_id}/tests/run")
async def run_tests(request_id: str, response: Response, playground: PlaygroundDep) -> AssertionReport:
    return await playground.run_tests(request_id, response)


# environments


@router.get("/environments")
async def list_environments(playground: PlaygroundDep) -> list[Environment]:
    return await playground.store.list_environments()


@router.post("/environments", status_code=status.HTTP_201_CREATED)
async def create_environment(body: EnvironmentBody, playground: PlaygroundDep) -> Environment:
    return await playground.store.create_environment(body.name, body.variables)


@router.put("/environments/{environment_id}")
async def update_environment(environment_id: str, body: EnvironmentBody, playground: PlaygroundDep) -> Environment:
    return await playground.store.update_environment(environment_id, body.name, body.variables)


@router.delete("/environments/{environment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_environment(environment_id: str, playground: PlaygroundDep) -> None:
    await playground.store.delete_environment(environment_id)


# history


@router.get("/requests/{request_id}/history")
async def list_history(request_id: str, playground: PlaygroundDep) -> list[HistoryEntry]:
    return await playground.list_history(request_id)


@router.post("/history", status_code=status.HTTP_201_CREATED)
async def append_history(entry: HistoryEntry, playground: PlaygroundDep) -> HistoryEntry:
    return await playground.store.append_history(entry)


def _describe(error: ValidationError) -> str:
    details = []
    for item in error.errors():
        loc = " -> ".join(str(x) for x in item["loc"])
        details.append(f"{loc}: {item['msg']}" if loc else item["msg"])
    return "Invalid message: " + "; ".join(details)


async def collaborate(websocket: WebSocket) -> None:
    """One collaboration connection; its rooms are cleaned up when the socket closes."""
    playground: Playground = websocket.app.state.playground
    await websocket.accept()

    connection = WebSocketConnection(websocket)
    playground.collab.connect(connection)
    logger.info(f"Collaboration connection {connection.connection_id} opened")
    try:
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(frame.get("code", 1000))
            raw = frame.get("text")
            if raw is None:
                playground.relay.send(connection.connection_id, ErrorMessage(message="Binary frames are not supported").dump())
                continue
            try:
                message = client_message_adapter.validate_json(raw)
            except ValidationError as e:
                playground.relay.send(connection.connection_id, ErrorMessage(message=_describe(e)).dump())
                continue
            await playground.collab.handle(connection.connection_id, message)
    except WebSocketDisconnect:
        logger.info(f"Collaboration connection {connection.connection_id} closed")
    finally:
        await playground.collab.disconnect(connection.connection_id)


def _error_handler(status_code: int):
    async def handler(request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    return handler


def create_app(
    settings: Settings | None = None,
    store: DocumentStore | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    settings = settings or Settings()
    playground = Playground.from_settings(settings, store=store, transport=transport)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await playground.start()
        logger.info("reqsync ready")
        try:
            yield
        finally:
            await playground.stop()

    app = FastAPI(title="reqsync", lifespan=lifespan)
    app.state.settings = settings
    app.state.playground = playground

    if settings.cors_origins:
        app.add_middleware(CORSMiddleware, allow_origins=settings.cors_origins, allow_methods=["*"], allow_headers=["*"])

    app.add_exception_handler(ResourceNotFound, _error_handler(status.HTTP_404_NOT_FOUND))
    app.add_exception_handler(ExecutionInProgress, _error_handler(status.HTTP_409_CONFLICT))
    app.add_exception_handler(InvalidRequestError, _error_handler(status.HTTP_400_BAD_REQUEST))

    app.include_router(router)
    app.add_api_websocket_route("/ws", collaborate)
    return app
