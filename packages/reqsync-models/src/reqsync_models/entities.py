from datetime import datetime
from http import HTTPMethod
from typing import Annotated, Any, Literal

from pydantic import BaseModel, BeforeValidator, ConfigDict, Discriminator, Field, JsonValue, NonNegativeInt, computed_field

from reqsync_models.types import BodyType, BodyTypeName, Method, NonBlankStr, new_id, utcnow


class KeyValue(BaseModel):
    """Header, query parameter or environment variable row."""

    key: str = Field(default="")
    value: str = Field(default="")
    enabled: bool = Field(default=True, description="Disabled rows are kept but never sent or substituted.")


class Timestamped(BaseModel):
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Collection(Timestamped):
    id: str = Field(default_factory=new_id)
    name: NonBlankStr = Field(description="Collection name.")


class _AssertionBase(BaseModel):
    id: str = Field(default_factory=new_id)
    value: str = Field(default="", description="Expected value, always kept as entered.")
    enabled: bool = Field(default=True)


class StatusAssertion(_AssertionBase):
    type: Literal["status"] = "status"


class HeaderExistsAssertion(_AssertionBase):
    type: Literal["headerExists"] = "headerExists"
    field: str = Field(default="", description="Header name, matched case-insensitively.")


class BodyContainsAssertion(_AssertionBase):
    type: Literal["bodyContains"] = "bodyContains"


class JsonPathAssertion(_AssertionBase):
    type: Literal["jsonPath"] = "jsonPath"
    field: str = Field(default="", description="Dot-separated key path into the response body.", examples=["data.user.name"])


class ResponseTimeAssertion(_AssertionBase):
    type: Literal["responseTime"] = "responseTime"


_LEGACY_ASSERTION_TYPES = {
    "header": "headerExists",
    "body": "bodyContains",
    "json": "jsonPath",
    "time": "responseTime",
}


def _normalize_assertion_input(v: Any) -> Any:
    if isinstance(v, dict) and v.get("type") in _LEGACY_ASSERTION_TYPES:
        return {**v, "type": _LEGACY_ASSERTION_TYPES[v["type"]]}
    return v


Assertion = Annotated[
    StatusAssertion | HeaderExistsAssertion | BodyContainsAssertion | JsonPathAssertion | ResponseTimeAssertion,
    Discriminator("type"),
    BeforeValidator(_normalize_assertion_input),
]


class RequestDefinition(Timestamped):
    id: str = Field(default_factory=new_id)
    collection_id: str = Field(description="Owning collection.")
    name: str = Field(default="New Request")
    method: Method = Field(default=HTTPMethod.GET)
    url: str = Field(default="", description="URL template, may contain {{name}} placeholders.")
    headers: list[KeyValue] = Field(default_factory=list)
    params: list[KeyValue] = Field(default_factory=list)
    body: str = Field(default="")
    body_type: BodyTypeName = Field(default=BodyType.JSON)
    tests: list[Assertion] = Field(default_factory=list, description="Assertions run against the captured response.")


class RequestDraft(BaseModel):
    """Fields a client may set when creating or replacing a request."""

    collection_id: str
    name: str = Field(default="New Request")
    method: Method = Field(default=HTTPMethod.GET)
    url: str = Field(default="")
    headers: list[KeyValue] = Field(default_factory=list)
    params: list[KeyValue] = Field(default_factory=list)
    body: str = Field(default="")
    body_type: BodyTypeName = Field(default=BodyType.JSON)
    tests: list[Assertion] = Field(default_factory=list)


class Environment(Timestamped):
    id: str = Field(default_factory=new_id)
    name: NonBlankStr
    variables: list[KeyValue] = Field(default_factory=list)


class ResolvedRequest(BaseModel):
    """A request with every placeholder substituted and disabled rows dropped."""

    method: Method
    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    body: str | None = Field(default=None)
    body_type: BodyTypeName = Field(default=BodyType.JSON)


class Response(BaseModel):
    """Uniform outcome of an execution, transport failures included (status 0)."""

    status: int = Field(description="HTTP status code, 0 when no response was received.")
    status_text: str = Field(default="")
    headers: dict[str, str] = Field(default_factory=dict, description="Lower-case header names, last value wins.")
    body: JsonValue = Field(default="", description="Parsed JSON when possible, raw text otherwise.")
    elapsed_ms: NonNegativeInt = Field(default=0)
    size: NonNegativeInt = Field(default=0, description="Byte length of the serialized body.")

    @property
    def is_transport_error(self) -> bool:
        return self.status == 0


class AssertionResult(BaseModel):
    test_id: str
    passed: bool
    message: str


class AssertionReport(BaseModel):
    results: list[AssertionResult] = Field(default_factory=list)

    @computed_field
    @property
    def passed(self) -> int:
        return sum(1 for result in self.results if result.passed)

    @computed_field
    @property
    def total(self) -> int:
        return len(self.results)


class HistoryEntry(BaseModel):
    id: str = Field(default_factory=new_id)
    request_id: str
    method: str
    url: str
    status: int
    response_time: NonNegativeInt = Field(default=0, description="Elapsed milliseconds.")
    response_body: str = Field(default="")
    response_headers: dict[str, str] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)


class CollectionExport(BaseModel):
    collection: Collection
    requests: list[RequestDefinition] = Field(default_factory=list)
    exported_at: datetime = Field(default_factory=utcnow)


class Participant(BaseModel):
    connection_id: str = Field(serialization_alias="id")
    display_name: str = Field(serialization_alias="username")
    model_config = ConfigDict(frozen=True)
