import json
import uuid
from datetime import UTC, datetime
from enum import StrEnum
from http import HTTPMethod
from typing import Annotated, Any

from pydantic import AfterValidator, BeforeValidator, JsonValue

SUPPORTED_METHODS = frozenset(
    {
        HTTPMethod.GET,
        HTTPMethod.POST,
        HTTPMethod.PUT,
        HTTPMethod.PATCH,
        HTTPMethod.DELETE,
        HTTPMethod.HEAD,
        HTTPMethod.OPTIONS,
    }
)

# Methods whose body is sent; every other method goes out without one.
BODY_METHODS = frozenset({HTTPMethod.POST, HTTPMethod.PUT, HTTPMethod.PATCH})


class BodyType(StrEnum):
    JSON = "json"
    TEXT = "text"


_BODY_TYPE_ALIASES = {
    "structured": BodyType.JSON,
    "raw": BodyType.TEXT,
}


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(UTC)


def normalize_method(v: Any) -> Any:
    if isinstance(v, str):
        return v.strip().upper()
    return v


def validate_supported_method(v: HTTPMethod) -> HTTPMethod:
    if v not in SUPPORTED_METHODS:
        raise ValueError(f"Unsupported HTTP method: {v}")
    return v


def normalize_body_type(v: Any) -> Any:
    if isinstance(v, str):
        lowered = v.strip().lower()
        return _BODY_TYPE_ALIASES.get(lowered, lowered)
    return v


def validate_not_blank(v: str) -> str:
    if not v.strip():
        raise ValueError("Must not be blank")
    return v


def serialize_body(body: JsonValue) -> str:
    """Canonical text of a response body.

    Raw bodies are returned unchanged, structured ones as compact JSON.
    """
    if isinstance(body, str):
        return body
    return json.dumps(body, separators=(",", ":"), ensure_ascii=False)


Method = Annotated[HTTPMethod, BeforeValidator(normalize_method), AfterValidator(validate_supported_method)]
BodyTypeName = Annotated[BodyType, BeforeValidator(normalize_body_type)]
NonBlankStr = Annotated[str, AfterValidator(validate_not_blank)]
