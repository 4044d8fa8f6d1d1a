from reqsync_models.entities import (
    Assertion,
    AssertionReport,
    AssertionResult,
    BodyContainsAssertion,
    Collection,
    CollectionExport,
    Environment,
    HeaderExistsAssertion,
    HistoryEntry,
    JsonPathAssertion,
    KeyValue,
    Participant,
    RequestDefinition,
    RequestDraft,
    ResolvedRequest,
    Response,
    ResponseTimeAssertion,
    StatusAssertion,
)
from reqsync_models.types import BODY_METHODS, SUPPORTED_METHODS, BodyType, serialize_body

__all__ = [
    "Assertion",
    "AssertionReport",
    "AssertionResult",
    "BodyContainsAssertion",
    "BodyType",
    "BODY_METHODS",
    "Collection",
    "CollectionExport",
    "Environment",
    "HeaderExistsAssertion",
    "HistoryEntry",
    "JsonPathAssertion",
    "KeyValue",
    "Participant",
    "RequestDefinition",
    "RequestDraft",
    "ResolvedRequest",
    "Response",
    "ResponseTimeAssertion",
    "StatusAssertion",
    "SUPPORTED_METHODS",
    "serialize_body",
]
