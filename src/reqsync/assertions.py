"""Declarative response assertions.

Each enabled assertion is evaluated on its own: an assertion that cannot be
evaluated (missing path, non-numeric expectation, ...) is reported as failed
with the error text as message, and the rest of the batch still runs.
"""

import json
import logging
from collections.abc import Iterable
from typing import Any

from reqsync_models import (
    AssertionReport,
    AssertionResult,
    BodyContainsAssertion,
    HeaderExistsAssertion,
    JsonPathAssertion,
    Response,
    ResponseTimeAssertion,
    StatusAssertion,
    serialize_body,
)
from reqsync_models.entities import Assertion

from .exceptions import AssertionEvaluationError

logger = logging.getLogger(__name__)


def _expected_int(assertion: Assertion) -> int:
    try:
        return int(assertion.value.strip())
    except ValueError:
        raise AssertionEvaluationError(f"Expected value must be an integer, got '{assertion.value}'") from None


def _required_field(assertion: HeaderExistsAssertion | JsonPathAssertion) -> str:
    if not assertion.field.strip():
        raise AssertionEvaluationError(f"Assertion '{assertion.type}' requires a field")
    return assertion.field


def stringify(value: Any) -> str:
    """Render a JSON leaf the way it reads in the response body."""
    match value:
        case bool():
            return "true" if value else "false"
        case None:
            return "null"
        case str():
            return value
        case dict() | list():
            return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
        case float() if value.is_integer():
            return str(int(value))
        case _:
            return str(value)


def lookup_path(body: Any, path: str) -> Any:
    """Follow a dot-separated key path through nested objects.

    Array indices and wildcards are not supported.
    """
    current = body
    walked: list[str] = []
    for key in path.split("."):
        if not isinstance(current, dict):
            location = ".".join(walked) or "body"
            raise AssertionEvaluationError(f"Cannot read '{key}': {location} is not an object")
        if key not in current:
            raise AssertionEvaluationError(f"Path '{path}' not found: missing key '{key}'")
        current = current[key]
        walked.append(key)
    return current


def _check_status(assertion: StatusAssertion, response: Response) -> tuple[bool, str]:
    expected = _expected_int(assertion)
    if response.status == expected:
        return True, f"Status is {expected}"
    return False, f"Expected {expected}, got {response.status}"


def _check_header_exists(assertion: HeaderExistsAssertion, response: Response) -> tuple[bool, str]:
    field = _required_field(assertion)
    # header names are stored lower-case by the executor
    if field.lower() in response.headers:
        return True, f"Header '{field}' exists"
    return False, f"Header '{field}' not found"


def _check_body_contains(assertion: BodyContainsAssertion, response: Response) -> tuple[bool, str]:
    if assertion.value in serialize_body(response.body):
        return True, f"Body contains '{assertion.value}'"
    return False, f"Body does not contain '{assertion.value}'"


def _check_json_path(assertion: JsonPathAssertion, response: Response) -> tuple[bool, str]:
    field = _required_field(assertion)
    actual = stringify(lookup_path(response.body, field))
    if actual == assertion.value:
        return True, f"{field} equals {assertion.value}"
    return False, f"Expected {assertion.value}, got {actual}"


def _check_response_time(assertion: ResponseTimeAssertion, response: Response) -> tuple[bool, str]:
    limit = _expected_int(assertion)
    if response.elapsed_ms <= limit:
        return True, f"Response time ({response.elapsed_ms}ms) is under {limit}ms"
    return False, f"Response time ({response.elapsed_ms}ms) exceeds {limit}ms"


def evaluate_one(assertion: Assertion, response: Response) -> AssertionResult:
    try:
        match assertion:
            case StatusAssertion():
                passed, message = _check_status(assertion, response)
            case HeaderExistsAssertion():
                passed, message = _check_header_exists(assertion, response)
            case BodyContainsAssertion():
                passed, message = _check_body_contains(assertion, response)
            case JsonPathAssertion():
                passed, message = _check_json_path(assertion, response)
            case ResponseTimeAssertion():
                passed, message = _check_response_time(assertion, response)
            case _:
                raise AssertionEvaluationError(f"Unknown assertion type: {type(assertion).__name__}")
    except Exception as e:
        logger.debug(f"Assertion {assertion.id} could not be evaluated: {e}")
        return AssertionResult(test_id=assertion.id, passed=False, message=f"Error: {e}")

    return AssertionResult(test_id=assertion.id, passed=passed, message=message)


def evaluate(assertions: Iterable[Assertion], response: Response) -> list[AssertionResult]:
    """Evaluate every enabled assertion, in order, against the response."""
    return [evaluate_one(assertion, response) for assertion in assertions if assertion.enabled]


def run(assertions: Iterable[Assertion], response: Response) -> AssertionReport:
    """Evaluate and aggregate into per-assertion results plus (passed, total)."""
    report = AssertionReport(results=evaluate(assertions, response))
    logger.info(f"Assertions: {report.passed}/{report.total} passed")
    return report
