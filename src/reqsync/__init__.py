"""Collaborative HTTP request playground: execution, assertions and live editing sessions."""

from .exceptions import ExecutionInProgress, InvalidRequestError, ReqsyncError, ResourceNotFound
from .executor import RequestExecutor
from .service import ExecutionOutcome, Playground, resolve_request

__all__ = [
    "ExecutionInProgress",
    "ExecutionOutcome",
    "InvalidRequestError",
    "Playground",
    "RequestExecutor",
    "ReqsyncError",
    "ResourceNotFound",
    "resolve_request",
]
