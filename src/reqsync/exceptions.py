class ReqsyncError(Exception):
    """Base class for every error raised by reqsync."""


class InvalidRequestError(ReqsyncError):
    """The caller asked for something that can never be executed, e.g. an unsupported method."""


class ExecutionInProgress(ReqsyncError):
    """Another execution of the same request definition has not finished yet."""

    def __init__(self, request_id: str):
        super().__init__(f"Request '{request_id}' is already being executed")
        self.request_id = request_id


class ResourceNotFound(ReqsyncError):
    """A collection, request or environment id that the store does not know."""

    def __init__(self, kind: str, resource_id: str):
        super().__init__(f"{kind.capitalize()} not found: {resource_id}")
        self.kind = kind
        self.resource_id = resource_id


class StoreError(ReqsyncError):
    """The document store could not be loaded or written."""


class SessionError(ReqsyncError):
    """Operation on a collaboration room that does not exist or a connection that is not in it."""


class AssertionEvaluationError(ReqsyncError):
    """A single assertion could not be evaluated against the response."""
