"""Exception types shared by the indexing and retrieval pipeline."""


class ContentAssistantError(Exception):
    """Base class for content assistant errors."""


class InvalidInput(ContentAssistantError, ValueError):
    """Blank query or text, wrong vector length, or a bad search bound.

    Surfaced to HTTP callers as a rejected request (400).
    """


class NotReady(ContentAssistantError, RuntimeError):
    """The embedding model or vector collection is not initialized yet.

    Retryable; surfaced as 503.
    """


class IndexWriteFailure(ContentAssistantError):
    """An embed/upsert/delete on the document write path failed.

    Never raised to the CRUD caller; carried on IndexResult.error instead.
    """

    def __init__(self, key: str, action: str, cause: BaseException):
        self.key = key
        self.action = action
        self.cause = cause
        super().__init__(f"{action} failed for key {key!r}: {type(cause).__name__}: {cause}")


class RetrievalFailure(ContentAssistantError):
    """A query-time embed/search/resolve/generate step failed."""

    def __init__(self, stage: str, cause: BaseException):
        self.stage = stage
        self.cause = cause
        super().__init__(f"{stage} failed: {type(cause).__name__}: {cause}")
