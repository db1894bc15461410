"""Typed errors shared across the pipeline. Each carries a stable classification code."""


class PipelineError(Exception):
    code = "internal_error"


class ConfigurationError(PipelineError):
    """A required deployment setting is missing or invalid. Fatal at startup."""

    code = "configuration_error"


class StoreError(PipelineError):
    """I/O, network or availability failure talking to the document store."""

    code = "store_unavailable"


class CircuitOpenError(StoreError):
    pass


class DecodeError(PipelineError):
    """A stored row or document does not match its expected shape."""

    code = "decode_error"

    def __init__(self, message: str, document_id: str | None = None):
        super().__init__(message)
        self.document_id = document_id


class AggregationBusyError(PipelineError):
    """Another aggregation run holds the single-flight lock for this deployment."""

    code = "busy"


class RunCancelledError(PipelineError):
    code = "cancelled"


class InvalidQueryError(PipelineError):
    """A query asks for more than the deployment allows."""

    code = "invalid_query"
