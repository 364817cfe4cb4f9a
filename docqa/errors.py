"""Exception types raised by the ingestion and retrieval pipeline."""


class DocQAError(RuntimeError):
    """Base class for pipeline failures."""


class ExtractionError(DocQAError):
    """A PDF text extraction strategy could not produce text.

    Never escapes the extractor: it is recovered into the sentinel document.
    """


class EmbeddingError(DocQAError):
    """The embedding endpoint failed or returned an unusable vector."""


class VectorBackendError(DocQAError):
    """The vector backend rejected a request or could not be reached."""


class GenerationError(DocQAError):
    """The chat completion service failed to produce an answer."""


class IngestionError(DocQAError):
    """A document could not be ingested; its status has been set to error."""

    def __init__(self, message: str, document_id: str = None):
        super().__init__(message)
        self.document_id = document_id
