class JudgeError(Exception):
    """Base class for errors surfaced to the request boundary."""

    kind = "error"


class ValidationError(JudgeError):
    kind = "validation_error"


class NotFoundError(JudgeError):
    kind = "not_found"


class ConcurrentModificationError(ValidationError):
    """A sequence number or version slot was taken by another writer.

    Callers should re-read the case and retry the whole operation.
    """

    kind = "concurrent_modification"


class GenerationFailedError(JudgeError):
    kind = "generation_failed"


class StorageError(JudgeError):
    kind = "storage_error"


class DocumentError(ValidationError):
    kind = "document_error"


class ConfigurationError(RuntimeError):
    pass
