# src/utils/errors.py
class AppError(Exception):
    """Base error class for application exceptions."""
    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.status_code = status_code


class ConfigurationError(AppError):
    """Deployment misconfiguration; fatal at startup."""


class SourceUnavailable(AppError):
    """The document source could not be enumerated or a document could not be read."""
    def __init__(self, message: str, document_id: str = None):
        super().__init__(message, status_code=502)
        self.document_id = document_id


class EmbeddingFailure(AppError):
    def __init__(self, message: str):
        super().__init__(message, status_code=502)


class IndexWriteFailure(AppError):
    def __init__(self, message: str):
        super().__init__(message, status_code=500)


class IndexUnavailable(AppError):
    """The stored index state could not be read."""
    def __init__(self, message: str):
        super().__init__(message, status_code=503)


class RetrievalFailure(AppError):
    def __init__(self, message: str):
        super().__init__(message, status_code=502)


class ImageAnalysisFailure(AppError):
    def __init__(self, message: str):
        super().__init__(message, status_code=502)


class GenerationFailure(AppError):
    def __init__(self, message: str):
        super().__init__(message, status_code=502)


class PersistenceFailure(AppError):
    def __init__(self, message: str):
        super().__init__(message, status_code=500)


class InvalidTurn(AppError):
    def __init__(self, message: str):
        super().__init__(message, status_code=422)
