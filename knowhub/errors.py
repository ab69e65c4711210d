"""Exception hierarchy shared by the RAG core and the HTTP layer."""


class KnowHubError(Exception):
    """Base class for all application errors."""


class ValidationError(KnowHubError):
    """Input rejected before any provider or storage call was made."""


class DocumentProcessingError(ValidationError):
    """An uploaded file could not be turned into text."""


class NotFoundError(KnowHubError):
    """An operation referenced a document that does not exist."""


class ProviderError(KnowHubError):
    """The embedding or generation backend failed."""


class StorageError(KnowHubError):
    """A write or read against durable storage failed."""


class ConfigurationError(KnowHubError):
    """Static configuration is unusable (bad template, dimension mismatch)."""
