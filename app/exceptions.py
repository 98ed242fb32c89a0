"""Exceptions raised by the connector and query services.

Routes translate these into HTTP status codes; nothing here knows about HTTP.
"""


class AskDBError(Exception):
    """Base class for service-level failures."""


class InvalidConfigError(AskDBError):
    """Connection parameters or a stored credential blob failed validation."""


class DatabaseConnectionError(AskDBError):
    """Could not open, or lost, a connection to an external database."""


class SchemaNotSupportedError(AskDBError):
    """Schema introspection was requested for a non-relational database type."""


class QueryExecutionError(AskDBError):
    """The external database rejected or failed to run a statement."""


class MissingApiKeyError(AskDBError):
    """The user has no stored key for the LLM provider."""


class QueryGenerationError(AskDBError):
    """The LLM provider failed or returned no SQL."""
