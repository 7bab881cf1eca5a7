"""
DB Controller - Errors

Exception taxonomy for the controller. Every failure listed here is fatal to
the run that raised it; nothing in the core retries.
"""


class ControllerError(Exception):
    """Base class for all controller errors."""
    pass


class ConfigValidationError(ControllerError):
    """
    Run configuration is malformed or incomplete.

    Raised before any collection is attempted.
    """
    pass


class UnsupportedDatabaseError(ControllerError):
    """
    Declared database type has no collector variant.

    Raised before any I/O against the target database.
    """
    pass


class DatabaseConnectionError(ControllerError, ConnectionError):
    """Target database cannot be reached."""
    pass


class CollectionError(ControllerError):
    """Introspection query failed or returned unparsable data."""
    pass


class SchemaValidationError(ControllerError):
    """
    Document does not conform to its JSON schema.

    Attributes:
        schema_name: Name of the schema that rejected the document
        path: JSON path of the first offending element (may be empty)
    """

    def __init__(self, message: str, schema_name: str = "", path: str = ""):
        super().__init__(message)
        self.schema_name = schema_name
        self.path = path


class ArtifactWriteError(ControllerError, OSError):
    """Artifact could not be written to disk."""
    pass


class ObservationInterruptedError(ControllerError, InterruptedError):
    """Observation window was interrupted before it elapsed."""
    pass


class UploadError(ControllerError):
    """General upload failure."""
    pass


class UploadUnavailableError(UploadError):
    """
    Upload endpoint is down or unreachable.

    Raised once the retry budget is exhausted.
    """
    pass


class UploadRejectedError(UploadError):
    """
    Upload endpoint rejected the request (4xx).

    Not retried.
    """
    pass
