"""
Error taxonomy for the advisory sync engine.

Fatal errors abort the run before the store is touched and map to a
non-zero exit code. Self-healing errors (InconsistentStore, SchemaTooOld)
are raised and caught inside the stage that repairs them.
"""


class SyncError(RuntimeError):
    """Base class for all advisory sync errors."""


class ConfigError(SyncError):
    """Raised when the settings file cannot be loaded or holds unknown keys."""


class FatalPrerequisite(SyncError):
    """Raised when a required capability (mirror client, store engine) is missing."""


class MissingCredential(SyncError):
    """Raised when the access credential file does not exist."""


class MalformedCredential(SyncError):
    """Raised when the credential file has no usable identity@repository line."""


class TransportFailure(SyncError):
    """
    Raised when pulling the remote corpus fails.

    Attributes:
        returncode: Exit code of the transport tool, if any
        stderr: Diagnostic output of the transport tool, if any
    """

    def __init__(self, message: str, returncode: int = None, stderr: str = None):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class InconsistentStore(SyncError):
    """Raised when the watermark or reference date is missing or cannot be parsed."""


class SchemaTooOld(SyncError):
    """Raised when the store schema version is below the supported minimum."""

    def __init__(self, found: int, required: int):
        super().__init__(f"Store schema version {found} is below required {required}")
        self.found = found
        self.required = required


class SyncAlreadyInProgress(SyncError):
    """Raised when another sync run holds the run lock."""


class DocumentParseError(SyncError):
    """Raised when a staged document cannot be turned into advisory records."""

    def __init__(self, document: str, reason: str):
        super().__init__(f"{document}: {reason}")
        self.document = document
        self.reason = reason


class StoreBusy(SyncError):
    """Raised when another process keeps the store locked past the retry budget."""


class IncompleteStaging(SyncError):
    """Raised by a refresh when the last mirror transfer did not complete."""
