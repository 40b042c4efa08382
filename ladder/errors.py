# ladder/errors.py


class LadderError(Exception):
    """Base class for ingestion and sync failures."""


class MalformedFileError(LadderError):
    """Raised when an upload cannot be read as a tabular sheet."""


class StoreError(LadderError):
    """Raised when the record store rejects a read or a query."""


class StoreWriteError(StoreError):
    """Raised when a create, update or delete call fails."""


class SyncInProgressError(LadderError):
    """Raised when a sync is triggered while another one is running."""


class NoPendingUploadError(LadderError):
    """Raised when confirming a flow that has nothing staged."""
