"""Error taxonomy for procedure calls and document backups.

Only guard rejections (see ``procsync.core.pipeline``) escape to callers as
raised errors. Everything here is caught at the invoker or reconciler
boundary and turned into a ``Message`` or ``BackupOutcome``.
"""


class ProcsyncError(Exception):
    """Base class for procsync errors."""


class ProcedureNotFound(ProcsyncError):
    def __init__(self, schema: str, name: str):
        self.schema = schema
        self.name = name
        super().__init__(f"Stored procedure {schema}.{name} does not exist.")


class ExecutionError(ProcsyncError):
    """The relational engine rejected or failed the call."""


class DocumentStoreError(ProcsyncError):
    def __init__(self, operation: str, error: Exception):
        self.operation = operation
        self.error = error
        super().__init__(f"{operation}: {error}")


class BackupFailure(ProcsyncError):
    """A single backup target could not be written."""

    def __init__(self, collection: str, reason: str):
        self.collection = collection
        self.reason = reason
        super().__init__(f"Backup to '{collection}' failed: {reason}")
