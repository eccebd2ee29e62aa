"""
Exception hierarchy for the sync engine.

Every failure the engine surfaces to its caller derives from TutorHubError,
so the presentation layer can catch one type and still tell the kinds apart.
"""


class TutorHubError(Exception):
    """Base class for all engine errors."""


class ProvisioningError(TutorHubError):
    """Profile lookup or creation for an external identity failed."""


class NotProvisionedError(TutorHubError):
    """A mutation was attempted before a Profile was resolved."""

    def __init__(self, message: str = "User profile not found"):
        super().__init__(message)


class AuthorizationError(TutorHubError):
    """The caller's role does not allow the operation."""


class ValidationError(TutorHubError):
    """Input rejected before any remote call was made."""


class MediaUploadError(TutorHubError):
    """The media storage collaborator failed."""


# ── Remote store ───────────────────────────────────────────────────────────

class RemoteStoreError(TutorHubError):
    """The remote relational store rejected a call."""

    def __init__(self, table: str, message: str):
        self.table = table
        super().__init__(f"{table}: {message}")


class RemoteReadError(RemoteStoreError):
    pass


class RemoteWriteError(RemoteStoreError):
    pass


class DuplicateRowError(RemoteWriteError):
    """
    A uniqueness constraint rejected an insert.

    For toggles this means a concurrent call already applied the same
    change; callers should treat it as "already applied".
    """


class PartialApplyError(TutorHubError):
    """
    The primary row write succeeded but the dependent counter write failed.

    The mirror keeps the row-level change; the counter stays stale until the
    next full refresh re-reads it from the store.
    """

    def __init__(self, table: str, row_id: str, field: str, cause: Exception | None = None):
        self.table = table
        self.row_id = row_id
        self.field = field
        self.cause = cause
        super().__init__(f"Updated row but failed to write {table}.{field} for {row_id}")
