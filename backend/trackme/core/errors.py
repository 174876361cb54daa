"""Typed failures raised by the repositories, tracking service and exports.

Validation rejections are *not* errors; they are reported as values by
`trackme.processing.validation`.
"""


class TrackMeError(Exception):
    """Base class for all application errors."""


class StorageError(TrackMeError):
    """A storage operation (save/fetch/delete) failed.

    The original exception is kept on `cause` and chained with ``raise from``.
    Callers decide whether to retry.
    """

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause


class DataInconsistencyError(TrackMeError):
    """An operation would leave persisted data in an inconsistent state."""


class SessionNotFoundError(TrackMeError):
    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class SessionAlreadyActiveError(TrackMeError):
    def __init__(self, active_id: str | None = None):
        super().__init__(
            "Another tracking session is already active"
            + (f" ({active_id})" if active_id else "")
        )
        self.active_id = active_id


class NoActiveSessionError(TrackMeError):
    def __init__(self):
        super().__init__("There is no active tracking session")


class InvalidFixError(TrackMeError, ValueError):
    """A fix with non-finite or out-of-range values reached the persistence layer."""


class ExportNoLocationsError(TrackMeError):
    def __init__(self, session_id: str | None = None):
        super().__init__("Session has no location data to export")
        self.session_id = session_id
