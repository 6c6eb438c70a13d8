"""Exception hierarchy."""

from __future__ import annotations


class WorkReplicaError(Exception):
    """Base class for all workreplica errors."""


class ConfigError(WorkReplicaError):
    """Remote configuration is missing required values."""


class RemoteError(WorkReplicaError):
    """The remote source returned an error response."""


class Unauthorized(RemoteError):
    def __init__(self) -> None:
        super().__init__("Authentication error")


class HttpError(RemoteError):
    def __init__(self, status: int) -> None:
        super().__init__(f"Status code: {status}")
        self.status = status


class InconsistentPageError(WorkReplicaError):
    """A remote page carries revisions older than the local replica.

    Raised before anything from the page is written. The attempt is
    abandoned and retried from scratch on the next poll.
    """

    def __init__(self, ids: list[int]) -> None:
        super().__init__(f"Data corrupted: local newer than remote for {ids}")
        self.ids = ids
