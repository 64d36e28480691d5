"""Exception taxonomy.

Every error carries the HTTP status the endpoint boundary answers with.
Model-output parse problems are not errors here; the analyzer substitutes
placeholders instead.
"""

from __future__ import annotations


class CopilotBoardError(Exception):
    """Base class for errors surfaced as ``{error, success: false}``."""

    status: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(CopilotBoardError):
    """A request is missing a required field or carries an invalid one."""

    status = 400


class NotFoundError(CopilotBoardError):
    """The addressed record does not exist."""

    status = 404


class UpstreamError(CopilotBoardError):
    """A dependency (database or completion API) failed."""

    status = 500


class StoreError(UpstreamError):
    pass


class CompletionError(UpstreamError):
    pass
