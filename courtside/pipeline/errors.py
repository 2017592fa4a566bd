"""Error taxonomy for the recording pipeline.

Every stage failure is a ``PipelineError`` carrying a ``transient`` flag.
Transient errors consume the recording's retry budget and are retried
automatically; permanent errors move the recording straight to FAILED.
"""
from typing import Optional


class PipelineError(Exception):
    """Base class for stage failures."""

    transient = True

    def __init__(self, message: str, transient: Optional[bool] = None):
        super().__init__(message)
        self.message = message
        if transient is not None:
            self.transient = transient


class GatewayError(PipelineError):
    """Camera gateway request failed."""


class GatewayUnavailable(GatewayError):
    """Gateway timed out, refused the connection or returned a 5xx."""
    transient = True


class RateLimited(GatewayError):
    transient = True


class ExportRejected(GatewayError):
    """Camera not provisioned, window outside retention, etc."""
    transient = False


class ChunkExportFailed(GatewayError):
    """Gateway reported an unrecoverable export error for one chunk."""
    transient = False


class ChunkFetchError(GatewayError):
    """Downloading a ready chunk failed."""


class StageTimeout(PipelineError):
    transient = True


class ConsolidationError(PipelineError):
    """A chunk file is missing, empty or unreadable, or the merge failed."""
    transient = False


class ArchiveError(PipelineError):
    transient = True


class InvalidTransition(Exception):
    """Raised when a status change is not in the transition table."""


class RetryNotAllowed(Exception):
    """Operator retry rejected (not FAILED, or retry budget exhausted)."""


class RecordingValidationError(ValueError):
    """Recording request rejected before any row was created."""


class RecordingNotFound(LookupError):
    pass
