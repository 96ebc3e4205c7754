"""Error taxonomy for the prototype ingestion and deployment pipeline.

Every error carries an HTTP-ish status code and an optional machine-readable
``details`` payload so the API layer can turn it into a structured JSON body
without knowing about individual error types.

Inspector errors (user-correctable, surfaced synchronously):
  NoEntryPointError, InvalidArchiveError

Deployment errors (terminal, always recorded as ``failed`` on the record
unless noted otherwise):
  RecordNotFoundError       — no record to mark
  NoSourceFileError
  DownloadError
  ExtractionError
  PublishResolutionError
  DeploymentConflictError   — another invocation owns the record; untouched
"""

from typing import Any, Optional


class PipelineError(Exception):
    """Base class for all pipeline failures."""

    status_code: int = 500

    def __init__(self, message: str, details: Optional[Any] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body: dict[str, Any] = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class NoEntryPointError(PipelineError):
    """Neither a React package.json nor an index.html was found."""

    status_code = 422


class InvalidArchiveError(PipelineError):
    """The uploaded bytes are not a readable ZIP archive."""

    status_code = 400


class RecordNotFoundError(PipelineError):
    status_code = 404


class NoSourceFileError(PipelineError):
    status_code = 400


class DownloadError(PipelineError):
    status_code = 500


class ExtractionError(PipelineError):
    status_code = 500


class PublishResolutionError(PipelineError):
    status_code = 500


class DeploymentConflictError(PipelineError):
    status_code = 409


class ExcessiveNestingWarning(UserWarning):
    """An archive entry was skipped because it is nested too deeply."""
