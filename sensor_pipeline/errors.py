"""
sensor_pipeline/errors.py
─────────────────────────
Error taxonomy for the ingestion pipeline.

  ValidationError     one reading is structurally or range-invalid
  ProcessingError     deriving/scoring one reading failed
  SubmissionError     a downstream collaborator call failed
  ConfigurationError  bad thresholds or simulator parameters
"""
from __future__ import annotations


class PipelineError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(PipelineError):
    """A reading was rejected; `reason` is the human-readable cause."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class ProcessingError(PipelineError):
    def __init__(self, sensor_id: str, reason: str):
        super().__init__(f"{sensor_id}: {reason}")
        self.sensor_id = sensor_id
        self.reason = reason


class SubmissionError(PipelineError):
    def __init__(self, collaborator: str, reason: str):
        super().__init__(f"{collaborator}: {reason}")
        self.collaborator = collaborator
        self.reason = reason


class ConfigurationError(PipelineError):
    pass
