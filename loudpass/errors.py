"""Failure taxonomy for the normalization pipeline.

Every error is terminal for the job that raised it.  The controller stamps the
``stage`` (a :class:`loudpass.pipeline.JobState` value) on the way out so the
caller can tell the user where the job stopped.
"""

from __future__ import annotations

from typing import Optional


class NormalizationError(Exception):
    """Base class for all job failures."""

    def __init__(self, message: str = "", stage: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.stage = stage

    def to_dict(self) -> dict:
        return {"stage": self.stage, "type": type(self).__name__, "message": self.message}


class EngineNotReady(NormalizationError):
    """The engine has not been loaded (yet).  Transient: retry ``ensure_ready``."""


class EngineError(NormalizationError):
    """The engine reported a failure while running a pass."""


class MeasurementNotFound(NormalizationError):
    """No brace-delimited measurement record in the diagnostic text."""


class MeasurementInvalid(NormalizationError):
    """A measurement record was found but could not be decoded."""


class OutputReadError(NormalizationError):
    """The rendered file is missing after a render that reported success."""


class SettingsError(ValueError):
    pass


class UnsupportedAudio(ValueError):
    pass
