"""wnv.errors

Failure classes surfaced by pipeline stages.

All of them are fatal and stage-local: the CLI entrypoints turn them into a
SystemExit carrying the stage name. Nothing is retried.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for stage failures."""


class InputArtifactError(PipelineError):
    """An input file or directory is missing, empty or malformed."""


class SpatialReferenceError(PipelineError):
    """A layer has no CRS, or layers cannot be brought into one CRS."""


class DateParseError(PipelineError, ValueError):
    """A date could not be extracted from a file name or image id."""
