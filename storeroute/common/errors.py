"""Domain errors and failure typing."""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for route pipeline failures."""

    error_code = "PIPELINE_ERROR"

    def __init__(self, message: str = "", *, stage: str | None = None, request_code: str | None = None) -> None:
        super().__init__(message)
        self.stage = stage
        self.request_code = request_code

    def with_context(self, *, stage: str, request_code: str | None) -> "PipelineError":
        if self.stage is None:
            self.stage = stage
        if self.request_code is None:
            self.request_code = request_code
        return self

    def __str__(self) -> str:
        message = super().__str__()
        context = [f"{name}={value}" for name, value in (("stage", self.stage), ("code", self.request_code)) if value]
        if context:
            return f"{message} [{', '.join(context)}]"
        return message


class ConfigError(PipelineError):
    """Raised for invalid or missing configuration."""

    error_code = "CONFIG_ERROR"


class InvalidGeometry(PipelineError):
    """Raised for degenerate polygons and out-of-range coordinates."""

    error_code = "INVALID_GEOMETRY"


class InvalidRequest(PipelineError):
    """Raised for request kinds or argument combinations the pipeline cannot run."""

    error_code = "INVALID_REQUEST"


class NoBoundaryGeometry(PipelineError):
    """Raised when no usable boundary polygon is available for a request."""

    error_code = "NO_BOUNDARY_GEOMETRY"


class BoundaryNotFound(NoBoundaryGeometry):
    error_code = "BOUNDARY_NOT_FOUND"


class NoCoverageAchieved(PipelineError):
    """Raised when every probe of a run failed."""

    error_code = "NO_COVERAGE_ACHIEVED"


class ProbeFailed(PipelineError):
    """A single point-search probe failed. Absorbed by the aggregator."""

    error_code = "PROBE_FAILED"


class RunCancelled(PipelineError):
    error_code = "RUN_CANCELLED"


class StageError(PipelineError):
    """Raised for collaborator failures that should halt the run."""

    error_code = "STAGE_ERROR"
