"""Exception taxonomy for the question-answering pipeline.

Every error carries the stage that raised it so callers can tell which
step of ``question -> SQL -> resolved SQL -> rows -> answer`` failed.
"""


class PipelineError(Exception):
    """Base class for all stage failures."""

    stage = "pipeline"

    def __init__(self, message: str, stage: str | None = None):
        super().__init__(message)
        if stage is not None:
            self.stage = stage


class SynthesisError(PipelineError):
    """The language model failed, timed out, or returned unusable output."""

    stage = "synthesis"


class PlaceholderParseError(PipelineError):
    """A semantic-search placeholder is malformed or has an unknown kind."""

    stage = "resolution"


class EmbeddingError(PipelineError):
    stage = "embedding"


class ExecutionError(PipelineError):
    """The datastore rejected or failed to run the resolved query."""

    stage = "execution"


class TenantIsolationError(ExecutionError):
    """The query is not provably restricted to the requesting business."""
