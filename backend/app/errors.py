from typing import List, Optional


class PipelineError(Exception):
    """Base class for every failure raised by the optimization pipeline."""

    code = "E.PIPELINE"
    status = 500


class AuthError(PipelineError):
    """Raised when an access token cannot be obtained."""

    code = "E.AUTH"
    status = 502


class NotFoundError(PipelineError):
    """Raised when a remote object (or a local record) does not exist."""

    code = "E.NOT_FOUND"
    status = 404


class RemoteError(PipelineError):
    """Raised when a remote service answers with a non-success status."""

    code = "E.REMOTE"
    status = 502

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SubmissionError(PipelineError):
    """Raised when a job submission does not return a runtime job id."""

    code = "E.SUBMISSION"
    status = 502


class JobTimeoutError(PipelineError, TimeoutError):
    """Raised when polling gives up before the job reaches a terminal state."""

    code = "E.TIMEOUT"
    status = 504


class ValidationError(PipelineError):
    """Raised when the stored inputs are not fit for submission."""

    code = "E.VALIDATION"
    status = 422

    def __init__(self, errors: List[str], optimization_id: Optional[int] = None):
        super().__init__("; ".join(errors) or "Invalid input data")
        self.errors = list(errors)
        self.optimization_id = optimization_id


class IngestionError(PipelineError):
    """Raised when result files cannot be mapped onto result rows."""

    code = "E.INGESTION"
    status = 500


class StateError(PipelineError):
    """Raised when an operation is not allowed in the current status."""

    code = "E.STATE"
    status = 409
