"""Error taxonomy for admission, status lookup and store access."""

from typing import Optional


class DocflowError(Exception):
    """Base class for all docflow errors."""


class AdmissionError(DocflowError):
    """A job was rejected at admission.

    Attributes:
        retryable: Whether the caller may retry the same request later
        message: Human-readable reason, safe to show to the submitter
    """

    retryable: bool = False
    default_message: str = "Job could not be admitted."

    def __init__(self, message: Optional[str] = None, principal: Optional[str] = None):
        self.message = message or self.default_message
        self.principal = principal
        super().__init__(self.message)


class WorkerPoolUnavailable(AdmissionError):
    """No worker is registered against the job queue."""

    retryable = True
    default_message = (
        "Our document processor service is down. Please try again later."
    )


class AlreadyProcessing(AdmissionError):
    """The principal already holds a live processing lock."""

    retryable = False
    default_message = "You already have a document being processed."


class QueueFull(AdmissionError):
    """Queue depth is at or above the configured ceiling."""

    retryable = True
    default_message = "Server busy. Please try again in a few minutes."

    def __init__(
        self,
        depth: int,
        ceiling: int,
        principal: Optional[str] = None,
    ):
        self.depth = depth
        self.ceiling = ceiling
        super().__init__(principal=principal)


class StoreError(DocflowError):
    """The shared store failed or is unreachable."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Store operation '{operation}' failed{detail}")


class CircuitOpenError(StoreError):
    """The store circuit breaker is open after repeated failures."""

    def __init__(self, service: str):
        self.service = service
        super().__init__(f"{service} circuit open")


class JobNotFound(DocflowError):
    """No live status record exists for the job id.

    Either the id was never admitted or its record expired; the two cases are
    indistinguishable and callers should report "status unavailable".
    """

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Processing status unavailable for job {job_id}")


class ProcessorNotFound(DocflowError):
    """A queue entry names a job no processor is registered for."""

    def __init__(self, job_name: str):
        self.job_name = job_name
        super().__init__(f"No processor registered for job: {job_name}")
