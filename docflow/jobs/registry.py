"""Processors that workers run, keyed by the job name on a queue entry."""

from typing import Any, Callable, Coroutine, Mapping, Optional

import structlog

from docflow.errors import ProcessorNotFound
from docflow.jobs.models import QueueEntry

logger = structlog.get_logger(__name__)

# async def processor(entry: QueueEntry, ctx: dict) -> None
JobProcessor = Callable[[QueueEntry, dict[str, Any]], Coroutine[Any, Any, Any]]


class ProcessorRegistry:
    """
    Binds job names to processor coroutines.

    A name is bound at most once. Registering the same processor again is a
    no-op; registering a different one under a bound name raises ValueError.
    """

    def __init__(self, processors: Optional[Mapping[str, JobProcessor]] = None):
        self._processors: dict[str, JobProcessor] = {}
        for job_name, processor in (processors or {}).items():
            self.register(job_name, processor)

    def register(self, job_name: str, processor: JobProcessor) -> None:
        bound = self._processors.get(job_name)
        if bound is not None and bound is not processor:
            raise ValueError(f"Job {job_name!r} already has a processor")
        self._processors[job_name] = processor
        logger.debug("processor_registered", job_name=job_name)

    def resolve(self, entry: QueueEntry) -> JobProcessor:
        """Processor for entry.name. Raises ProcessorNotFound if unbound."""
        try:
            return self._processors[entry.name]
        except KeyError:
            raise ProcessorNotFound(entry.name) from None

    @property
    def job_names(self) -> list[str]:
        return sorted(self._processors)

    def __contains__(self, job_name: str) -> bool:
        return job_name in self._processors

    def __len__(self) -> int:
        return len(self._processors)


default_registry = ProcessorRegistry()
