"""Job queue port."""

from abc import ABC, abstractmethod
from typing import Any, Callable, Sequence

JobHandler = Callable[[Any], None]


class JobQueue(ABC):
    """At-least-once job queue.

    A job is executed again when its handler raises, until the retry budget
    is spent. Handlers must therefore be idempotent.
    """

    @abstractmethod
    def enqueue_bulk(self, jobs: Sequence[Any]) -> None:
        """Add jobs to the queue."""

    def enqueue(self, job: Any) -> None:
        self.enqueue_bulk([job])
