"""Outcome collection for a batch run.

Workflow threads report their outcome here without blocking; the batch
executor finalizes the aggregator once every workflow has finished and only
then may the result be read.

States: collecting -> final (one way).
"""

import logging
import queue
import threading
from enum import Enum

from ovbatch.models import BatchResult, WorkflowOutcome

logger = logging.getLogger(__name__)


class AggregatorStateError(Exception):
    """Raised when the aggregator is used out of order."""

    pass


class AggregatorState(Enum):
    """Lifecycle of an ErrorAggregator."""

    COLLECTING = "collecting"
    FINAL = "final"


class ErrorAggregator:
    """Collect workflow outcomes from concurrent producers.

    Outcomes are appended to a queue sized to the number of requests, so a
    report never blocks: each request produces exactly one outcome.

    Example:
        aggregator = ErrorAggregator(capacity=len(requests))
        ...  # workers call aggregator.report(outcome)
        aggregator.finalize()
        result = aggregator.result()
    """

    def __init__(self, capacity: int):
        """Initialize aggregator.

        Args:
            capacity: Number of outcomes expected (one per request)

        Raises:
            ValueError: If capacity is negative
        """
        if capacity < 0:
            raise ValueError("capacity cannot be negative")

        self.capacity = capacity
        # maxsize=0 would mean unbounded; an empty batch still gets a bound
        self._outcomes: queue.Queue[WorkflowOutcome] = queue.Queue(maxsize=max(capacity, 1))
        self._state = AggregatorState.COLLECTING
        self._state_lock = threading.Lock()
        self._result: BatchResult | None = None

    @property
    def state(self) -> AggregatorState:
        return self._state

    def report(self, outcome: WorkflowOutcome) -> None:
        """Record one workflow outcome (never blocks).

        Raises:
            AggregatorStateError: If the aggregator is already final or over capacity
        """
        if self._state is AggregatorState.FINAL:
            raise AggregatorStateError(
                f"outcome for {outcome.request_name} reported after the batch finished"
            )
        try:
            self._outcomes.put_nowait(outcome)
        except queue.Full as e:
            raise AggregatorStateError(
                f"more outcomes than requests ({self.capacity}); "
                f"extra outcome for {outcome.request_name}"
            ) from e

    def finalize(self) -> BatchResult:
        """Close the aggregator and drain every outcome.

        Called once all producers have finished. Failures keep their arrival
        order.

        Raises:
            AggregatorStateError: If already finalized
        """
        with self._state_lock:
            if self._state is AggregatorState.FINAL:
                raise AggregatorStateError("aggregator already finalized")
            self._state = AggregatorState.FINAL

        succeeded = 0
        failures: list[WorkflowOutcome] = []
        while True:
            try:
                outcome = self._outcomes.get_nowait()
            except queue.Empty:
                break
            if outcome.success:
                succeeded += 1
            else:
                failures.append(outcome)

        collected = succeeded + len(failures)
        if collected != self.capacity:
            logger.warning(f"Collected {collected} outcome(s) for {self.capacity} request(s)")

        self._result = BatchResult(total=self.capacity, succeeded=succeeded, failures=failures)
        return self._result

    def result(self) -> BatchResult:
        """Get the finalized batch result.

        Raises:
            AggregatorStateError: If the batch is still collecting
        """
        if self._result is None:
            raise AggregatorStateError("batch result read before all workflows finished")
        return self._result


__all__ = ["AggregatorState", "AggregatorStateError", "ErrorAggregator"]
