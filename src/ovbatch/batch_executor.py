"""Batch executor for provisioning many VMs in parallel.

This module runs one provisioning workflow per request:
- Every request is scheduled, whatever the concurrency limit
- At most `concurrency` workflows hold a permit at any moment
- A failed workflow never cancels or blocks the others
- The caller gets a BatchResult only after every workflow has finished

Security:
- Resource limits (concurrency permits)
- Remote connection shared read-only between workers
"""

import logging
import threading
from collections.abc import Callable, Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor, wait
from contextlib import contextmanager

from ovbatch.error_aggregator import ErrorAggregator
from ovbatch.models import (
    BatchResult,
    FailureKind,
    ProvisionRequest,
    WorkflowOutcome,
    WorkflowStage,
)
from ovbatch.provisioning_workflow import ProvisioningWorkflow
from ovbatch.remote_client import RemoteConnection

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 5


class ThreadSafeProgressReporter:
    """Thread-safe progress message coordinator."""

    def __init__(self, callback: Callable[[str], None] | None = None):
        """Initialize progress reporter.

        Args:
            callback: Optional callback function for progress updates
        """
        self._callback = callback
        self._lock = threading.Lock()

    def report(self, message: str) -> None:
        """Report progress message (thread-safe).

        Args:
            message: Progress message to report
        """
        with self._lock:
            if self._callback:
                self._callback(message)
            logger.debug(message)


class PermitPool:
    """Fixed-size pool of execution permits.

    Tracks how many permits are held and the highest number ever held at
    once, so callers can check the limit was honored.
    """

    def __init__(self, size: int):
        if size < 1:
            raise ValueError("permit pool size must be positive")
        self.size = size
        self._semaphore = threading.BoundedSemaphore(size)
        self._lock = threading.Lock()
        self._in_use = 0
        self._peak = 0

    @property
    def in_use(self) -> int:
        return self._in_use

    @property
    def peak(self) -> int:
        """Highest number of permits held simultaneously."""
        return self._peak

    @contextmanager
    def permit(self) -> Iterator[None]:
        """Hold one permit for the duration of the block.

        Blocks while the pool is exhausted. The permit is released however
        the block exits.
        """
        self._semaphore.acquire()
        try:
            with self._lock:
                self._in_use += 1
                self._peak = max(self._peak, self._in_use)
            yield
        finally:
            with self._lock:
                self._in_use -= 1
            self._semaphore.release()


class BatchExecutor:
    """Provision a batch of VMs with bounded concurrency.

    Example:
        executor = BatchExecutor(concurrency=5)
        result = executor.run(requests, connection)
        print(result.format_summary())
    """

    def __init__(
        self,
        concurrency: int = DEFAULT_CONCURRENCY,
        workflow: ProvisioningWorkflow | None = None,
        progress_callback: Callable[[str], None] | None = None,
    ):
        """Initialize batch executor.

        Args:
            concurrency: Maximum number of workflows running at once
            workflow: Workflow to run per request (default settings if omitted)
            progress_callback: Optional callback for progress updates

        Raises:
            ValueError: If concurrency is not positive
        """
        if concurrency < 1:
            raise ValueError("concurrency must be positive")

        self.concurrency = concurrency
        self.progress = ThreadSafeProgressReporter(progress_callback)
        self.workflow = workflow or ProvisioningWorkflow()
        self.permits: PermitPool | None = None

    def run(self, requests: Sequence[ProvisionRequest], connection: RemoteConnection) -> BatchResult:
        """Run every request to completion.

        Args:
            requests: Validated requests, in input order
            connection: Remote connection shared by all workflows

        Returns:
            BatchResult with failures in arrival order
        """
        aggregator = ErrorAggregator(capacity=len(requests))
        self.permits = PermitPool(self.concurrency)

        if not requests:
            return aggregator.finalize()

        self.progress.report(
            f"Provisioning {len(requests)} VMs with concurrency {self.concurrency}..."
        )

        num_workers = min(self.concurrency, len(requests))
        with ThreadPoolExecutor(max_workers=num_workers, thread_name_prefix="ovbatch") as executor:
            futures = [
                executor.submit(self._run_one, request, connection, aggregator)
                for request in requests
            ]
            wait(futures)

        # Surface bugs in the reporting path itself; workflow failures are outcomes
        for future in futures:
            future.result()

        result = aggregator.finalize()
        self.progress.report(result.format_summary())
        return result

    def _run_one(
        self,
        request: ProvisionRequest,
        connection: RemoteConnection,
        aggregator: ErrorAggregator,
    ) -> None:
        """Run one workflow under a permit and report its outcome."""
        with self.permits.permit():
            try:
                outcome = self.workflow.execute(
                    request, connection, progress_callback=self.progress.report
                )
            except Exception as e:
                logger.exception(f"Workflow for {request.name} raised")
                outcome = WorkflowOutcome.failed(
                    request.name,
                    WorkflowStage.RESOLVE_TEMPLATE,
                    FailureKind.INTERNAL,
                    f"unexpected error: {e!s}",
                )
        aggregator.report(outcome)


def run_batch(
    requests: Sequence[ProvisionRequest],
    concurrency: int,
    connection: RemoteConnection,
    workflow: ProvisioningWorkflow | None = None,
    progress_callback: Callable[[str], None] | None = None,
) -> BatchResult:
    """Provision every request, at most `concurrency` at a time.

    Convenience wrapper around BatchExecutor.
    """
    executor = BatchExecutor(
        concurrency=concurrency, workflow=workflow, progress_callback=progress_callback
    )
    return executor.run(requests, connection)


__all__ = [
    "DEFAULT_CONCURRENCY",
    "BatchExecutor",
    "PermitPool",
    "ThreadSafeProgressReporter",
    "run_batch",
]
