"""Data model for batch provisioning.

ProvisionRequest: one validated CSV record (immutable)
WorkflowOutcome: terminal success/failure of one provisioning workflow
BatchResult: failures in arrival order plus success/total counts
"""

from dataclasses import dataclass, field
from enum import Enum


class WorkflowStage(Enum):
    """The four ordered steps of a provisioning workflow."""

    RESOLVE_TEMPLATE = "resolve_template"
    DERIVE_DEFAULTS = "derive_defaults"
    CREATE = "create"
    START = "start"


class FailureKind(Enum):
    """Why a workflow failed."""

    NOT_FOUND = "not_found"
    LOOKUP_FAILED = "lookup_failed"
    MISSING_RESOURCE = "missing_resource"
    CREATE_FAILED = "create_failed"
    START_FAILED = "start_failed"
    INTERNAL = "internal"


@dataclass(frozen=True)
class ProvisionRequest:
    """One VM to provision, as parsed from a CSV record."""

    name: str
    template: str
    cluster: str
    vm_class: str
    nic: str
    ip: str
    gateway: str
    mask: str
    dns: str
    dns1: str
    dns2: str
    cpu_cores: int
    cpu_sockets: int
    memory: int  # bytes
    memory_guaranteed: int  # bytes
    disk_size: int  # bytes
    line_number: int = 0

    @property
    def dns_servers(self) -> list[str]:
        """Non-empty DNS servers, in CSV order."""
        return [server for server in (self.dns, self.dns1, self.dns2) if server]


@dataclass
class WorkflowOutcome:
    """Terminal result of one workflow instance.

    A failure at the START stage still carries the vm_id returned by create:
    the VM exists but is stopped.
    """

    request_name: str
    success: bool
    vm_id: str | None = None
    stage: WorkflowStage | None = None
    kind: FailureKind | None = None
    cause: str = ""
    duration: float = 0.0

    @classmethod
    def succeeded(cls, request_name: str, vm_id: str, duration: float = 0.0) -> "WorkflowOutcome":
        return cls(request_name=request_name, success=True, vm_id=vm_id, duration=duration)

    @classmethod
    def failed(
        cls,
        request_name: str,
        stage: WorkflowStage,
        kind: FailureKind,
        cause: str,
        vm_id: str | None = None,
        duration: float = 0.0,
    ) -> "WorkflowOutcome":
        return cls(
            request_name=request_name,
            success=False,
            vm_id=vm_id,
            stage=stage,
            kind=kind,
            cause=cause,
            duration=duration,
        )

    @property
    def created_but_stopped(self) -> bool:
        """True if the VM was created but could not be started."""
        return self.kind == FailureKind.START_FAILED and self.vm_id is not None

    def __str__(self) -> str:
        if self.success:
            return f"VM {self.request_name} provisioned with ID: {self.vm_id}"
        message = f"[{self.stage.value}] VM {self.request_name}: {self.cause}"
        if self.created_but_stopped:
            message += f" (VM {self.vm_id} was created and left stopped)"
        return message


@dataclass
class BatchResult:
    """Aggregated results of a batch run.

    Attributes:
        total: Number of requests in the batch
        succeeded: Number of workflows that created and started their VM
        failures: Failure outcomes in the order they arrived
    """

    total: int
    succeeded: int
    failures: list[WorkflowOutcome] = field(default_factory=list)

    @property
    def failed(self) -> int:
        """Number of failed workflows."""
        return len(self.failures)

    @property
    def all_succeeded(self) -> bool:
        """True if every request succeeded."""
        return self.failed == 0

    def stopped_vm_ids(self) -> list[str]:
        """IDs of VMs that were created but failed to start."""
        return [f.vm_id for f in self.failures if f.created_but_stopped]

    def format_summary(self) -> str:
        """Format summary of results."""
        return f"Total: {self.total}, Succeeded: {self.succeeded}, Failed: {self.failed}"


__all__ = [
    "BatchResult",
    "FailureKind",
    "ProvisionRequest",
    "WorkflowOutcome",
    "WorkflowStage",
]
