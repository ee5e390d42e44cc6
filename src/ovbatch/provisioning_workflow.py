"""Single-VM provisioning workflow.

Runs the four ordered steps for one ProvisionRequest:
1. Resolve the template by name
2. Take the disk and NIC names from the template
3. Build the VM descriptor and submit it for creation
4. Start the created VM

The first failing step ends the workflow. Every outcome, success or
failure, is returned as a WorkflowOutcome; exceptions never escape
execute(), so one bad record cannot disturb other workflows.

There is no rollback: a VM whose start is rejected stays created and
stopped, and the outcome carries its ID.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from ovbatch.cloud_init import generate_network_config
from ovbatch.config_manager import OvbatchConfig
from ovbatch.log_sanitizer import LogSanitizer
from ovbatch.models import FailureKind, ProvisionRequest, WorkflowOutcome, WorkflowStage
from ovbatch.remote_client import (
    RemoteAPIError,
    RemoteConnection,
    Template,
    TemplateNotFoundError,
    VMDescriptor,
)

logger = logging.getLogger(__name__)


class MissingResourceError(Exception):
    """Raised when a template has no disk or no NIC to copy names from."""

    pass


@dataclass(frozen=True)
class InfrastructureConfig:
    """Fixed infrastructure every new VM is attached to."""

    storage_domain: str = "my_storage_domain"
    vnic_profile: str = "my_network"
    disk_interface: str = "virtio"
    nic_interface: str = "virtio"
    disk_format: str = "cow"
    sparse: bool = True

    @classmethod
    def from_config(cls, config: OvbatchConfig) -> "InfrastructureConfig":
        return cls(
            storage_domain=config.storage_domain,
            vnic_profile=config.vnic_profile,
            disk_interface=config.disk_interface,
            nic_interface=config.nic_interface,
            disk_format=config.disk_format,
            sparse=config.sparse,
        )


def derive_template_defaults(template: Template) -> tuple[str, str]:
    """Get the (disk name, NIC name) a new VM inherits from its template.

    Raises:
        MissingResourceError: If the template has no disks or no NICs
    """
    disk_name = template.first_disk_name()
    if disk_name is None:
        raise MissingResourceError(f"template {template.name} has no disks")
    nic_name = template.first_nic_name()
    if nic_name is None:
        raise MissingResourceError(f"template {template.name} has no network interfaces")
    return disk_name, nic_name


class ProvisioningWorkflow:
    """Provision one VM at a time against a shared remote connection.

    One instance can serve every request in a batch: it holds only the
    read-only infrastructure settings, never per-request state.
    """

    def __init__(
        self,
        infrastructure: InfrastructureConfig | None = None,
        progress_callback: Callable[[str], None] | None = None,
    ):
        """Initialize workflow.

        Args:
            infrastructure: Storage domain, network profile and device settings
            progress_callback: Optional callback for progress updates
        """
        self.infrastructure = infrastructure or InfrastructureConfig()
        self.progress_callback = progress_callback

    def build_descriptor(
        self, request: ProvisionRequest, disk_name: str, nic_name: str
    ) -> VMDescriptor:
        """Assemble the creation descriptor for a request."""
        infra = self.infrastructure
        return VMDescriptor(
            name=request.name,
            cluster=request.cluster,
            template=request.template,
            comment=request.vm_class,
            cpu_cores=request.cpu_cores,
            cpu_sockets=request.cpu_sockets,
            memory=request.memory,
            memory_guaranteed=request.memory_guaranteed,
            disk_name=disk_name,
            disk_size=request.disk_size,
            disk_format=infra.disk_format,
            sparse=infra.sparse,
            disk_interface=infra.disk_interface,
            storage_domain=infra.storage_domain,
            nic_name=nic_name,
            nic_interface=infra.nic_interface,
            vnic_profile=infra.vnic_profile,
            custom_script=generate_network_config(request),
        )

    def execute(
        self,
        request: ProvisionRequest,
        connection: RemoteConnection,
        progress_callback: Callable[[str], None] | None = None,
    ) -> WorkflowOutcome:
        """Run the workflow for one request.

        Args:
            request: Request to provision
            connection: Shared remote connection
            progress_callback: Callback for this run only (defaults to the
                workflow's own callback)

        Returns:
            WorkflowOutcome (never raises)
        """
        callback = progress_callback or self.progress_callback

        def report(message: str) -> None:
            if callback:
                callback(message)

        start_time = time.time()
        stage = WorkflowStage.RESOLVE_TEMPLATE
        vm_id: str | None = None

        def fail(kind: FailureKind, cause: str) -> WorkflowOutcome:
            outcome = WorkflowOutcome.failed(
                request.name,
                stage,
                kind,
                LogSanitizer.sanitize(cause),
                vm_id=vm_id,
                duration=time.time() - start_time,
            )
            report(f"✗ {request.name}: {outcome.cause}")
            return outcome

        try:
            report(f"Provisioning {request.name} from template {request.template}...")
            try:
                template = connection.find_template_by_name(request.template)
            except TemplateNotFoundError as e:
                return fail(FailureKind.NOT_FOUND, str(e))
            except RemoteAPIError as e:
                return fail(
                    FailureKind.LOOKUP_FAILED,
                    f"failed to retrieve template {request.template}: {e}",
                )

            stage = WorkflowStage.DERIVE_DEFAULTS
            try:
                disk_name, nic_name = derive_template_defaults(template)
            except MissingResourceError as e:
                return fail(FailureKind.MISSING_RESOURCE, str(e))

            stage = WorkflowStage.CREATE
            descriptor = self.build_descriptor(request, disk_name, nic_name)
            try:
                vm_id = connection.create_vm(descriptor)
            except RemoteAPIError as e:
                return fail(FailureKind.CREATE_FAILED, f"failed to create VM {request.name}: {e}")
            logger.info(f"VM {request.name} created successfully with ID: {vm_id}")

            stage = WorkflowStage.START
            try:
                connection.start_vm(vm_id)
            except RemoteAPIError as e:
                return fail(FailureKind.START_FAILED, f"failed to start VM {request.name}: {e}")
            logger.info(f"VM {request.name} started successfully")

        except Exception as e:
            logger.exception(f"Unexpected error provisioning {request.name}")
            return fail(FailureKind.INTERNAL, f"unexpected error: {e!s}")

        report(f"✓ {request.name}: running ({vm_id})")
        return WorkflowOutcome.succeeded(request.name, vm_id, duration=time.time() - start_time)


__all__ = [
    "InfrastructureConfig",
    "MissingResourceError",
    "ProvisioningWorkflow",
    "derive_template_defaults",
]
