"""Unit tests for the batch provisioning data model."""

import dataclasses

import pytest

from ovbatch.models import BatchResult, FailureKind, WorkflowOutcome, WorkflowStage
from tests.mocks.ovirt_mock import make_request


class TestProvisionRequest:
    """Test ProvisionRequest behavior."""

    def test_request_is_immutable(self):
        """Test requests cannot be modified after parsing."""
        request = make_request()

        with pytest.raises(dataclasses.FrozenInstanceError):
            request.name = "other"

    def test_dns_servers_skip_blanks(self):
        """Test dns_servers keeps order and drops empty entries."""
        request = make_request(dns="1.1.1.1", dns1="", dns2="9.9.9.9")

        assert request.dns_servers == ["1.1.1.1", "9.9.9.9"]


class TestWorkflowOutcome:
    """Test WorkflowOutcome construction and formatting."""

    def test_success_outcome(self):
        """Test a success carries the VM ID and no stage."""
        outcome = WorkflowOutcome.succeeded("web-01", "vm-1")

        assert outcome.success is True
        assert outcome.vm_id == "vm-1"
        assert outcome.stage is None
        assert outcome.created_but_stopped is False

    def test_start_failure_is_created_but_stopped(self):
        """Test a START failure with a VM ID marks the VM as left stopped."""
        outcome = WorkflowOutcome.failed(
            "web-01", WorkflowStage.START, FailureKind.START_FAILED, "no memory", vm_id="vm-9"
        )

        assert outcome.success is False
        assert outcome.created_but_stopped is True
        assert "vm-9 was created and left stopped" in str(outcome)

    def test_failure_string_names_stage(self):
        """Test failure formatting includes the stage and cause."""
        outcome = WorkflowOutcome.failed(
            "web-01", WorkflowStage.RESOLVE_TEMPLATE, FailureKind.NOT_FOUND, "template x not found"
        )

        assert str(outcome) == "[resolve_template] VM web-01: template x not found"


class TestBatchResult:
    """Test BatchResult aggregation helpers."""

    def test_counts(self):
        """Test failed and all_succeeded derive from failures."""
        failure = WorkflowOutcome.failed(
            "b", WorkflowStage.CREATE, FailureKind.CREATE_FAILED, "rejected"
        )
        result = BatchResult(total=3, succeeded=2, failures=[failure])

        assert result.failed == 1
        assert result.all_succeeded is False
        assert result.format_summary() == "Total: 3, Succeeded: 2, Failed: 1"

    def test_stopped_vm_ids(self):
        """Test only created-but-stopped failures are listed."""
        result = BatchResult(
            total=2,
            succeeded=0,
            failures=[
                WorkflowOutcome.failed(
                    "a", WorkflowStage.START, FailureKind.START_FAILED, "x", vm_id="vm-1"
                ),
                WorkflowOutcome.failed("b", WorkflowStage.CREATE, FailureKind.CREATE_FAILED, "y"),
            ],
        )

        assert result.stopped_vm_ids() == ["vm-1"]

    def test_empty_batch_all_succeeded(self):
        """Test an empty batch counts as fully successful."""
        assert BatchResult(total=0, succeeded=0).all_succeeded is True
