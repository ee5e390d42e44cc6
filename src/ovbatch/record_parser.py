"""CSV record parser.

Reads the VM parameter file and produces an ordered list of validated
ProvisionRequest objects. Any structural problem (unreadable file, wrong
field count, non-numeric sizing field) aborts the whole batch: either every
record is valid or nothing is provisioned.

Record layout (16 positional fields, no header row):
    name, template, cluster, class, nic, ip, gateway, mask,
    dns, dns1, dns2, cpuCores, cpuSockets, memory, memoryGuaranteed, size
"""

import csv
import logging
import re
from pathlib import Path
from typing import TextIO

from ovbatch.models import ProvisionRequest

logger = logging.getLogger(__name__)

FIELD_NAMES = (
    "name",
    "template",
    "cluster",
    "class",
    "nic",
    "ip",
    "gateway",
    "mask",
    "dns",
    "dns1",
    "dns2",
    "cpuCores",
    "cpuSockets",
    "memory",
    "memoryGuaranteed",
    "size",
)
FIELD_COUNT = len(FIELD_NAMES)

# Integer columns: CSV index -> human readable label for error messages
INTEGER_FIELDS = {
    11: "CPU cores",
    12: "CPU sockets",
    13: "memory",
    14: "guaranteed memory",
    15: "disk size",
}

_UNSIGNED_INT = re.compile(r"[0-9]+", re.ASCII)


class RecordParseError(Exception):
    """Raised when the input file cannot be turned into provisioning requests.

    Attributes:
        line_number: 1-based record number of the offending record (None if the file
            itself could not be read)
        field: Name of the offending field, if any
    """

    def __init__(self, message: str, line_number: int | None = None, field: str | None = None):
        super().__init__(message)
        self.line_number = line_number
        self.field = field


def _parse_unsigned(value: str, label: str, line_number: int) -> int:
    if not _UNSIGNED_INT.fullmatch(value):
        raise RecordParseError(
            f"failed to parse {label} at line {line_number}: {value!r} is not a non-negative integer",
            line_number=line_number,
            field=label,
        )
    return int(value)


def parse_record(record: list[str], line_number: int) -> ProvisionRequest:
    """Validate one CSV record and build a ProvisionRequest.

    Args:
        record: Raw CSV fields
        line_number: 1-based record number used in error messages

    Returns:
        ProvisionRequest

    Raises:
        RecordParseError: If the field count is wrong or a numeric field does not parse
    """
    if len(record) != FIELD_COUNT:
        raise RecordParseError(
            f"invalid number of fields in CSV record at line {line_number}: "
            f"expected {FIELD_COUNT}, got {len(record)}",
            line_number=line_number,
        )

    numbers = {
        index: _parse_unsigned(record[index], label, line_number)
        for index, label in INTEGER_FIELDS.items()
    }

    return ProvisionRequest(
        name=record[0],
        template=record[1],
        cluster=record[2],
        vm_class=record[3],
        nic=record[4],
        ip=record[5],
        gateway=record[6],
        mask=record[7],
        dns=record[8],
        dns1=record[9],
        dns2=record[10],
        cpu_cores=numbers[11],
        cpu_sockets=numbers[12],
        memory=numbers[13],
        memory_guaranteed=numbers[14],
        disk_size=numbers[15],
        line_number=line_number,
    )


def parse_stream(stream: TextIO) -> list[ProvisionRequest]:
    """Parse every record from an open text stream, preserving input order.

    Blank lines are skipped. Records are numbered from 1 in the order they
    are read, so a quoted field spanning several lines is still one record
    and "line N" in error messages means the Nth record.

    Raises:
        RecordParseError: On the first invalid record
    """
    reader = csv.reader(stream)
    requests: list[ProvisionRequest] = []
    record_number = 0
    try:
        for record in reader:
            if not record:
                continue
            record_number += 1
            requests.append(parse_record(record, record_number))
    except csv.Error as e:
        raise RecordParseError(
            f"failed to read CSV record at line {record_number + 1}: {e}",
            line_number=record_number + 1,
        ) from e
    return requests


def parse_csv(path: str | Path) -> list[ProvisionRequest]:
    """Parse a CSV file of VM parameters.

    Args:
        path: Path to the CSV file

    Returns:
        Requests in file order

    Raises:
        RecordParseError: If the file cannot be opened or any record is invalid
    """
    csv_path = Path(path)
    try:
        with open(csv_path, newline="", encoding="utf-8") as f:
            requests = parse_stream(f)
    except OSError as e:
        raise RecordParseError(f"failed to open CSV file {csv_path}: {e}") from e
    except UnicodeDecodeError as e:
        raise RecordParseError(f"failed to read CSV file {csv_path}: not valid UTF-8") from e

    logger.debug(f"Parsed {len(requests)} record(s) from {csv_path}")
    return requests


__all__ = [
    "FIELD_COUNT",
    "FIELD_NAMES",
    "RecordParseError",
    "parse_csv",
    "parse_record",
    "parse_stream",
]
