"""
Fake oVirt collaborators for testing.

FakeConnection implements the RemoteConnection protocol in memory, records
every call and tracks how many calls were in flight at once, so batch tests
can check concurrency limits by counting instead of timing.
"""

import threading
import time

from ovbatch.models import ProvisionRequest
from ovbatch.remote_client import RemoteAPIError, Template, TemplateNotFoundError, VMDescriptor

GIB = 1024**3

VALID_ROW = (
    "web-01,rhel9-base,Default,server,eth0,10.0.0.11,10.0.0.1,255.255.255.0,"
    "10.0.0.2,10.0.0.3,8.8.8.8,2,1,4294967296,2147483648,21474836480"
)


def make_request(name: str = "web-01", template: str = "rhel9-base", **overrides) -> ProvisionRequest:
    """Build a valid ProvisionRequest with sensible defaults."""
    values = {
        "name": name,
        "template": template,
        "cluster": "Default",
        "vm_class": "server",
        "nic": "eth0",
        "ip": "10.0.0.11",
        "gateway": "10.0.0.1",
        "mask": "255.255.255.0",
        "dns": "10.0.0.2",
        "dns1": "10.0.0.3",
        "dns2": "8.8.8.8",
        "cpu_cores": 2,
        "cpu_sockets": 1,
        "memory": 4 * GIB,
        "memory_guaranteed": 2 * GIB,
        "disk_size": 20 * GIB,
        "line_number": 1,
    }
    values.update(overrides)
    return ProvisionRequest(**values)


def make_template(name: str = "rhel9-base", disks=("rhel9-base-disk",), nics=("nic1",)) -> Template:
    return Template(id=f"tpl-{name}", name=name, disk_names=tuple(disks), nic_names=tuple(nics))


class FakeConnection:
    """Thread-safe stand-in for OvirtConnection.

    Records every call and the peak number of concurrent calls in flight.
    """

    def __init__(
        self,
        templates: dict[str, Template] | None = None,
        lookup_errors: set[str] | None = None,
        create_errors: set[str] | None = None,
        start_errors: set[str] | None = None,
        delay: float = 0.0,
    ):
        self.templates = templates if templates is not None else {"rhel9-base": make_template()}
        self.lookup_errors = lookup_errors or set()
        self.create_errors = create_errors or set()
        self.start_errors = start_errors or set()
        self.delay = delay

        self.lookups: list[str] = []
        self.created: list[VMDescriptor] = []
        self.started: list[str] = []
        self.closed = False

        self._lock = threading.Lock()
        self._in_flight = 0
        self.peak_in_flight = 0
        self._next_id = 0

    def _enter(self) -> None:
        with self._lock:
            self._in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self._in_flight)
        if self.delay:
            time.sleep(self.delay)

    def _exit(self) -> None:
        with self._lock:
            self._in_flight -= 1

    @property
    def call_count(self) -> int:
        return len(self.lookups) + len(self.created) + len(self.started)

    def find_template_by_name(self, name: str) -> Template:
        self._enter()
        try:
            with self._lock:
                self.lookups.append(name)
            if name in self.lookup_errors:
                raise RemoteAPIError(f"GET /templates returned HTTP 500: lookup of {name} failed", 500)
            if name not in self.templates:
                raise TemplateNotFoundError(f"template {name} not found", 404)
            return self.templates[name]
        finally:
            self._exit()

    def create_vm(self, descriptor: VMDescriptor) -> str:
        self._enter()
        try:
            if descriptor.name in self.create_errors:
                raise RemoteAPIError(f"POST /vms returned HTTP 409: VM {descriptor.name} exists", 409)
            with self._lock:
                self.created.append(descriptor)
                self._next_id += 1
                return f"vm-{self._next_id:04d}"
        finally:
            self._exit()

    def start_vm(self, vm_id: str) -> None:
        self._enter()
        try:
            with self._lock:
                name = next(d.name for i, d in enumerate(self.created) if f"vm-{i + 1:04d}" == vm_id)
            if name in self.start_errors:
                raise RemoteAPIError("POST /vms/start returned HTTP 409: not enough memory", 409)
            with self._lock:
                self.started.append(vm_id)
        finally:
            self._exit()

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> "FakeConnection":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
