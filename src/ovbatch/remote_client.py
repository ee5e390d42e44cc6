"""oVirt Engine REST client.

Thin client for the handful of oVirt Engine API v4 calls batch provisioning
needs: template lookup, VM creation and VM start. Requests and responses
are JSON over a shared requests.Session.

Workflows depend on the RemoteConnection protocol, not on OvirtConnection,
so tests can hand them a fake.

Security:
- HTTPS with certificate verification unless insecure is requested
- Timeout on every API call
- Credentials never included in error messages
"""

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import requests
from requests.adapters import HTTPAdapter

from ovbatch.log_sanitizer import LogSanitizer

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 120


def _quote_search(value: str) -> str:
    """Quote a value for the engine's search language so it matches exactly."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class RemoteAPIError(Exception):
    """Raised when an oVirt API call fails or is rejected."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ConnectionFailedError(RemoteAPIError):
    """Raised when the engine cannot be reached or rejects the credentials."""

    pass


class TemplateNotFoundError(RemoteAPIError):
    """Raised when no template matches the requested name."""

    pass


@dataclass(frozen=True)
class Template:
    """A VM template and the names of its disks and NICs."""

    id: str
    name: str
    disk_names: tuple[str, ...] = ()
    nic_names: tuple[str, ...] = ()

    def first_disk_name(self) -> str | None:
        return self.disk_names[0] if self.disk_names else None

    def first_nic_name(self) -> str | None:
        return self.nic_names[0] if self.nic_names else None


@dataclass(frozen=True)
class VMDescriptor:
    """Everything needed to create one VM."""

    name: str
    cluster: str
    template: str
    cpu_cores: int
    cpu_sockets: int
    memory: int
    memory_guaranteed: int
    disk_name: str
    disk_size: int
    storage_domain: str
    nic_name: str
    vnic_profile: str
    custom_script: str
    comment: str = ""
    disk_interface: str = "virtio"
    disk_format: str = "cow"
    sparse: bool = True
    nic_interface: str = "virtio"

    def to_api_dict(self) -> dict[str, Any]:
        """Render the descriptor as an oVirt API v4 VM representation."""
        vm: dict[str, Any] = {
            "name": self.name,
            "cluster": {"name": self.cluster},
            "template": {"name": self.template},
            "cpu": {"topology": {"cores": self.cpu_cores, "sockets": self.cpu_sockets}},
            "memory": self.memory,
            "memory_policy": {"guaranteed": self.memory_guaranteed},
            "disk_attachments": {
                "disk_attachment": [
                    {
                        "interface": self.disk_interface,
                        "disk": {
                            "name": self.disk_name,
                            "provisioned_size": self.disk_size,
                            "format": self.disk_format,
                            "sparse": self.sparse,
                            "storage_domains": {"storage_domain": [{"name": self.storage_domain}]},
                        },
                    }
                ]
            },
            "nics": {
                "nic": [
                    {
                        "name": self.nic_name,
                        "interface": self.nic_interface,
                        "vnic_profile": {"name": self.vnic_profile},
                    }
                ]
            },
            "initialization": {"custom_script": self.custom_script},
        }
        if self.comment:
            vm["comment"] = self.comment
        return vm


class RemoteConnection(Protocol):
    """Operations a provisioning workflow needs from the management platform."""

    def find_template_by_name(self, name: str) -> Template: ...

    def create_vm(self, descriptor: VMDescriptor) -> str: ...

    def start_vm(self, vm_id: str) -> None: ...

    def close(self) -> None: ...


class OvirtConnection:
    """Connection to an oVirt Engine API endpoint.

    Safe to share between worker threads: each call is an independent
    HTTP request on a pooled session.

    Example:
        with OvirtConnection.connect(url, "admin@internal", password) as conn:
            template = conn.find_template_by_name("rhel9")
    """

    def __init__(
        self,
        url: str,
        username: str,
        password: str,
        insecure: bool = False,
        timeout: float = DEFAULT_TIMEOUT,
        pool_size: int = 10,
        session: requests.Session | None = None,
    ):
        """Initialize connection (no network traffic).

        Args:
            url: API root, e.g. https://engine.example.com/ovirt-engine/api
            username: User name including profile, e.g. admin@internal
            password: Password
            insecure: Skip TLS certificate verification
            timeout: Per-request timeout in seconds
            pool_size: HTTP connection pool size (match the concurrency limit)
            session: Optional pre-built session
        """
        if not url:
            raise ValueError("url cannot be empty")

        self.url = url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.auth = (username, password)
        self._session.verify = not insecure
        self._session.headers.update(
            {
                "Accept": "application/json",
                "Content-Type": "application/json",
                "Version": "4",
            }
        )
        if session is None:
            adapter = HTTPAdapter(pool_connections=1, pool_maxsize=max(pool_size, 1))
            self._session.mount("https://", adapter)
            self._session.mount("http://", adapter)

    @classmethod
    def connect(
        cls,
        url: str,
        username: str,
        password: str,
        insecure: bool = False,
        timeout: float = DEFAULT_TIMEOUT,
        pool_size: int = 10,
    ) -> "OvirtConnection":
        """Open a connection and verify the engine answers.

        Raises:
            ConnectionFailedError: If the engine is unreachable or rejects the login
        """
        conn = cls(url, username, password, insecure=insecure, timeout=timeout, pool_size=pool_size)
        try:
            conn._request("GET", "")
        except RemoteAPIError as e:
            conn.close()
            raise ConnectionFailedError(
                f"Failed to connect to oVirt engine at {conn.url}: {e}", e.status_code
            ) from e
        logger.debug(f"Connected to oVirt engine at {conn.url}")
        return conn

    def __enter__(self) -> "OvirtConnection":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        """Release pooled HTTP connections."""
        self._session.close()

    def find_template_by_name(self, name: str) -> Template:
        """Look up a template by exact name.

        If several templates share the name, the first one returned by the
        engine is used.

        Raises:
            TemplateNotFoundError: If no template matches
            RemoteAPIError: If the lookup fails
        """
        data = self._request(
            "GET", "/templates", params={"search": f"name={_quote_search(name)}"}
        )
        templates = data.get("template", [])
        if not templates:
            raise TemplateNotFoundError(f"template {name} not found", 404)
        if len(templates) > 1:
            logger.debug(f"{len(templates)} templates named {name}, using the first")

        template = templates[0]
        template_id = template["id"]

        attachments = self._request(
            "GET", f"/templates/{template_id}/diskattachments", params={"follow": "disk"}
        )
        nics = self._request("GET", f"/templates/{template_id}/nics")

        return Template(
            id=template_id,
            name=template.get("name", name),
            disk_names=tuple(
                a["disk"]["name"]
                for a in attachments.get("disk_attachment", [])
                if a.get("disk", {}).get("name")
            ),
            nic_names=tuple(n["name"] for n in nics.get("nic", []) if n.get("name")),
        )

    def create_vm(self, descriptor: VMDescriptor) -> str:
        """Submit a VM creation request.

        Returns:
            ID of the new VM

        Raises:
            RemoteAPIError: If the engine rejects the request
        """
        data = self._request("POST", "/vms", json=descriptor.to_api_dict())
        vm_id = data.get("id")
        if not vm_id:
            raise RemoteAPIError(f"engine returned no ID for VM {descriptor.name}")
        return vm_id

    def start_vm(self, vm_id: str) -> None:
        """Start a VM.

        Raises:
            RemoteAPIError: If the engine rejects the start action
        """
        self._request("POST", f"/vms/{vm_id}/start", json={})

    def _request(
        self,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Issue one API call and decode the JSON body.

        Raises:
            RemoteAPIError: On transport errors and non-2xx responses
        """
        url = f"{self.url}{path}"
        try:
            response = self._session.request(
                method, url, params=params, json=json, timeout=self.timeout
            )
        except requests.Timeout as e:
            raise RemoteAPIError(f"{method} {path or '/'} timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise RemoteAPIError(LogSanitizer.sanitize(f"{method} {path or '/'} failed: {e}")) from e

        if not response.ok:
            raise RemoteAPIError(
                f"{method} {path or '/'} returned HTTP {response.status_code}: "
                f"{self._error_detail(response)}",
                response.status_code,
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise RemoteAPIError(f"{method} {path or '/'} returned invalid JSON") from e

    @staticmethod
    def _error_detail(response: requests.Response) -> str:
        """Extract the engine's fault description from an error response."""
        try:
            fault = response.json()
        except ValueError:
            return LogSanitizer.sanitize(response.text.strip()[:200]) or response.reason
        detail = fault.get("detail") or fault.get("reason") or response.reason
        return LogSanitizer.sanitize(str(detail).strip("[]"))


__all__ = [
    "ConnectionFailedError",
    "OvirtConnection",
    "RemoteAPIError",
    "RemoteConnection",
    "Template",
    "TemplateNotFoundError",
    "VMDescriptor",
]
