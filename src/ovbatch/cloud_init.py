"""Cloud-init network configuration for new VMs.

Renders the custom script sent in the VM's initialization payload. The
script configures one NIC with a static address and the record's DNS
servers (cloud-init network config version 1).

CSV values are written as double-quoted YAML scalars, so newlines, `#` or
`:` inside a field cannot change the document structure.
"""

import json

from ovbatch.models import ProvisionRequest


def _scalar(value: str) -> str:
    # A JSON string is a valid YAML double-quoted scalar
    return json.dumps(value)


def generate_network_config(request: ProvisionRequest) -> str:
    """Generate the cloud-config network script for a request.

    Args:
        request: Provisioning request supplying NIC label, IP, mask, gateway and DNS

    Returns:
        Cloud-init YAML content
    """
    dns_section = ""
    if request.dns_servers:
        dns_lines = "\n".join(f"            - {_scalar(server)}" for server in request.dns_servers)
        dns_section = f"\n          dns_nameservers:\n{dns_lines}"

    return f"""#cloud-config
network:
  version: 1
  config:
    - type: physical
      name: {_scalar(request.nic)}
      subnets:
        - type: static
          address: {_scalar(request.ip)}
          netmask: {_scalar(request.mask)}
          gateway: {_scalar(request.gateway)}{dns_section}
"""


__all__ = ["generate_network_config"]
