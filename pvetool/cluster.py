import logging
from typing import List, Optional, Tuple

from pydantic import ValidationError

from pvetool.client import ProxmoxAPIError, ProxmoxClient, VMNotFoundError
from pvetool.models import ClusterResource, NodeInfo

logger = logging.getLogger(__name__)


class ClusterManager:
    """
    Cluster-wide inventory queries and VM resolution.
    """
    def __init__(self, client: ProxmoxClient):
        self.client = client

    def vm_resources(self) -> List[ClusterResource]:
        """
        Fetch the VM entries of /cluster/resources. Never cached.

        :return: List of ClusterResource
        """
        resources = self.client.get('/cluster/resources', params={'type': 'vm'})
        try:
            return [ClusterResource.model_validate(r) for r in resources or []]
        except ValidationError as e:
            raise ProxmoxAPIError(f"Unexpected cluster resource entry: {e}")

    def find_vm_node(self, identifier: str) -> Tuple[str, int]:
        """
        Resolve a VM id or name to the node hosting it.

        A numeric identifier is matched against vmids first. The name lookup
        runs whenever that does not produce a hit, even for numeric input.

        :param identifier: VMID or exact VM name
        :return: (node, vmid)
        """
        resources = self.vm_resources()
        if identifier.isascii() and identifier.isdigit():
            vmid = int(identifier)
            for resource in resources:
                if resource.vmid == vmid:
                    return resource.node, resource.vmid
        for resource in resources:
            if resource.name is not None and resource.name == identifier:
                return resource.node, resource.vmid
        raise VMNotFoundError(identifier)

    def list_vms(self, node: Optional[str] = None) -> List[ClusterResource]:
        vms = self.vm_resources()
        if node is not None:
            vms = [vm for vm in vms if vm.node == node]
        logger.info(f"Retrieved {len(vms)} VMs")
        return vms

    def list_nodes(self) -> List[NodeInfo]:
        """
        List cluster nodes, falling back to /cluster/status when /nodes fails.

        :return: List of NodeInfo
        """
        try:
            nodes = self.client.get('/nodes')
            return [
                NodeInfo(
                    name=n['node'],
                    status=n.get('status') or 'unknown',
                    cpu=n.get('cpu'),
                    maxcpu=n.get('maxcpu'),
                    mem=n.get('mem'),
                    maxmem=n.get('maxmem'),
                    uptime=n.get('uptime'),
                )
                for n in nodes or []
            ]
        except (ProxmoxAPIError, KeyError, ValidationError) as e:
            logger.warning(f"Failed to list /nodes, falling back to cluster status: {e}")
        items = self.client.get('/cluster/status')
        nodes = []
        for item in items or []:
            if item.get('type') != 'node':
                continue
            name = item.get('node') or item.get('name')
            if not name:
                continue
            nodes.append(NodeInfo(name=name, status=item.get('status') or 'unknown'))
        return nodes
