import logging
import re
from datetime import datetime
from typing import List, Optional

from pydantic import ValidationError

from pvetool.client import ProxmoxAPIError, ProxmoxClient
from pvetool.cluster import ClusterManager
from pvetool.models import ClusterResource, NodeInfo, Snapshot, SnapshotListing, TaskResult, VMStatus
from pvetool.tasks import TaskWaiter

logger = logging.getLogger(__name__)

NAME_REGEX = re.compile(r'^[a-zA-Z][a-zA-Z0-9_-]*$')  # snapshot names

# Entry in the snapshot list that stands for the live VM state
CURRENT_SNAPSHOT = 'current'


def validate_snapname(snapname):
    """Validate snapshot name: starts with a letter, then letters/digits/hyphens/underscores"""
    if not NAME_REGEX.match(snapname):
        raise ValueError(f"Invalid snapshot name '{snapname}': must start with a letter and "
                         f"contain only letters, numbers, hyphens, and underscores")


def default_snapshot_name(now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return now.strftime('snapshot-%Y%m%d-%H%M%S')


def default_snapshot_description(now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return now.strftime('Snapshot created on %Y-%m-%d %H:%M:%S')


class SnapshotManager:
    """
    Snapshot and VM operations addressed by VM id or name.

    Every operation resolves the VM to its node first. State-changing calls
    block until their task stops.
    """
    def __init__(self, client: ProxmoxClient, cluster: Optional[ClusterManager] = None,
                 waiter: Optional[TaskWaiter] = None):
        self.client = client
        self.cluster = cluster or ClusterManager(client)
        self.waiter = waiter or TaskWaiter(client)

    def _wait(self, node, vmid, upid, snapname=None) -> TaskResult:
        status = self.waiter.wait(node, upid)
        return TaskResult(node=node, vmid=vmid, upid=upid, exitstatus=status.exitstatus, snapname=snapname)

    def create_snapshot(self, vm: str, snapname: Optional[str] = None, description: Optional[str] = None,
                        vmstate: bool = False) -> TaskResult:
        """
        Create a snapshot and wait for it to finish.

        :param vm: VM id or name
        :param snapname: Snapshot name, generated from the current time when omitted
        :param description: Description, generated from the current time when omitted
        :param vmstate: Include RAM and device state
        :return: TaskResult
        """
        if snapname is None:
            snapname = default_snapshot_name()
        else:
            validate_snapname(snapname)
        if description is None:
            description = default_snapshot_description()
        node, vmid = self.cluster.find_vm_node(vm)
        data = {'snapname': snapname, 'description': description}
        if vmstate:
            data['vmstate'] = 1
        try:
            upid = self.client.post(f'/nodes/{node}/qemu/{vmid}/snapshot', data)
            logger.info(f"Creating snapshot '{snapname}' on node {node} for VM {vmid}, UPID: {upid}")
            return self._wait(node, vmid, upid, snapname)
        except ProxmoxAPIError as e:
            logger.error(f"Failed to create snapshot '{snapname}' for VM {vmid}: {e}")
            raise

    def delete_snapshot(self, vm: str, snapname: str) -> TaskResult:
        node, vmid = self.cluster.find_vm_node(vm)
        try:
            upid = self.client.delete(f'/nodes/{node}/qemu/{vmid}/snapshot/{snapname}')
            logger.info(f"Deleting snapshot '{snapname}' on node {node} for VM {vmid}, UPID: {upid}")
            return self._wait(node, vmid, upid, snapname)
        except ProxmoxAPIError as e:
            logger.error(f"Failed to delete snapshot '{snapname}' for VM {vmid}: {e}")
            raise

    def rollback_snapshot(self, vm: str, snapname: str) -> TaskResult:
        node, vmid = self.cluster.find_vm_node(vm)
        try:
            upid = self.client.post(f'/nodes/{node}/qemu/{vmid}/snapshot/{snapname}/rollback')
            logger.info(f"Rolling back VM {vmid} to snapshot '{snapname}' on node {node}, UPID: {upid}")
            return self._wait(node, vmid, upid, snapname)
        except ProxmoxAPIError as e:
            logger.error(f"Failed to rollback VM {vmid} to snapshot '{snapname}': {e}")
            raise

    def list_snapshots(self, vm: str) -> SnapshotListing:
        """
        List the snapshots of a VM, without the 'current' pseudo-snapshot.

        :param vm: VM id or name
        :return: SnapshotListing
        """
        node, vmid = self.cluster.find_vm_node(vm)
        entries = self.client.get(f'/nodes/{node}/qemu/{vmid}/snapshot')
        try:
            snapshots = [Snapshot.model_validate(s) for s in entries or []]
        except ValidationError as e:
            raise ProxmoxAPIError(f"Unexpected snapshot entry: {e}")
        snapshots = [s for s in snapshots if s.name != CURRENT_SNAPSHOT]
        logger.info(f"Retrieved {len(snapshots)} snapshots for VM {vmid}")
        return SnapshotListing(node=node, vmid=vmid, snapshots=snapshots)

    def vm_status(self, vm: str) -> VMStatus:
        node, vmid = self.cluster.find_vm_node(vm)
        info = self.client.get(f'/nodes/{node}/qemu/{vmid}/status/current')
        if not isinstance(info, dict):
            info = {}
        status = VMStatus.model_validate(info)
        status.node = node
        status.vmid = vmid
        return status

    def list_vms(self, node: Optional[str] = None) -> List[ClusterResource]:
        return self.cluster.list_vms(node)

    def list_nodes(self) -> List[NodeInfo]:
        return self.cluster.list_nodes()
