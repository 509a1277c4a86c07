import json
from datetime import datetime, timezone
from typing import List, Optional

from pvetool.models import ClusterResource, NodeInfo, SnapshotListing, VMStatus

MB = 1048576


def format_timestamp(epoch: Optional[int]) -> str:
    """Render epoch seconds as UTC 'YYYY-MM-DD HH:MM:SS', or 'Unknown'."""
    if epoch is None:
        return 'Unknown'
    try:
        return datetime.fromtimestamp(epoch, tz=timezone.utc).strftime('%Y-%m-%d %H:%M:%S')
    except (OverflowError, OSError, ValueError, TypeError):
        return 'Unknown'


def format_raw(data) -> str:
    if isinstance(data, list):
        return json.dumps([item.model_dump() for item in data], indent=2)
    return json.dumps(data.model_dump(), indent=2)


def format_snapshot_list(listing: SnapshotListing) -> str:
    lines = [f"Snapshots for VM {listing.vmid} on node {listing.node}:"]
    for snap in listing.snapshots:
        description = snap.description or 'No description'
        lines.append(f"- {snap.name} [{description}] (Created: {format_timestamp(snap.snaptime)})")
    return '\n'.join(lines)


def format_vm_info(status: VMStatus) -> str:
    lines = [
        "VM Information:",
        f"  Node: {status.node}",
        f"  VMID: {status.vmid}",
    ]
    if status.name is not None:
        lines.append(f"  Name: {status.name}")
    if status.status is not None:
        lines.append(f"  Status: {status.status}")
    if status.cpu_percent is not None:
        lines.append(f"  CPU Usage: {status.cpu_percent:.2f}%")
    if status.mem_percent is not None:
        lines.append(f"  Memory: {status.mem // MB} MB / {status.maxmem // MB} MB ({status.mem_percent:.1f}%)")
    return '\n'.join(lines)


def format_vm_status(status: VMStatus) -> str:
    lines = [
        f"VM ID: {status.vmid}",
        f"Name: {status.name or 'Unknown'}",
        f"Node: {status.node}",
        f"Status: {status.status or 'unknown'}",
    ]
    uptime = status.uptime_breakdown
    if uptime is not None:
        lines.append("Uptime: {}d {}h {}m".format(*uptime))
    return '\n'.join(lines)


def format_vm_table(vms: List[ClusterResource]) -> str:
    if not vms:
        return "No VMs found"
    lines = [
        "VMs in cluster:",
        f"{'VMID':<8} {'Name':<20} {'Node':<10} {'Status':<10}",
        '-' * 50,
    ]
    for vm in vms:
        lines.append(f"{vm.vmid:<8} {vm.name or '-':<20} {vm.node:<10} {vm.status or '-':<10}")
    return '\n'.join(lines)


def format_nodes(nodes: List[NodeInfo]) -> str:
    lines = ["Cluster nodes:"]
    for node in nodes:
        lines.append(f"- {node.name} ({node.status})")
    return '\n'.join(lines)
