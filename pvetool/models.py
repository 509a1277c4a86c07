from typing import List, Optional, Tuple

from pydantic import BaseModel, ValidationError, field_validator


class ClusterResource(BaseModel):
    node: str
    vmid: int
    name: Optional[str] = None
    type: str
    status: Optional[str] = None


class NodeInfo(BaseModel):
    name: str
    status: str = 'unknown'
    cpu: Optional[float] = None
    maxcpu: Optional[int] = None
    mem: Optional[int] = None
    maxmem: Optional[int] = None
    uptime: Optional[int] = None


class TaskStatus(BaseModel):
    status: str
    exitstatus: Optional[str] = None


class Snapshot(BaseModel):
    name: str
    description: Optional[str] = None
    snaptime: Optional[int] = None
    parent: Optional[str] = None

    @field_validator('description', 'snaptime', 'parent', mode='wrap')
    @classmethod
    def _drop_malformed(cls, value, handler):
        try:
            return handler(value)
        except ValidationError:
            return None


class VMStatus(BaseModel):
    """
    Partial view of /nodes/{node}/qemu/{vmid}/status/current.

    Every field is optional and validated on its own, so a missing or
    malformed value only blanks that field.
    """
    node: Optional[str] = None
    vmid: Optional[int] = None
    name: Optional[str] = None
    status: Optional[str] = None
    qmpstatus: Optional[str] = None
    cpu: Optional[float] = None
    cpus: Optional[int] = None
    mem: Optional[int] = None
    maxmem: Optional[int] = None
    uptime: Optional[int] = None

    @field_validator('*', mode='wrap')
    @classmethod
    def _drop_malformed(cls, value, handler):
        try:
            return handler(value)
        except ValidationError:
            return None

    @property
    def cpu_percent(self) -> Optional[float]:
        if self.cpu is None:
            return None
        return self.cpu * 100

    @property
    def mem_percent(self) -> Optional[float]:
        if self.mem is None or not self.maxmem:
            return None
        return self.mem / self.maxmem * 100

    @property
    def uptime_breakdown(self) -> Optional[Tuple[int, int, int]]:
        """(days, hours, minutes), only while the VM is running."""
        if self.status != 'running' or self.uptime is None:
            return None
        days = self.uptime // 86400
        hours = (self.uptime % 86400) // 3600
        minutes = (self.uptime % 3600) // 60
        return days, hours, minutes


class TaskResult(BaseModel):
    node: str
    vmid: int
    upid: str
    exitstatus: Optional[str] = None
    snapname: Optional[str] = None


class SnapshotListing(BaseModel):
    node: str
    vmid: int
    snapshots: List[Snapshot] = []
