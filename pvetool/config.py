import logging
import os
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, ValidationError

from pvetool.client import DEFAULT_PORT, DEFAULT_TIMEOUT
from pvetool.tasks import DEFAULT_POLL_INTERVAL

logger = logging.getLogger(__name__)

DEFAULT_HOST = '192.168.1.1'


class ClusterConfig(BaseModel):
    hosts: List[str]
    port: Optional[int] = None
    token: Optional[str] = None
    token_path: Optional[str] = None
    verify_ssl: Optional[bool] = None


class ProxmoxConfig(BaseModel):
    host: Optional[str] = None
    port: Optional[int] = None
    token: Optional[str] = None
    token_path: Optional[str] = None
    verify_ssl: Optional[bool] = None
    timeout: Optional[int] = None
    poll_interval: Optional[float] = None
    task_timeout: Optional[float] = None
    clusters: Dict[str, ClusterConfig] = {}

    def get_cluster(self, name: Optional[str] = None) -> Optional[ClusterConfig]:
        """
        Pick a connection profile.

        A named profile must exist in 'clusters'. Without a name, a top-level
        host forms a single-host profile, otherwise the first cluster is used.
        """
        if name is not None:
            return self.clusters.get(name)
        if self.host is not None:
            return ClusterConfig(hosts=[self.host], port=self.port, token=self.token,
                                 token_path=self.token_path, verify_ssl=self.verify_ssl)
        for cluster in self.clusters.values():
            return cluster
        return None


class Settings(BaseModel):
    """Connection and polling settings after all sources are merged."""
    hosts: List[str]
    port: int = DEFAULT_PORT
    token: Optional[str] = None
    verify_ssl: bool = False
    timeout: int = DEFAULT_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    task_timeout: Optional[float] = None


def load_config(path: Optional[str]) -> ProxmoxConfig:
    """
    Load the 'proxmox' section of a YAML config file.

    A missing or unparsable file yields an empty config so that flags and
    environment variables still apply.
    """
    if not path:
        return ProxmoxConfig()
    try:
        with open(path, 'r') as f:
            raw_config = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Ignoring config file {path}: {e}")
        return ProxmoxConfig()
    section = raw_config.get('proxmox') if isinstance(raw_config, dict) else None
    try:
        return ProxmoxConfig.model_validate(section or {})
    except ValidationError as e:
        raise ValueError(f"Invalid config: {e}")


def read_token(token_path: str) -> str:
    try:
        with open(os.path.expanduser(token_path), 'r') as f:
            return f.read().strip()
    except OSError as e:
        raise ValueError(f"Cannot read token file {token_path}: {e}")


def _first(*values):
    for value in values:
        if value is not None:
            return value
    return None


def resolve_settings(config: ProxmoxConfig, cluster: Optional[str] = None, host: Optional[str] = None,
                     port: Optional[int] = None, token: Optional[str] = None,
                     verify_ssl: Optional[bool] = None, timeout: Optional[int] = None,
                     poll_interval: Optional[float] = None,
                     task_timeout: Optional[float] = None) -> Settings:
    """
    Merge explicit values (flags or environment) over the config file.

    An explicit host always means a single-host connection; otherwise the
    selected cluster profile supplies the host list.
    """
    profile = config.get_cluster(cluster)
    if cluster is not None and profile is None:
        raise ValueError(f"Cluster '{cluster}' not found in config")
    if profile is None:
        profile = ClusterConfig(hosts=[])

    if host is not None:
        hosts = [host]
    else:
        hosts = profile.hosts or [DEFAULT_HOST]

    if token is None:
        token_path = _first(profile.token_path, config.token_path)
        token = _first(profile.token, config.token)
        if token is None and token_path is not None:
            token = read_token(token_path)

    return Settings(
        hosts=hosts,
        port=_first(port, profile.port, config.port, DEFAULT_PORT),
        token=token,
        verify_ssl=_first(verify_ssl, profile.verify_ssl, config.verify_ssl, False),
        timeout=_first(timeout, config.timeout, DEFAULT_TIMEOUT),
        poll_interval=_first(poll_interval, config.poll_interval, DEFAULT_POLL_INTERVAL),
        task_timeout=_first(task_timeout, config.task_timeout),
    )
