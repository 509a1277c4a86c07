"""Proxmox VE snapshot management tool."""

__version__ = "0.1.0"
