"""Privileged host side of the ArcGIS API key manager.

Provides:
- HostServices / create_services: the explicit services struct
- HostDispatcher: turns serialized UI requests into serialized host responses
"""

from .dispatch import HostDispatcher
from .services import HostServices, create_services

__all__ = ["HostDispatcher", "HostServices", "create_services"]
