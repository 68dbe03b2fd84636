"""Thin facades over the device cloud REST API."""

from .devices import Devices
from .workspaces import Workspaces
from .xapi import Xapi

__all__ = ["Devices", "Workspaces", "Xapi"]
