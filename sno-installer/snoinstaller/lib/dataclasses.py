#!/usr/bin/env python3

# dataclasses.py - SNO Hub Installer dataclasses
# Part of the SNO Hub Installer homelab kit
#
#    Copyright (C) 2026 The SNO Hub Installer contributors
#
#    This program is free software: you can redistribute it and/or modify
#    it under the terms of the GNU General Public License as published by
#    the Free Software Foundation, version 3.
#
#    This program is distributed in the hope that it will be useful,
#    but WITHOUT ANY WARRANTY; without even the implied warranty of
#    MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
#    GNU General Public License for more details.
#
#    You should have received a copy of the GNU General Public License
#    along with this program.  If not, see <https://www.gnu.org/licenses/>.
#
###############################################################################

from dataclasses import dataclass, field
from typing import List


@dataclass
class SystemInfo:
    """
    A point-in-time read of the managed system
    """

    manufacturer: str
    model: str
    serial_number: str
    bios_version: str
    power_state: str
    health: str


@dataclass
class ManagerInfo:
    """
    A point-in-time read of the iDRAC (lifecycle controller) itself
    """

    firmware_version: str
    id: str
    name: str
    health: str
    state: str


@dataclass
class VirtualMediaInfo:
    """
    A point-in-time read of the virtual CD slot
    """

    connected_via: str
    image: str
    image_name: str
    inserted: bool
    media_types: List[str] = field(default_factory=list)
