"""
Runtime configuration for netspeed
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .errors import ConfigError
from .guard import default_pidfile
from .output import UNITS

TICK_SECONDS = 1.0


@dataclass
class Config:
    interface: Optional[str] = None
    all_interfaces: bool = False
    outfile: Optional[str] = None
    unit: Optional[str] = None
    pidfile: Path = field(default_factory=default_pidfile)
    tick: float = TICK_SECONDS

    @property
    def interfaces(self):
        """Names the sampler should restrict itself to, None for all"""
        if self.all_interfaces:
            return None
        return [self.interface]

    def validate(self, interface_list):
        """Check the configuration against the interfaces present on this host"""
        if self.all_interfaces and self.interface:
            raise ConfigError("the flags `-i, --interface' and `-a, --all' are mutually exclusive")
        if not self.all_interfaces and not self.interface:
            raise ConfigError("the required flag `-i, --interface' was not specified")
        if self.unit is not None and self.unit not in UNITS:
            raise ConfigError(f"unknown unit \"{self.unit}\"")

        if self.interface and self.interface not in interface_list:
            raise ConfigError(f"the specified interface \"{self.interface}\" does not exist")

        if self.outfile:
            self.outfile = os.path.abspath(self.outfile)
            check_writable_dir(os.path.dirname(self.outfile))


def check_writable_dir(path):
    if not os.path.isdir(path):
        raise ConfigError(f"the path \"{path}\" does not exist - please choose another path")
    if not os.access(path, os.W_OK):
        raise ConfigError(f"the path \"{path}\" is not writable - please choose another path")
