# dispatch.py
from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import Optional

from .errors import UnsupportedPlatformError
from .model import OPERATING_SYSTEMS, OSBlock, Section


def detect_host(platform: str | None = None) -> str:
    """Map sys.platform onto one of linux / windows / macos."""
    platform = platform if platform is not None else sys.platform
    if platform.startswith("linux"):
        return "linux"
    if platform == "darwin":
        return "macos"
    if platform in ("win32", "cygwin", "msys"):
        return "windows"
    raise UnsupportedPlatformError(f"unsupported OS detected: {platform}")


@dataclass(frozen=True)
class Dispatch:
    """
    The run's OS decision, made once.

    dry_run is forced on when the target OS differs from the host and can
    never be switched back off afterwards.
    """
    host: str
    target: str
    dry_run: bool

    @property
    def forced_dry_run(self) -> bool:
        return self.host != self.target

    def select(self, section: Section) -> Optional[OSBlock]:
        """The section's OS block for the target OS, or None if it has none."""
        return section.for_os(self.target)


def dispatch(os_override: str | None = None, dry_run: bool = False,
             host: str | None = None) -> Dispatch:
    host = host or detect_host()
    target = os_override or host
    if target not in OPERATING_SYSTEMS:
        raise UnsupportedPlatformError(f"unknown target OS: {target}")
    return Dispatch(host=host, target=target, dry_run=dry_run or target != host)
