# errors.py
from __future__ import annotations

from dataclasses import dataclass, field


class ZMakeError(Exception):
    """Base class for every error the runner reports to the user."""


class ConfigError(ZMakeError):
    """The configuration is malformed. Raised before any step runs."""


class ResolutionError(ZMakeError):
    """A block reference is dangling or the invocation graph has a cycle."""


class EnvFileError(ZMakeError):
    """An --env-file could not be read."""


class UnsupportedPlatformError(ZMakeError):
    """The host is not one of linux / windows / macos."""


@dataclass
class ExecutionError(ZMakeError):
    """
    A step failed.

    Recorded in the run report; whether it stops the enclosing block or
    section is decided by the effective execution policy.
    """
    section: str
    path: tuple[str, ...]
    command: str
    exit_code: int | None
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        where = " > ".join(self.path) if self.path else self.section
        if self.exit_code is None:
            head = f"[{where}] step failed: {self.command}"
        else:
            head = f"[{where}] step failed (exit={self.exit_code}): {self.command}"
        lines = [head]
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)
