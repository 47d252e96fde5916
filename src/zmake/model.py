# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple, Union

# Canonical phase order. Never taken from file order.
SECTIONS: Tuple[str, ...] = (
    "prebuild",
    "build",
    "postbuild",
    "test",
    "predeploy",
    "deploy",
    "postdeploy",
    "clean",
)

OPERATING_SYSTEMS: Tuple[str, ...] = ("windows", "linux", "macos")

# Key used for blocks that are not OS-specific.
ANY_OS = "*"


class ExecutionPolicy(str, Enum):
    FAIL_FAST = "fail_fast"
    CARRY_FORWARD = "carry_forward"

    @classmethod
    def parse(cls, value: str) -> "ExecutionPolicy":
        """Accepts fail_fast / FailFast / fail-fast (and the same for carry_forward)."""
        key = str(value).strip().lower().replace("-", "").replace("_", "")
        for policy in cls:
            if policy.value.replace("_", "") == key:
                return policy
        raise ValueError(f"invalid execution policy: {value!r}")


@dataclass(frozen=True)
class Command:
    """A literal shell command."""
    text: str

    def __str__(self) -> str:
        return self.text


@dataclass(frozen=True)
class Invoke:
    """A reference to a named Block."""
    block: str

    def __str__(self) -> str:
        return f"block:{self.block}"


Step = Union[Command, Invoke]


@dataclass(frozen=True)
class BlockConfig:
    policy: Optional[ExecutionPolicy] = None
    env: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class OSBlock:
    """The step list of a section (or block) for one operating system."""
    steps: Tuple[Step, ...] = ()
    config: BlockConfig = field(default_factory=BlockConfig)

    def invoked(self) -> Tuple[str, ...]:
        return tuple(s.block for s in self.steps if isinstance(s, Invoke))


@dataclass(frozen=True)
class Section:
    name: str
    platforms: Mapping[str, OSBlock] = field(default_factory=dict)

    def for_os(self, os_name: str) -> Optional[OSBlock]:
        return self.platforms.get(os_name)


@dataclass(frozen=True)
class Block:
    """
    A named, reusable routine.

    `platforms` holds either a single ANY_OS body, or one body per OS for
    platform-specific blocks.
    """
    name: str
    platforms: Mapping[str, OSBlock] = field(default_factory=dict)

    @classmethod
    def simple(cls, name: str, steps, config: BlockConfig | None = None) -> "Block":
        body = OSBlock(steps=tuple(steps), config=config or BlockConfig())
        return cls(name=name, platforms=MappingProxyType({ANY_OS: body}))

    def for_os(self, os_name: str) -> Optional[OSBlock]:
        if ANY_OS in self.platforms:
            return self.platforms[ANY_OS]
        return self.platforms.get(os_name)

    def invoked(self) -> Tuple[str, ...]:
        """Every block referenced by any of this block's bodies."""
        seen: Dict[str, None] = {}
        for body in self.platforms.values():
            for name in body.invoked():
                seen.setdefault(name, None)
        return tuple(seen)


@dataclass(frozen=True)
class GlobalSettings:
    skip_sections: frozenset = frozenset({"clean"})
    default_policy: Optional[ExecutionPolicy] = None
    default_env: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # clean only runs when asked for explicitly
        if "clean" not in self.skip_sections:
            object.__setattr__(self, "skip_sections", frozenset(self.skip_sections) | {"clean"})


@dataclass(frozen=True)
class Config:
    """Normalized configuration. Read-only once loaded."""
    sections: Mapping[str, Section] = field(default_factory=dict)
    blocks: Tuple[Block, ...] = ()
    settings: GlobalSettings = field(default_factory=GlobalSettings)

    def present_sections(self) -> Tuple[str, ...]:
        return tuple(name for name in SECTIONS if name in self.sections)
