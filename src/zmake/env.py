# env.py
from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from .errors import EnvFileError
from .model import ExecutionPolicy

# Base scope names, lowest priority first.
PROCESS_SCOPE = "process"
CLI_SCOPE = "cli"
GLOBAL_SCOPE = "global"

_EXPORT_RE = re.compile(r"""^export\s+([A-Za-z_][A-Za-z0-9_]*)=("[^"]*"|'[^']*'|[^\s'"]*)$""")
_REF_RE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}|\$([A-Za-z_][A-Za-z0-9_]*)|%([A-Za-z_][A-Za-z0-9_]*)%")


@dataclass
class Scope:
    name: str
    values: Dict[str, str] = field(default_factory=dict)


@dataclass
class Frame:
    """
    One level of the call chain: a section's OS block or an invoked block.

    `env` is the frame's declared (read-only) env; `runtime` collects
    variables exported by steps while the frame is active.
    """
    name: str
    env: Mapping[str, str] = field(default_factory=dict)
    policy: Optional[ExecutionPolicy] = None
    runtime: Dict[str, str] = field(default_factory=dict)


class EnvStack:
    """
    Layered variable scopes, low -> high priority:

      process < cli < global < frame env (outer .. inner) < runtime (outer .. inner)

    Runtime exports beat every declared scope; an inner export beats an
    outer one. Popping a frame drops its runtime layer with it.
    """

    def __init__(self, base: Iterable[Scope] = ()):
        self._base: List[Scope] = list(base)
        self._frames: List[Frame] = []

    @property
    def frames(self) -> Tuple[Frame, ...]:
        return tuple(self._frames)

    @property
    def depth(self) -> int:
        return len(self._frames)

    def push(self, name: str, env: Mapping[str, str] | None = None,
             policy: ExecutionPolicy | None = None) -> Frame:
        frame = Frame(name=name, env=dict(env or {}), policy=policy)
        self._frames.append(frame)
        return frame

    def pop(self) -> Frame:
        if not self._frames:
            raise RuntimeError("EnvStack.pop() on an empty stack")
        return self._frames.pop()

    def export(self, key: str, value: str) -> None:
        """Set a runtime variable in the innermost frame."""
        if not self._frames:
            raise RuntimeError("cannot export outside of a frame")
        self._frames[-1].runtime[key] = value

    def scopes(self) -> List[Scope]:
        """Every scope in priority order (lowest first)."""
        out = list(self._base)
        out.extend(Scope(f"{f.name}:env", dict(f.env)) for f in self._frames)
        out.extend(Scope(f"{f.name}:runtime", dict(f.runtime)) for f in self._frames)
        return out

    def resolve(self) -> Dict[str, str]:
        return fold_scopes(self.scopes())


def fold_scopes(scopes: Iterable[Scope]) -> Dict[str, str]:
    """Fold scopes low -> high; a higher scope overwrites same-key entries."""
    resolved: Dict[str, str] = {}
    for scope in scopes:
        resolved.update(scope.values)
    return resolved


def base_scopes(process_env: Mapping[str, str], cli_env: Mapping[str, str],
                global_env: Mapping[str, str]) -> List[Scope]:
    return [
        Scope(PROCESS_SCOPE, dict(process_env)),
        Scope(CLI_SCOPE, dict(cli_env)),
        Scope(GLOBAL_SCOPE, dict(global_env)),
    ]


# ----------------------------------------------------------------------
# KEY=VALUE input
# ----------------------------------------------------------------------

def parse_kv(text: str) -> Tuple[str, str]:
    """Split `KEY=VALUE` on the first '='."""
    key, sep, value = text.partition("=")
    if not sep:
        raise ValueError("expected KEY=VALUE")
    if not key:
        raise ValueError("key cannot be empty")
    return key, value


def parse_env_lines(content: str) -> Dict[str, str]:
    values: Dict[str, str] = {}
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep or not key:
            continue
        values[key.strip()] = value
    return values


def load_env_file(path: str | Path) -> Dict[str, str]:
    env_path = Path(path).expanduser()
    try:
        content = env_path.read_text(encoding="utf-8")
    except OSError as e:
        raise EnvFileError(f"cannot read env file {env_path}: {e.strerror or e}") from e
    return parse_env_lines(content)


# ----------------------------------------------------------------------
# Export detection / variable references
# ----------------------------------------------------------------------

def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def expand_refs(text: str, env: Mapping[str, str]) -> str:
    """Expand $NAME / ${NAME}; unknown references are left untouched."""
    def sub(m: re.Match) -> str:
        if m.group(3):
            return m.group(0)
        name = m.group(1) or m.group(2)
        return env.get(name, m.group(0))

    return _REF_RE.sub(sub, text)


def parse_export(command: str, env: Mapping[str, str]) -> Optional[Tuple[str, str]]:
    """
    Recognize `export NAME=VALUE`. Returns (NAME, expanded VALUE) or None.

    VALUE must be a single word or one quoted string; anything else
    (`export A=1 && make`) is an ordinary command.
    """
    m = _EXPORT_RE.match(command.strip())
    if not m:
        return None
    key, raw = m.group(1), m.group(2).strip()
    quoted_single = len(raw) >= 2 and raw[0] == raw[-1] == "'"
    value = _unquote(raw)
    if not quoted_single:
        value = expand_refs(value, env)
    return key, value


def referenced_vars(command: str, env: Mapping[str, str]) -> Dict[str, Optional[str]]:
    """Variables a command refers to ($X, ${X}, %X%) with their resolved values."""
    out: Dict[str, Optional[str]] = {}
    for m in _REF_RE.finditer(command):
        name = m.group(1) or m.group(2) or m.group(3)
        out.setdefault(name, env.get(name))
    return out
