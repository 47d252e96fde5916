from __future__ import annotations

from typing import Dict, List

import pytest

from zmake.ui.console import Console, set_console


class FakeLauncher:
    """Records launched commands; exit codes come from `codes` (default 0)."""

    def __init__(self, codes: Dict[str, int] | None = None):
        self.codes = dict(codes or {})
        self.calls: List[tuple[str, dict]] = []

    def __call__(self, command, env, cwd, os_name) -> int:
        self.calls.append((command, dict(env)))
        return self.codes.get(command, 0)

    @property
    def commands(self) -> List[str]:
        return [c for c, _ in self.calls]

    def env_of(self, command: str) -> dict:
        for c, env in self.calls:
            if c == command:
                return env
        raise AssertionError(f"{command!r} was never launched")


@pytest.fixture(autouse=True)
def quiet_console():
    set_console(Console(verbosity=0, color=False))
    yield
    set_console(Console())


@pytest.fixture
def launcher():
    return FakeLauncher()


def linux(*steps, **config):
    """Shorthand for a section body with linux steps."""
    body = {"steps": list(steps)}
    if config:
        body["config"] = config
    return {"linux": body}
