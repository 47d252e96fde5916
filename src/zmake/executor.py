# executor.py
from __future__ import annotations

import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Mapping, Optional, Sequence

from .dag import BlockRegistry
from .env import EnvStack, parse_export, referenced_vars
from .errors import ExecutionError
from .model import Command, ExecutionPolicy, Invoke, Step
from .policy import resolve_policy, should_continue
from .ui.console import get_console

SUCCESS = "success"
FAILED = "failed"
EXPORTED = "exported"
DRY_RUN = "dry-run"

# (command, env, cwd, os) -> exit status
Launcher = Callable[[str, Mapping[str, str], Optional[Path], str], int]


def shell_launcher(command: str, env: Mapping[str, str], cwd: Optional[Path], os_name: str) -> int:
    """Run `command` through the platform shell and wait for it."""
    if os_name == "windows":
        argv = ["cmd", "/C", command]
    else:
        argv = ["sh", "-c", command]

    proc_env = dict(env)
    proc_env.setdefault("TERM", "xterm-256color")

    proc = subprocess.run(
        argv,
        cwd=str(cwd) if cwd is not None else None,
        env=proc_env,
        stdin=subprocess.DEVNULL,
    )
    return proc.returncode


@dataclass
class StepOutcome:
    section: str
    os: str
    path: tuple[str, ...]
    step: str
    status: str
    kind: str = "command"
    exit_code: Optional[int] = None
    error: Optional[ExecutionError] = None

    @property
    def failed(self) -> bool:
        return self.status == FAILED


@dataclass
class ExecutionContext:
    """
    Run state for one (section, OS block) pair.

    Created fresh per pair and discarded when its steps finish, so runtime
    exports never leak into a sibling section.
    """
    section: str
    os: str
    env: EnvStack
    dry_run: bool = False
    continue_on_error: bool = False
    default_policy: Optional[ExecutionPolicy] = None
    cwd: Optional[Path] = None
    outcomes: List[StepOutcome] = field(default_factory=list)

    @property
    def path(self) -> tuple[str, ...]:
        return tuple(f.name for f in self.env.frames)

    def policy(self) -> ExecutionPolicy:
        return resolve_policy((f.policy for f in self.env.frames), self.default_policy)

    def keeps_going(self) -> bool:
        return should_continue(self.policy(), self.continue_on_error)

    def record(self, step: Step, status: str, exit_code: Optional[int] = None,
               error: Optional[ExecutionError] = None) -> StepOutcome:
        outcome = StepOutcome(
            section=self.section,
            os=self.os,
            path=self.path,
            step=str(step),
            status=status,
            kind="invoke" if isinstance(step, Invoke) else "command",
            exit_code=exit_code,
            error=error,
        )
        self.outcomes.append(outcome)
        return outcome


class StepExecutor:
    """Runs steps in declared order, recursing into invoked blocks."""

    def __init__(self, registry: BlockRegistry, launcher: Launcher = shell_launcher):
        self.registry = registry
        self.launcher = launcher

    def run_steps(self, ctx: ExecutionContext, steps: Sequence[Step]) -> bool:
        """
        Run `steps` in the current (innermost) frame.

        Returns True if every step succeeded. Under fail-fast the first
        failure stops the remaining steps; under carry-forward it is
        recorded and the next step runs, but the result is still False.
        """
        ok = True
        for step in steps:
            if self.run_step(ctx, step):
                continue
            ok = False
            if not ctx.keeps_going():
                break
        return ok

    def run_step(self, ctx: ExecutionContext, step: Step) -> bool:
        if isinstance(step, Invoke):
            return self._invoke(ctx, step)
        if isinstance(step, Command):
            return self._command(ctx, step)
        raise TypeError(f"unknown step type: {type(step).__name__}")

    # ------------------------------------------------------------------

    def _command(self, ctx: ExecutionContext, step: Command) -> bool:
        console = get_console()
        env = ctx.env.resolve()
        console.print_command(step.text)
        console.print_vars(referenced_vars(step.text, env))
        console.print_env(env)

        if ctx.dry_run:
            ctx.record(step, DRY_RUN)
            return True

        exported = parse_export(step.text, env)
        if exported is not None:
            key, value = exported
            ctx.env.export(key, value)
            console.print_export(key, value)
            ctx.record(step, EXPORTED)
            return True

        try:
            code = self.launcher(step.text, env, ctx.cwd, ctx.os)
        except OSError as e:
            error = ExecutionError(
                section=ctx.section,
                path=ctx.path,
                command=step.text,
                exit_code=None,
                details={"spawn_error": str(e)},
            )
            ctx.record(step, FAILED, error=error)
            console.print_failure(step.text, str(e), carried=ctx.keeps_going())
            return False

        if code == 0:
            ctx.record(step, SUCCESS, exit_code=0)
            return True

        error = ExecutionError(section=ctx.section, path=ctx.path, command=step.text, exit_code=code)
        ctx.record(step, FAILED, exit_code=code, error=error)
        console.print_failure(step.text, str(error), exit_code=code, carried=ctx.keeps_going())
        return False

    def _invoke(self, ctx: ExecutionContext, step: Invoke) -> bool:
        console = get_console()
        body = self.registry.lookup(step.block, ctx.os)
        if body is None:
            console.print_block_skipped(step.block, ctx.os)
            ctx.record(step, DRY_RUN if ctx.dry_run else SUCCESS)
            return True

        depth = ctx.env.depth
        ctx.env.push(step.block, body.config.env, body.config.policy)
        console.print_block_enter(step.block, depth)
        try:
            ok = self.run_steps(ctx, body.steps)
        finally:
            ctx.env.pop()

        status = SUCCESS if ok else FAILED
        if ok and ctx.dry_run:
            status = DRY_RUN
        console.print_block_leave(step.block, depth, status)

        if ok:
            ctx.record(step, status)
            return True

        error = ExecutionError(
            section=ctx.section,
            path=ctx.path + (step.block,),
            command=str(step),
            exit_code=None,
            details={"reason": "a step inside the block failed"},
        )
        ctx.record(step, FAILED, error=error)
        return False
