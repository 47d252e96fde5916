# runner.py
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from .dag import BlockRegistry
from .dispatch import Dispatch, dispatch
from .env import EnvStack, base_scopes
from .errors import ExecutionError
from .executor import (
    DRY_RUN,
    FAILED,
    SUCCESS,
    ExecutionContext,
    Launcher,
    StepExecutor,
    StepOutcome,
    shell_launcher,
)
from .model import Config
from .schedule import plan_sections
from .ui.console import get_console

NOT_RUN = "not run"


@dataclass
class RunOptions:
    """Everything the CLI decides about a run."""
    os: Optional[str] = None
    cwd: Optional[Path] = None
    env: Dict[str, str] = field(default_factory=dict)
    sections: List[str] = field(default_factory=list)
    continue_on_error: bool = False
    dry_run: bool = False
    process_env: Optional[Mapping[str, str]] = None
    config_file: str = ""


@dataclass
class RunReport:
    dispatch: Dispatch
    sections: List[str] = field(default_factory=list)
    outcomes: List[StepOutcome] = field(default_factory=list)
    results: Dict[str, str] = field(default_factory=dict)

    @property
    def failed(self) -> bool:
        return any(o.failed for o in self.outcomes)

    @property
    def failures(self) -> List[ExecutionError]:
        # Block invocations repeat their inner failure; keep the leaf ones.
        return [
            o.error for o in self.outcomes
            if o.failed and o.error is not None and o.kind != "invoke"
        ]

    @property
    def exit_code(self) -> int:
        return 1 if self.failed else 0


def run(
    config: Config,
    options: RunOptions | None = None,
    *,
    launcher: Launcher = shell_launcher,
    host: str | None = None,
) -> RunReport:
    """
    Run the applicable sections of `config`.

    The block graph is validated before anything runs; ResolutionError or
    ConfigError propagate with zero steps executed. Step failures never
    raise: they land in the returned report.
    """
    options = options or RunOptions()
    console = get_console()

    registry = BlockRegistry.from_config(config)
    plan = dispatch(options.os, options.dry_run, host=host)
    if plan.forced_dry_run:
        console.print_os_override(plan.host, plan.target)

    sections = plan_sections(config, options.sections)
    report = RunReport(dispatch=plan, sections=sections)
    console.print_run_started(
        config_file=options.config_file,
        host=plan.host,
        target=plan.target,
        sections=sections,
        dry_run=plan.dry_run,
    )

    process_env = options.process_env if options.process_env is not None else dict(os.environ)
    executor = StepExecutor(registry, launcher)

    aborted = False
    for name in sections:
        if aborted:
            report.results[name] = NOT_RUN
            continue

        body = plan.select(config.sections[name])
        if body is None:
            console.print_no_os_block(name, plan.target)
            continue

        console.print_section(name)
        ctx = ExecutionContext(
            section=name,
            os=plan.target,
            env=EnvStack(base_scopes(process_env, options.env, config.settings.default_env)),
            dry_run=plan.dry_run,
            continue_on_error=options.continue_on_error,
            default_policy=config.settings.default_policy,
            cwd=options.cwd,
        )
        ctx.env.push(name, body.config.env, body.config.policy)
        try:
            ok = executor.run_steps(ctx, body.steps)
            carry = ctx.keeps_going()
        finally:
            ctx.env.pop()

        report.outcomes.extend(ctx.outcomes)
        if not ok:
            report.results[name] = FAILED
            # fail-fast at section level stops the remaining sections too
            aborted = not carry
        elif plan.dry_run:
            report.results[name] = DRY_RUN
        else:
            report.results[name] = SUCCESS

    return report
