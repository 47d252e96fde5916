"""Console output formatting utilities for zmake."""

from __future__ import annotations

from typing import Mapping, Optional

import click

QUIET, INFO, DEBUG, TRACE, DUMP = -1, 0, 1, 2, 3


class Console:
    """Centralized console output formatting."""

    def __init__(self, verbosity: int = INFO, color: Optional[bool] = None):
        """
        Initialize console formatter.

        Args:
            verbosity: 0 = normal, 1 = -v (plan, exports, blocks),
                       2 = -vv (variables used by each command),
                       3 = -vvv (full environment, tracebacks)
            color: force styling on/off; None lets click decide per stream
        """
        self.verbosity = verbosity
        self.color = color

    @property
    def debug(self) -> bool:
        return self.verbosity >= DUMP

    def _out(self, message: str = "", *, err: bool = False, level: int = INFO, **style) -> None:
        if self.verbosity < level:
            return
        if style:
            message = click.style(message, **style)
        click.echo(message, err=err, color=self.color)

    def print_run_started(
        self,
        config_file: str,
        host: str,
        target: str,
        sections: list[str],
        dry_run: bool,
    ) -> None:
        """Print run start information."""
        self._out("\nRUN STARTED", bold=True)
        self._out(f"Config: {config_file}")
        self._out(f"OS: {target}" + (f" (host: {host})" if host != target else ""))
        self._out(f"Sections: {', '.join(sections) if sections else '(none)'}")
        if dry_run:
            self._out("Mode: dry-run")
        self._out()

    def print_os_override(self, host: str, target: str) -> None:
        self._out(
            f"Overriding detected OS '{host}' with user-specified OS '{target}'. "
            "Forcing dry-run mode.",
            err=True,
            fg="yellow",
        )

    def print_plan_selected(self, name: str, reason: str) -> None:
        """Print section selection plan."""
        self._out(f"  ✓ {name} ({reason})", level=DEBUG)

    def print_plan_skipped(self, name: str, reason: str) -> None:
        """Print section skipped in plan."""
        self._out(f"  ⏭ {name} ({reason})", level=DEBUG)

    def print_section(self, name: str) -> None:
        self._out(f"----- [{name}] -----", fg="blue")

    def print_no_os_block(self, section: str, os_name: str) -> None:
        self._out(f"no {os_name} steps in {section}", level=DEBUG)

    def print_block_enter(self, name: str, depth: int) -> None:
        self._out(f"{'  ' * depth}> block {name}", level=DEBUG)

    def print_block_leave(self, name: str, depth: int, status: str) -> None:
        self._out(f"{'  ' * depth}< block {name} ({status})", level=DEBUG)

    def print_block_skipped(self, name: str, os_name: str) -> None:
        self._out(f"block {name} has no {os_name} steps", level=DEBUG)

    def print_command(self, command: str) -> None:
        self._out(f"$ {command}", fg="cyan")

    def print_export(self, key: str, value: str) -> None:
        self._out(f"  export {key}={value}", level=DEBUG)

    def print_vars(self, variables: Mapping[str, Optional[str]]) -> None:
        """Variables a command refers to (-vv)."""
        for key, value in variables.items():
            shown = "<unset>" if value is None else value
            self._out(f"    {key}={shown}", level=TRACE)

    def print_env(self, env: Mapping[str, str]) -> None:
        """Full resolved environment (-vvv)."""
        for key in sorted(env):
            self._out(f"    [env] {key}={env[key]}", level=DUMP)

    def print_failure(
        self,
        command: str,
        reason: str,
        exit_code: Optional[int] = None,
        carried: bool = False,
    ) -> None:
        """
        Print step failure message.

        Args:
            command: Command text that failed
            reason: Failure reason/error message
            exit_code: Optional exit code
            carried: True if the policy lets the run continue past it
        """
        self._out(f"STEP FAILED: {command}", err=True, fg="red")
        if exit_code is not None:
            self._out(f"Exit code: {exit_code}", err=True)
        if reason and self.verbosity >= DEBUG:
            self._out(f"Error details: {reason}", err=True)
        if carried:
            self._out("Continuing (carry-forward)", err=True, fg="yellow")

    def print_results(self, results: Mapping[str, str]) -> None:
        """Print final results summary."""
        self._out("\n" + "=" * 40)
        self._out("RESULTS")
        self._out("=" * 40)
        if not results:
            self._out("  (nothing to run)")
        for section, status in results.items():
            fg = {"failed": "red", "not run": "yellow"}.get(status, "green")
            self._out(f"  {section}: {status.upper()}", fg=fg)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        self._out(f"\nERROR: {title}", err=True, level=QUIET, fg="red", bold=True)
        self._out(message, err=True, level=QUIET)
        if details:
            for detail in details:
                self._out(f"  {detail}", err=True, level=QUIET)
        if suggestion:
            self._out(f"\n{suggestion}", err=True, level=QUIET)

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            click.echo("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)), err=True)
        else:
            self._out(f"Error: {exc}", err=True, level=QUIET, fg="red")

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._out(message)

    def print_success(self, message: str) -> None:
        self._out(message, fg="green")


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
