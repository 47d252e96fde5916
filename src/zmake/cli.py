# cli.py
from __future__ import annotations

import sys
from pathlib import Path

import click

from zmake import __version__
from zmake.env import load_env_file, parse_kv
from zmake.errors import ConfigError, EnvFileError, ResolutionError, ZMakeError
from zmake.loader import DEFAULT_CONFIG_FILE, load_config
from zmake.model import OPERATING_SYSTEMS, SECTIONS
from zmake.runner import RunOptions, run
from zmake.ui.console import Console, get_console, set_console


def _parse_env_option(ctx, param, values):
    out = []
    for value in values:
        try:
            out.append(parse_kv(value))
        except ValueError as e:
            raise click.BadParameter(f"{value!r}: {e}", ctx=ctx, param=param)
    return out


def resolve_config_file(file_arg: str) -> Path:
    """
    Resolve the config path or exit with a structured error.
    """
    console = get_console()
    config_path = Path(file_arg)
    if not config_path.exists():
        console.print_error(
            "Config file not found",
            f"Could not find config file: {file_arg}",
            suggestion=f"Create a {DEFAULT_CONFIG_FILE} or pass a path:\n  zmake path/to/ZMake.yml",
        )
        sys.exit(1)
    return config_path


ERROR_TITLES = {
    ConfigError: "Invalid configuration",
    ResolutionError: "Block resolution failed",
    EnvFileError: "Cannot read env file",
}


@click.command()
@click.argument("file", default=DEFAULT_CONFIG_FILE, required=False)
@click.option(
    "--cwd",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Working directory to run commands in (defaults to the current directory)",
)
@click.option(
    "--os",
    "os_name",
    type=click.Choice(OPERATING_SYSTEMS, case_sensitive=False),
    default=None,
    help="Override the detected OS. A different OS forces --dry-run.",
)
@click.option(
    "--section",
    "sections",
    multiple=True,
    type=click.Choice(SECTIONS, case_sensitive=False),
    help="Run only these sections (repeatable). The only way to run clean or skipped sections.",
)
@click.option("--continue-on-error", is_flag=True, default=False, help="Keep going after failed steps")
@click.option("--dry-run", is_flag=True, default=False, help="Print the commands without executing them")
@click.option(
    "--env",
    "envs",
    multiple=True,
    metavar="KEY=VALUE",
    callback=_parse_env_option,
    help="Extra environment variable for commands (repeatable)",
)
@click.option(
    "--env-file",
    default=None,
    metavar="FILE",
    help="Load extra environment variables from a KEY=VALUE file",
)
@click.option("-v", "--verbose", count=True, help="Increase verbosity (-v, -vv, -vvv)")
@click.version_option(__version__, prog_name="zmake")
def cli(file, cwd, os_name, sections, continue_on_error, dry_run, envs, env_file, verbose):
    """zmake: run the build/deploy sections of a ZMake.yml, in order."""
    console = Console(verbosity=verbose)
    set_console(console)

    config_path = resolve_config_file(file)

    try:
        config = load_config(config_path)

        extra_env = dict(envs)
        if env_file:
            # same scope as --env; file values are applied after --env
            extra_env.update(load_env_file(env_file))

        options = RunOptions(
            os=os_name.lower() if os_name else None,
            cwd=cwd.resolve() if cwd else None,
            env=extra_env,
            sections=[s.lower() for s in sections],
            continue_on_error=continue_on_error,
            dry_run=dry_run,
            config_file=str(config_path),
        )

        report = run(config, options)

    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except ZMakeError as e:
        title = next((t for cls, t in ERROR_TITLES.items() if isinstance(e, cls)), "Run aborted")
        console.print_error(title, str(e))
        if console.debug:
            console.print_exception(e)
        sys.exit(1)

    console.print_results(report.results)

    if report.failed:
        console.print_error(
            "Run failed",
            f"{len(report.failures)} step(s) failed",
            details=[str(f) for f in report.failures],
        )
        sys.exit(report.exit_code)

    console.print_success("All tasks completed successfully.")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
