# schedule.py
from __future__ import annotations

from typing import Iterable, List, Optional

from .errors import ConfigError
from .model import SECTIONS, Config
from .ui.console import get_console


def plan_sections(
    config: Config,
    requested: Optional[Iterable[str]] = None,
    *,
    print_plan: bool = True,
) -> List[str]:
    """
    Ordered list of sections to run.

    - With explicit `requested` sections: canonical order ∩ requested ∩ present.
      This is the only way `clean` or a skip_sections member runs.
    - Otherwise: present sections minus skip_sections (which always holds `clean`).
    """
    console = get_console()
    requested_set = set(requested or [])
    unknown = sorted(requested_set - set(SECTIONS))
    if unknown:
        raise ConfigError(f"unknown section(s) requested: {unknown}. Known: {list(SECTIONS)}")

    skip = set(config.settings.skip_sections) | {"clean"}
    present = config.present_sections()
    selected: List[str] = []

    for name in SECTIONS:
        if name not in present:
            if print_plan and name in requested_set:
                console.print_plan_skipped(name, "not defined in config")
            continue

        if requested_set:
            if name in requested_set:
                selected.append(name)
                if print_plan:
                    console.print_plan_selected(name, "requested")
            elif print_plan:
                console.print_plan_skipped(name, "not requested")
            continue

        if name in skip:
            if print_plan:
                console.print_plan_skipped(name, "skip_sections; use --section to run it")
            continue

        selected.append(name)
        if print_plan:
            console.print_plan_selected(name, "default")

    return selected
