from __future__ import annotations

import pytest

from zmake.dispatch import detect_host, dispatch
from zmake.errors import UnsupportedPlatformError
from zmake.loader import load_config_data
from zmake.model import ExecutionPolicy
from zmake.policy import resolve_policy, should_continue

FF = ExecutionPolicy.FAIL_FAST
CF = ExecutionPolicy.CARRY_FORWARD


# ----------------------------------------------------------------------
# policy
# ----------------------------------------------------------------------

def test_hard_default_is_fail_fast():
    assert resolve_policy([]) is FF
    assert resolve_policy([None, None]) is FF


def test_global_default_applies_without_overrides():
    assert resolve_policy([None], CF) is CF


def test_innermost_override_wins():
    assert resolve_policy([CF, None, FF], CF) is FF
    assert resolve_policy([FF, CF, None], FF) is CF


@pytest.mark.parametrize(
    "policy, flag, expected",
    [(FF, False, False), (FF, True, True), (CF, False, True), (CF, True, True)],
)
def test_continue_on_error_only_relaxes(policy, flag, expected):
    assert should_continue(policy, flag) is expected


# ----------------------------------------------------------------------
# dispatch
# ----------------------------------------------------------------------

@pytest.mark.parametrize(
    "platform, expected",
    [("linux", "linux"), ("linux2", "linux"), ("darwin", "macos"), ("win32", "windows"), ("cygwin", "windows")],
)
def test_detect_host(platform, expected):
    assert detect_host(platform) == expected


def test_detect_host_unsupported():
    with pytest.raises(UnsupportedPlatformError, match="freebsd"):
        detect_host("freebsd13")


def test_no_override_keeps_dry_run_flag():
    plan = dispatch(None, False, host="linux")
    assert (plan.target, plan.dry_run, plan.forced_dry_run) == ("linux", False, False)
    assert dispatch(None, True, host="linux").dry_run is True


def test_same_os_override_does_not_force_dry_run():
    assert dispatch("linux", False, host="linux").dry_run is False


def test_os_mismatch_forces_dry_run():
    plan = dispatch("windows", False, host="linux")
    assert plan.target == "windows"
    assert plan.dry_run is True
    assert plan.forced_dry_run is True


def test_select_os_block():
    cfg = load_config_data({
        "tasks": {"build": {"linux": {"steps": ["make"]}, "windows": {"steps": ["nmake"]}}}
    })
    section = cfg.sections["build"]
    assert str(dispatch("windows", host="linux").select(section).steps[0]) == "nmake"
    assert dispatch("macos", host="macos").select(section) is None
