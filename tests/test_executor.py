from __future__ import annotations

from conftest import FakeLauncher
from zmake.dag import BlockRegistry
from zmake.env import EnvStack, base_scopes
from zmake.executor import DRY_RUN, EXPORTED, FAILED, SUCCESS, ExecutionContext, StepExecutor
from zmake.model import Block, BlockConfig, Command, ExecutionPolicy, Invoke

CF = ExecutionPolicy.CARRY_FORWARD
FF = ExecutionPolicy.FAIL_FAST


def _ctx(dry_run=False, continue_on_error=False, policy=None, env=None):
    ctx = ExecutionContext(
        section="build",
        os="linux",
        env=EnvStack(base_scopes({"HOME": "/home/u"}, {}, {})),
        dry_run=dry_run,
        continue_on_error=continue_on_error,
    )
    ctx.env.push("build", env or {}, policy)
    return ctx


def _cmds(*texts):
    return [Command(t) for t in texts]


def test_commands_run_in_order(launcher):
    executor = StepExecutor(BlockRegistry([]), launcher)
    ctx = _ctx()
    assert executor.run_steps(ctx, _cmds("one", "two", "three")) is True
    assert launcher.commands == ["one", "two", "three"]
    assert [o.status for o in ctx.outcomes] == [SUCCESS] * 3


def test_fail_fast_stops_at_first_failure():
    launcher = FakeLauncher({"two": 2})
    ctx = _ctx()
    ok = StepExecutor(BlockRegistry([]), launcher).run_steps(ctx, _cmds("one", "two", "three"))
    assert ok is False
    assert launcher.commands == ["one", "two"]
    failed = ctx.outcomes[-1]
    assert failed.status == FAILED
    assert failed.exit_code == 2
    assert failed.error.command == "two"


def test_carry_forward_continues_but_reports_failure():
    launcher = FakeLauncher({"two": 1})
    ctx = _ctx(policy=CF)
    ok = StepExecutor(BlockRegistry([]), launcher).run_steps(ctx, _cmds("one", "two", "three"))
    assert ok is False
    assert launcher.commands == ["one", "two", "three"]
    assert [o.status for o in ctx.outcomes] == [SUCCESS, FAILED, SUCCESS]


def test_continue_on_error_overrides_fail_fast():
    launcher = FakeLauncher({"one": 1})
    ctx = _ctx(continue_on_error=True, policy=FF)
    StepExecutor(BlockRegistry([]), launcher).run_steps(ctx, _cmds("one", "two"))
    assert launcher.commands == ["one", "two"]


def test_spawn_error_is_a_failure():
    def broken(command, env, cwd, os_name):
        raise FileNotFoundError("sh")

    ctx = _ctx()
    assert StepExecutor(BlockRegistry([]), broken).run_steps(ctx, _cmds("x", "y")) is False
    assert len(ctx.outcomes) == 1
    assert ctx.outcomes[0].error.details["spawn_error"] == "sh"


def test_export_is_intercepted_and_visible_to_later_steps(launcher):
    ctx = _ctx(env={"ROOT": "/src"})
    StepExecutor(BlockRegistry([]), launcher).run_steps(
        ctx, _cmds("export OUT=$ROOT/out", "make -C $OUT")
    )
    assert launcher.commands == ["make -C $OUT"]
    assert launcher.env_of("make -C $OUT")["OUT"] == "/src/out"
    assert ctx.outcomes[0].status == EXPORTED


def test_dry_run_launches_nothing_and_exports_nothing(launcher):
    ctx = _ctx(dry_run=True)
    block = Block.simple("inner", _cmds("echo inner"))
    executor = StepExecutor(BlockRegistry([block]), launcher)
    ok = executor.run_steps(ctx, [Command("export A=1"), Invoke("inner"), Command("echo $A")])
    assert ok is True
    assert launcher.calls == []
    assert ctx.env.resolve().get("A") is None
    assert [o.step for o in ctx.outcomes] == ["export A=1", "echo inner", "block:inner", "echo $A"]
    assert {o.status for o in ctx.outcomes} == {DRY_RUN}


def test_block_exports_visible_inside_and_gone_after(launcher):
    registry = BlockRegistry([
        Block.simple("setup", _cmds("export TOKEN=abc", "use-inside")),
    ])
    ctx = _ctx()
    StepExecutor(registry, launcher).run_steps(
        ctx, [Command("before"), Invoke("setup"), Command("after")]
    )
    assert "TOKEN" not in launcher.env_of("before")
    assert launcher.env_of("use-inside")["TOKEN"] == "abc"
    assert "TOKEN" not in launcher.env_of("after")
    assert ctx.env.depth == 1


def test_export_reaches_nested_invocations(launcher):
    registry = BlockRegistry([
        Block.simple("outer", [Command("export STAGE=outer"), Invoke("inner")]),
        Block.simple("inner", _cmds("show-stage")),
    ])
    StepExecutor(registry, launcher).run_steps(_ctx(), [Invoke("outer")])
    assert launcher.env_of("show-stage")["STAGE"] == "outer"


def test_block_env_and_policy_are_scoped(launcher):
    launcher.codes["bad"] = 1
    registry = BlockRegistry([
        Block.simple("lenient", _cmds("bad", "after-bad"), BlockConfig(policy=CF, env={"WHO": "block"})),
    ])
    ctx = _ctx(env={"WHO": "section"})
    ok = StepExecutor(registry, launcher).run_steps(ctx, [Invoke("lenient"), Command("next")])

    # the block carries forward internally...
    assert launcher.env_of("after-bad")["WHO"] == "block"
    # ...but its failed invocation still trips the section's fail-fast
    assert "next" not in launcher.commands
    assert ok is False
    assert ctx.outcomes[-1].step == "block:lenient"
    assert ctx.outcomes[-1].status == FAILED


def test_block_fail_fast_inside_carry_forward_section(launcher):
    launcher.codes["bad"] = 1
    registry = BlockRegistry([Block.simple("strict", _cmds("bad", "skipped"), BlockConfig(policy=FF))])
    ctx = _ctx(policy=CF)
    StepExecutor(registry, launcher).run_steps(ctx, [Invoke("strict"), Command("next")])
    assert launcher.commands == ["bad", "next"]


def test_os_specific_block_without_body_is_a_no_op(launcher):
    from types import MappingProxyType
    from zmake.model import OSBlock

    block = Block(name="win-only", platforms=MappingProxyType({"windows": OSBlock(steps=(Command("dir"),))}))
    ctx = _ctx()
    assert StepExecutor(BlockRegistry([block]), launcher).run_steps(ctx, [Invoke("win-only")]) is True
    assert launcher.calls == []
    assert ctx.outcomes[0].status == SUCCESS


def test_outcome_path_tracks_call_chain(launcher):
    registry = BlockRegistry([
        Block.simple("a", [Invoke("b")]),
        Block.simple("b", _cmds("leaf")),
    ])
    ctx = _ctx()
    StepExecutor(registry, launcher).run_steps(ctx, [Invoke("a")])
    leaf = ctx.outcomes[0]
    assert leaf.step == "leaf"
    assert leaf.path == ("build", "a", "b")
