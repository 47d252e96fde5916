# policy.py
from __future__ import annotations

from typing import Iterable, Optional

from .model import ExecutionPolicy

HARD_DEFAULT = ExecutionPolicy.FAIL_FAST


def resolve_policy(
    overrides: Iterable[Optional[ExecutionPolicy]],
    default_policy: Optional[ExecutionPolicy] = None,
) -> ExecutionPolicy:
    """
    Nearest non-empty override, walking from the innermost scope outward.

    `overrides` is ordered outer -> inner (the order frames are pushed).
    Falls back to the global default, then to FAIL_FAST.
    """
    for policy in reversed(list(overrides)):
        if policy is not None:
            return policy
    if default_policy is not None:
        return default_policy
    return HARD_DEFAULT


def should_continue(policy: ExecutionPolicy, continue_on_error: bool = False) -> bool:
    """
    True if a failure at this scope lets the next step run.

    --continue-on-error ORs with the resolved policy at every level; it can
    only make the decision more lenient.
    """
    return continue_on_error or policy is ExecutionPolicy.CARRY_FORWARD
