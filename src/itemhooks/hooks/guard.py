"""Wrap an item mutation with its pre- and post-hooks."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Mapping, TypeVar

from .runner import HookRunner
from .types import HookExecutionResult, HookOperation


T = TypeVar("T")


@dataclass
class GuardedOutcome(Generic[T]):
    value: T
    pre_results: list[HookExecutionResult] = field(default_factory=list)
    post_results: list[HookExecutionResult] = field(default_factory=list)

    @property
    def post_failures(self) -> list[HookExecutionResult]:
        return [result for result in self.post_results if not result.succeeded]


def guarded_operation(
    runner: HookRunner,
    operation: HookOperation,
    target_path: str,
    mutation: Callable[[], T],
    *,
    item_id: str | None = None,
    metadata: Mapping[str, Any] | None = None,
    cancel_event: threading.Event | None = None,
    item_id_from: Callable[[T], str | None] | None = None,
) -> GuardedOutcome[T]:
    """Run pre-hooks, then ``mutation``, then post-hooks.

    ``PreHookFailed`` propagates and the mutation is never called. If the
    mutation raises, its exception propagates and post-hooks are skipped.
    ``item_id_from`` lets a create operation hand the new id to post-hooks.
    """
    pre_results = runner.run_pre_hooks(
        operation,
        target_path,
        metadata,
        item_id=item_id,
        cancel_event=cancel_event,
    )
    value = mutation()
    post_item_id = item_id
    if item_id_from is not None:
        post_item_id = item_id_from(value) or item_id
    post_results = runner.run_post_hooks(
        operation,
        target_path,
        metadata,
        item_id=post_item_id,
        cancel_event=cancel_event,
    )
    return GuardedOutcome(value=value, pre_results=pre_results, post_results=post_results)
