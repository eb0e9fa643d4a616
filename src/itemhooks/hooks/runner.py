"""Hook execution runner."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping
from uuid import uuid4

from .context import build_context
from .errors import ExecutorError, HookCancelled, PreHookFailed
from .executor import HookExecutor
from .history import HookExecutionRecord, HookHistory
from .store import HookConfigStore
from .types import HookContext, HookDefinition, HookExecutionResult, HookOperation, Phase


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 30.0


class RunState(str, Enum):
    NOT_STARTED = "not_started"
    MATCHING = "matching"
    EXECUTING = "executing"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass
class HookRun:
    """State of one phase of one operation."""

    operation: HookOperation
    phase: Phase
    target_path: str
    state: RunState = RunState.NOT_STARTED
    context: HookContext | None = None
    matched: list[HookDefinition] = field(default_factory=list)
    results: list[HookExecutionResult] = field(default_factory=list)
    blocked_by: HookExecutionResult | None = None
    cancelled: bool = False
    background: list[Future[HookExecutionResult]] = field(default_factory=list)

    @property
    def aborted(self) -> bool:
        return self.state is RunState.ABORTED

    def _advance(self, state: RunState) -> None:
        logger.debug("Hook run %s:%s %s -> %s", self.phase.value, self.operation, self.state.value, state.value)
        self.state = state


def _failed_result(definition: HookDefinition, exc: ExecutorError) -> HookExecutionResult:
    return HookExecutionResult(
        definition_id=definition.id,
        exit_status=-1,
        stderr=str(exc),
        command=definition.command,
        error=str(exc),
        execution_id=uuid4().hex,
        started_at=datetime.now().astimezone(),
    )


class HookRunner:
    def __init__(
        self,
        store: HookConfigStore,
        executor: HookExecutor | None = None,
        *,
        default_timeout: float = DEFAULT_TIMEOUT_S,
        history: HookHistory | None = None,
        background_workers: int = 2,
    ) -> None:
        self.store = store
        self.executor = executor or HookExecutor()
        self.default_timeout = default_timeout
        self.history = history
        self.background_workers = max(background_workers, 1)
        self._pool: ThreadPoolExecutor | None = None
        self._pool_lock = threading.Lock()
        self._shutdown_event = threading.Event()

    def run_pre_hooks(
        self,
        operation: HookOperation,
        target_path: str,
        metadata: Mapping[str, Any] | None = None,
        *,
        item_id: str | None = None,
        cancel_event: threading.Event | None = None,
    ) -> list[HookExecutionResult]:
        run = self.run(Phase.PRE, operation, target_path, metadata, item_id=item_id, cancel_event=cancel_event)
        if run.cancelled:
            raise HookCancelled(f"{operation} 已取消，pre-hook 未完成")
        if run.blocked_by is not None:
            raise PreHookFailed(run.blocked_by.definition_id, run.blocked_by)
        return run.results

    def run_post_hooks(
        self,
        operation: HookOperation,
        target_path: str,
        metadata: Mapping[str, Any] | None = None,
        *,
        item_id: str | None = None,
        cancel_event: threading.Event | None = None,
    ) -> list[HookExecutionResult]:
        run = self.run(Phase.POST, operation, target_path, metadata, item_id=item_id, cancel_event=cancel_event)
        return run.results

    def run(
        self,
        phase: Phase,
        operation: HookOperation,
        target_path: str,
        metadata: Mapping[str, Any] | None = None,
        *,
        item_id: str | None = None,
        cancel_event: threading.Event | None = None,
    ) -> HookRun:
        run = HookRun(operation=operation, phase=phase, target_path=target_path)
        run.context = build_context(operation, phase, target_path, item_id=item_id, metadata=metadata)

        run._advance(RunState.MATCHING)
        run.matched = self.store.find_matching(operation, phase, target_path)
        if not run.matched:
            run._advance(RunState.COMPLETED)
            return run

        logger.debug("Running %s %s-hooks for %s (%s)", len(run.matched), phase.value, operation, target_path)
        run._advance(RunState.EXECUTING)
        for definition in run.matched:
            if cancel_event is not None and cancel_event.is_set():
                run.cancelled = True
                break
            if definition.background and phase is Phase.POST:
                run.background.append(self._submit_background(definition, run.context))
                continue

            result = self._execute(definition, run.context, cancel_event)
            run.results.append(result)
            if result.cancelled:
                run.cancelled = True
                break
            if result.succeeded:
                continue
            if phase is Phase.PRE:
                run.blocked_by = result
                logger.info(
                    "Pre-hook %s 阻擋 %s（%s）",
                    definition.id,
                    operation,
                    target_path,
                    extra={"hook_id": definition.id, "execution_id": result.execution_id},
                )
                break
            logger.warning(
                "Post-hook %s 失敗（exit=%s timed_out=%s）：%s",
                definition.id,
                result.exit_status,
                result.timed_out,
                (result.error or result.stderr).strip(),
            )

        run._advance(RunState.ABORTED if run.cancelled or run.blocked_by is not None else RunState.COMPLETED)
        return run

    def _timeout_for(self, definition: HookDefinition) -> float:
        return definition.timeout if definition.timeout is not None else self.default_timeout

    def _execute(
        self,
        definition: HookDefinition,
        context: HookContext,
        cancel_event: threading.Event | None,
    ) -> HookExecutionResult:
        try:
            result = self.executor.execute(definition, context, self._timeout_for(definition), cancel_event=cancel_event)
        except ExecutorError as exc:
            logger.error("Hook %s 無法執行：%s", definition.id, exc, extra={"hook_id": definition.id})
            result = _failed_result(definition, exc)
        self._record(definition, context, result)
        return result

    def _record(self, definition: HookDefinition, context: HookContext, result: HookExecutionResult) -> None:
        if self.history is None:
            return
        blocked = context.phase is Phase.PRE and not result.succeeded and not result.cancelled
        self.history.append(HookExecutionRecord.from_result(definition, context, result, blocked_operation=blocked))

    def _submit_background(self, definition: HookDefinition, context: HookContext) -> Future[HookExecutionResult]:
        def _task() -> HookExecutionResult:
            result = self._execute(definition, context, self._shutdown_event)
            if not result.succeeded:
                logger.debug("Background post-hook %s 失敗（exit=%s）", definition.id, result.exit_status)
            return result

        # shutdown detaches the pool under the same lock
        with self._pool_lock:
            if self._pool is None:
                self._pool = ThreadPoolExecutor(
                    max_workers=self.background_workers,
                    thread_name_prefix="itemhooks-background",
                )
            return self._pool.submit(_task)

    def shutdown(self, *, cancel: bool = True) -> None:
        """Stop background post-hooks; ``cancel`` kills the ones still running."""
        if cancel:
            self._shutdown_event.set()
        with self._pool_lock:
            pool, self._pool = self._pool, None
        if pool is not None:
            pool.shutdown(wait=True, cancel_futures=cancel)
        self._shutdown_event.clear()
