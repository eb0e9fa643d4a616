"""Hook error definitions."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .types import HookExecutionResult


class HookError(RuntimeError):
    """Base class for hook engine errors."""


class ConfigError(HookError):
    """Raised when a hook configuration entry is invalid."""


class PatternError(ConfigError):
    """Raised when a path pattern cannot be compiled."""


class EmptyPatternError(PatternError):
    """Raised when a pattern string is empty."""


class MultipleGlobstarError(PatternError):
    """Raised when ``**`` appears more than once in a pattern."""


class ContextError(HookError):
    """Raised when a hook context cannot be built."""


class EmptyTargetPathError(ContextError):
    """Raised when the target path of a context is empty."""


class ExecutorError(HookError):
    """Infrastructure failure while launching a hook process."""


class CannotSpawnError(ExecutorError):
    """Raised when the hook process cannot be started."""


class InvalidWorkingDirectoryError(ExecutorError):
    """Raised when the hook working directory does not exist."""


class HookCancelled(HookError):
    """Raised when the encompassing operation was cancelled."""


class PreHookFailed(HookError):
    """A pre-hook blocked the guarded operation."""

    def __init__(self, definition_id: str, result: HookExecutionResult) -> None:
        self.definition_id = definition_id
        self.result = result
        if result.timed_out:
            reason = "執行逾時"
        elif result.error:
            reason = result.error
        else:
            reason = f"exit {result.exit_status}"
        detail = result.stderr.strip()
        message = f"pre-hook {definition_id} 阻擋操作：{reason}"
        if detail:
            message = f"{message}（{detail}）"
        super().__init__(message)
