"""Hook engine for item-lifecycle operations."""

from .context import build_context
from .errors import (
    CannotSpawnError,
    ConfigError,
    ContextError,
    EmptyPatternError,
    EmptyTargetPathError,
    ExecutorError,
    HookCancelled,
    HookError,
    InvalidWorkingDirectoryError,
    MultipleGlobstarError,
    PatternError,
    PreHookFailed,
)
from .executor import HookExecutor
from .guard import GuardedOutcome, guarded_operation
from .history import HookExecutionFilter, HookExecutionRecord, HookHistory
from .loader import LoadIssue, LoadReport, load_definitions, load_hooks_file
from .pattern import matches, parse
from .runner import HookRun, HookRunner, RunState
from .store import HookConfigStore
from .types import (
    Action,
    HookContext,
    HookDefinition,
    HookExecutionResult,
    HookOperation,
    ItemKind,
    OperationSelector,
    ParsedPattern,
    PatternSegment,
    Phase,
    SegmentKind,
)

__all__ = [
    "Action",
    "CannotSpawnError",
    "ConfigError",
    "ContextError",
    "EmptyPatternError",
    "EmptyTargetPathError",
    "ExecutorError",
    "GuardedOutcome",
    "HookCancelled",
    "HookConfigStore",
    "HookContext",
    "HookDefinition",
    "HookError",
    "HookExecutionFilter",
    "HookExecutionRecord",
    "HookExecutionResult",
    "HookExecutor",
    "HookHistory",
    "HookOperation",
    "HookRun",
    "HookRunner",
    "InvalidWorkingDirectoryError",
    "ItemKind",
    "LoadIssue",
    "LoadReport",
    "MultipleGlobstarError",
    "OperationSelector",
    "ParsedPattern",
    "PatternError",
    "PatternSegment",
    "Phase",
    "PreHookFailed",
    "RunState",
    "SegmentKind",
    "build_context",
    "guarded_operation",
    "load_definitions",
    "load_hooks_file",
    "matches",
    "parse",
]
