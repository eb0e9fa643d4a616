"""Hook data models for itemhooks."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

from .errors import ConfigError

WILDCARD = "*"


class Phase(str, Enum):
    PRE = "pre"
    POST = "post"

    @classmethod
    def parse(cls, value: str) -> Phase:
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise ConfigError(f"phase 必須為 pre 或 post：{value!r}") from exc


class ItemKind(str, Enum):
    ISSUE = "issue"
    DOC = "doc"
    ASSET = "asset"
    PR = "pr"
    USER = "user"
    LINK = "link"

    @classmethod
    def parse(cls, value: str) -> ItemKind:
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            allowed = ", ".join(kind.value for kind in cls)
            raise ConfigError(f"未知的項目類型 {value!r}，可用：{allowed}") from exc


class Action(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    SOFT_DELETE = "soft-delete"
    RESTORE = "restore"
    MOVE = "move"
    DUPLICATE = "duplicate"

    @classmethod
    def parse(cls, value: str) -> Action:
        normalized = str(value).strip().lower().replace("_", "-")
        try:
            return cls(normalized)
        except ValueError as exc:
            allowed = ", ".join(action.value for action in cls)
            raise ConfigError(f"未知的操作 {value!r}，可用：{allowed}") from exc


@dataclass(frozen=True)
class HookOperation:
    """A concrete item-lifecycle operation, e.g. ``issue.create``."""

    item: ItemKind
    action: Action

    @classmethod
    def parse(cls, value: str) -> HookOperation:
        text = str(value or "").strip()
        item, sep, action = text.partition(".")
        if not sep or WILDCARD in (item, action):
            raise ConfigError(f"操作格式必須為 <item>.<action>：{value!r}")
        return cls(ItemKind.parse(item), Action.parse(action))

    def __str__(self) -> str:
        return f"{self.item.value}.{self.action.value}"


@dataclass(frozen=True)
class OperationSelector:
    """The operation scope of a hook definition; ``None`` parts are wildcards."""

    item: ItemKind | None = None
    action: Action | None = None

    @classmethod
    def parse(cls, value: str) -> OperationSelector:
        text = str(value or "").strip()
        if not text:
            raise ConfigError("operation 不可為空")
        if text == WILDCARD:
            return cls()
        item, sep, action = text.partition(".")
        if not sep:
            raise ConfigError(f"operation 格式必須為 <item>.<action> 或 *：{value!r}")
        return cls(
            item=None if item == WILDCARD else ItemKind.parse(item),
            action=None if action == WILDCARD else Action.parse(action),
        )

    @property
    def is_any(self) -> bool:
        return self.item is None and self.action is None

    def __str__(self) -> str:
        if self.is_any:
            return WILDCARD
        item = self.item.value if self.item else WILDCARD
        action = self.action.value if self.action else WILDCARD
        return f"{item}.{action}"


class SegmentKind(str, Enum):
    LITERAL = "literal"
    SINGLE = "single"
    MULTI = "multi"


@dataclass(frozen=True)
class PatternSegment:
    kind: SegmentKind
    text: str = ""

    @property
    def is_multi(self) -> bool:
        return self.kind is SegmentKind.MULTI


@dataclass(frozen=True)
class ParsedPattern:
    """A compiled path pattern; ``source`` is kept for diagnostics."""

    segments: tuple[PatternSegment, ...]
    source: str

    @property
    def globstar_index(self) -> int | None:
        for index, segment in enumerate(self.segments):
            if segment.is_multi:
                return index
        return None

    def __str__(self) -> str:
        return self.source


@dataclass(frozen=True)
class HookDefinition:
    id: str
    pattern: ParsedPattern
    operation: OperationSelector
    phase: Phase
    command: str
    working_directory: Path | None = None
    timeout: float | None = None
    shell: bool = False
    background: bool = False
    enabled: bool = True

    def describe(self) -> str:
        return f"{self.phase.value}:{self.operation}:{self.pattern.source}"


@dataclass(frozen=True)
class HookContext:
    operation: HookOperation
    phase: Phase
    target_path: str
    item_id: str | None
    metadata: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    timestamp: datetime = field(default_factory=lambda: datetime.now().astimezone())


@dataclass(frozen=True)
class HookExecutionResult:
    definition_id: str
    exit_status: int
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0
    timed_out: bool = False
    stdout_truncated: bool = False
    stderr_truncated: bool = False
    cancelled: bool = False
    command: str = ""
    error: str | None = None
    execution_id: str = ""
    started_at: datetime | None = None

    @property
    def succeeded(self) -> bool:
        return self.exit_status == 0 and not self.timed_out and not self.cancelled and self.error is None

    @property
    def truncated(self) -> bool:
        return self.stdout_truncated or self.stderr_truncated
