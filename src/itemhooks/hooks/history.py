"""Hook execution history stored as JSONL."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..fs.atomic import append_jsonl, iter_jsonl

from .types import HookContext, HookDefinition, HookExecutionResult


logger = logging.getLogger(__name__)

HOOK_EXECUTIONS_FILE = "hook_executions.jsonl"


@dataclass
class HookExecutionRecord:
    id: str
    timestamp: str
    hook_id: str
    hook_pattern: str
    command: str
    exit_code: int | None
    stdout: str
    stderr: str
    duration_ms: int
    blocked_operation: bool
    phase: str
    item_type: str
    operation: str
    item_id: str | None
    target_path: str
    timed_out: bool
    cancelled: bool = False
    error: str | None = None

    @classmethod
    def from_result(
        cls,
        definition: HookDefinition,
        context: HookContext,
        result: HookExecutionResult,
        *,
        blocked_operation: bool,
    ) -> HookExecutionRecord:
        started_at = result.started_at or context.timestamp
        return cls(
            id=result.execution_id,
            timestamp=started_at.isoformat(),
            hook_id=definition.id,
            hook_pattern=definition.describe(),
            command=result.command or definition.command,
            exit_code=None if result.timed_out else result.exit_status,
            stdout=result.stdout,
            stderr=result.stderr,
            duration_ms=int(result.duration * 1000),
            blocked_operation=blocked_operation,
            phase=context.phase.value,
            item_type=context.operation.item.value,
            operation=context.operation.action.value,
            item_id=context.item_id,
            target_path=context.target_path,
            timed_out=result.timed_out,
            cancelled=result.cancelled,
            error=result.error,
        )

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> HookExecutionRecord:
        known = {key: payload[key] for key in cls.__dataclass_fields__ if key in payload}
        return cls(**known)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class HookExecutionFilter:
    phase: str | None = None
    item_type: str | None = None
    operation: str | None = None
    item_id: str | None = None
    limit: int | None = None

    def matches(self, record: HookExecutionRecord) -> bool:
        if self.phase and record.phase != self.phase:
            return False
        if self.item_type and record.item_type != self.item_type:
            return False
        if self.operation and record.operation != self.operation:
            return False
        if self.item_id and record.item_id != self.item_id:
            return False
        return True


def _sort_key(record: HookExecutionRecord) -> datetime:
    try:
        return datetime.fromisoformat(record.timestamp)
    except ValueError:
        return datetime.min.replace(tzinfo=timezone.utc)


class HookHistory:
    def __init__(self, path: Path) -> None:
        self.path = path

    @classmethod
    def for_project(cls, project_path: Path, filename: str = HOOK_EXECUTIONS_FILE) -> HookHistory:
        return cls(project_path / ".itemhooks" / filename)

    def append(self, record: HookExecutionRecord) -> None:
        try:
            append_jsonl(self.path, record.to_dict())
        except OSError as exc:
            logger.warning("寫入 hook 執行紀錄失敗：%s", exc)

    def _read_all(self) -> list[HookExecutionRecord]:
        records: list[HookExecutionRecord] = []
        try:
            for payload in iter_jsonl(self.path):
                try:
                    records.append(HookExecutionRecord.from_dict(payload))
                except TypeError:
                    continue
        except OSError as exc:
            logger.warning("讀取 hook 執行紀錄失敗：%s", exc)
        return records

    def list_executions(self, filter: HookExecutionFilter | None = None) -> list[HookExecutionRecord]:
        active = filter or HookExecutionFilter()
        records = [record for record in self._read_all() if active.matches(record)]
        records.sort(key=_sort_key, reverse=True)
        if active.limit:
            records = records[: active.limit]
        return records

    def get_execution(self, execution_id: str) -> HookExecutionRecord | None:
        for record in self._read_all():
            if record.id == execution_id:
                return record
        return None
