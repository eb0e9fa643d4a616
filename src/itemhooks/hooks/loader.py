"""Hook loader and validator."""

from __future__ import annotations

import logging
import math
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

import yaml

from .errors import ConfigError
from .pattern import parse
from .types import HookDefinition, OperationSelector, Phase


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoadIssue:
    index: int
    hook_id: str | None
    message: str


@dataclass
class LoadReport:
    definitions: list[HookDefinition] = field(default_factory=list)
    issues: list[LoadIssue] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.issues


def _read_bool(payload: dict[str, Any], key: str, default: bool) -> bool:
    value = payload.get(key, default)
    if isinstance(value, bool):
        return value
    raise ConfigError(f"{key} 必須為布林值")


def _read_timeout(payload: dict[str, Any]) -> float | None:
    raw = payload.get("timeout")
    if raw is None:
        return None
    try:
        timeout = float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError("timeout 必須為數字") from exc
    if not math.isfinite(timeout) or timeout <= 0:
        raise ConfigError("timeout 必須為大於 0 的有限數字")
    return timeout


def _resolve_working_directory(raw: Any, base_dir: Path | None) -> Path | None:
    if raw is None or raw == "":
        return None
    path = Path(str(raw)).expanduser()
    if not path.is_absolute() and base_dir is not None:
        path = base_dir / path
    return path


def validate_hook(hook_id: str, payload: dict[str, Any], *, base_dir: Path | None = None) -> HookDefinition:
    pattern = parse(str(payload.get("pattern") or ""))
    operation = OperationSelector.parse(str(payload.get("operation") or "*"))
    if "phase" not in payload:
        raise ConfigError("phase 不可為空")
    phase = Phase.parse(payload["phase"])

    command = payload.get("command")
    if not isinstance(command, str) or not command.strip():
        raise ConfigError("command 不可為空")
    shell = _read_bool(payload, "shell", False)
    if not shell:
        try:
            shlex.split(command)
        except ValueError as exc:
            raise ConfigError(f"command 無法解析：{exc}") from exc

    background = _read_bool(payload, "background", False)
    if background and phase is not Phase.POST:
        raise ConfigError("background 只適用於 post hook")

    return HookDefinition(
        id=hook_id,
        pattern=pattern,
        operation=operation,
        phase=phase,
        command=command,
        working_directory=_resolve_working_directory(payload.get("working_directory"), base_dir),
        timeout=_read_timeout(payload),
        shell=shell,
        background=background,
        enabled=_read_bool(payload, "enabled", True),
    )


def load_definitions(
    entries: Iterable[Any],
    *,
    base_dir: Path | None = None,
    start_index: int = 0,
    reserved_ids: set[str] | None = None,
) -> LoadReport:
    """Validate raw entries; invalid ones are reported and skipped."""
    report = LoadReport()
    seen = reserved_ids if reserved_ids is not None else set()
    for offset, payload in enumerate(entries):
        index = start_index + offset
        hook_id: str | None = None
        try:
            if not isinstance(payload, dict):
                raise ConfigError("hook 設定必須為物件")
            hook_id = str(payload.get("id") or f"hook-{index + 1}")
            if hook_id in seen:
                raise ConfigError(f"hook id 重複：{hook_id}")
            definition = validate_hook(hook_id, payload, base_dir=base_dir)
        except ConfigError as exc:
            logger.error("Hook #%s (%s) 設定錯誤，已略過：%s", index + 1, hook_id or "?", exc)
            report.issues.append(LoadIssue(index=index, hook_id=hook_id, message=str(exc)))
            continue
        seen.add(hook_id)
        report.definitions.append(definition)
    return report


def read_hook_entries(path: Path) -> list[Any]:
    if not path.exists():
        return []
    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"讀取 hook 設定失敗：{path}") from exc
    if not isinstance(payload, dict):
        raise ConfigError(f"hook 設定檔必須為物件：{path}")
    entries = payload.get("hooks") or []
    if not isinstance(entries, list):
        raise ConfigError(f"hooks 必須為清單：{path}")
    return entries


def load_hooks_file(path: Path) -> LoadReport:
    return load_definitions(read_hook_entries(path), base_dir=path.parent)
