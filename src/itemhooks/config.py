"""Configuration helpers for itemhooks."""

from __future__ import annotations

import logging
import math
import os
from copy import deepcopy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from .fs.atomic import atomic_write_text
from .hooks.errors import ConfigError
from .hooks.executor import HookExecutor
from .hooks.history import HookHistory
from .hooks.loader import LoadReport, load_definitions
from .hooks.runner import HookRunner
from .hooks.store import HookConfigStore


logger = logging.getLogger(__name__)

PROJECT_DIR_NAME = ".itemhooks"

DEFAULT_CONFIG: dict[str, Any] = {
    "itemhooks": {
        "data_dir": "~/.itemhooks",
    },
    "runner": {
        "default_timeout_s": 30,
        "max_output_bytes": 65536,
        "background_workers": 2,
    },
    "history": {
        "enabled": True,
        "file": "hook_executions.jsonl",
    },
    "projects": {"config_name": "config.yaml"},
}


def read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"讀取設定檔失敗：{path}") from exc
    if not isinstance(payload, dict):
        raise ConfigError(f"設定檔必須為物件：{path}")
    return payload


def write_yaml(path: Path, data: dict[str, Any]) -> None:
    try:
        atomic_write_text(path, yaml.safe_dump(data, allow_unicode=True, sort_keys=False), encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"寫入設定檔失敗：{path}") from exc


def set_config_value(config: dict[str, Any], key_path: str, value: Any) -> dict[str, Any]:
    parts = key_path.split(".")
    cursor = config
    for part in parts[:-1]:
        cursor = cursor.setdefault(part, {})
    cursor[parts[-1]] = value
    return config


def get_config_value(config: dict[str, Any], key_path: str) -> Any:
    cursor: Any = config
    for part in key_path.split("."):
        if not isinstance(cursor, dict) or part not in cursor:
            raise KeyError(f"找不到設定鍵：{key_path}")
        cursor = cursor[part]
    return cursor


def _assign_sources(value: Any, source: str) -> Any:
    if isinstance(value, dict):
        return {key: _assign_sources(val, source) for key, val in value.items()}
    return source


def _merge_with_sources(
    base: dict[str, Any],
    sources: dict[str, Any],
    updates: Mapping[str, Any],
    source: str,
) -> None:
    for key, value in updates.items():
        if key == "hooks" and isinstance(value, list):
            # hook lists are collected separately, in declaration order
            continue
        if isinstance(value, dict) and isinstance(base.get(key), dict) and isinstance(sources.get(key), dict):
            _merge_with_sources(base[key], sources[key], value, source)
        else:
            base[key] = value
            sources[key] = _assign_sources(value, source)


def annotate_config(effective: Any, sources: Any) -> Any:
    if isinstance(effective, dict) and isinstance(sources, dict):
        return {key: annotate_config(effective[key], sources.get(key)) for key in effective}
    return {"value": effective, "source": sources}


def _hook_entries(config: Mapping[str, Any], path: Path) -> list[Any]:
    entries = config.get("hooks")
    if entries is None or isinstance(entries, dict):
        return []
    if not isinstance(entries, list):
        raise ConfigError(f"hooks 必須為清單：{path}")
    return entries


@dataclass
class HookSource:
    """Raw hook entries of one configuration file."""

    origin: str
    path: Path
    base_dir: Path
    entries: list[Any] = field(default_factory=list)


@dataclass
class ConfigResolution:
    effective: dict[str, Any]
    sources: dict[str, Any]
    hook_sources: list[HookSource] = field(default_factory=list)

    def annotated(self) -> dict[str, Any]:
        return annotate_config(self.effective, self.sources)

    def load_hooks(self) -> LoadReport:
        """Validate all hook entries, global ones first."""
        report = LoadReport()
        reserved: set[str] = set()
        offset = 0
        for source in self.hook_sources:
            partial = load_definitions(
                source.entries,
                base_dir=source.base_dir,
                start_index=offset,
                reserved_ids=reserved,
            )
            report.definitions.extend(partial.definitions)
            report.issues.extend(partial.issues)
            offset += len(source.entries)
        return report


class ConfigLoader:
    def __init__(self, data_dir: Path | None = None) -> None:
        self.data_dir = data_dir or self._resolve_data_dir()

    def load_global(self) -> dict[str, Any]:
        return read_yaml(self.global_config_path())

    def load_project(self, project_path: Path) -> dict[str, Any]:
        return read_yaml(self.project_config_path(project_path))

    def resolve(
        self,
        project_path: Path | None = None,
        cli_overrides: Mapping[str, Any] | None = None,
    ) -> ConfigResolution:
        effective = deepcopy(DEFAULT_CONFIG)
        sources = _assign_sources(DEFAULT_CONFIG, "default")
        hook_sources: list[HookSource] = []

        global_path = self.global_config_path()
        global_config = self.load_global()
        _merge_with_sources(effective, sources, global_config, "global")
        hook_sources.append(HookSource("global", global_path, self.data_dir, _hook_entries(global_config, global_path)))

        if project_path is not None:
            project_file = self.project_config_path(project_path)
            project_config = self.load_project(project_path)
            _merge_with_sources(effective, sources, project_config, "project")
            hook_sources.append(HookSource("project", project_file, project_path, _hook_entries(project_config, project_file)))

        if cli_overrides:
            _merge_with_sources(effective, sources, cli_overrides, "cli")

        return ConfigResolution(effective=effective, sources=sources, hook_sources=hook_sources)

    @staticmethod
    def _resolve_data_dir() -> Path:
        env_path = os.environ.get("ITEMHOOKS_HOME")
        if env_path:
            return Path(env_path).expanduser()
        return Path(DEFAULT_CONFIG["itemhooks"]["data_dir"]).expanduser()

    def global_config_path(self) -> Path:
        return self.data_dir / "config.yaml"

    def project_config_path(self, project_path: Path) -> Path:
        return project_path / PROJECT_DIR_NAME / DEFAULT_CONFIG["projects"]["config_name"]

    def set_value(self, key_path: str, value: Any, project_path: Path | None = None) -> Path:
        """Persist one setting to the global file, or to the project file when given."""
        path = self.project_config_path(project_path) if project_path is not None else self.global_config_path()
        config = read_yaml(path)
        set_config_value(config, key_path, value)
        write_yaml(path, config)
        return path


def _read_number(config: dict[str, Any], key_path: str, cast: type) -> Any:
    raw = get_config_value(config, key_path)
    try:
        value = cast(raw)
    except (TypeError, ValueError, OverflowError) as exc:
        raise ConfigError(f"{key_path} 必須為數字：{raw!r}") from exc
    if not math.isfinite(value) or value <= 0:
        raise ConfigError(f"{key_path} 必須為大於 0 的有限數字：{raw!r}")
    return value


def build_runner(
    resolution: ConfigResolution,
    project_path: Path | None = None,
    *,
    store: HookConfigStore | None = None,
) -> tuple[HookRunner, LoadReport]:
    """Wire a runner from resolved configuration.

    Passing an existing ``store`` reloads it in place, which is how a running
    process picks up configuration changes.
    """
    effective = resolution.effective
    report = resolution.load_hooks()
    if store is None:
        store = HookConfigStore(report.definitions)
    else:
        store.load(report.definitions)

    history = None
    if project_path is not None and bool(get_config_value(effective, "history.enabled")):
        history = HookHistory.for_project(project_path, str(get_config_value(effective, "history.file")))

    runner = HookRunner(
        store,
        HookExecutor(max_output_bytes=_read_number(effective, "runner.max_output_bytes", int)),
        default_timeout=_read_number(effective, "runner.default_timeout_s", float),
        history=history,
        background_workers=_read_number(effective, "runner.background_workers", int),
    )
    if report.issues:
        logger.warning("有 %s 個 hook 設定無效，已略過", len(report.issues))
    return runner, report
