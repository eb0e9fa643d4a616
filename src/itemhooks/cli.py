"""Command line interface for itemhooks."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any

import yaml

from .config import ConfigLoader, ConfigResolution, build_runner, get_config_value
from .hooks.errors import PreHookFailed
from .hooks.history import HookExecutionFilter, HookHistory
from .hooks.loader import LoadReport, load_hooks_file
from .hooks.types import HookExecutionResult, HookOperation, Phase
from .logging_utils import LOG_FILE_NAME, close_logger, setup_logger


LOGGER_NAME = "itemhooks"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="itemhooks", description="項目生命週期 hook 管理 CLI")
    parser.add_argument(
        "--data-dir",
        default=None,
        help="指定 itemhooks 資料夾位置（預設 ~/.itemhooks 或 $ITEMHOOKS_HOME）",
    )
    parser.add_argument("--project", default=None, help="專案根目錄（讀取 .itemhooks/config.yaml）")
    parser.add_argument("--verbose", action="store_true", help="在終端機顯示除錯訊息")

    subparsers = parser.add_subparsers(dest="command")

    hooks_parser = subparsers.add_parser("hooks", help="Hook 管理")
    hooks_sub = hooks_parser.add_subparsers(dest="hooks_command")

    hooks_sub.add_parser("list", help="列出有效的 hooks（依宣告順序）")

    hooks_check = hooks_sub.add_parser("check", help="檢查 hook 設定")
    hooks_check.add_argument("--file", default=None, help="只檢查指定的 hook YAML 檔案")

    hooks_run = hooks_sub.add_parser("run", help="手動觸發符合的 hooks")
    hooks_run.add_argument("--phase", required=True, choices=[phase.value for phase in Phase], help="階段")
    hooks_run.add_argument("--operation", required=True, help="操作（例如 issue.create）")
    hooks_run.add_argument("--target", required=True, help="目標路徑（例如 issues/0001.md）")
    hooks_run.add_argument("--item-id", default=None, help="項目 ID")
    hooks_run.add_argument("--meta", action="append", default=[], help="額外資訊 key=value，可重複指定")

    hooks_history = hooks_sub.add_parser("history", help="查看 hook 執行紀錄")
    hooks_history.add_argument("--phase", default=None, choices=[phase.value for phase in Phase], help="階段")
    hooks_history.add_argument("--item-type", default=None, help="項目類型（例如 issue）")
    hooks_history.add_argument("--operation", default=None, help="動作（例如 create）")
    hooks_history.add_argument("--item-id", default=None, help="項目 ID")
    hooks_history.add_argument("--limit", type=int, default=20, help="最多顯示筆數（預設 20）")

    hooks_show = hooks_sub.add_parser("show", help="查看單筆執行紀錄")
    hooks_show.add_argument("execution_id", help="執行紀錄 ID")

    config_parser = subparsers.add_parser("config", help="設定管理")
    config_sub = config_parser.add_subparsers(dest="config_command")

    config_get = config_sub.add_parser("get", help="讀取設定")
    config_get.add_argument("key", help="設定鍵（例如 runner.default_timeout_s）")

    config_set = config_sub.add_parser("set", help="更新設定")
    config_set.add_argument("key", help="設定鍵（例如 runner.default_timeout_s）")
    config_set.add_argument("value", help="設定值（會以 YAML 解析）")

    config_sub.add_parser("show", help="顯示合併後設定與來源")

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return

    loader = ConfigLoader(data_dir=Path(args.data_dir).expanduser() if args.data_dir else None)
    project_path = Path(args.project).expanduser().resolve() if args.project else None
    logger = setup_logger(LOGGER_NAME, loader.data_dir / "logs", logging.DEBUG if args.verbose else logging.WARNING)

    try:
        if args.command == "hooks":
            exit_code = _handle_hooks(loader, project_path, args)
        elif args.command == "config":
            exit_code = _handle_config(loader, project_path, args)
        else:
            parser.print_help()
            exit_code = 0
    except Exception as exc:  # noqa: BLE001
        logger.error("執行失敗：%s", exc, exc_info=True)
        print(f"發生錯誤：{exc}（詳細資訊請查看 logs/{LOG_FILE_NAME}）", file=sys.stderr)
        exit_code = 1
    finally:
        close_logger(LOGGER_NAME)

    if exit_code:
        sys.exit(exit_code)


def _parse_metadata(pairs: list[str]) -> dict[str, str]:
    metadata: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"--meta 格式需為 key=value：{pair}")
        metadata[key.strip()] = value
    return metadata


def _print_issues(report: LoadReport) -> None:
    for issue in report.issues:
        print(f"#{issue.index + 1}（{issue.hook_id or '?'}）：{issue.message}")


def _print_result(result: HookExecutionResult) -> None:
    if result.timed_out:
        status = "逾時"
    elif result.error:
        status = f"無法執行：{result.error}"
    else:
        status = f"exit {result.exit_status}"
    print(f"{result.definition_id}：{status}（{result.duration:.2f}s）")
    if result.stdout.strip():
        print(result.stdout.rstrip())
    if result.truncated:
        print("（輸出已截斷）")


def _history_for(resolution: ConfigResolution, project_path: Path | None) -> HookHistory:
    if project_path is None:
        raise ValueError("請以 --project 指定專案")
    return HookHistory.for_project(project_path, str(get_config_value(resolution.effective, "history.file")))


def _handle_hooks(loader: ConfigLoader, project_path: Path | None, args: argparse.Namespace) -> int:
    if args.hooks_command == "check" and args.file:
        report = load_hooks_file(Path(args.file).expanduser())
        _print_issues(report)
        if report.ok:
            print(f"hook 設定皆有效（共 {len(report.definitions)} 個）")
        return 0 if report.ok else 1

    resolution = loader.resolve(project_path=project_path)

    if args.hooks_command == "list":
        report = resolution.load_hooks()
        if not report.definitions:
            print("目前沒有任何 hook。")
            return 0
        for definition in report.definitions:
            state = "啟用" if definition.enabled else "停用"
            print(f"{definition.id}\t{definition.describe()}\t{state}\t{definition.command}")
        return 0

    if args.hooks_command == "check":
        report = resolution.load_hooks()
        _print_issues(report)
        if report.ok:
            print(f"hook 設定皆有效（共 {len(report.definitions)} 個）")
        return 0 if report.ok else 1

    if args.hooks_command == "run":
        return _run_hooks(resolution, project_path, args)

    if args.hooks_command == "history":
        history = _history_for(resolution, project_path)
        records = history.list_executions(
            HookExecutionFilter(
                phase=args.phase,
                item_type=args.item_type,
                operation=args.operation,
                item_id=args.item_id,
                limit=args.limit,
            )
        )
        if not records:
            print("目前沒有任何執行紀錄。")
            return 0
        for record in records:
            status = "逾時" if record.timed_out else f"exit {record.exit_code}"
            blocked = " 阻擋" if record.blocked_operation else ""
            print(f"{record.id}\t{record.timestamp}\t{record.hook_id}\t{record.phase}:{record.item_type}.{record.operation}\t{status}{blocked}")
        return 0

    if args.hooks_command == "show":
        history = _history_for(resolution, project_path)
        record = history.get_execution(args.execution_id)
        if record is None:
            raise KeyError(f"找不到執行紀錄：{args.execution_id}")
        print(yaml.safe_dump(record.to_dict(), allow_unicode=True, sort_keys=False))
        return 0

    raise ValueError("請指定 hooks 指令")


def _run_hooks(resolution: ConfigResolution, project_path: Path | None, args: argparse.Namespace) -> int:
    operation = HookOperation.parse(args.operation)
    phase = Phase.parse(args.phase)
    runner, report = build_runner(resolution, project_path)
    if report.issues:
        _print_issues(report)
    try:
        run = runner.run(phase, operation, args.target, _parse_metadata(args.meta), item_id=args.item_id)
    finally:
        runner.shutdown(cancel=False)

    if not run.matched:
        print("沒有符合的 hook。")
        return 0
    for result in run.results:
        _print_result(result)
    if run.background:
        print(f"已於背景執行 {len(run.background)} 個 post-hook")
    if run.blocked_by is not None:
        print(f"操作被阻擋：{PreHookFailed(run.blocked_by.definition_id, run.blocked_by)}", file=sys.stderr)
        return 1
    return 0


def _handle_config(loader: ConfigLoader, project_path: Path | None, args: argparse.Namespace) -> int:
    if args.config_command == "get":
        resolution = loader.resolve(project_path=project_path)
        print(_format_value(get_config_value(resolution.effective, args.key)))
        return 0
    if args.config_command == "set":
        try:
            parsed_value = yaml.safe_load(args.value)
        except yaml.YAMLError as exc:
            raise ValueError("設定值格式錯誤") from exc
        loader.set_value(args.key, parsed_value, project_path=project_path)
        print("已更新設定")
        return 0
    if args.config_command == "show":
        resolution = loader.resolve(project_path=project_path)
        print(yaml.safe_dump(resolution.annotated(), allow_unicode=True, sort_keys=False))
        return 0
    raise ValueError("請指定設定指令")


def _format_value(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return yaml.safe_dump(value, allow_unicode=True, sort_keys=False).rstrip()
    return str(value)


if __name__ == "__main__":
    main()
